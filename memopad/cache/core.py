"""
Core memoization data structures.
"""
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def is_number(value: Any) -> bool:
    """True for real ints and floats, excluding bools and NaN."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


class ForceMode(Enum):
    """How a call bypasses the cached value."""
    SYNC = "sync"     # Wait for the new value, skip the cached one
    ASYNC = "async"   # Serve the cached value, refresh in the background


class CacheSource(Enum):
    """Where a resolved value came from."""
    FRESH = "fresh"       # Within lifetime
    STALE = "stale"       # Past lifetime, served while refreshing
    UPSTREAM = "upstream" # Computed for this call


@dataclass(frozen=True)
class CacheEntry:
    """
    A stored computation result. Replaced wholesale on every successful
    computation, never mutated in place.
    """
    timestamp: float  # epoch milliseconds
    value: Any

    @property
    def age_ms(self) -> float:
        """Milliseconds since the value was computed."""
        return now_ms() - self.timestamp


class ResolveOptions(BaseModel):
    """Options for a single resolve call."""

    id: str = Field(min_length=1)
    lifetime: Optional[float] = None
    force_update: Optional[ForceMode] = Field(default=None, alias="forceUpdate")

    class Config:
        populate_by_name = True
        frozen = True

    @field_validator("force_update", mode="before")
    @classmethod
    def _coerce_force_update(cls, value):
        # True means "refresh, but keep serving the cached value"
        if value is True:
            return ForceMode.ASYNC
        if not value:
            return None
        return value

    @field_validator("lifetime", mode="before")
    @classmethod
    def _coerce_lifetime(cls, value):
        # Anything that is not a real number means infinite freshness
        return value if is_number(value) else None

    @property
    def is_forced(self) -> bool:
        return self.force_update is not None

    @property
    def is_synchronous(self) -> bool:
        return self.force_update is ForceMode.SYNC

    def without_force(self) -> "ResolveOptions":
        """Copy of these options with force_update cleared."""
        return self.model_copy(update={"force_update": None})


@dataclass
class InvocationRecord:
    """
    State of one resolve call. Tracks whether the caller already received a
    value so a later outcome never settles it a second time.
    """
    key: str
    lifetime: Optional[float] = None
    force_mode: Optional[ForceMode] = None
    is_resolved: bool = False
    is_cached: bool = False
    timestamp: Optional[float] = None
    value: Any = None

    def serve(self, entry: CacheEntry) -> Any:
        """Mark the record resolved with a stored entry."""
        self.timestamp = entry.timestamp
        self.value = entry.value
        self.is_cached = True
        self.is_resolved = True
        return entry.value
