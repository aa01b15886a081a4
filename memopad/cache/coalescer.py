"""
Request coalescing so concurrent callers for a key share one computation.

When several coroutines ask for the same key while a computation is running,
they all await that computation instead of starting their own.
"""
import asyncio
import time
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Dict, Any

logger = logging.getLogger("memopad.coalescer")


@dataclass
class InFlightComputation:
    """Tracks a running computation for one key."""
    task: asyncio.Future
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class Party:
    """
    Coalescing handle bound to one key.

    Pattern:
    - exists() tells whether a computation is running for the key
    - host() registers a new computation (only valid when none exists)
    - crash() joins the running computation and returns its outcome
    """

    def __init__(self, registry: "CoalescingRegistry", key: str):
        self._registry = registry
        self.key = key

    def exists(self) -> bool:
        return self._registry.exists(self.key)

    def host(self, computation: Awaitable[Any]) -> asyncio.Future:
        return self._registry.host(self.key, computation)

    def crash(self) -> Awaitable[Any]:
        return self._registry.crash(self.key)


class CoalescingRegistry:
    """
    Tracks at most one in-flight computation per key.

    The slot for a key is released exactly when its computation settles,
    successfully or not, and before any joined waiter resumes. Waiters are
    shielded: cancelling a waiter never cancels the shared computation.

    Usage:
        registry = CoalescingRegistry()
        party = registry.party("user:42")
        if party.exists():
            value = await party.crash()
        else:
            value = await party.host(load_user(42))
    """

    def __init__(self):
        self._in_flight: Dict[str, InFlightComputation] = {}
        self._stats = {
            "hosted": 0,
            "joined": 0,
        }

    def party(self, key: str) -> Party:
        """Get a coalescing handle bound to one key."""
        return Party(self, key)

    def exists(self, key: str) -> bool:
        """True if a computation is currently in flight for key."""
        return key in self._in_flight

    def host(self, key: str, computation: Awaitable[Any]) -> asyncio.Future:
        """
        Register a computation as the in-flight one for key.

        Args:
            key: Coalescing key
            computation: Awaitable producing the value

        Returns:
            Future settling with the computation's outcome

        Raises:
            RuntimeError: If a computation is already in flight for key
        """
        if key in self._in_flight:
            raise RuntimeError(f"A computation is already in flight for {key!r}")

        task = asyncio.ensure_future(computation)
        self._in_flight[key] = InFlightComputation(task=task)
        self._stats["hosted"] += 1
        # Registered first, so it runs before any waiter is woken
        task.add_done_callback(lambda done: self._release(key, done))
        logger.debug(f"Hosting computation for {key}")
        return task

    def crash(self, key: str) -> Awaitable[Any]:
        """
        Join the in-flight computation for key without starting a new one.

        Returns:
            Awaitable settling with the computation's value or error

        Raises:
            LookupError: If nothing is in flight for key
        """
        in_flight = self._in_flight.get(key)
        if in_flight is None:
            raise LookupError(f"No computation in flight for {key!r}")
        in_flight.waiter_count += 1
        self._stats["joined"] += 1
        logger.debug(
            f"Coalescing request for {key} "
            f"(waiters: {in_flight.waiter_count})"
        )
        return asyncio.shield(in_flight.task)

    def _release(self, key: str, task: asyncio.Future) -> None:
        in_flight = self._in_flight.get(key)
        if in_flight is not None and in_flight.task is task:
            del self._in_flight[key]
        if task.cancelled():
            logger.warning(f"Computation cancelled for {key}")
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Computation failed for {key}: {error!r}")

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight computations."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
            "hosted": self._stats["hosted"],
            "joined": self._stats["joined"],
        }
