"""
Lifetime and retention helpers.
"""
from typing import Optional

from .core import CacheEntry, CacheSource, is_number, now_ms


# Stored entries are retained this long regardless of the caller's lifetime
DEFAULT_GARBAGE_LIFETIME_MS = 6 * 60 * 60 * 1000  # 6 hours


def is_within_lifetime(
    entry: CacheEntry,
    lifetime: Optional[float],
    now: Optional[float] = None,
) -> bool:
    """
    Check whether an entry is still fresh for the caller.

    Args:
        entry: The stored entry
        lifetime: Caller-supplied lifetime in milliseconds. Anything that is
            not a number is treated as infinite.
        now: Current time in epoch milliseconds (defaults to the clock)

    Returns:
        True if no refresh is needed
    """
    if not is_number(lifetime):
        return True
    if now is None:
        now = now_ms()
    return (now - entry.timestamp) < lifetime


def classify(
    entry: Optional[CacheEntry],
    lifetime: Optional[float],
    now: Optional[float] = None,
) -> CacheSource:
    """Classify how a call for this entry will be answered."""
    if entry is None:
        return CacheSource.UPSTREAM
    if is_within_lifetime(entry, lifetime, now):
        return CacheSource.FRESH
    return CacheSource.STALE
