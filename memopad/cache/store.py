"""
Per-key storage of computed values with a retention window.

The store only knows whether *some* value is held for a key. Whether that
value is recent enough for a given caller is decided by the manager.
"""
import threading
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Any

from .core import CacheEntry, now_ms
from .ttl_policies import DEFAULT_GARBAGE_LIFETIME_MS

logger = logging.getLogger("memopad.store")


@dataclass
class _StoredEntry:
    entry: CacheEntry
    expires_at: float  # epoch milliseconds


class StoreHandle:
    """Store access bound to a single key."""

    def __init__(self, store: "FreshnessStore", key: str):
        self._store = store
        self.key = key

    def fresh(self) -> bool:
        return self._store.is_fresh(self.key)

    def get(self) -> Optional[CacheEntry]:
        return self._store.get(self.key)

    def set(self, entry: CacheEntry, lifetime: Optional[float] = None) -> None:
        self._store.set(self.key, entry, lifetime=lifetime)


class FreshnessStore:
    """
    In-memory key -> CacheEntry map.

    Entries are kept until overwritten, invalidated, or older than their
    retention window, after which they are dropped on the next access.
    """

    def __init__(self, garbage_lifetime_ms: float = DEFAULT_GARBAGE_LIFETIME_MS):
        """
        Initialize the store.

        Args:
            garbage_lifetime_ms: Default retention window for entries
        """
        self._entries: Dict[str, _StoredEntry] = {}
        self._lock = threading.RLock()
        self._garbage_lifetime_ms = garbage_lifetime_ms
        self._stats = {
            "writes": 0,
            "purged": 0,
        }

    @property
    def garbage_lifetime_ms(self) -> float:
        return self._garbage_lifetime_ms

    def open(self, key: str) -> StoreHandle:
        """Get a handle bound to one key."""
        return StoreHandle(self, key)

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key, or None if absent or past retention."""
        with self._lock:
            stored = self._entries.get(key)
            if stored is None:
                return None
            if stored.expires_at <= now_ms():
                del self._entries[key]
                self._stats["purged"] += 1
                logger.debug(f"Purged expired entry: {key}")
                return None
            return stored.entry

    def set(
        self,
        key: str,
        entry: CacheEntry,
        lifetime: Optional[float] = None,
    ) -> None:
        """
        Store an entry, replacing any previous one for the key.

        Args:
            key: Cache key
            entry: The entry to store
            lifetime: Retention window in milliseconds, independent of the
                caller's freshness lifetime. Defaults to the store's
                garbage lifetime.
        """
        if lifetime is None:
            lifetime = self._garbage_lifetime_ms
        with self._lock:
            self._entries[key] = _StoredEntry(
                entry=entry,
                expires_at=now_ms() + lifetime,
            )
            self._stats["writes"] += 1

    def is_fresh(self, key: str) -> bool:
        """True if any retained value exists for key."""
        return self.get(key) is not None

    def purge_expired(self) -> int:
        """
        Drop every entry past its retention window.

        Returns:
            Number of entries dropped
        """
        now = now_ms()
        with self._lock:
            expired = [k for k, s in self._entries.items() if s.expires_at <= now]
            for key in expired:
                del self._entries[key]
            self._stats["purged"] += len(expired)
        if expired:
            logger.info(f"Purged {len(expired)} expired entries")
        return len(expired)

    def invalidate(self, key: str) -> bool:
        """
        Remove a specific entry.

        Returns:
            True if entry was found and removed
        """
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                logger.info(f"Invalidated cache: {key}")
                return True
            return False

    def clear(self) -> int:
        """
        Remove all entries.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "writes": self._stats["writes"],
                "purged": self._stats["purged"],
                "garbage_lifetime_ms": self._garbage_lifetime_ms,
            }
