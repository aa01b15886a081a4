"""
Memoization orchestration with stale-while-revalidate and request coalescing.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Union

from .core import (
    CacheEntry,
    CacheSource,
    InvocationRecord,
    ResolveOptions,
    now_ms,
)
from .coalescer import CoalescingRegistry, Party
from .errors import ForceThrowError, MissingComputeError
from .store import FreshnessStore, StoreHandle
from .ttl_policies import DEFAULT_GARBAGE_LIFETIME_MS, classify
from config.settings import settings

logger = logging.getLogger("memopad.manager")

Compute = Callable[[], Any]
ErrorHandler = Callable[[BaseException], Any]
OptionsLike = Union[ResolveOptions, Mapping[str, Any]]

# A failed sync refresh falls back to an unforced call at most this many times
MAX_SYNC_RETRIES = 1


class Memoizer:
    """
    Keyed memoization with:
    - Immediate answers from the store when any value is held
    - Background refresh once a value outlives the caller's lifetime
    - Forced refreshes, either in the background ("async") or awaited ("sync")
    - One computation per key at a time, shared by every concurrent caller
    - Fallback to the last good value when a refresh fails
    """

    def __init__(
        self,
        store: Optional[FreshnessStore] = None,
        registry: Optional[CoalescingRegistry] = None,
        garbage_lifetime_ms: Optional[float] = None,
    ):
        """
        Initialize the memoizer.

        Args:
            store: Value store (a private one is created if omitted)
            registry: Coalescing registry (a private one is created if omitted)
            garbage_lifetime_ms: Retention window for written entries,
                independent of any caller's lifetime
        """
        if garbage_lifetime_ms is None:
            garbage_lifetime_ms = (
                store.garbage_lifetime_ms if store is not None
                else DEFAULT_GARBAGE_LIFETIME_MS
            )
        self._garbage_lifetime_ms = garbage_lifetime_ms
        self._store = store if store is not None else FreshnessStore(garbage_lifetime_ms)
        self._registry = registry if registry is not None else CoalescingRegistry()

        # Background refreshes and async error handlers still running
        self._background: Set[asyncio.Future] = set()

        # Stats tracking
        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "forced": 0,
            "refreshes": 0,
            "refresh_failures": 0,
            "joins": 0,
        }

    @property
    def store(self) -> FreshnessStore:
        return self._store

    @property
    def registry(self) -> CoalescingRegistry:
        return self._registry

    async def resolve(
        self,
        options: OptionsLike,
        compute: Optional[Compute] = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> Any:
        """
        Get the value for a key, computing it if needed.

        Args:
            options: ResolveOptions or a mapping with ``id``, optional
                ``lifetime`` (milliseconds) and ``forceUpdate``
                (``"sync"`` or ``"async"``)
            compute: Zero-argument callable producing the value, or an
                awaitable of it. Only needed when a refresh happens.
            on_error: Called with every error raised by compute. Purely
                observational; it never changes the result.

        Returns:
            The cached value when one is held (unless forceUpdate is "sync"),
            otherwise the freshly computed value

        Raises:
            ForceThrowError: Always propagated from compute
            Exception: Any compute error when no previous value can be used
        """
        if not isinstance(options, ResolveOptions):
            options = ResolveOptions.model_validate(options)
        return await self._resolve(options, compute, on_error, retries=0)

    async def _resolve(
        self,
        options: ResolveOptions,
        compute: Optional[Compute],
        on_error: Optional[ErrorHandler],
        retries: int,
    ) -> Any:
        key = options.id
        handle = self._store.open(key)
        record = InvocationRecord(
            key=key,
            lifetime=options.lifetime,
            force_mode=options.force_update,
        )

        if not options.is_synchronous:
            entry = handle.get()
            if entry is not None:
                value = record.serve(entry)
                source = classify(entry, options.lifetime)

                if not options.is_forced and source is CacheSource.FRESH:
                    logger.debug(f"CACHE HIT (fresh): {key} [age={entry.age_ms:.0f}ms]")
                    self._stats["hits_fresh"] += 1
                    return value

                if options.is_forced:
                    logger.info(f"FORCE REFRESH (async): {key}")
                    self._stats["forced"] += 1
                else:
                    logger.debug(
                        f"CACHE HIT (stale, refreshing): {key} "
                        f"[age={entry.age_ms:.0f}ms]"
                    )
                    self._stats["hits_stale"] += 1
                self._spawn(
                    self._refresh(record, options, handle, compute, on_error, retries)
                )
                return value

        if options.is_forced:
            logger.info(f"FORCE REFRESH ({options.force_update.value}): {key}")
            self._stats["forced"] += 1
        else:
            logger.info(f"CACHE MISS: {key}")
            self._stats["misses"] += 1
        return await self._refresh(record, options, handle, compute, on_error, retries)

    async def _refresh(
        self,
        record: InvocationRecord,
        options: ResolveOptions,
        handle: StoreHandle,
        compute: Optional[Compute],
        on_error: Optional[ErrorHandler],
        retries: int,
    ) -> Any:
        """Join the in-flight computation for the key or start a new one."""
        party = self._registry.party(options.id)

        if party.exists():
            if not options.is_forced:
                self._stats["joins"] += 1
                if record.is_resolved:
                    # Already answered from the store, nothing left to deliver
                    await self._drain(party)
                    return record.value
                return await party.crash()
            # A forced refresh never reuses a run that may predate the request
            while party.exists():
                await self._drain(party)

        hosted = party.host(
            self._compute(record, options, handle, compute, on_error, retries)
        )
        return await asyncio.shield(hosted)

    async def _drain(self, party: Party) -> None:
        try:
            await party.crash()
        except Exception as e:
            # The drained run reports to its own callers
            logger.debug(f"Drained failed computation for {party.key}: {e!r}")

    async def _compute(
        self,
        record: InvocationRecord,
        options: ResolveOptions,
        handle: StoreHandle,
        compute: Optional[Compute],
        on_error: Optional[ErrorHandler],
        retries: int,
    ) -> Any:
        """Run compute once and settle the hosted computation."""
        key = options.id
        try:
            if compute is None:
                raise MissingComputeError(key)
            value = compute()
            if inspect.isawaitable(value):
                value = await value
        except Exception as error:
            self._stats["refresh_failures"] += 1
            self._report(on_error, error, key)

            if isinstance(error, ForceThrowError):
                logger.warning(f"Forced failure for {key}: {error}")
                raise

            if options.is_synchronous and handle.fresh():
                if retries >= MAX_SYNC_RETRIES:
                    raise
                logger.warning(
                    f"Sync refresh failed for {key}, falling back to cached value: {error}"
                )
                return await self._resolve(
                    options.without_force(), compute, on_error, retries=retries + 1
                )

            if not record.is_resolved:
                raise

            logger.warning(f"Background refresh failed: {key} - {error}")
            return record.value

        entry = CacheEntry(timestamp=now_ms(), value=value)
        handle.set(entry, lifetime=self._garbage_lifetime_ms)
        record.timestamp = entry.timestamp
        record.value = value
        record.is_resolved = True
        self._stats["refreshes"] += 1
        logger.debug(f"Stored new value for {key}")
        return value

    def _report(
        self,
        on_error: Optional[ErrorHandler],
        error: BaseException,
        key: str,
    ) -> None:
        """Hand an error to the caller's handler without letting it interfere."""
        if on_error is None:
            return
        try:
            result = on_error(error)
        except Exception:
            logger.exception(f"Error handler failed for {key}")
            return
        if inspect.isawaitable(result):
            self._spawn(self._await_handler(result, key))

    async def _await_handler(self, result: Awaitable[Any], key: str) -> None:
        try:
            await result
        except Exception:
            logger.exception(f"Error handler failed for {key}")

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Future:
        """Run a coroutine in the background, keeping a reference until done."""
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Future) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # Only a forced failure escapes a background refresh
            logger.error(f"Background refresh raised: {error!r}")

    async def wait_idle(self) -> None:
        """Wait until every background refresh and error handler has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def invalidate(self, key: str) -> bool:
        """
        Drop the stored value for a key.

        Returns:
            True if entry was found and removed
        """
        return self._store.invalidate(key)

    def clear(self) -> int:
        """
        Drop every stored value.

        Returns:
            Number of entries cleared
        """
        return self._store.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get memoizer statistics."""
        total_hits = self._stats["hits_fresh"] + self._stats["hits_stale"]
        total_requests = total_hits + self._stats["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "hits_fresh": self._stats["hits_fresh"],
            "hits_stale": self._stats["hits_stale"],
            "misses": self._stats["misses"],
            "forced": self._stats["forced"],
            "refreshes": self._stats["refreshes"],
            "refresh_failures": self._stats["refresh_failures"],
            "joins": self._stats["joins"],
            "hit_rate_percent": round(hit_rate, 1),
            "background_tasks": len(self._background),
            "store": self._store.get_stats(),
            "coalescer": self._registry.get_stats(),
        }


# Global memoizer instance
_memoizer: Optional[Memoizer] = None


def get_memoizer() -> Memoizer:
    """Get or create the global memoizer."""
    global _memoizer
    if _memoizer is None:
        _memoizer = Memoizer(garbage_lifetime_ms=settings.garbage_lifetime_ms)
    return _memoizer


def reset_memoizer() -> None:
    """Discard the global memoizer so the next call builds a fresh one."""
    global _memoizer
    _memoizer = None


async def resolve(
    options: OptionsLike,
    compute: Optional[Compute] = None,
    on_error: Optional[ErrorHandler] = None,
) -> Any:
    """Resolve a key through the global memoizer."""
    return await get_memoizer().resolve(options, compute, on_error)
