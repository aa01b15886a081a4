"""
Keyed memoization with stale-while-revalidate and request coalescing.
"""
from .core import CacheEntry, CacheSource, ForceMode, InvocationRecord, ResolveOptions
from .ttl_policies import DEFAULT_GARBAGE_LIFETIME_MS, classify, is_within_lifetime
from .errors import ForceThrowError, MemopadError, MissingComputeError
from .store import FreshnessStore, StoreHandle
from .coalescer import CoalescingRegistry, Party
from .manager import Memoizer, get_memoizer, reset_memoizer, resolve

__all__ = [
    # Core types
    "CacheEntry",
    "CacheSource",
    "ForceMode",
    "InvocationRecord",
    "ResolveOptions",
    # Lifetime policies
    "DEFAULT_GARBAGE_LIFETIME_MS",
    "classify",
    "is_within_lifetime",
    # Errors
    "ForceThrowError",
    "MemopadError",
    "MissingComputeError",
    # Storage
    "FreshnessStore",
    "StoreHandle",
    # Coalescing
    "CoalescingRegistry",
    "Party",
    # Manager
    "Memoizer",
    "get_memoizer",
    "reset_memoizer",
    "resolve",
]
