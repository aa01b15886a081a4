"""
memopad: function memoization with stale-while-revalidate.
"""
from memopad.cache import (
    CacheEntry,
    ForceMode,
    ForceThrowError,
    Memoizer,
    ResolveOptions,
    get_memoizer,
    resolve,
)

__version__ = "1.0.0"

__all__ = [
    "CacheEntry",
    "ForceMode",
    "ForceThrowError",
    "Memoizer",
    "ResolveOptions",
    "get_memoizer",
    "resolve",
]
