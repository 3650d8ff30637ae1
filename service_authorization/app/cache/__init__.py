"""
Cache package for Authorization Service.

Provides an in-process memoizing cache (TTL, LRU capacity bound and
coalescing of concurrent loads) and the collection caches built on it.
Caches are constructed once at service start and passed to the
resolvers that need them.
"""

from .memoized import MemoizedCache, CacheEntry
from .data import DataCaches

__all__ = ["MemoizedCache", "CacheEntry", "DataCaches"]
