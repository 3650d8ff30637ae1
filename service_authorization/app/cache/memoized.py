"""
In-process memoizing cache with TTL, LRU capacity bound and load coalescing.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_MAX_ENTRIES = 100


@dataclass
class CacheEntry:
    """A loaded value and the monotonic time after which it is stale."""
    key: Hashable
    value: Any
    expires_at: float


class MemoizedCache:
    """Keyed cache in front of an async loader.

    Concurrent ``get`` calls for a key whose load is in flight wait on that
    load instead of starting another one, and all of them observe its value
    or its exception. Failed loads are never stored.
    """

    def __init__(
        self,
        loader: Callable[..., Awaitable[Any]],
        *,
        name: str = "default",
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_age: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.name = name
        self.max_entries = max_entries
        self.max_age = max_age
        self.logger = get_logger(f"authorization.cache.{name}")
        self.metrics = metrics

        self._loader = loader
        self._clock = clock
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._pending: Dict[Hashable, "asyncio.Task[Any]"] = {}
        # Bumped by invalidate/clear; a load started under an older generation is not stored
        self._epoch = 0
        self._generations: Dict[Hashable, int] = {}

        self._hits = 0
        self._misses = 0
        self._loads = 0
        self._evictions = 0

    async def get(self, key: Hashable, *loader_args: Any) -> Any:
        """Return the value for ``key``, loading it with ``loader_args`` if absent or stale."""
        entry = self._entries.get(key)
        if entry is not None:
            if entry.expires_at > self._clock():
                self._entries.move_to_end(key)
                self._record("cache_hits_total")
                self._hits += 1
                return entry.value

            del self._entries[key]
            self.logger.debug("Cache entry expired", key=key)

        self._record("cache_misses_total")
        self._misses += 1

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader_args, self._generation(key)))
            self._pending[key] = task
        else:
            self.logger.debug("Joining in-flight load", key=key)

        # Cancelling one waiter must not abort the load shared with the others
        return await asyncio.shield(task)

    def _generation(self, key: Hashable) -> tuple:
        return (self._epoch, self._generations.get(key, 0))

    async def _load(self, key: Hashable, loader_args: tuple, generation: tuple) -> Any:
        start = time.perf_counter()
        self._loads += 1
        try:
            value = await self._loader(*loader_args)
        except BaseException as exc:
            self._record("cache_loads_total", status="error")
            self.logger.warning("Cache load failed", key=key, error=str(exc))
            raise
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]
            if self.metrics:
                self.metrics.observe_histogram(
                    "cache_load_duration_seconds",
                    time.perf_counter() - start,
                    cache_type=self.name,
                )

        self._record("cache_loads_total", status="ok")
        if generation == self._generation(key):
            self._store(key, value)
        else:
            self.logger.debug("Discarding load invalidated while in flight", key=key)
        return value

    def _store(self, key: Hashable, value: Any) -> None:
        expires_at = float("inf") if self.max_age is None else self._clock() + self.max_age
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            self.logger.debug("Evicted least recently used entry", key=evicted_key)

    def _record(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, cache_type=self.name, **labels)

    def invalidate(self, key: Hashable) -> bool:
        """Drop a cached entry.

        A load already in flight still answers its waiters but is not stored;
        the next ``get`` starts a fresh load.
        """
        self._generations[key] = self._generations.get(key, 0) + 1
        self._pending.pop(key, None)
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every cached entry."""
        self._epoch += 1
        self._generations.clear()
        self._pending.clear()
        self._entries.clear()
        self.logger.info("Cache cleared")

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self._hits + self._misses
        return {
            "name": self.name,
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "max_age": self.max_age,
            "in_flight": len(self._pending),
            "hits": self._hits,
            "misses": self._misses,
            "loads": self._loads,
            "evictions": self._evictions,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.expires_at > self._clock()

    def __len__(self) -> int:
        return len(self._entries)
