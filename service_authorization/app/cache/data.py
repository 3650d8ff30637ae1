"""
Cached access to the group, application and connection collections.
"""

from typing import Any, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .memoized import MemoizedCache, DEFAULT_MAX_ENTRIES
from ..models import Application, Connection, Group

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..stores.base import ApplicationStore, ConnectionDirectory, GroupStore


CONNECTION_FIELDS = "id,name,strategy"


async def _load_applications(store: "ApplicationStore") -> List[Application]:
    return list(await store.get_applications())


async def _load_groups(store: "GroupStore") -> List[Group]:
    return list(await store.get_groups())


async def _load_connections(directory: "ConnectionDirectory") -> List[Connection]:
    connections = await directory.get_connections(fields=CONNECTION_FIELDS)
    return sorted(connections, key=lambda conn: conn.name.lower())


def _source_key(source: Any, default: str) -> str:
    """Cache key for a data source: its fingerprint when it has one."""
    return getattr(source, "hash", None) or default


class DataCaches:
    """The collection caches shared by every resolver of one process."""

    def __init__(
        self,
        max_age: Optional[float],
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        metrics: Optional["MetricsCollector"] = None,
        **cache_options: Any,
    ):
        self.logger = get_logger("authorization.cache.data")
        self.applications = MemoizedCache(
            _load_applications, name="applications", max_entries=max_entries,
            max_age=max_age, metrics=metrics, **cache_options
        )
        self.groups = MemoizedCache(
            _load_groups, name="groups", max_entries=max_entries,
            max_age=max_age, metrics=metrics, **cache_options
        )
        self.connections = MemoizedCache(
            _load_connections, name="connections", max_entries=max_entries,
            max_age=max_age, metrics=metrics, **cache_options
        )

    async def get_applications(self, store: "ApplicationStore") -> List[Application]:
        return await self.applications.get(_source_key(store, "applications"), store)

    async def get_groups(self, store: "GroupStore") -> List[Group]:
        return await self.groups.get(_source_key(store, "groups"), store)

    async def get_connections(self, directory: "ConnectionDirectory") -> List[Connection]:
        """Connections sorted by case-insensitive name."""
        return await self.connections.get(_source_key(directory, "connections"), directory)

    def clear(self) -> None:
        for cache in (self.applications, self.groups, self.connections):
            cache.clear()

    def stats(self):
        return {
            cache.name: cache.stats()
            for cache in (self.applications, self.groups, self.connections)
        }
