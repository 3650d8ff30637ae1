"""
Connection display names for group mappings.
"""

import asyncio
from typing import List, Optional, Sequence, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import NotFoundError
from ..cache.memoized import MemoizedCache, DEFAULT_MAX_ENTRIES
from ..models import Connection, DescribedMapping, GroupMapping

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..stores.base import ConnectionDirectory


DEFAULT_CONNECTION_MAX_AGE = 600.0
DEFAULT_LOOKUP_CONCURRENCY = 10


class MappingDescriber:
    """Decorates mappings with the name and strategy of their connection.

    Connections are looked up one by one through a cache keyed by
    connection id. Mappings pointing at a deleted connection are dropped.
    """

    def __init__(
        self,
        directory: "ConnectionDirectory",
        *,
        max_age: Optional[float] = DEFAULT_CONNECTION_MAX_AGE,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        concurrency: int = DEFAULT_LOOKUP_CONCURRENCY,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.directory = directory
        self.logger = get_logger("authorization.mappings")
        self.concurrency = max(1, concurrency)
        self.connections = MemoizedCache(
            self._load_connection,
            name="connection",
            max_entries=max_entries,
            max_age=max_age,
            metrics=metrics,
        )

    async def _load_connection(self, connection_id: str) -> Connection:
        return await self.directory.get_connection(connection_id)

    async def _describe_one(self, mapping: GroupMapping, semaphore: asyncio.Semaphore) -> Optional[DescribedMapping]:
        async with semaphore:
            try:
                connection = await self.connections.get(mapping.connection_id, mapping.connection_id)
            except NotFoundError:
                self.logger.info(
                    "Skipping mapping for missing connection",
                    connection_id=mapping.connection_id,
                    group_name=mapping.group_name
                )
                return None

        return DescribedMapping(mapping=mapping, connection_name=connection.display_name)

    async def describe(self, mappings: Sequence[GroupMapping]) -> List[DescribedMapping]:
        """Described mappings in input order; any lookup failure other than not-found propagates."""
        # Created per call so it binds to the running loop
        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(*(self._describe_one(mapping, semaphore) for mapping in mappings))
        return [described for described in results if described is not None]
