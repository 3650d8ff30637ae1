"""
Dynamic group membership from identity-provider claims.
"""

import asyncio
from typing import Iterable, List, Optional, Sequence, TYPE_CHECKING

from shared.logging import get_logger
from ..models import Group, GroupMapping

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..cache.data import DataCaches
    from ..stores.base import ConnectionDirectory, GroupStore


# Connection id used when the connection name is unknown; matches no mapping.
UNKNOWN_CONNECTION_ID = ""


def _matches(mapping: GroupMapping, connection_id: str, claimed_group_names: Sequence[str]) -> bool:
    return (
        bool(mapping.connection_id)
        and mapping.connection_id == connection_id
        and mapping.group_name in claimed_group_names
    )


def match_mapped_groups(
    groups: Iterable[Group],
    connection_id: str,
    claimed_group_names: Sequence[str],
) -> List[str]:
    """Names of groups with any mapping for the connection and one of the claims.

    Group names are compared exactly, including case.
    """
    return [
        group.name
        for group in groups
        if any(_matches(mapping, connection_id, claimed_group_names) for mapping in group.mappings)
    ]


class DynamicMembershipResolver:
    """Resolves groups granted by connection claims through group mappings."""

    def __init__(
        self,
        caches: "DataCaches",
        store: "GroupStore",
        directory: "ConnectionDirectory",
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.caches = caches
        self.store = store
        self.directory = directory
        self.metrics = metrics
        self.logger = get_logger("authorization.dynamic")

    async def resolve(self, connection_name: Optional[str], claimed_group_names: Optional[Sequence[str]]) -> List[str]:
        """Group names granted to a user of ``connection_name`` claiming ``claimed_group_names``.

        An unknown connection yields no groups rather than an error.
        """
        if not connection_name or not claimed_group_names:
            self._record("skipped")
            return []

        groups, connections = await asyncio.gather(
            self.caches.get_groups(self.store),
            self.caches.get_connections(self.directory),
        )

        connection = next((conn for conn in connections if conn.name == connection_name), None)
        if connection is None:
            self.logger.info("Unknown connection, no dynamic groups", connection=connection_name)
            connection_id = UNKNOWN_CONNECTION_ID
        else:
            connection_id = connection.connection_id

        names = match_mapped_groups(groups, connection_id, list(claimed_group_names))
        self._record("matched" if names else "unmatched")
        self.logger.debug(
            "Resolved dynamic groups",
            connection=connection_name,
            claims=len(claimed_group_names),
            groups=len(names)
        )
        return names

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("dynamic_group_resolutions_total", outcome=outcome)
