"""
Collaborator contracts consumed by the authorization core.

Stores and directories are read-only from the core's point of view. An
implementation may expose a ``hash`` attribute fingerprinting its data
source; caches use it as their key.
"""

from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

from ..models import Application, Connection, Group


@runtime_checkable
class GroupStore(Protocol):
    async def get_groups(self) -> Sequence[Group]:
        ...

    async def get_group(self, group_id: str) -> Group:
        """Raises NotFoundError when the group does not exist."""
        ...


@runtime_checkable
class ApplicationStore(Protocol):
    async def get_applications(self) -> Sequence[Application]:
        ...


@runtime_checkable
class ConnectionDirectory(Protocol):
    async def get_connections(self, fields: str) -> Sequence[Connection]:
        ...

    async def get_connection(self, connection_id: str) -> Connection:
        """Raises NotFoundError when the connection does not exist."""
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    async def get_users_by_id(self, user_ids: Sequence[str]) -> List[Dict[str, Any]]:
        ...
