"""
Group graph resolution for Authorization Service.

The nesting relation (``Group.nested``) is a directed graph over group ids
that may contain cycles and dangling ids. Every traversal keeps a visited
set keyed by group id and works from an explicit worklist, so it visits
each group at most once and never recurses. Ids that are not present in
the group collection are skipped without error.
"""

from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import NotFoundError
from ..models import ClosureDirection, DescribedMapping, Group, ResolvedMembership

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..cache.data import DataCaches
    from ..stores.base import GroupStore, IdentityProvider
    from .mappings import MappingDescriber


def _index_by_id(all_groups: Iterable[Group]) -> Dict[str, Group]:
    index: Dict[str, Group] = {}
    for group in all_groups:
        index.setdefault(group.group_id, group)
    return index


def _select(all_groups: Sequence[Group], group_ids: Set[str]) -> List[Group]:
    """Groups of the collection whose id was reached, in collection order."""
    return [group for group in all_groups if group.group_id in group_ids]


def compute_child_closure(all_groups: Sequence[Group], seed_groups: Iterable[Group]) -> List[Group]:
    """Seed groups plus every group reachable by following ``nested`` edges."""
    index = _index_by_id(all_groups)
    visited: Set[str] = set()
    worklist = deque(group.group_id for group in seed_groups)

    while worklist:
        group_id = worklist.popleft()
        if group_id in visited:
            continue
        visited.add(group_id)

        group = index.get(group_id)
        if group is None:
            continue
        worklist.extend(child_id for child_id in group.nested if child_id not in visited)

    return _select(all_groups, visited)


def compute_parent_closure(all_groups: Sequence[Group], seed_groups: Iterable[Group]) -> List[Group]:
    """Seed groups plus every group from which a seed is reachable.

    Only forward edges are stored, so each step scans the whole collection
    for groups nesting the current id.
    """
    visited: Set[str] = set()
    worklist = deque(group.group_id for group in seed_groups)

    while worklist:
        group_id = worklist.popleft()
        if group_id in visited:
            continue
        visited.add(group_id)

        worklist.extend(
            parent.group_id
            for parent in all_groups
            if group_id in parent.nested and parent.group_id not in visited
        )

    return _select(all_groups, visited)


def flatten_members(groups: Iterable[Group]) -> List[ResolvedMembership]:
    """Distinct members of the groups, each attributed to the first group listing it."""
    first_group: Dict[str, Group] = {}
    for group in groups:
        for user_id in group.members:
            if user_id not in first_group:
                first_group[user_id] = group

    return [ResolvedMembership(user_id=user_id, group=group) for user_id, group in first_group.items()]


def resolve_user_group_names(all_groups: Sequence[Group], user_id: str) -> List[str]:
    """Names of the groups a user belongs to directly or through nesting."""
    direct = [group for group in all_groups if user_id in group.members]
    if not direct:
        return []
    return [group.name for group in compute_parent_closure(all_groups, direct)]


class GroupResolver:
    """Group resolution over the cached group collection."""

    def __init__(
        self,
        caches: "DataCaches",
        store: "GroupStore",
        identity_provider: Optional["IdentityProvider"] = None,
        mapping_describer: Optional["MappingDescriber"] = None,
    ):
        self.caches = caches
        self.store = store
        self.identity_provider = identity_provider
        self.mapping_describer = mapping_describer
        self.logger = get_logger("authorization.graph")

    def _find_group(self, all_groups: Sequence[Group], group_id: str) -> Group:
        for group in all_groups:
            if group.group_id == group_id:
                return group
        raise NotFoundError("group", group_id)

    async def get_user_groups(self, user_id: str) -> List[str]:
        """Group names for a user, including parents of the groups it is a member of."""
        all_groups = await self.caches.get_groups(self.store)
        names = resolve_user_group_names(all_groups, user_id)
        self.logger.debug("Resolved user groups", user_id=user_id, count=len(names))
        return names

    async def get_closure(self, group_id: str, direction: ClosureDirection) -> List[Group]:
        all_groups = await self.caches.get_groups(self.store)
        group = self._find_group(all_groups, group_id)

        if direction == ClosureDirection.PARENTS:
            return compute_parent_closure(all_groups, [group])
        return compute_child_closure(all_groups, [group])

    async def get_members(self, group_id: str) -> List[Dict[str, Any]]:
        """Direct members of a group as identity-provider users, most recent login first.

        Users that never logged in come first.
        """
        if self.identity_provider is None:
            raise RuntimeError("An identity provider is required to list members")

        group = await self.store.get_group(group_id)
        if not group.members:
            return []

        users = await self.identity_provider.get_users_by_id(group.members)
        return sorted(
            users,
            key=lambda user: (user.get("last_login") is None, user.get("last_login") or ""),
            reverse=True
        )

    async def get_nested_members(self, group_id: str) -> List[Dict[str, Any]]:
        """Users reachable through a group and its descendants, ordered by name.

        Each user is reported with the first group of the closure listing it.
        """
        if self.identity_provider is None:
            raise RuntimeError("An identity provider is required to list nested members")

        all_groups = await self.caches.get_groups(self.store)
        group = self._find_group(all_groups, group_id)
        memberships = flatten_members(compute_child_closure(all_groups, [group]))
        if not memberships:
            return []

        by_user = {membership.user_id: membership.group for membership in memberships}
        users = await self.identity_provider.get_users_by_id(list(by_user))

        nested = []
        for user in users:
            source = by_user.get(user.get("user_id"))
            nested.append({
                "user": {
                    "user_id": user.get("user_id"),
                    "name": user.get("name"),
                    "nickname": user.get("nickname"),
                    "email": user.get("email"),
                },
                "group": source.summary() if source else None,
            })

        # Users without a name go last
        nested.sort(key=lambda item: (item["user"]["name"] is None, item["user"]["name"] or ""))
        self.logger.info(
            "Resolved nested members",
            group_id=group_id,
            members=len(memberships),
            users=len(nested)
        )
        return nested

    async def get_group_mappings(self, group_id: str) -> List[DescribedMapping]:
        """Mappings of a group with their connection display names."""
        if self.mapping_describer is None:
            raise RuntimeError("A mapping describer is required to list mappings")

        group = await self.store.get_group(group_id)
        return await self.mapping_describer.describe(group.mappings)


__all__ = [
    "compute_child_closure",
    "compute_parent_closure",
    "flatten_members",
    "resolve_user_group_names",
    "GroupResolver",
]
