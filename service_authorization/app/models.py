"""
Data models for Authorization Service.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class GroupMapping:
    """Rule mapping an identity-provider group claim on a connection onto a group."""
    connection_id: str
    group_name: str
    mapping_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupMapping":
        return cls(
            connection_id=data.get("connectionId") or data.get("connection_id") or "",
            group_name=data.get("groupName") or data.get("group_name") or "",
            mapping_id=data.get("_id") or data.get("id"),
        )


@dataclass(frozen=True)
class Group:
    """A group with direct members, nested child groups and dynamic mappings.

    ``nested`` is a directed edge list to child group ids. It is never
    validated acyclic and may reference groups that no longer exist.
    """
    group_id: str
    name: str
    description: Optional[str] = None
    members: List[str] = field(default_factory=list)
    nested: List[str] = field(default_factory=list)
    mappings: List[GroupMapping] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        return cls(
            group_id=data.get("_id") or data.get("id"),
            name=data.get("name", ""),
            description=data.get("description"),
            members=list(data.get("members") or []),
            nested=list(data.get("nested") or []),
            mappings=[GroupMapping.from_dict(m) for m in data.get("mappings") or []],
        )

    def summary(self) -> Dict[str, Any]:
        """Identity fields exposed alongside resolved memberships."""
        return {"id": self.group_id, "name": self.name, "description": self.description}


@dataclass(frozen=True)
class Application:
    """Client application, optionally restricted to a set of groups."""
    client_id: str
    groups: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Application":
        return cls(
            client_id=data.get("_id") or data.get("id") or data.get("client_id"),
            groups=list(data.get("groups") or []),
        )


@dataclass(frozen=True)
class Connection:
    """Identity-provider connection metadata."""
    connection_id: str
    name: str
    strategy: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        return cls(
            connection_id=data.get("id", ""),
            name=data.get("name", ""),
            strategy=data.get("strategy"),
        )

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.strategy})"


@dataclass(frozen=True)
class ResolvedMembership:
    """A user and the first group in which the user was found."""
    user_id: str
    group: Group


@dataclass(frozen=True)
class DescribedMapping:
    """Group mapping with the display name of its connection."""
    mapping: GroupMapping
    connection_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.mapping.mapping_id,
            "connectionId": self.mapping.connection_id,
            "groupName": self.mapping.group_name,
            "connectionName": self.connection_name,
        }


class ClosureDirection(str, Enum):
    """Direction followed over the group nesting graph."""
    CHILDREN = "children"
    PARENTS = "parents"


class GroupSummary(BaseModel):
    """Response model for a group reference."""
    id: str
    name: str
    description: Optional[str] = None


class UserGroupsResponse(BaseModel):
    """Response model for a user's resolved group names."""
    user_id: str
    groups: List[str] = Field(default_factory=list, description="Group names including nested parents")


class DynamicGroupsRequest(BaseModel):
    """Request model for dynamic group resolution."""
    connection: Optional[str] = Field(None, description="Connection name the user logged in with")
    groups: List[str] = Field(default_factory=list, description="Group names claimed by the identity provider")


class DynamicGroupsResponse(BaseModel):
    """Response model for dynamic group resolution."""
    groups: List[str] = Field(default_factory=list, description="Names of groups matched by mappings")


class ClosureResponse(BaseModel):
    """Response model for a group closure."""
    group_id: str
    direction: ClosureDirection
    groups: List[GroupSummary]


class MemberUser(BaseModel):
    """User fields exposed for a nested member."""
    user_id: str
    name: Optional[str] = None
    nickname: Optional[str] = None
    email: Optional[str] = None


class GroupMember(MemberUser):
    """A direct member of a group with its last login."""
    last_login: Optional[str] = None


class NestedMember(BaseModel):
    """A user reachable through a group and the group that contributed it."""
    user: MemberUser
    group: Optional[GroupSummary] = None


class AccessCheckRequest(BaseModel):
    """Request model for an application access check."""
    groups: List[str] = Field(default_factory=list, description="Resolved group ids of the principal")


class AccessCheckResponse(BaseModel):
    """Response model for an application access check."""
    client_id: str
    allowed: bool
