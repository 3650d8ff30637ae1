"""
Authorization service for the Access Layer.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import AccessLayerException
from shared.logging import set_user_context

from .access.engine import AccessDecisionEngine
from .cache.data import DataCaches
from .groups.dynamic import DynamicMembershipResolver
from .groups.graph import GroupResolver
from .groups.mappings import MappingDescriber
from .idp.client import IdentityProviderClient
from .models import (
    AccessCheckRequest, AccessCheckResponse, ClosureDirection, ClosureResponse,
    DynamicGroupsRequest, DynamicGroupsResponse, GroupMember, GroupSummary, NestedMember,
    UserGroupsResponse,
)
from .stores.base import ApplicationStore, ConnectionDirectory, GroupStore, IdentityProvider
from .stores.memory import InMemoryStore


SERVICE_NAME = "authorization"
SERVICE_PORT = 8013


class AuthorizationService(BaseService):
    """Authorization service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[InMemoryStore] = None,
        group_store: Optional[GroupStore] = None,
        application_store: Optional[ApplicationStore] = None,
        directory: Optional[ConnectionDirectory] = None,
        identity_provider: Optional[IdentityProvider] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        if store is None and (group_store is None or application_store is None):
            store = self._create_store()
        self.group_store = group_store or store
        self.application_store = application_store or store

        self.directory = directory or IdentityProviderClient(
            self.config.idp_url,
            self.config.idp_api_token,
            self.config.idp_timeout
        )
        self.identity_provider = identity_provider or self.directory

        # Shared by every resolver for the lifetime of the process
        self.caches = DataCaches(
            self.config.data_cache_max_age,
            self.config.data_cache_max_entries,
            metrics=self.metrics
        )
        self.mapping_describer = MappingDescriber(
            self.directory,
            max_age=self.config.connection_cache_max_age,
            concurrency=self.config.mapping_lookup_concurrency,
            metrics=self.metrics
        )
        self.group_resolver = GroupResolver(
            self.caches,
            self.group_store,
            identity_provider=self.identity_provider,
            mapping_describer=self.mapping_describer
        )
        self.dynamic_resolver = DynamicMembershipResolver(
            self.caches,
            self.group_store,
            self.directory,
            metrics=self.metrics
        )
        self.access_engine = AccessDecisionEngine(
            self.caches,
            self.application_store,
            metrics=self.metrics
        )

        self._setup_authorization_routes()

    def _create_store(self) -> InMemoryStore:
        if self.config.data_file:
            return InMemoryStore.from_file(self.config.data_file)
        self.logger.warning("No data file configured, starting with an empty store")
        return InMemoryStore()

    def _setup_authorization_routes(self):
        """Set up authorization-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Access Layer - Authorization Service",
                "version": "1.0.0",
                "capabilities": ["nested_groups", "dynamic_groups", "application_access", "caching"]
            }

        @self.app.get("/users/{user_id}/groups", response_model=UserGroupsResponse)
        async def get_user_groups(user_id: str):
            """Get the names of the groups a user belongs to, including nested parents."""
            set_user_context(user_id=user_id)
            try:
                groups = await self.group_resolver.get_user_groups(user_id)
                return UserGroupsResponse(user_id=user_id, groups=groups)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error resolving user groups", error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

        @self.app.post("/users/groups/dynamic", response_model=DynamicGroupsResponse)
        async def get_dynamic_groups(request: DynamicGroupsRequest):
            """Get the groups granted by identity-provider claims on a connection."""
            set_user_context(connection=request.connection)
            try:
                groups = await self.dynamic_resolver.resolve(request.connection, request.groups)
                return DynamicGroupsResponse(groups=groups)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error resolving dynamic groups", error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

        @self.app.get("/groups/{group_id}/closure", response_model=ClosureResponse)
        async def get_group_closure(
            group_id: str,
            direction: ClosureDirection = Query(ClosureDirection.CHILDREN, description="Edge direction to follow")
        ):
            """Get a group together with all its nested children or parents."""
            try:
                groups = await self.group_resolver.get_closure(group_id, direction)
                return ClosureResponse(
                    group_id=group_id,
                    direction=direction,
                    groups=[GroupSummary(**group.summary()) for group in groups]
                )
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error computing group closure", group_id=group_id, error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

        @self.app.get("/groups/{group_id}/members", response_model=List[GroupMember])
        async def get_members(group_id: str):
            """Get the direct members of a group, most recent login first."""
            try:
                return await self.group_resolver.get_members(group_id)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error listing members", group_id=group_id, error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

        @self.app.get("/groups/{group_id}/members/nested", response_model=List[NestedMember])
        async def get_nested_members(group_id: str):
            """Get every user reachable through a group and its nested groups."""
            try:
                return await self.group_resolver.get_nested_members(group_id)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error listing nested members", group_id=group_id, error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

        @self.app.get("/groups/{group_id}/mappings")
        async def get_group_mappings(group_id: str):
            """Get the mappings of a group with their connection names."""
            try:
                mappings = await self.group_resolver.get_group_mappings(group_id)
                return [described.to_dict() for described in mappings]
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error describing group mappings", group_id=group_id, error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

        @self.app.post("/applications/{client_id}/access", response_model=AccessCheckResponse)
        async def check_application_access(client_id: str, request: AccessCheckRequest):
            """Check whether a principal's groups grant access to an application."""
            try:
                allowed = await self.access_engine.check_application_access(client_id, request.groups)
                return AccessCheckResponse(client_id=client_id, allowed=allowed)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error checking application access", client_id=client_id, error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

        @self.app.get("/authorization/stats")
        async def get_stats():
            """Get authorization service statistics."""
            stats = {
                "caches": self.caches.stats(),
                "connection_cache": self.mapping_describer.connections.stats(),
                "timestamp": datetime.now().isoformat()
            }
            breaker = getattr(self.directory, "circuit_breaker", None)
            if breaker is not None:
                stats["identity_provider"] = breaker.get_state()
            return stats

    async def _check_dependencies(self):
        """Check authorization service dependencies."""
        dependencies = {}

        health_check = getattr(self.group_store, "health_check", None)
        if health_check is not None:
            try:
                dependencies["store"] = "ok" if await health_check() else "error"
            except Exception:
                dependencies["store"] = "error"

        breaker = getattr(self.directory, "circuit_breaker", None)
        if breaker is not None:
            dependencies["identity_provider"] = "degraded" if breaker.is_open() else "ok"

        return dependencies


def create_app(**kwargs):
    """Create authorization service application."""
    service = AuthorizationService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = AuthorizationService()
    service.run()
