"""
Unit tests for the in-memory store.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import NotFoundError
from shared.test_helpers import GraphDataFactory, MockIdentityProviderAPI
from service_authorization.app.idp.client import IdentityProviderClient
from service_authorization.app.models import GroupMapping
from service_authorization.app.stores.base import (
    ApplicationStore, ConnectionDirectory, GroupStore, IdentityProvider,
)
from service_authorization.app.stores.memory import InMemoryStore


class TestInMemoryStore:
    """Test cases for InMemoryStore."""

    @pytest.fixture
    def store(self):
        return InMemoryStore.from_document(GraphDataFactory.create_document())

    def test_satisfies_store_protocols(self, store):
        assert isinstance(store, GroupStore)
        assert isinstance(store, ApplicationStore)

    def test_identity_provider_client_satisfies_protocols(self):
        client = IdentityProviderClient("https://idp.example.com", transport=MockIdentityProviderAPI().transport)

        assert isinstance(client, ConnectionDirectory)
        assert isinstance(client, IdentityProvider)

    @pytest.mark.asyncio
    async def test_reads_wire_shape(self, store):
        admins = await store.get_group("g-admins")

        assert admins.name == "Admins"
        assert admins.mappings[0] == GroupMapping("con-ad", "Domain Admins", "m-2")

        applications = await store.get_applications()
        assert [app.client_id for app in applications] == ["app-crm", "app-wiki", "app-deploy"]

    @pytest.mark.asyncio
    async def test_get_missing_group(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            await store.get_group("g-missing")

        assert exc_info.value.status_code == 404

    def test_fingerprint_follows_content(self):
        document = GraphDataFactory.create_document()
        same = InMemoryStore.from_document(GraphDataFactory.create_document())
        document["groups"].pop()
        changed = InMemoryStore.from_document(document)

        assert InMemoryStore.from_document(GraphDataFactory.create_document()).hash == same.hash
        assert changed.hash != same.hash

    def test_from_file(self, tmp_path):
        path = GraphDataFactory.write_document(tmp_path / "store.json")

        store = InMemoryStore.from_file(path)

        assert store.hash == InMemoryStore.from_document(GraphDataFactory.create_document()).hash

    @pytest.mark.asyncio
    async def test_returned_collections_are_copies(self, store):
        groups = await store.get_groups()
        groups.clear()

        assert len(await store.get_groups()) == 6
