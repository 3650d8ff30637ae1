"""
Unit tests for application access decisions.
"""

import pytest
from unittest.mock import AsyncMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from shared.test_helpers import GraphDataFactory
from service_authorization.app.access.engine import AccessDecisionEngine, is_access_allowed
from service_authorization.app.cache.data import DataCaches
from service_authorization.app.models import Application
from service_authorization.app.stores.memory import InMemoryStore


class TestIsAccessAllowed:
    """Test cases for the access predicate."""

    def test_absent_application_is_unrestricted(self):
        assert is_access_allowed(None, []) is True
        assert is_access_allowed(None, None) is True

    def test_application_without_groups_is_unrestricted(self):
        assert is_access_allowed(Application("app", groups=[]), []) is True

    def test_restricted_application_requires_shared_group(self):
        application = Application("app", groups=["g1", "g2"])

        assert is_access_allowed(application, ["g2"]) is True
        assert is_access_allowed(application, ["g3"]) is False
        assert is_access_allowed(application, []) is False
        assert is_access_allowed(application, None) is False

    def test_group_ids_compare_exactly(self):
        assert is_access_allowed(Application("app", groups=["G1"]), ["g1"]) is False


class TestAccessDecisionEngine:
    """Test cases for AccessDecisionEngine."""

    @pytest.fixture
    def store(self):
        store = InMemoryStore.from_document(GraphDataFactory.create_document())
        store.get_applications = AsyncMock(wraps=store.get_applications)
        return store

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def engine(self, store, registry):
        return AccessDecisionEngine(
            DataCaches(max_age=10),
            store,
            metrics=MetricsCollector("authorization", registry)
        )

    @pytest.mark.asyncio
    async def test_restricted_application(self, engine):
        assert await engine.check_application_access("app-crm", ["g-admins"]) is True
        assert await engine.check_application_access("app-crm", ["g-eng"]) is False

    @pytest.mark.asyncio
    async def test_open_and_unknown_applications(self, engine):
        assert await engine.check_application_access("app-wiki", []) is True
        assert await engine.check_application_access("app-unknown", []) is True

    @pytest.mark.asyncio
    async def test_applications_loaded_once(self, engine, store):
        for _ in range(3):
            await engine.check_application_access("app-deploy", ["g-platform"])

        assert store.get_applications.await_count == 1

    @pytest.mark.asyncio
    async def test_records_decisions(self, engine, registry):
        await engine.check_application_access("app-deploy", ["g-platform"])
        await engine.check_application_access("app-deploy", ["g-sales"])
        await engine.check_application_access("app-deploy", [])

        assert registry.get_sample_value("access_decisions_total", {"decision": "allow"}) == 1.0
        assert registry.get_sample_value("access_decisions_total", {"decision": "deny"}) == 2.0
