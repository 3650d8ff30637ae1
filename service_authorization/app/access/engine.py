"""
Application access decisions for Authorization Service.
"""

from typing import Iterable, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..models import Application

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..cache.data import DataCaches
    from ..stores.base import ApplicationStore


def is_access_allowed(application: Optional[Application], user_group_ids: Optional[Iterable[str]]) -> bool:
    """Whether a principal with ``user_group_ids`` may use ``application``.

    Applications without a group restriction are open to everyone.
    """
    if application is None or not application.groups:
        return True

    group_ids = set(user_group_ids or ())
    return any(group_id in group_ids for group_id in application.groups)


class AccessDecisionEngine:
    """Evaluates application group restrictions against resolved groups."""

    def __init__(
        self,
        caches: "DataCaches",
        store: "ApplicationStore",
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.caches = caches
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("authorization.access")

    async def check_application_access(self, client_id: str, user_group_ids: Optional[Iterable[str]]) -> bool:
        """Access decision for the application registered under ``client_id``.

        Unknown applications are treated as unrestricted.
        """
        applications = await self.caches.get_applications(self.store)
        application = next((app for app in applications if app.client_id == client_id), None)

        allowed = is_access_allowed(application, user_group_ids)

        if self.metrics:
            self.metrics.increment_counter(
                "access_decisions_total",
                decision="allow" if allowed else "deny"
            )
        self.logger.info(
            "Application access decision",
            client_id=client_id,
            known_application=application is not None,
            restricted=bool(application and application.groups),
            allowed=allowed
        )
        return allowed
