"""
Identity provider management API client for Authorization Service.
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from shared.logging import get_logger
from shared.errors import ExternalServiceError, NotFoundError
from shared.circuit_breaker import CircuitBreaker
from shared.retry import retry_on_exception, RetryConfig
from ..models import Connection


USER_FIELDS = "user_id,name,nickname,email,last_login"


class IdentityProviderClient:
    """Client for the identity provider's management API.

    Serves as both the connection directory and the user lookup used after
    membership resolution.
    """

    USERS_PER_QUERY = 50

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_token = api_token
        self.timeout = timeout
        self.logger = get_logger("authorization.idp.client")
        self.hash = self.base_url

        self._transport = transport
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            name="identity_provider"
        )
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )
        self._send = retry_on_exception(
            (httpx.TransportError, httpx.HTTPStatusError),
            config=self.retry_config
        )(self._send_once)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _send_once(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(
                f"{self.base_url}{path}",
                params=params,
                headers=self._headers()
            )

        # Server errors are retried and count against the circuit breaker
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    async def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        resource: Optional[str] = None,
        identifier: Optional[str] = None,
    ) -> Any:
        try:
            response = await self.circuit_breaker.call(self._send, path, params)
        except Exception as exc:
            self.logger.error("Identity provider request failed", path=path, error=str(exc))
            raise ExternalServiceError(
                "identity_provider",
                "request failed",
                details={"path": path, "error": str(exc)}
            ) from exc

        if response.status_code == 404 and resource:
            raise NotFoundError(resource, identifier or "")

        if response.status_code >= 400:
            self.logger.error(
                "Identity provider error",
                path=path,
                status_code=response.status_code,
                body=response.text
            )
            raise ExternalServiceError(
                "identity_provider",
                f"unexpected status {response.status_code}",
                details={"path": path, "status_code": response.status_code}
            )

        return response.json()

    async def get_connections(self, fields: str = "id,name,strategy") -> List[Connection]:
        """List all connections."""
        data = await self._get_json("/api/v2/connections", {"fields": fields})
        connections = [Connection.from_dict(item) for item in data or []]
        self.logger.debug("Fetched connections", count=len(connections))
        return connections

    async def get_connection(self, connection_id: str) -> Connection:
        """Get a single connection; raises NotFoundError if it was deleted."""
        data = await self._get_json(
            f"/api/v2/connections/{connection_id}",
            resource="connection",
            identifier=connection_id
        )
        return Connection.from_dict(data)

    async def get_users_by_id(self, user_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Fetch user records for the given ids. Unknown ids are absent from the result."""
        ids = list(dict.fromkeys(user_ids))
        users: List[Dict[str, Any]] = []

        for start in range(0, len(ids), self.USERS_PER_QUERY):
            chunk = ids[start:start + self.USERS_PER_QUERY]
            query = " OR ".join(_quote(user_id) for user_id in chunk)
            data = await self._get_json("/api/v2/users", {
                "q": f"user_id:({query})",
                "search_engine": "v3",
                "per_page": len(chunk),
                "fields": USER_FIELDS,
            })
            users.extend(data or [])

        self.logger.debug("Fetched users", requested=len(ids), found=len(users))
        return users


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
