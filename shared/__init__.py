"""
Shared utilities for the Access Layer authorization service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry / circuit_breaker: Resilient identity provider calls
- test_helpers: Graph fixtures and in-memory collaborators for tests

Do not import from service packages into shared/.
"""
