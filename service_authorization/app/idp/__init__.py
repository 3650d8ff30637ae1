"""
Identity provider integration.

Connections and users live in the identity provider and are fetched
through its management API. Fetches are slow and rate limited, so
callers go through the data caches and the client protects itself with
a circuit breaker and bounded retries.
"""
