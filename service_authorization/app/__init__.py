"""
Authorization Service package for the Access Layer.

This package resolves effective group membership and application access
for an authorization layer in front of an identity provider. It provides:

- app.main: API surface for group resolution, access checks and health.
- app.groups: Nesting closures, member flattening, dynamic groups and
  mapping descriptions.
- app.access: Application access decisions.
- app.cache: In-process memoizing caches for store and IdP collections.
- app.stores / app.idp: Collaborators the core reads from.

Guidelines:
- The service never writes to its stores; every fetch is a snapshot valid
  until the next cache expiry.
- Graph traversals tolerate cycles and dangling ids.
- Keep decisions deterministic and observable (metrics + logs).
"""
