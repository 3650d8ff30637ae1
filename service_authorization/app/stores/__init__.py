"""
Data sources consumed by the Authorization Service.

The group/application store and the identity-provider directory are
external collaborators. ``base`` defines the protocols the core relies
on; ``memory`` provides a process-local store.
"""
