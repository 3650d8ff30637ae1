"""
Group resolution package.

Modules of interest:
- graph: child/parent closures over the nesting graph, member flattening
  and per-user group resolution.
- dynamic: groups granted through connection claims and group mappings.
- mappings: connection display names for a group's mappings.
"""
