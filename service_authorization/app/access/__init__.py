"""
Access decision package.

Evaluates an application's group restriction against the resolved group
ids of a principal. Absence of a restriction means open access.
"""
