"""
Permission management feature module.

A static tree of permission codes, a static set of roles seeding it, and
per-user grant and shield overrides resolved into effective permissions.
"""
