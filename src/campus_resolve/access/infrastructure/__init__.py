"""
Access Infrastructure Layer
===========================

- cache: process-local role cache
- models: users, domains, scopes, admin_assignments
- repositories: SQLAlchemy principal repository
- external: identity provider client
"""

from campus_resolve.access.infrastructure.cache import RoleCache
from campus_resolve.access.infrastructure.external import IdentityProviderClient

__all__ = ["RoleCache", "IdentityProviderClient"]
