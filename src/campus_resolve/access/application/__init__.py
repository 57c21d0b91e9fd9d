"""
Access Application Layer
========================

Role resolution service, repository interface and DTOs.
"""

from campus_resolve.access.application.dto import (
    GrantResponse,
    PrincipalResponse,
    RoleUpdateRequest,
    CapabilityResponse,
)
from campus_resolve.access.application.services import (
    AccessService,
    IPrincipalRepository,
)

__all__ = [
    "GrantResponse",
    "PrincipalResponse",
    "RoleUpdateRequest",
    "CapabilityResponse",
    "AccessService",
    "IPrincipalRepository",
]
