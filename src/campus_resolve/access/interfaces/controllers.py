"""
Access Controllers (API Routes)
===============================

Role lookup and role mutation endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from campus_resolve.access.application import (
    AccessService,
    CapabilityResponse,
    PrincipalResponse,
    RoleUpdateRequest,
)
from campus_resolve.access.interfaces.dependencies import (
    get_access_service,
    get_current_principal_id,
    require_role,
)
from campus_resolve.config import Role

router = APIRouter(prefix="/access", tags=["Access"])


@router.get("/me", response_model=PrincipalResponse, summary="Current principal")
async def get_me(
    principal_id: str = Depends(get_current_principal_id),
    access: AccessService = Depends(get_access_service),
):
    """Role and domain/scope grants of the caller."""
    role = await access.resolve_role(principal_id)
    principal = await access.get_principal(principal_id)
    if principal is None:
        return PrincipalResponse(external_id=principal_id, role=role.value)
    response = PrincipalResponse.from_principal(principal)
    response.role = role.value
    return response


@router.get(
    "/users/{external_id}/capabilities",
    response_model=CapabilityResponse,
    summary="Check a principal's capability"
)
async def check_capability(
    external_id: str,
    role: Role = Query(..., description="Minimum role"),
    domain: Optional[str] = Query(None),
    scope: Optional[str] = Query(None),
    _: str = Depends(require_role(Role.ADMIN)),
    access: AccessService = Depends(get_access_service),
):
    allowed = await access.has_capability(external_id, role, domain, scope)
    return CapabilityResponse(
        external_id=external_id, role=role.value, domain=domain, scope=scope, allowed=allowed
    )


@router.put(
    "/users/{external_id}/role",
    response_model=PrincipalResponse,
    summary="Change a principal's role"
)
async def update_role(
    external_id: str,
    request: RoleUpdateRequest,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    access: AccessService = Depends(get_access_service),
):
    """
    Set a principal's role and primary domain/scope.

    Demoting to `student` removes every grant. The change is visible to the
    very next request.
    """
    principal = await access.set_role(
        external_id, Role(request.role), request.domain, request.scope
    )
    return PrincipalResponse.from_principal(principal)


access_router = router
