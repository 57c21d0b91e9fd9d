"""
Access Application DTOs
=======================

Pydantic models for the access endpoints.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from campus_resolve.access.domain import Principal

RoleStr = Literal["student", "committee", "admin", "super_admin"]


class GrantResponse(BaseModel):
    domain: str
    scope: Optional[str] = None


class PrincipalResponse(BaseModel):
    """Role and grants of a principal."""
    external_id: str
    role: RoleStr
    email: Optional[str] = None
    full_name: Optional[str] = None
    primary_grant: Optional[GrantResponse] = None
    secondary_grants: List[GrantResponse] = Field(default_factory=list)

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        primary = principal.primary_grant
        return cls(
            external_id=principal.external_id,
            role=principal.role.value,
            email=principal.email,
            full_name=principal.full_name,
            primary_grant=GrantResponse(domain=primary.domain, scope=primary.scope) if primary else None,
            secondary_grants=[
                GrantResponse(domain=g.domain, scope=g.scope) for g in principal.secondary_grants
            ],
        )


class RoleUpdateRequest(BaseModel):
    """Request body for changing a principal's role."""
    role: RoleStr = Field(..., description="New role")
    domain: Optional[str] = Field(None, description="Primary domain for staff roles")
    scope: Optional[str] = Field(None, description="Primary scope within the domain")

    @model_validator(mode="after")
    def scope_needs_domain(self) -> "RoleUpdateRequest":
        if self.scope and not self.domain:
            raise ValueError("scope requires a domain")
        return self


class CapabilityResponse(BaseModel):
    external_id: str
    role: RoleStr
    domain: Optional[str] = None
    scope: Optional[str] = None
    allowed: bool
