"""
Access Domain Entities
======================

Principals, their role and the domain/scope grants that route work to them.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from campus_resolve.config import Role, ROLE_PRIORITY, LOWEST_ROLE


def role_satisfies(actual: Role, required: Role) -> bool:
    """Privilege order is total: a higher role satisfies any lower one."""
    return ROLE_PRIORITY[actual] >= ROLE_PRIORITY[required]


def is_elevated(role: Role) -> bool:
    return ROLE_PRIORITY[role] > ROLE_PRIORITY[LOWEST_ROLE]


@dataclass(frozen=True)
class Grant:
    """A (domain, scope) pair a principal is responsible for."""

    domain: str
    scope: Optional[str] = None

    def matches(self, domain: str, scope: Optional[str] = None) -> bool:
        """
        Domain must match exactly; a requested scope must match the grant's
        scope, while a domain-only request is satisfied by any grant in it.
        """
        if self.domain != domain:
            return False
        if scope is None:
            return True
        return self.scope == scope


@dataclass
class Principal:
    """An identity from the identity provider plus its routing attributes."""

    id: str
    external_id: str
    role: Role
    email: Optional[str] = None
    full_name: Optional[str] = None
    slack_user_id: Optional[str] = None
    primary_grant: Optional[Grant] = None
    secondary_grants: List[Grant] = field(default_factory=list)

    @property
    def grants(self) -> List[Grant]:
        primary = [self.primary_grant] if self.primary_grant else []
        return primary + list(self.secondary_grants)

    def has_grant(self, domain: str, scope: Optional[str] = None) -> bool:
        return any(g.matches(domain, scope) for g in self.grants)

    def satisfies(self, role: Role) -> bool:
        return role_satisfies(self.role, role)
