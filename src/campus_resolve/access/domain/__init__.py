"""Access domain layer."""

from campus_resolve.access.domain.entities import (
    Grant,
    Principal,
    role_satisfies,
    is_elevated,
)

__all__ = ["Grant", "Principal", "role_satisfies", "is_elevated"]
