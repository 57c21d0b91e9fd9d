"""
Core Exceptions
================

Application exceptions, grouped so the API boundary can map each family
to a single HTTP status.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    status_code = 422


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    status_code = 400


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class DuplicateResourceException(ApplicationException):
    """Exception when a uniqueness rule would be violated."""

    status_code = 409


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class AuthenticationException(ApplicationException):
    """The caller could not be identified."""

    status_code = 401


class PermissionDeniedException(ApplicationException):
    """The caller is known but lacks the required role or grant."""

    status_code = 403


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class IdentityProviderUnavailableException(ExternalServiceException):
    """
    The identity provider could not answer.

    Kept apart from AuthenticationException: an outage must never be
    treated as either a valid or an anonymous session.
    """

    status_code = 503

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Identity Provider", message, details)
