"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from campus_resolve.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    DuplicateResourceException,
    ConfigurationException,
    AuthenticationException,
    PermissionDeniedException,
    ExternalServiceException,
    IdentityProviderUnavailableException,
)
from campus_resolve.core.timeutils import utcnow, as_utc, hours_between

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "DuplicateResourceException",
    "ConfigurationException",
    "AuthenticationException",
    "PermissionDeniedException",
    "ExternalServiceException",
    "IdentityProviderUnavailableException",
    "utcnow",
    "as_utc",
    "hours_between",
]
