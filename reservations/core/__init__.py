"""Core utilities and security modules."""

from reservations.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ConcurrencyError,
    ConflictError,
    ExternalDependencyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from reservations.core.security import (
    create_access_token,
    create_actor_token,
    decode_actor,
    verify_token,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "ConcurrencyError",
    "ConflictError",
    "ExternalDependencyError",
    "InvalidTransitionError",
    "NotFoundError",
    "ValidationError",
    "create_access_token",
    "create_actor_token",
    "decode_actor",
    "verify_token",
]
