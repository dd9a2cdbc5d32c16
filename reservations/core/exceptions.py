"""Custom application exceptions.

Every reservation-facing error carries a stable ``code`` so callers can
tell the failure kinds apart, and optionally the unchanged reservation
state the write was rejected against.
"""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    code = "internal_error"

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
        current_state: dict[str, Any] | None = None,
    ) -> None:
        self.current_state = current_state
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Malformed or inconsistent input, rejected before any side effect."""

    code = "validation_error"

    def __init__(
        self,
        detail: str = "Validation failed",
        errors: list[dict[str, Any]] | None = None,
        current_state: dict[str, Any] | None = None,
    ) -> None:
        self.errors = errors
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            current_state=current_state,
        )


class NotFoundError(AppException):
    """Resource not found exception."""

    code = "not_found"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    code = "authentication_error"

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Actor lacks the required role or ownership."""

    code = "authorization_error"

    def __init__(self, detail: str = "You don't have permission to perform this action") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictError(AppException):
    """The requested window collides with a reservation holding the asset."""

    code = "conflict"

    def __init__(
        self,
        detail: str = "The selected time is not available",
        current_state: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            current_state=current_state,
        )


class ConcurrencyError(ConflictError):
    """A concurrent writer changed the reservation first."""

    code = "concurrent_modification"

    def __init__(
        self,
        detail: str = "The reservation was modified concurrently, reload and retry",
        current_state: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(detail=detail, current_state=current_state)


class InvalidTransitionError(AppException):
    """State machine guard failure; the reservation is left unchanged."""

    code = "invalid_transition"

    def __init__(
        self,
        current: str,
        target: str,
        event: str | None = None,
        detail: str | None = None,
        current_state: dict[str, Any] | None = None,
    ) -> None:
        self.current = current
        self.target = target
        self.event = event
        if detail is None:
            detail = f"Invalid reservation transition: {current} → {target}"
            if event:
                detail = f"{detail} (on {event})"
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            current_state=current_state,
        )


class ExternalDependencyError(AppException):
    """Payment gateway or notification channel failure."""

    code = "external_dependency_error"

    def __init__(self, service: str, detail: str | None = None) -> None:
        self.service = service
        message = f"External service '{service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)
