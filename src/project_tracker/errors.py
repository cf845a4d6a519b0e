"""Exception taxonomy shared by the sync client and the reference API."""

from __future__ import annotations

from enum import Enum
from http import HTTPStatus
from typing import Any


class ApplicationError(Exception):
    """Base class for domain-specific errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "application_error",
        status_code: int = HTTPStatus.BAD_REQUEST,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = int(status_code)
        self.details = details


class ValidationError(ApplicationError):
    """Error representing business validation failures."""

    def __init__(
        self,
        message: str = "Validation failed.",
        *,
        code: str = "validation_error",
        details: Any | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            details=details,
        )


class NotFoundError(ApplicationError):
    """Error representing missing resources."""

    def __init__(
        self,
        message: str = "Resource not found.",
        *,
        code: str = "not_found",
        details: Any | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            status_code=HTTPStatus.NOT_FOUND,
            details=details,
        )


class ConflictError(ApplicationError):
    """Error representing a conflicting resource state."""

    def __init__(
        self,
        message: str = "Resource already exists.",
        *,
        code: str = "conflict",
        details: Any | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            status_code=HTTPStatus.CONFLICT,
            details=details,
        )


class UnauthorizedError(ApplicationError):
    """Error raised when a bearer credential cannot be resolved to a user."""

    def __init__(
        self,
        message: str = "Unauthorized - failed to get user from token",
        *,
        code: str = "unauthorized",
        details: Any | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            status_code=HTTPStatus.UNAUTHORIZED,
            details=details,
        )


class ForbiddenError(ApplicationError):
    """The current identity lacks the role an operation requires."""

    def __init__(
        self,
        message: str = "Insufficient permissions.",
        *,
        code: str = "forbidden",
        details: Any | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            status_code=HTTPStatus.FORBIDDEN,
            details=details,
        )


class AuthenticationRequiredError(ApplicationError):
    """A mutating operation was attempted without a session.

    This is a gate rather than a failure: no state has been changed and the
    caller is expected to prompt for login.
    """

    def __init__(
        self,
        message: str = "Authentication required.",
        *,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="authentication_required",
            status_code=HTTPStatus.UNAUTHORIZED,
            details={"operation": operation} if operation else None,
        )
        self.operation = operation


class AuthErrorKind(str, Enum):
    """Classification of login and registration failures."""

    INVALID_CREDENTIALS = "invalid_credentials"
    NETWORK = "network"
    UNKNOWN = "unknown"


class AuthenticationError(ApplicationError):
    """Login or registration failed."""

    def __init__(
        self,
        message: str,
        *,
        kind: AuthErrorKind = AuthErrorKind.UNKNOWN,
        details: Any | None = None,
    ) -> None:
        super().__init__(
            message,
            code=f"auth_{kind.value}",
            status_code=HTTPStatus.UNAUTHORIZED,
            details=details,
        )
        self.kind = kind


__all__ = [
    "ApplicationError",
    "AuthErrorKind",
    "AuthenticationError",
    "AuthenticationRequiredError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationError",
]
