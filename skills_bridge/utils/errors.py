"""
Application exception hierarchy

Gates and route handlers raise these; the error normalizer in
skills_bridge.middleware.error_handler turns them into the JSON envelope.
"""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    """
    Base exception for Global Skills Bridge

    ``is_operational`` marks an expected, user-facing failure whose status code
    and message are passed through verbatim by the error normalizer.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "Server Error",
        status_code: Optional[int] = None,
        *,
        is_operational: bool = True,
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.is_operational = is_operational
        self.extra = extra or {}


class BadRequestError(AppError):
    """Raised when the request is well-formed but cannot be honoured"""
    status_code = 400


class AuthenticationError(AppError):
    """Raised when no valid principal can be resolved (401)"""
    status_code = 401


class AuthorizationError(AppError):
    """Raised when the principal lacks role, ownership or completion (403)"""
    status_code = 403


class NotFoundError(AppError):
    """Raised when a resource is not found"""
    status_code = 404


class RateLimitExceededError(AppError):
    """Raised when a caller exceeds its request budget"""
    status_code = 429

    def __init__(self, retry_after: int, message: str = "Too many requests. Please try again later.") -> None:
        super().__init__(message, extra={"retryAfter": retry_after})
        self.retry_after = retry_after


class UploadError(AppError):
    """
    Raised when an uploaded file breaks a constraint

    ``code`` is either LIMIT_FILE_SIZE or LIMIT_UNEXPECTED_FILE.
    """
    status_code = 400

    LIMIT_FILE_SIZE = "LIMIT_FILE_SIZE"
    LIMIT_UNEXPECTED_FILE = "LIMIT_UNEXPECTED_FILE"

    def __init__(self, code: str, message: str = "Upload rejected") -> None:
        super().__init__(message, is_operational=False)
        self.code = code


class ConfigurationError(AppError):
    """Raised when configuration is invalid"""

    def __init__(self, message: str = "Configuration error") -> None:
        super().__init__(message, 500, is_operational=False)
