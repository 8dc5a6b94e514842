from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for session-layer exceptions surfaced to the HTTP layer.

    Each exception class carries an HTTP status_code and a stable error_code
    so the calling web layer can map it without inspecting messages:
    - unauthorized (401)
    - forbidden (403)
    - device_limit (403)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class TokenInvalidError(AuthenticationError):
    """Token key is absent: expired, revoked or never issued (401)."""

    def __init__(self, message: str = "token invalid, please log in again", **kwargs) -> None:
        super().__init__(message, **kwargs)


class TokenNotFoundError(TokenInvalidError):
    """A write path needed the session but its token key is gone (401)."""

    def __init__(self, message: str = "token not found, please log in again", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ForbiddenError(ServiceError):
    """Access denied - insufficient permissions (403)."""
    status_code = 403
    error_code = "forbidden"


class DeviceLimitExceededError(ForbiddenError):
    """User already holds the maximum number of concurrent sessions (403)."""
    error_code = "device_limit"


__all__ = [
    "ServiceError",
    "AuthenticationError",
    "TokenInvalidError",
    "TokenNotFoundError",
    "ForbiddenError",
    "DeviceLimitExceededError",
]
