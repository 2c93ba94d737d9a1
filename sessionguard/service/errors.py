from __future__ import annotations

from typing import Optional


class SessionError(Exception):
    """Base class for session lifecycle failures raised by the core services.

    The message is safe to show to a caller; ``detail`` carries the internal
    cause and is only ever logged.
    """

    def __init__(self, message: str, *, detail: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class InvalidTokenError(SessionError):
    """Malformed, badly signed, expired, not yet valid, or foreign-issuer token.

    The causes are deliberately not distinguished in the message.
    """

    def __init__(self, message: str = "invalid token", *, detail: Optional[dict] = None) -> None:
        super().__init__(message, detail=detail)


class InvalidTokenTypeError(SessionError):
    """A valid token of the wrong kind was presented for an operation."""

    def __init__(
        self, message: str = "invalid token type", *, detail: Optional[dict] = None
    ) -> None:
        super().__init__(message, detail=detail)


class ExpiredOrRevokedError(SessionError):
    """Signature verifies but the token is not the live marker for its subject."""

    def __init__(
        self, message: str = "token expired or revoked", *, detail: Optional[dict] = None
    ) -> None:
        super().__init__(message, detail=detail)


class MismatchedSubjectsError(SessionError):
    """Access and refresh claims passed to one save belong to different subjects."""

    def __init__(
        self, message: str = "token subjects do not match", *, detail: Optional[dict] = None
    ) -> None:
        super().__init__(message, detail=detail)


class UnknownTokenKindError(SessionError):
    """Claims carry a kind that is neither access nor refresh."""

    def __init__(
        self, message: str = "unknown token kind", *, detail: Optional[dict] = None
    ) -> None:
        super().__init__(message, detail=detail)


class StoreError(SessionError):
    """The session cache is unreachable or returned an unexpected value."""

    def __init__(
        self, message: str = "session store unavailable", *, detail: Optional[dict] = None
    ) -> None:
        super().__init__(message, detail=detail)


class ServiceError(Exception):
    """Base class for request-layer exceptions mapped to HTTP responses.

    Each subclass defines both an HTTP ``status_code`` and a stable
    ``error_code`` used in the error envelope.
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


class BadRequestError(ServiceError):
    """Request is malformed or carries an unusable credential (400)."""
    status_code = 400
    error_code = "validation_error"


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


__all__ = [
    "SessionError",
    "InvalidTokenError",
    "InvalidTokenTypeError",
    "ExpiredOrRevokedError",
    "MismatchedSubjectsError",
    "UnknownTokenKindError",
    "StoreError",
    "ServiceError",
    "BadRequestError",
    "ServerError",
]
