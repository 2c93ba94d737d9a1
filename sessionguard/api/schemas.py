from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Subjects are unsigned 64-bit identifiers
MAX_SUBJECT = 2**64 - 1

_VALID_ERROR_CODES = frozenset({
    "validation_error",
    "not_found",
    "method_not_allowed",
    "server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with a stable code value."""

    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    """Error response envelope."""

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


class LoginRequest(BaseModel):
    """Start a session for an identity that the caller has already authenticated."""

    model_config = ConfigDict(extra="ignore")

    subject: int = Field(
        ...,
        ge=0,
        le=MAX_SUBJECT,
        strict=True,
        validation_alias=AliasChoices("subject", "user_id"),
        description="Opaque non-negative user identifier",
    )


class TokenRefreshRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    refresh: str = Field(..., strict=True, description="Refresh token from the live pair")


class TokenPairResponse(BaseModel):
    access: str
    refresh: str


class ClaimsResponse(BaseModel):
    """Claims of a successfully authenticated access token."""

    user_id: int
    uid: str
    type: str
    iss: str
    iat: int
    nbf: int
    exp: int
