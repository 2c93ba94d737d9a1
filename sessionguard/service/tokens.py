from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Union

from sessionguard.config import Settings
from sessionguard.logging import get_logger
from sessionguard.service.errors import InvalidTokenError

logger = get_logger(__name__)

_ALGORITHM = "HS256"


class TokenKind(str, Enum):
    """Kinds of session token; each has its own lifetime and live marker."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenConfig:
    """Immutable signing configuration injected into a TokenCodec."""

    secret: str
    issuer: str
    access_lifetime: timedelta
    refresh_lifetime: timedelta
    leeway: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("signing secret must not be empty")
        if self.access_lifetime <= timedelta(0) or self.refresh_lifetime <= timedelta(0):
            raise ValueError("token lifetimes must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(
            secret=settings.jwt_secret,
            issuer=settings.jwt_issuer,
            access_lifetime=timedelta(minutes=settings.access_token_ttl_minutes),
            refresh_lifetime=timedelta(minutes=settings.refresh_token_ttl_minutes),
            leeway=timedelta(seconds=settings.clock_skew_leeway_seconds),
        )

    def lifetime_for(self, kind: TokenKind) -> timedelta:
        if kind is TokenKind.ACCESS:
            return self.access_lifetime
        return self.refresh_lifetime


@dataclass(frozen=True)
class TokenClaims:
    """Decoded claim set of a session token.

    ``token_kind`` is kept as the raw string from the token so that the
    session store can reject kinds it does not know.
    """

    subject: int
    token_kind: str
    unique_id: str
    issued_at: int
    not_before: int
    expires_at: int
    issuer: str

    def to_payload(self) -> dict[str, Any]:
        """Wire representation used both inside the JWT and in API responses."""
        return {
            "user_id": self.subject,
            "uid": self.unique_id,
            "type": self.token_kind,
            "iss": self.issuer,
            "iat": self.issued_at,
            "nbf": self.not_before,
            "exp": self.expires_at,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenClaims":
        if not isinstance(payload, dict):
            raise InvalidTokenError(detail={"reason": "payload_not_object"})
        subject = payload.get("user_id")
        # bool is an int subclass; reject it explicitly
        if not isinstance(subject, int) or isinstance(subject, bool) or subject < 0:
            raise InvalidTokenError(detail={"reason": "bad_subject"})
        kind = payload.get("type")
        unique_id = payload.get("uid")
        issuer = payload.get("iss")
        if not isinstance(kind, str) or not isinstance(unique_id, str) or not unique_id:
            raise InvalidTokenError(detail={"reason": "missing_claims"})
        if not isinstance(issuer, str):
            raise InvalidTokenError(detail={"reason": "missing_issuer"})
        timestamps = []
        for name in ("iat", "nbf", "exp"):
            value = payload.get(name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidTokenError(detail={"reason": f"bad_{name}"})
            timestamps.append(value)
        issued_at, not_before, expires_at = timestamps
        return cls(
            subject=subject,
            token_kind=kind,
            unique_id=unique_id,
            issued_at=issued_at,
            not_before=not_before,
            expires_at=expires_at,
            issuer=issuer,
        )


class TokenCodec:
    """Mints and verifies HS256-signed session tokens.

    Stateless: holds only its configuration and a clock, so several codecs with
    different secrets can coexist in one process.
    """

    def __init__(
        self, config: TokenConfig, *, clock: Callable[[], float] = time.time
    ) -> None:
        self.config = config
        self._clock = clock

    def mint(self, subject: int, kind: Union[TokenKind, str]) -> str:
        token, _ = self.issue(subject, kind)
        return token

    def issue(
        self, subject: int, kind: Union[TokenKind, str]
    ) -> tuple[str, TokenClaims]:
        """Mint a token and also return the claim set it carries."""
        if not isinstance(subject, int) or isinstance(subject, bool) or subject < 0:
            raise ValueError("subject must be a non-negative integer")
        token_kind = TokenKind(kind)
        now = int(self._clock())
        lifetime = int(self.config.lifetime_for(token_kind).total_seconds())
        claims = TokenClaims(
            subject=subject,
            token_kind=token_kind.value,
            unique_id=str(uuid.uuid4()),
            issued_at=now,
            not_before=now,
            expires_at=now + lifetime,
            issuer=self.config.issuer,
        )
        return self._encode(claims.to_payload()), claims

    def verify(self, token: str) -> TokenClaims:
        """Check signature, issuer and validity window; return the claims.

        Every failure raises InvalidTokenError with the same public message;
        the specific reason is only logged.
        """
        try:
            return self._verify(token)
        except InvalidTokenError as exc:
            logger.warning("token_verification_failed", reason=exc.detail.get("reason"))
            raise

    def _verify(self, token: str) -> TokenClaims:
        if not isinstance(token, str):
            raise InvalidTokenError(detail={"reason": "not_a_string"})
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise InvalidTokenError(detail={"reason": "malformed"}) from None

        # Reject anything but HS256 to prevent algorithm confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, TypeError, RecursionError):
            raise InvalidTokenError(detail={"reason": "bad_header"}) from None
        if not isinstance(header, dict) or header.get("alg") != _ALGORITHM:
            raise InvalidTokenError(detail={"reason": "bad_algorithm"})

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected_sig.encode(), sig_b64.encode()):
            raise InvalidTokenError(detail={"reason": "bad_signature"})

        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, TypeError, RecursionError):
            raise InvalidTokenError(detail={"reason": "bad_payload"}) from None
        claims = TokenClaims.from_payload(payload)

        if claims.issuer != self.config.issuer:
            raise InvalidTokenError(detail={"reason": "bad_issuer"})
        now = self._clock()
        leeway = self.config.leeway.total_seconds()
        if claims.expires_at <= now - leeway:
            raise InvalidTokenError(detail={"reason": "expired"})
        if claims.not_before > now + leeway:
            raise InvalidTokenError(detail={"reason": "not_yet_valid"})
        return claims

    def _encode(self, payload: dict[str, Any]) -> str:
        header = {"alg": _ALGORITHM, "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _sign(self, signing_input: str) -> str:
        signature = hmac.new(
            self.config.secret.encode(), signing_input.encode(), hashlib.sha256
        ).digest()
        return self._encode_segment(signature)

    @staticmethod
    def _encode_segment(data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    @staticmethod
    def _decode_segment(segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)
