from __future__ import annotations

from dataclasses import dataclass

from sessionguard.logging import get_logger
from sessionguard.service.errors import (
    ExpiredOrRevokedError,
    InvalidTokenTypeError,
    StoreError,
)
from sessionguard.service.sessions import SessionStore
from sessionguard.service.tokens import TokenClaims, TokenCodec, TokenKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access: str
    refresh: str


class SessionManager:
    """Login, refresh, logout and authentication on top of codec and store.

    Each subject has at most one live token pair. A successful login or
    refresh replaces it, which is how refresh rotation invalidates the
    previous pair.
    """

    def __init__(self, codec: TokenCodec, store: SessionStore) -> None:
        self.codec = codec
        self.store = store
        self.logger = logger

    async def login(self, subject: int) -> TokenPair:
        access, access_claims = self.codec.issue(subject, TokenKind.ACCESS)
        refresh, refresh_claims = self.codec.issue(subject, TokenKind.REFRESH)
        try:
            await self.store.save(subject, access_claims, refresh_claims)
        except StoreError as exc:
            self.logger.error("session_save_failed", subject=subject, detail=exc.detail)
            raise
        self.logger.info("session_login", subject=subject)
        return TokenPair(access=access, refresh=refresh)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a brand-new pair.

        Only the refresh marker is checked; the state of the access token
        issued alongside it does not matter.
        """
        claims = self.codec.verify(refresh_token)
        self._require_kind(claims, TokenKind.REFRESH)
        await self._require_live(claims)
        pair = await self.login(claims.subject)
        self.logger.info("session_refreshed", subject=claims.subject)
        return pair

    async def logout(self, token: str) -> None:
        """Terminate the subject's session; either token kind identifies it."""
        claims = self.codec.verify(token)
        await self.store.revoke(claims.subject)
        self.logger.info("session_logout", subject=claims.subject, kind=claims.token_kind)

    async def authenticate(self, access_token: str) -> TokenClaims:
        claims = self.codec.verify(access_token)
        self._require_kind(claims, TokenKind.ACCESS)
        await self._require_live(claims)
        self.store.extend_ttl(claims.subject)
        return claims

    def _require_kind(self, claims: TokenClaims, expected: TokenKind) -> None:
        if claims.token_kind != expected.value:
            self.logger.warning(
                "token_kind_rejected",
                subject=claims.subject,
                kind=claims.token_kind,
                expected=expected.value,
            )
            raise InvalidTokenTypeError()

    async def _require_live(self, claims: TokenClaims) -> None:
        try:
            live = await self.store.is_live(claims)
        except StoreError as exc:
            self.logger.error(
                "session_liveness_check_failed", subject=claims.subject, detail=exc.detail
            )
            raise ExpiredOrRevokedError() from exc
        if not live:
            self.logger.warning(
                "token_not_live", subject=claims.subject, kind=claims.token_kind
            )
            raise ExpiredOrRevokedError()
