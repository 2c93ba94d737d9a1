from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Protocol

from sessionguard.logging import get_logger
from sessionguard.service.errors import (
    MismatchedSubjectsError,
    StoreError,
    UnknownTokenKindError,
)
from sessionguard.service.tokens import TokenClaims, TokenKind
from sessionguard.storage.errors import CacheUnavailableError

logger = get_logger(__name__)


class SessionCache(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def expire(self, key: str, ttl_seconds: int) -> bool: ...

    async def delete(self, key: str) -> None: ...


@dataclass(frozen=True)
class SessionRecord:
    """Markers of the one token pair currently accepted for a subject."""

    access_unique_id: str
    refresh_unique_id: str

    def to_json(self) -> str:
        return json.dumps(
            {"access_uid": self.access_unique_id, "refresh_uid": self.refresh_unique_id},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "SessionRecord":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise StoreError(
                "unexpected session record shape", detail={"error": str(exc)}
            ) from exc
        if not isinstance(data, dict):
            raise StoreError("unexpected session record shape")
        access_uid = data.get("access_uid")
        refresh_uid = data.get("refresh_uid")
        if not isinstance(access_uid, str) or not isinstance(refresh_uid, str):
            raise StoreError("unexpected session record shape")
        return cls(access_unique_id=access_uid, refresh_unique_id=refresh_uid)

    def marker_for(self, kind: TokenKind) -> str:
        if kind is TokenKind.ACCESS:
            return self.access_unique_id
        return self.refresh_unique_id


class SessionStore:
    """Cache-backed record of which token markers are live for each subject.

    One record per subject, written as a single value so readers never see a
    half-updated pair. The record carries a sliding TTL equal to the
    auto-logout window. Concurrent saves for the same subject are
    last-writer-wins.
    """

    KEY_PREFIX = "auth:session:"

    def __init__(self, cache: SessionCache, *, auto_logout: timedelta) -> None:
        if auto_logout <= timedelta(0):
            raise ValueError("auto-logout window must be positive")
        self.cache = cache
        self.auto_logout = auto_logout
        # Strong references keep fire-and-forget tasks alive until they finish
        self._background: set[asyncio.Task] = set()

    @property
    def ttl_seconds(self) -> int:
        return int(self.auto_logout.total_seconds())

    def _key(self, subject: int) -> str:
        return f"{self.KEY_PREFIX}{subject}"

    async def save(
        self, subject: int, access_claims: TokenClaims, refresh_claims: TokenClaims
    ) -> None:
        """Replace the subject's record with the markers of a fresh token pair."""
        if access_claims.subject != refresh_claims.subject or access_claims.subject != subject:
            raise MismatchedSubjectsError(
                detail={
                    "subject": subject,
                    "access_subject": access_claims.subject,
                    "refresh_subject": refresh_claims.subject,
                }
            )
        record = SessionRecord(
            access_unique_id=access_claims.unique_id,
            refresh_unique_id=refresh_claims.unique_id,
        )
        try:
            await self.cache.set(self._key(subject), record.to_json(), self.ttl_seconds)
        except CacheUnavailableError as exc:
            raise StoreError(detail=exc.detail) from exc

    async def get_record(self, subject: int) -> Optional[SessionRecord]:
        try:
            raw = await self.cache.get(self._key(subject))
        except CacheUnavailableError as exc:
            raise StoreError(detail=exc.detail) from exc
        if raw is None:
            return None
        return SessionRecord.from_json(raw)

    async def is_live(self, claims: TokenClaims) -> bool:
        """True only if the claims carry the marker stored for their kind."""
        record = await self.get_record(claims.subject)
        if record is None:
            return False
        try:
            kind = TokenKind(claims.token_kind)
        except ValueError:
            raise UnknownTokenKindError(detail={"kind": claims.token_kind}) from None
        return record.marker_for(kind) == claims.unique_id

    def extend_ttl(self, subject: int) -> None:
        """Schedule a sliding-window renewal without waiting for it.

        Failures are logged by the task's done-callback and never reach the
        caller.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("session_ttl_extension_skipped", subject=subject, reason="no_event_loop")
            return
        task = loop.create_task(self._extend_ttl(subject))
        self._background.add(task)
        task.add_done_callback(self._on_extension_done)

    async def _extend_ttl(self, subject: int) -> None:
        extended = await self.cache.expire(self._key(subject), self.ttl_seconds)
        if not extended:
            logger.debug("session_ttl_extension_missed", subject=subject)

    def _on_extension_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "session_ttl_extension_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )

    async def wait_for_background(self) -> None:
        """Let in-flight TTL extensions finish; used at shutdown and in tests."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def revoke(self, subject: int) -> None:
        """Delete the subject's record. Idempotent; cache failures are only logged."""
        try:
            await self.cache.delete(self._key(subject))
        except CacheUnavailableError as exc:
            logger.warning("session_revoke_failed", subject=subject, error=exc.message)
