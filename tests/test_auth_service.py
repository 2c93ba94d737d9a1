"""Unit tests for the session manager: login, rotation, logout and authentication."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from sessionguard.service.auth import SessionManager, TokenPair
from sessionguard.service.errors import (
    ExpiredOrRevokedError,
    InvalidTokenError,
    InvalidTokenTypeError,
    StoreError,
)
from sessionguard.service.sessions import SessionStore
from sessionguard.service.tokens import TokenCodec, TokenConfig, TokenKind
from sessionguard.storage.errors import CacheUnavailableError
from sessionguard.storage.memory import MemoryCache


@pytest.fixture
def codec():
    return TokenCodec(
        TokenConfig(
            secret="Test-Secret-Key_for-Automation-Only-987654321!",
            issuer="sessionguard",
            access_lifetime=timedelta(minutes=15),
            refresh_lifetime=timedelta(days=1),
        )
    )


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def store(cache):
    return SessionStore(cache, auto_logout=timedelta(hours=24))


@pytest.fixture
def manager(codec, store):
    return SessionManager(codec, store)


async def test_full_session_lifecycle(manager, store):
    first = await manager.login(1)
    claims = await manager.authenticate(first.access)
    assert claims.subject == 1
    assert claims.token_kind == "access"

    second = await manager.refresh(first.refresh)
    assert second.access != first.access
    assert second.refresh != first.refresh
    with pytest.raises(ExpiredOrRevokedError):
        await manager.authenticate(first.access)

    await manager.logout(second.access)
    with pytest.raises(ExpiredOrRevokedError):
        await manager.authenticate(second.access)
    await store.wait_for_background()


async def test_login_returns_matching_pair(manager, codec):
    pair = await manager.login(11)
    assert isinstance(pair, TokenPair)

    access = codec.verify(pair.access)
    refresh = codec.verify(pair.refresh)
    assert (access.subject, access.token_kind) == (11, "access")
    assert (refresh.subject, refresh.token_kind) == (11, "refresh")


async def test_new_login_ends_previous_session(manager):
    first = await manager.login(2)
    second = await manager.login(2)

    with pytest.raises(ExpiredOrRevokedError):
        await manager.authenticate(first.access)
    with pytest.raises(ExpiredOrRevokedError):
        await manager.refresh(first.refresh)
    assert (await manager.authenticate(second.access)).subject == 2


async def test_other_subjects_are_unaffected(manager):
    alice = await manager.login(3)
    await manager.login(4)
    assert (await manager.authenticate(alice.access)).subject == 3


async def test_refresh_token_is_single_use(manager):
    pair = await manager.login(5)
    await manager.refresh(pair.refresh)
    with pytest.raises(ExpiredOrRevokedError):
        await manager.refresh(pair.refresh)


async def test_refresh_ignores_state_of_paired_access_token(manager, codec, store):
    pair = await manager.login(6)
    # Swap in a different access marker; the refresh marker stays live
    _, stray_access = codec.issue(6, TokenKind.ACCESS)
    await store.save(6, stray_access, codec.verify(pair.refresh))

    with pytest.raises(ExpiredOrRevokedError):
        await manager.authenticate(pair.access)
    renewed = await manager.refresh(pair.refresh)
    assert (await manager.authenticate(renewed.access)).subject == 6


async def test_authenticate_rejects_refresh_token(manager):
    pair = await manager.login(7)
    with pytest.raises(InvalidTokenTypeError):
        await manager.authenticate(pair.refresh)


async def test_refresh_rejects_access_token(manager):
    pair = await manager.login(8)
    with pytest.raises(InvalidTokenTypeError):
        await manager.refresh(pair.access)


async def test_garbage_token_is_invalid(manager):
    with pytest.raises(InvalidTokenError):
        await manager.authenticate("not-a-token")
    with pytest.raises(InvalidTokenError):
        await manager.refresh("not.a.token")
    with pytest.raises(InvalidTokenError):
        await manager.logout("")


async def test_logout_accepts_refresh_token(manager):
    pair = await manager.login(9)
    await manager.logout(pair.refresh)
    with pytest.raises(ExpiredOrRevokedError):
        await manager.authenticate(pair.access)


async def test_logout_is_idempotent(manager):
    pair = await manager.login(10)
    await manager.logout(pair.access)
    await manager.logout(pair.access)


async def test_authenticate_renews_auto_logout_window(manager, store, cache):
    pair = await manager.login(12)
    await cache.expire("auth:session:12", 5)

    await manager.authenticate(pair.access)
    await store.wait_for_background()

    assert cache.ttl("auth:session:12") == pytest.approx(24 * 3600, abs=5)


async def test_login_propagates_store_failure(codec, cache):
    cache.set = AsyncMock(side_effect=CacheUnavailableError("redis set failed"))
    manager = SessionManager(codec, SessionStore(cache, auto_logout=timedelta(hours=1)))

    with pytest.raises(StoreError):
        await manager.login(1)


async def test_unreachable_store_reads_as_revoked(manager, cache):
    pair = await manager.login(13)
    cache.get = AsyncMock(side_effect=CacheUnavailableError("redis get failed"))

    with pytest.raises(ExpiredOrRevokedError):
        await manager.authenticate(pair.access)


async def test_login_rejects_negative_subject(manager):
    with pytest.raises(ValueError):
        await manager.login(-1)


async def test_expired_access_token_is_invalid_while_session_is_live(codec, store):
    now = [1_700_000_000.0]
    clocked = TokenCodec(codec.config, clock=lambda: now[0])
    manager = SessionManager(clocked, store)
    pair = await manager.login(14)
    access_claims = clocked.verify(pair.access)

    now[0] = access_claims.expires_at + 1

    assert await store.is_live(access_claims)
    with pytest.raises(InvalidTokenError):
        await manager.authenticate(pair.access)
