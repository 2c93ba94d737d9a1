from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header, Response

from sessionguard.api.schemas import (
    ClaimsResponse,
    LoginRequest,
    TokenPairResponse,
    TokenRefreshRequest,
)
from sessionguard.logging import get_logger
from sessionguard.service.errors import BadRequestError, ServerError, SessionError
from sessionguard.service.runtime import get_runtime

logger = get_logger(__name__)

router = APIRouter(tags=["auth"])

_BEARER_PREFIX = "bearer "


def _extract_bearer(authorization: Optional[str]) -> str:
    """Strip the ``Bearer`` prefix; a header without it counts as missing."""
    if not authorization or not authorization.lower().startswith(_BEARER_PREFIX):
        raise BadRequestError("missing authorization header")
    token = authorization[len(_BEARER_PREFIX):].strip()
    if not token:
        raise BadRequestError("missing authorization header")
    return token


@router.post("/login", response_model=TokenPairResponse)
async def login(body: LoginRequest) -> TokenPairResponse:
    """Start a session for an already-authenticated identity.

    Any previous session of the same subject stops being accepted.
    """
    runtime = get_runtime()
    logger.info("login_requested", subject=body.subject)
    try:
        pair = await runtime.auth.login(body.subject)
    except SessionError as exc:
        raise ServerError("failed to login", detail={"cause": type(exc).__name__}) from exc
    return TokenPairResponse(access=pair.access, refresh=pair.refresh)


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(body: TokenRefreshRequest) -> TokenPairResponse:
    """Rotate a live refresh token into a new token pair."""
    runtime = get_runtime()
    try:
        pair = await runtime.auth.refresh(body.refresh)
    except SessionError as exc:
        raise ServerError(
            "failed to refresh token", detail={"cause": type(exc).__name__}
        ) from exc
    return TokenPairResponse(access=pair.access, refresh=pair.refresh)


@router.post("/logout")
async def logout(authorization: Optional[str] = Header(None)) -> Response:
    runtime = get_runtime()
    token = _extract_bearer(authorization)
    try:
        await runtime.auth.logout(token)
    except SessionError as exc:
        raise ServerError("failed to logout", detail={"cause": type(exc).__name__}) from exc
    return Response(status_code=200)


@router.get("/authenticate", response_model=ClaimsResponse)
async def authenticate(authorization: Optional[str] = Header(None)) -> ClaimsResponse:
    """Check an access token and return its claims.

    Renews the subject's auto-logout window in the background.
    """
    runtime = get_runtime()
    token = _extract_bearer(authorization)
    try:
        claims = await runtime.auth.authenticate(token)
    except SessionError as exc:
        raise BadRequestError(
            "failed to authenticate", detail={"cause": type(exc).__name__}
        ) from exc
    return ClaimsResponse(**claims.to_payload())
