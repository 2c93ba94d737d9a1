from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from sessionguard.api.error_handling import register_exception_handlers
from sessionguard.api.routes import router
from sessionguard.config import get_settings
from sessionguard.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

__version__ = "0.1.0"

HEALTH_CHECK_TIMEOUT_SECONDS = 3

# Responses on these paths carry credentials or claims and must not be cached
_NO_STORE_PATHS = {"/login", "/refresh", "/logout", "/authenticate"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime on startup so a missing Redis fails fast; close it on shutdown."""
    from sessionguard.service.runtime import get_runtime

    runtime = get_runtime()
    logger.info("service_started", version=__version__, build=runtime.settings.build_sha)

    yield

    try:
        await runtime.close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="sessionguard", version=__version__, lifespan=lifespan)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag each request with a correlation ID for log tracing.

    Taken from the X-Request-ID header when the client sends one, otherwise
    generated, and echoed back in the response header.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    if request.url.path in _NO_STORE_PATHS or request.url.path == "/healthz":
        response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, private")
        response.headers.setdefault("Pragma", "no-cache")
    return response


register_exception_handlers(app)
app.include_router(router)


@app.get("/ping", response_class=PlainTextResponse)
async def ping() -> str:
    return "pong"


@app.get("/healthz")
async def health() -> Dict[str, Any]:
    """Report service health with a bounded session-cache connectivity check."""
    from sessionguard.service.runtime import get_runtime

    runtime = get_runtime()
    checks: Dict[str, Dict[str, Any]] = {}
    try:
        await asyncio.wait_for(
            asyncio.to_thread(runtime.cache.verify_connection),
            HEALTH_CHECK_TIMEOUT_SECONDS,
        )
        cache_ok = True
    except asyncio.TimeoutError:
        logger.error(
            "health_check_timeout", component="cache", timeout=HEALTH_CHECK_TIMEOUT_SECONDS
        )
        cache_ok = False
    except Exception as exc:
        logger.error("health_check_cache_failed", error=str(exc))
        cache_ok = False
    checks["cache"] = {
        "status": "healthy" if cache_ok else "unhealthy",
        "type": type(runtime.cache).__name__,
    }

    return {
        "status": "healthy" if cache_ok else "unhealthy",
        "checks": checks,
        "version": __version__,
        "build": get_settings().build_sha,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def create_app() -> FastAPI:
    return app
