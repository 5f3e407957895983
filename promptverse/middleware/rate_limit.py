"""Per-IP rate limiting for API routes, built on slowapi.

Every routed request counts against ``rate_limit_requests`` per
``rate_limit_window_seconds`` (fixed window), keyed by client IP. Counters live
in Redis (``rate_limit_storage_uri``, else ``redis_url``). When that store is
unreachable, counting falls back to process memory instead of failing requests.

Health checks and inbound webhooks opt out with ``@limiter.exempt``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from promptverse.core.config import get_settings

logger = structlog.get_logger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def default_limit() -> str:
    settings = get_settings()
    return f"{settings.rate_limit_requests} per {settings.rate_limit_window_seconds} seconds"


def build_limiter(storage_uri: str | None = None, limit: str | None = None) -> Limiter:
    """Create a limiter; defaults come from settings."""
    settings = get_settings()
    return Limiter(
        key_func=client_ip,
        default_limits=[limit or default_limit()],
        storage_uri=storage_uri or settings.rate_limit_storage_uri or settings.redis_url,
        strategy="fixed-window",
        in_memory_fallback_enabled=True,
        swallow_errors=True,
    )


limiter = build_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "rate_limit_exceeded",
        client_ip=client_ip(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(status_code=429, content={"detail": RATE_LIMIT_MESSAGE})


def setup_rate_limit_middleware(app: FastAPI, app_limiter: Limiter | None = None) -> None:
    """Attach the limiter, its 429 handler and the slowapi middleware to ``app``."""
    app.state.limiter = app_limiter or limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
