"""FastAPI application factory for the glim card server."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from glim import __version__
from glim.core.errors import (
    CardTimeoutError,
    GlimError,
    InvalidRepositoryError,
    RasterizationError,
    RateLimitedError,
    RepositoryNotFoundError,
    TemplateError,
    UnsupportedFormatError,
    UpstreamUnavailableError,
)
from glim.github.client import GitHubClient
from glim.pipeline.cache import CardCache
from glim.pipeline.generator import CardPipeline
from glim.server.config import Settings
from glim.server.models import ErrorResponse
from glim.server.rate_limit import RequestThrottle

logger = logging.getLogger(__name__)

# How often to prune expired cache entries and stale throttle buckets (seconds)
_CLEANUP_INTERVAL: float = 300.0  # 5 minutes

# Retry-After hint when GitHub gave no reset time (seconds)
_DEFAULT_RETRY_AFTER = 60

_ERROR_STATUS: dict[type[GlimError], int] = {
    RepositoryNotFoundError: 404,
    RateLimitedError: 503,
    UpstreamUnavailableError: 502,
    CardTimeoutError: 504,
    TemplateError: 500,
    RasterizationError: 500,
    UnsupportedFormatError: 400,
    InvalidRepositoryError: 400,
}

# Consistent JSON error shape: {"error": "<code>", "detail": "<message>"}
_STATUS_TO_ERROR = {
    404: "not_found",
    405: "method_not_allowed",
    429: "rate_limited",
}


def error_status(exc: GlimError) -> int:
    """Map a glim error to its HTTP status code (500 for unknown kinds)."""
    for cls in type(exc).__mro__:
        if cls in _ERROR_STATUS:
            return _ERROR_STATUS[cls]
    return 500


def build_pipeline(settings: Settings) -> CardPipeline:
    """Create the GitHub-backed pipeline and its cache from *settings*."""
    fetcher = GitHubClient(
        settings.github_token,
        api_url=settings.github_api_url,
        timeout=settings.github_timeout,
    )
    cache = CardCache(
        ttl_seconds=settings.cache_ttl_seconds,
        max_entries=settings.cache_max_entries,
        shards=settings.cache_shards,
    )
    return CardPipeline(
        fetcher,
        cache=cache,
        timeout=settings.request_timeout,
        max_workers=settings.render_workers,
    )


async def _cleanup_loop(app: FastAPI) -> None:
    """Periodically prune expired cards and throttle buckets to prevent memory leak."""
    while True:
        await asyncio.sleep(_CLEANUP_INTERVAL)
        removed = app.state.pipeline.cache.cleanup()
        app.state.throttle.cleanup()
        if removed:
            logger.info("Pruned %d expired cards", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage the pipeline, throttle and background cleanup across app lifetime."""
    settings = app.state.settings
    owns_pipeline = app.state.pipeline is None
    if owns_pipeline:
        app.state.pipeline = build_pipeline(settings)

    # Throttle on app.state so each create_app() gets fresh counters
    app.state.throttle = RequestThrottle(
        global_limit=settings.global_rate_limit,
        per_ip_limit=settings.ip_rate_limit,
        ip_memory_seconds=settings.ip_memory_seconds,
    )
    app.state.startup_time = time.monotonic()

    cleanup_task = asyncio.create_task(_cleanup_loop(app))

    yield

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    if owns_pipeline:
        await app.state.pipeline.close()


def create_app(settings: Settings | None = None, pipeline: CardPipeline | None = None) -> FastAPI:
    """Create and configure the glim card server application.

    *pipeline* may be injected (tests substitute a fake fetcher); otherwise
    one backed by :class:`GitHubClient` is built at startup from *settings*.
    """
    if settings is None:
        settings = Settings()

    # Configure logging from settings
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.debug:
        logging.getLogger("glim").setLevel(logging.DEBUG)

    app = FastAPI(
        title="glim",
        version=__version__,
        lifespan=lifespan,
    )

    # Store settings on app.state so lifespan and routes can access it
    app.state.settings = settings
    app.state.pipeline = pipeline

    @app.middleware("http")
    async def add_server_header(request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["Server"] = f"glim/{__version__}"
        return response

    @app.exception_handler(GlimError)
    async def glim_exception_handler(request: Request, exc: GlimError) -> JSONResponse:
        status_code = error_status(exc)
        body = ErrorResponse(error=exc.code, detail=str(exc))
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitedError):
            retry_after = _DEFAULT_RETRY_AFTER
            if exc.reset_at is not None:
                body.reset_at = exc.reset_at.isoformat()
                delta = exc.reset_at - datetime.now(timezone.utc)
                retry_after = max(0, int(delta.total_seconds()))
            headers["Retry-After"] = str(retry_after)
        if status_code >= 500 and not isinstance(exc, (RateLimitedError, UpstreamUnavailableError, CardTimeoutError)):
            logger.error("Failed to generate card for %s: %s", request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=status_code,
            content=body.model_dump(exclude_none=True),
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": _STATUS_TO_ERROR.get(exc.status_code, "error"),
                "detail": exc.detail,
            },
            headers=exc.headers,
        )

    # Health, index and card routes (no prefix)
    from glim.server.routes.health import router as health_router
    from glim.server.routes.cards import router as cards_router

    app.include_router(health_router)
    app.include_router(cards_router)

    return app
