"""Health check endpoints for the card server.

- ``GET /health`` -- Liveness check (no upstream work, never throttled).
- ``GET /status`` -- Cache and throttling diagnostics.
"""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

from glim import __version__
from glim.server.models import HealthResponse, StatusResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return OK while the process can accept connections."""
    return HealthResponse(status="ok", version=__version__)


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    """Return cache and rate limiter diagnostics."""
    cache = request.app.state.pipeline.cache.stats()
    throttle = request.app.state.throttle.status()

    startup_time = getattr(request.app.state, "startup_time", None)
    uptime_seconds = (
        time.monotonic() - startup_time if startup_time is not None else 0.0
    )

    return StatusResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(uptime_seconds, 2),
        cache_entries=cache["entries"],
        fetches_in_flight=cache["in_flight"],
        global_requests_remaining=throttle["global_remaining"],
        tracked_clients=throttle["tracked_clients"],
    )
