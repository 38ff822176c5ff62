"""Pydantic response models for the card server."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str


class StatusResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    cache_entries: int
    fetches_in_flight: int
    global_requests_remaining: int
    tracked_clients: int


class ErrorResponse(BaseModel):
    error: str
    detail: str
    reset_at: str | None = None
