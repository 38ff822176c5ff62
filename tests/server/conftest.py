"""Shared fixtures for glim server tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from glim.pipeline.cache import CardCache
from glim.pipeline.generator import CardPipeline
from glim.server.app import create_app
from glim.server.config import Settings


@pytest.fixture()
def settings(monkeypatch):
    """Settings with a clean environment (no token, default limits)."""
    for var in (
        "GITHUB_TOKEN",
        "GLIM_CACHE_TTL_SECONDS",
        "GLIM_GLOBAL_RATE_LIMIT",
        "GLIM_IP_RATE_LIMIT",
        "GLIM_INDEX_REPOSITORY",
    ):
        monkeypatch.delenv(var, raising=False)
    return Settings()


@pytest.fixture()
def make_client(settings):
    """Return a factory building a TestClient around a given fetcher.

    The client is entered as a context manager so the app lifespan runs.
    """
    clients: list[TestClient] = []

    def _make(fetcher, **pipeline_kwargs) -> TestClient:
        pipeline_kwargs.setdefault("cache", CardCache(ttl_seconds=settings.cache_ttl_seconds))
        pipeline = CardPipeline(fetcher, **pipeline_kwargs)
        client = TestClient(create_app(settings, pipeline=pipeline))
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture()
def client(make_client, fake_fetcher):
    """TestClient backed by the counting fake fetcher."""
    return make_client(fake_fetcher)
