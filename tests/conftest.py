"""Shared test fixtures for glim tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from glim.core.errors import GlimError
from glim.core.identifier import RepositoryIdentifier
from glim.core.types import RepositoryMetadata


class FakeFetcher:
    """In-memory metadata source that counts calls.

    ``delay`` makes each fetch sleep first so concurrent callers overlap;
    ``error`` makes every fetch raise it instead of returning metadata.
    """

    def __init__(
        self,
        metadata: dict[str, RepositoryMetadata] | None = None,
        *,
        delay: float = 0.0,
        error: GlimError | None = None,
    ) -> None:
        self.metadata = metadata or {}
        self.delay = delay
        self.error = error
        self.calls = 0
        self.tokens: list[str | None] = []

    async def fetch(self, identifier: RepositoryIdentifier, token: str | None = None) -> RepositoryMetadata:
        self.calls += 1
        self.tokens.append(token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if identifier.key in self.metadata:
            return self.metadata[identifier.key]
        return make_metadata(identifier)


def make_metadata(
    identifier: RepositoryIdentifier,
    *,
    description: str | None = "My first repository on GitHub!",
    language: str | None = "Python",
    stars: int = 2400,
    forks: int = 1850,
) -> RepositoryMetadata:
    return RepositoryMetadata(
        identifier=identifier,
        description=description,
        language=language,
        stars=stars,
        forks=forks,
        updated_at=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture()
def octocat() -> RepositoryIdentifier:
    return RepositoryIdentifier(owner="octocat", name="Hello-World")


@pytest.fixture()
def sample_metadata(octocat) -> RepositoryMetadata:
    """Metadata for octocat/Hello-World with every field populated."""
    return make_metadata(octocat)


@pytest.fixture()
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def make_fetcher():
    """Return the FakeFetcher class so tests can configure delay/error."""
    return FakeFetcher


@pytest.fixture()
def metadata_for():
    """Return the make_metadata helper."""
    return make_metadata
