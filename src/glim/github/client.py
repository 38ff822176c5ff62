"""GitHub REST client for the single read path cards need.

Only ``GET /repos/{owner}/{repo}`` is used.  Each :meth:`GitHubClient.fetch`
opens and closes its own ``httpx.AsyncClient``; nothing is cached or retried
here -- caching and coalescing live in :mod:`glim.pipeline`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from glim import __version__
from glim.core.errors import (
    InvalidRepositoryError,
    RateLimitedError,
    RepositoryNotFoundError,
    UpstreamUnavailableError,
)
from glim.core.identifier import RepositoryIdentifier
from glim.core.types import RepositoryMetadata

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"

_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
    "User-Agent": f"glim/{__version__}",
}


class GitHubClient:
    """Fetches :class:`RepositoryMetadata` from the GitHub REST API.

    ``token`` is the default bearer token; a per-call token passed to
    :meth:`fetch` takes precedence.  With neither, requests are anonymous.
    ``transport`` lets tests substitute ``httpx.MockTransport``.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = dict(_HEADERS)
        token = token or self._token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def fetch(self, identifier: RepositoryIdentifier, token: str | None = None) -> RepositoryMetadata:
        """Fetch and normalize repository metadata.

        Raises:
            RepositoryNotFoundError: GitHub answered 404.
            RateLimitedError: GitHub signalled an exhausted quota.
            UpstreamUnavailableError: Transport failure, other non-2xx
                status, or an unusable payload.
        """
        url = f"{self._api_url}/repos/{identifier.owner}/{identifier.name}"
        try:
            async with httpx.AsyncClient(
                headers=self._headers(token),
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("GitHub request for %s failed: %s", identifier, exc)
            raise UpstreamUnavailableError(f"Network error while contacting GitHub API: {exc}") from exc

        if resp.status_code == 404:
            logger.info("Repository %s not found", identifier)
            raise RepositoryNotFoundError(f"Repository not found: {identifier}")

        if _is_rate_limited(resp):
            reset_at = _reset_time(resp)
            logger.warning("GitHub rate limit hit for %s, resets at %s", identifier, reset_at)
            raise RateLimitedError(reset_at=reset_at)

        if not resp.is_success:
            logger.warning("GitHub returned %d for %s", resp.status_code, identifier)
            raise UpstreamUnavailableError(
                f"GitHub API error: {resp.status_code}", status_code=resp.status_code
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("GitHub API returned invalid JSON") from exc

        metadata = _to_metadata(identifier, payload)
        logger.debug("Fetched repo info for %s", identifier)
        return metadata


def _is_rate_limited(resp: httpx.Response) -> bool:
    """GitHub signals quota exhaustion with 429, or 403 plus rate-limit headers."""
    if resp.status_code == 429:
        return True
    if resp.status_code == 403:
        return (
            resp.headers.get("x-ratelimit-remaining") == "0"
            or "retry-after" in resp.headers
        )
    return False


def _reset_time(resp: httpx.Response) -> datetime | None:
    """Return the quota reset time from ``x-ratelimit-reset`` or ``retry-after``."""
    reset = resp.headers.get("x-ratelimit-reset")
    if reset is not None:
        try:
            return datetime.fromtimestamp(int(reset), tz=timezone.utc)
        except ValueError:
            pass  # fall through to retry-after
    retry_after = resp.headers.get("retry-after")
    if retry_after is not None:
        try:
            return datetime.now(timezone.utc) + timedelta(seconds=int(retry_after))
        except ValueError:
            return None
    return None


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"not a timestamp: {value!r}")
    # GitHub timestamps end in "Z"; fromisoformat wants "+00:00" before 3.11
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _to_metadata(identifier: RepositoryIdentifier, payload: Any) -> RepositoryMetadata:
    """Normalize a ``/repos`` payload, keeping GitHub's canonical name casing."""
    if not isinstance(payload, dict):
        raise UpstreamUnavailableError("GitHub API returned an unexpected payload")
    try:
        owner_info = payload.get("owner")
        owner = (owner_info.get("login") if isinstance(owner_info, dict) else None) or identifier.owner
        name = payload.get("name") or identifier.name
        canonical = RepositoryIdentifier(owner=owner, name=name)
        if canonical != identifier:
            # Renamed/transferred repos redirect; keep what was asked for
            canonical = identifier
        return RepositoryMetadata(
            identifier=canonical,
            description=_optional_text(payload.get("description")),
            language=_optional_text(payload.get("language")),
            stars=int(payload["stargazers_count"]),
            forks=int(payload["forks_count"]),
            updated_at=_parse_timestamp(payload.get("updated_at") or payload.get("pushed_at")),
        )
    except (KeyError, TypeError, ValueError, InvalidRepositoryError) as exc:
        raise UpstreamUnavailableError(f"GitHub API returned incomplete repository data: {exc}") from exc
