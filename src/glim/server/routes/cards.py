"""Card endpoints.

- ``GET /{owner}/{repo}`` -- Card image; format from ``?format=`` (or ``?f=``)
  or a ``.png``/``.webp``/... suffix on the repo, PNG otherwise.
- ``GET /`` -- Redirect to the showcase repository's card.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import RedirectResponse, Response

from glim.core.identifier import RepositoryIdentifier
from glim.core.types import RenderFormat, parse_extension

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_repo_and_format(repo: str, requested: str | None = None) -> tuple[str, RenderFormat]:
    """Split a ``repo[.ext]`` path segment into name and format.

    Only recognized image extensions are stripped, so ``next.js`` stays a
    repository name.  An explicit *requested* format wins over the suffix.

    Raises:
        UnsupportedFormatError: *requested* names no known format.
    """
    name = repo
    fmt = RenderFormat.PNG
    stem, dot, ext = repo.rpartition(".")
    if dot and stem:
        suffix_fmt = parse_extension(ext)
        if suffix_fmt is not None:
            name, fmt = stem, suffix_fmt
    if requested:
        fmt = RenderFormat.parse(requested)
    return name, fmt


@router.get("/", include_in_schema=False)
async def index(request: Request) -> RedirectResponse:
    return RedirectResponse(
        url=f"/{request.app.state.settings.index_repository}",
        status_code=307,
    )


@router.get("/{owner}/{repo}")
async def card(
    owner: str,
    repo: str,
    request: Request,
    format_param: str | None = Query(None, alias="format"),
    f: str | None = Query(None),
) -> Response:
    """Render the card for ``owner/repo``."""
    client_ip = request.client.host if request.client else "unknown"
    reason = request.app.state.throttle.check(client_ip)
    if reason is not None:
        logger.info("Throttled %s: %s", client_ip, reason)
        raise HTTPException(status_code=429, detail=reason)

    name, fmt = parse_repo_and_format(repo, format_param or f)
    identifier = RepositoryIdentifier(owner=owner, name=name)

    pipeline = request.app.state.pipeline
    data = await pipeline.generate(identifier, fmt)
    max_age = int(pipeline.cache.ttl_seconds)
    return Response(
        content=data,
        media_type=fmt.mime_type,
        headers={"Cache-Control": f"public, max-age={max_age}"},
    )
