"""Card pipeline: fetch -> render -> rasterize, with caching and coalescing.

One :class:`CardPipeline` is shared by every request in a process.  Upstream
fetches are coalesced per repository; rendering and encoding run per request
in a thread pool so CPU-bound work never blocks the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from glim.cards.raster import rasterize
from glim.cards.template import CardTemplate, default_template
from glim.core.errors import CardTimeoutError
from glim.core.identifier import RepositoryIdentifier
from glim.core.types import RenderFormat, RepositoryMetadata
from glim.pipeline.cache import CardCache

logger = logging.getLogger(__name__)

# Cards slower than this are logged as warnings (seconds)
_SLOW_THRESHOLD = 1.0


class MetadataFetcher(Protocol):
    """Anything that can fetch repository metadata (e.g. ``GitHubClient``)."""

    async def fetch(self, identifier: RepositoryIdentifier, token: str | None = None) -> RepositoryMetadata: ...


def build_card(metadata: RepositoryMetadata, fmt: RenderFormat, template: CardTemplate | None = None) -> bytes:
    """Render *metadata* to SVG and encode it as *fmt* (synchronous)."""
    document = (template or default_template()).render(metadata)
    return rasterize(document, fmt)


class CardPipeline:
    """Generates card images for repositories.

    Args:
        fetcher: Source of repository metadata.
        cache: Card cache; a fresh :class:`CardCache` if omitted.
        token: Default GitHub token passed to the fetcher.
        timeout: Per-request deadline in seconds for fetch+render+encode.
        max_workers: Size of the render thread pool.
        template: Card template; the bundled one if omitted.
    """

    def __init__(
        self,
        fetcher: MetadataFetcher,
        *,
        cache: CardCache | None = None,
        token: str | None = None,
        timeout: float = 10.0,
        max_workers: int = 4,
        template: CardTemplate | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache if cache is not None else CardCache()
        self.timeout = timeout
        self._token = token
        self._template = template
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="glim-render")

    async def generate(
        self,
        identifier: RepositoryIdentifier,
        fmt: RenderFormat = RenderFormat.PNG,
        token: str | None = None,
    ) -> bytes:
        """Return the encoded card for *identifier* in *fmt*.

        Raises:
            CardTimeoutError: The card was not ready within ``timeout``.
            GlimError: Any fetcher/renderer/rasterizer error, unchanged.
        """
        start = time.perf_counter()
        try:
            data = await asyncio.wait_for(self._generate(identifier, fmt, token), self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Card for %s (%s) timed out after %.1fs", identifier, fmt.value, self.timeout)
            raise CardTimeoutError(
                f"Card generation for {identifier} exceeded {self.timeout:g}s"
            ) from exc

        elapsed = time.perf_counter() - start
        logger.debug("Card for %s (%s) ready in %.1fms", identifier, fmt.value, elapsed * 1000)
        if elapsed > _SLOW_THRESHOLD:
            logger.warning("Card generation took %.1fms for %s (%s)", elapsed * 1000, identifier, fmt.value)
        return data

    async def _generate(self, identifier: RepositoryIdentifier, fmt: RenderFormat, token: str | None) -> bytes:
        cached = self.cache.get(identifier, fmt)
        if cached is not None:
            logger.debug("Cache hit for %s (%s)", identifier, fmt.value)
            return cached

        logger.info("Cache miss for %s (%s)", identifier, fmt.value)
        shared = self.cache.coalesce(
            identifier,
            lambda: self.fetcher.fetch(identifier, token or self._token),
        )
        # shield: giving up on this request must not cancel the shared fetch
        metadata = await asyncio.shield(shared)

        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(self._executor, build_card, metadata, fmt, self._template)
        self.cache.put(identifier, fmt, data)
        return data

    async def close(self) -> None:
        """Shut down the render thread pool."""
        self._executor.shutdown(wait=False, cancel_futures=True)
