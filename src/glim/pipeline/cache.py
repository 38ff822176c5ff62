"""Sharded in-memory card cache with single-flight fetch coalescing.

Entries are keyed by ``(identifier key, format)`` and expire after a TTL.
Each shard holds at most ``ceil(max_entries / shards)`` entries and evicts
the least-recently-inserted one when full.  The shard for a key is chosen by
the identifier alone, so the pending-fetch slot for a repository, its last
fetched result and all of its per-format entries sit behind the same lock.

Uses ``time.monotonic()`` for timestamps -- immune to wall-clock adjustments.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
import zlib
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from glim.core.identifier import RepositoryIdentifier
from glim.core.types import RenderFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """An encoded card and the moment it was inserted."""

    key: tuple[str, RenderFormat]
    data: bytes
    inserted_at: float


@dataclass
class _Shard:
    lock: threading.Lock = field(default_factory=threading.Lock)
    entries: OrderedDict[tuple[str, RenderFormat], CacheEntry] = field(default_factory=OrderedDict)
    pending: dict[str, asyncio.Future[Any]] = field(default_factory=dict)
    # identifier key -> (fetch result, completed_at)
    fetched: OrderedDict[str, tuple[Any, float]] = field(default_factory=OrderedDict)


class CardCache:
    """Card bytes cache shared by every request handler.

    Thread-safe via one ``threading.Lock`` per shard; critical sections
    never await, so the same lock guards both sync and async callers.
    """

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        max_entries: int = 1024,
        shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if shards < 1 or max_entries < 1:
            raise ValueError("shards and max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self._shard_capacity = math.ceil(max_entries / shards)
        self._shards = [_Shard() for _ in range(shards)]
        self._clock = clock

    def _shard(self, identifier: RepositoryIdentifier) -> _Shard:
        # crc32 rather than hash(): stable across processes and PYTHONHASHSEED
        return self._shards[zlib.crc32(identifier.key.encode("utf-8")) % len(self._shards)]

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return self._stale(entry.inserted_at, now)

    def _stale(self, stamp: float, now: float) -> bool:
        return now - stamp >= self.ttl_seconds

    def get(self, identifier: RepositoryIdentifier, fmt: RenderFormat) -> bytes | None:
        """Return cached bytes for ``(identifier, fmt)``, or None if absent/expired."""
        key = (identifier.key, fmt)
        shard = self._shard(identifier)
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del shard.entries[key]
                return None
            return entry.data

    def put(self, identifier: RepositoryIdentifier, fmt: RenderFormat, data: bytes) -> None:
        """Insert bytes for ``(identifier, fmt)``; the last insert for a key wins.

        If the shard is at capacity, the least-recently-inserted entry is evicted.
        """
        key = (identifier.key, fmt)
        shard = self._shard(identifier)
        with shard.lock:
            shard.entries.pop(key, None)
            while len(shard.entries) >= self._shard_capacity:
                evicted, _ = shard.entries.popitem(last=False)
                logger.debug("Evicted cached card %s", evicted)
            shard.entries[key] = CacheEntry(key=key, data=data, inserted_at=self._clock())

    def coalesce(
        self,
        identifier: RepositoryIdentifier,
        factory: Callable[[], Awaitable[Any]],
    ) -> asyncio.Future[Any]:
        """Join the in-flight fetch for *identifier*, or start one with *factory*.

        Returns the shared future.  Callers should await it through
        ``asyncio.shield`` so that abandoning the wait never cancels work other
        waiters depend on.  A successful result is kept for ``ttl_seconds``
        and handed to later callers as an already-completed future, so a
        request arriving while an earlier one is still rendering does not
        fetch again.  Failures are never kept.
        """
        shard = self._shard(identifier)
        key = identifier.key
        with shard.lock:
            kept = shard.fetched.get(key)
            if kept is not None:
                result, completed_at = kept
                if not self._stale(completed_at, self._clock()):
                    logger.debug("Reusing fetched result for %s", identifier)
                    future = asyncio.get_running_loop().create_future()
                    future.set_result(result)
                    return future
                del shard.fetched[key]
            future = shard.pending.get(key)
            if future is not None:
                logger.debug("Joining in-flight fetch for %s", identifier)
                return future
            future = asyncio.ensure_future(factory())
            shard.pending[key] = future

        def _release(done: asyncio.Future[Any]) -> None:
            with shard.lock:
                if shard.pending.get(key) is done:
                    del shard.pending[key]
                    if not done.cancelled() and done.exception() is None:
                        shard.fetched.pop(key, None)
                        while len(shard.fetched) >= self._shard_capacity:
                            shard.fetched.popitem(last=False)
                        shard.fetched[key] = (done.result(), self._clock())
            # Mark the exception retrieved even if every waiter gave up
            if not done.cancelled():
                done.exception()

        future.add_done_callback(_release)
        return future

    def cleanup(self) -> int:
        """Remove all expired entries.  Returns the number removed."""
        now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                expired = [k for k, e in shard.entries.items() if self._expired(e, now)]
                for k in expired:
                    del shard.entries[k]
                removed += len(expired)
                for k in [k for k, (_, at) in shard.fetched.items() if self._stale(at, now)]:
                    del shard.fetched[k]
        return removed

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()
                shard.fetched.clear()

    def in_flight(self) -> int:
        """Return the number of upstream fetches currently running."""
        return sum(len(shard.pending) for shard in self._shards)

    def stats(self) -> dict[str, int]:
        """Return entry and in-flight fetch counts (for monitoring)."""
        return {"entries": len(self), "in_flight": self.in_flight()}

    def __len__(self) -> int:
        """Return the number of stored entries, expired ones included."""
        return sum(len(shard.entries) for shard in self._shards)
