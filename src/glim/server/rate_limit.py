"""Token-bucket request throttling for the card server.

Global limit: 300 req/min across all clients.
Per-client limit: 30 req/min per IP address.

Each bucket starts full, holds at most one minute's allowance and refills
continuously at ``limit / 60`` tokens per second, so a client may burst up to
its limit and then proceeds at the steady rate.  A client's bucket is
forgotten once it has been idle for ``ip_memory_seconds``.

Uses ``time.monotonic()`` for timestamps -- immune to wall-clock adjustments.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# Most client buckets kept at once; the longest-idle client is dropped first
_MAX_TRACKED_CLIENTS = 10_000


@dataclass
class TokenBucket:
    capacity: float
    refill_per_second: float
    tokens: float
    updated_at: float

    @classmethod
    def full(cls, per_minute: int, now: float) -> TokenBucket:
        return cls(
            capacity=float(per_minute),
            refill_per_second=per_minute / 60.0,
            tokens=float(per_minute),
            updated_at=now,
        )

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_second)
        self.updated_at = now

    def take(self, now: float) -> bool:
        """Spend one token if available."""
        self.refill(now)
        if self.tokens < 1.0:
            return False
        self.tokens -= 1.0
        return True


class RequestThrottle:
    """Global plus per-client-IP throttling for card requests.

    Args:
        global_limit: Requests per minute across every client.
        per_ip_limit: Requests per minute for a single client address.
        ip_memory_seconds: Idle time after which a client's bucket is dropped.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        global_limit: int = 300,
        per_ip_limit: int = 30,
        ip_memory_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.per_ip_limit = per_ip_limit
        self.ip_memory_seconds = ip_memory_seconds
        self._clock = clock
        self._global = TokenBucket.full(global_limit, clock())
        # ip -> bucket, least recently seen first
        self._clients: OrderedDict[str, TokenBucket] = OrderedDict()

    def _client_bucket(self, client_ip: str, now: float) -> TokenBucket:
        bucket = self._clients.get(client_ip)
        if bucket is not None and now - bucket.updated_at >= self.ip_memory_seconds:
            bucket = None
        if bucket is None:
            while len(self._clients) >= _MAX_TRACKED_CLIENTS:
                self._clients.popitem(last=False)
            bucket = TokenBucket.full(self.per_ip_limit, now)
        self._clients[client_ip] = bucket
        self._clients.move_to_end(client_ip)
        return bucket

    def check(self, client_ip: str) -> str | None:
        """Return None if the request may proceed, else which limit was hit.

        The client's bucket is checked first so one noisy client cannot use
        up the global budget with rejected requests.
        """
        now = self._clock()
        if not self._client_bucket(client_ip, now).take(now):
            logger.debug("Client %s is out of tokens", client_ip)
            return "IP rate limit exceeded"
        if not self._global.take(now):
            logger.warning("Global request budget exhausted")
            return "Global rate limit exceeded"
        return None

    def cleanup(self) -> int:
        """Forget clients idle for ``ip_memory_seconds``.  Returns how many."""
        now = self._clock()
        idle = [ip for ip, b in self._clients.items() if now - b.updated_at >= self.ip_memory_seconds]
        for ip in idle:
            del self._clients[ip]
        return len(idle)

    def status(self) -> dict[str, int]:
        self._global.refill(self._clock())
        return {
            "global_remaining": int(self._global.tokens),
            "tracked_clients": len(self._clients),
        }
