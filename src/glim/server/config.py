"""Server configuration from environment variables."""

from __future__ import annotations

import os

from glim.core.errors import InvalidConfigError


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfigError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidConfigError(f"{name} must be a number, got {raw!r}") from None


class Settings:
    """glim settings, read from environment variables with defaults.

    Keyword arguments override the environment (CLI flags take precedence).

    Raises:
        InvalidConfigError: A numeric variable is set but does not parse.
    """

    def __init__(self, *, token: str | None = None, port: int | None = None) -> None:
        self.github_token: str | None = token or os.getenv("GITHUB_TOKEN") or None
        self.github_api_url: str = os.getenv("GLIM_GITHUB_API_URL", "https://api.github.com")
        self.github_timeout: float = _env_float("GLIM_GITHUB_TIMEOUT", 5.0)
        self.host: str = os.getenv("GLIM_HOST", "127.0.0.1")
        self.port: int = port if port is not None else _env_int("PORT", 8080)
        self.log_level: str = os.getenv("GLIM_LOG_LEVEL", "INFO").upper()
        self.debug: bool = os.getenv("GLIM_DEBUG", "").lower() in ("1", "true", "yes")
        self.request_timeout: float = _env_float("GLIM_REQUEST_TIMEOUT", 10.0)
        self.render_workers: int = _env_int("GLIM_RENDER_WORKERS", 4)
        # Card cache
        self.cache_ttl_seconds: float = _env_float("GLIM_CACHE_TTL_SECONDS", 1800.0)
        self.cache_max_entries: int = _env_int("GLIM_CACHE_MAX_ENTRIES", 1024)
        self.cache_shards: int = _env_int("GLIM_CACHE_SHARDS", 16)
        # Request throttling (requests per minute; idle client buckets are forgotten)
        self.global_rate_limit: int = _env_int("GLIM_GLOBAL_RATE_LIMIT", 300)
        self.ip_rate_limit: int = _env_int("GLIM_IP_RATE_LIMIT", 30)
        self.ip_memory_seconds: float = _env_float("GLIM_IP_MEMORY_SECONDS", 3600.0)
        # Where GET / redirects
        self.index_repository: str = os.getenv("GLIM_INDEX_REPOSITORY", "Xevion/glim")
