"""glim exception hierarchy.

All card-generation errors inherit from :class:`GlimError`.  Each subclass
carries a short machine-readable ``code`` used by the HTTP error body and the
CLI error line.
"""

from __future__ import annotations

from datetime import datetime


class GlimError(Exception):
    """Base exception for all glim errors."""

    code = "error"


class InvalidRepositoryError(GlimError):
    """Raised when an ``owner/repo`` string fails validation."""

    code = "invalid_repository"


class RepositoryNotFoundError(GlimError):
    """Raised when GitHub reports the repository does not exist or is hidden."""

    code = "not_found"


class RateLimitedError(GlimError):
    """Raised when the GitHub API quota is exhausted.

    ``reset_at`` is the moment the quota resets, when GitHub told us.
    """

    code = "rate_limited"

    def __init__(self, message: str = "GitHub API rate limit exceeded", reset_at: datetime | None = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at

    def __str__(self) -> str:
        message = super().__str__()
        if self.reset_at is not None:
            return f"{message} (resets at {self.reset_at.isoformat()})"
        return message


class UpstreamUnavailableError(GlimError):
    """Raised on transport failures or unexpected GitHub responses."""

    code = "upstream_unavailable"

    def __init__(self, message: str = "GitHub API unavailable", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CardTimeoutError(GlimError):
    """Raised when a card is not produced before the request deadline."""

    code = "timeout"


class TemplateError(GlimError):
    """Raised when the SVG card template is malformed."""

    code = "template_error"


class RasterizationError(GlimError):
    """Raised when an SVG document cannot be painted or encoded."""

    code = "rasterization_error"


class UnsupportedFormatError(GlimError):
    """Raised when asked for an image format the rasterizer cannot encode."""

    code = "unsupported_format"


class InvalidBindAddressError(GlimError):
    """Raised when a server bind address cannot be parsed."""

    code = "invalid_address"


class InvalidConfigError(GlimError):
    """Raised when an environment setting cannot be parsed."""

    code = "invalid_config"
