"""glim core types -- identifiers, metadata, formats and the error hierarchy."""

from glim.core.errors import (
    CardTimeoutError,
    GlimError,
    InvalidBindAddressError,
    InvalidConfigError,
    InvalidRepositoryError,
    RasterizationError,
    RateLimitedError,
    RepositoryNotFoundError,
    TemplateError,
    UnsupportedFormatError,
    UpstreamUnavailableError,
)
from glim.core.identifier import RepositoryIdentifier, parse_identifier
from glim.core.types import RenderFormat, RepositoryMetadata, parse_extension

__all__ = [
    "CardTimeoutError",
    "GlimError",
    "InvalidBindAddressError",
    "InvalidConfigError",
    "InvalidRepositoryError",
    "RasterizationError",
    "RateLimitedError",
    "RenderFormat",
    "RepositoryIdentifier",
    "RepositoryMetadata",
    "RepositoryNotFoundError",
    "TemplateError",
    "UnsupportedFormatError",
    "UpstreamUnavailableError",
    "parse_extension",
    "parse_identifier",
]
