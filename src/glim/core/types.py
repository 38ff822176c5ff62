"""Core value types shared by the fetcher, renderer, rasterizer and frontends."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from glim.core.errors import UnsupportedFormatError
from glim.core.identifier import RepositoryIdentifier


class RenderFormat(str, Enum):
    """Raster output formats.

    Using ``str, Enum`` so that ``RenderFormat.PNG == "png"`` is True.
    """

    PNG = "png"
    JPEG = "jpeg"
    AVIF = "avif"
    WEBP = "webp"
    GIF = "gif"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def extension(self) -> str:
        return "jpg" if self is RenderFormat.JPEG else self.value

    @classmethod
    def parse(cls, text: str) -> RenderFormat:
        """Return the format named by *text* (name or file extension).

        Raises:
            UnsupportedFormatError: If *text* names no known format.
        """
        fmt = parse_extension(text)
        if fmt is None:
            raise UnsupportedFormatError(f"Unsupported image format: {text!r}")
        return fmt


_MIME_TYPES = {
    RenderFormat.PNG: "image/png",
    RenderFormat.JPEG: "image/jpeg",
    RenderFormat.AVIF: "image/avif",
    RenderFormat.WEBP: "image/webp",
    RenderFormat.GIF: "image/gif",
}

_EXTENSIONS = {
    "png": RenderFormat.PNG,
    "jpg": RenderFormat.JPEG,
    "jpeg": RenderFormat.JPEG,
    "avif": RenderFormat.AVIF,
    "webp": RenderFormat.WEBP,
    "gif": RenderFormat.GIF,
}


def parse_extension(text: str) -> RenderFormat | None:
    """Map a case-insensitive extension or format name to a format, else None."""
    return _EXTENSIONS.get(text.strip().lstrip(".").lower())


@dataclass(frozen=True)
class RepositoryMetadata:
    """Snapshot of the repository fields shown on a card."""

    identifier: RepositoryIdentifier
    description: str | None
    language: str | None
    stars: int
    forks: int
    updated_at: datetime

    def __post_init__(self) -> None:
        if self.stars < 0 or self.forks < 0:
            raise ValueError("Star and fork counts must be non-negative")
