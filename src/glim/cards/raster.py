"""SVG rasterization and image encoding for repository cards.

CairoSVG parses the document into its node tree and paints it at the fixed
card resolution; Pillow encodes the resulting pixels.  Every encoder uses
fixed parameters (no random dithering), so identical documents always encode
to identical bytes.
"""

from __future__ import annotations

import io
import logging
import time
from typing import Callable

import cairosvg
from PIL import Image

from glim.cards.template import CARD_HEIGHT, CARD_WIDTH
from glim.core.errors import RasterizationError, UnsupportedFormatError
from glim.core.types import RenderFormat

logger = logging.getLogger(__name__)

# Background for formats without an alpha channel
_MATTE = (255, 255, 255)

# Encoding parameters
_JPEG_QUALITY = 85
_WEBP_QUALITY = 80
_AVIF_QUALITY = 60
_AVIF_SPEED = 8
_GIF_COLORS = 128

# Cards slower than this are logged as warnings (seconds)
_SLOW_THRESHOLD = 1.0


# ---------------------------------------------------------------------------
# Encoders
# ---------------------------------------------------------------------------


def _flatten(canvas: Image.Image) -> Image.Image:
    """Composite an RGBA canvas onto the opaque matte."""
    background = Image.new("RGB", canvas.size, _MATTE)
    background.paste(canvas, mask=canvas.getchannel("A"))
    return background


def _encode_png(canvas: Image.Image, buf: io.BytesIO) -> None:
    canvas.save(buf, format="PNG", optimize=True)


def _encode_jpeg(canvas: Image.Image, buf: io.BytesIO) -> None:
    # 4:4:4 keeps small text crisp
    _flatten(canvas).save(buf, format="JPEG", quality=_JPEG_QUALITY, optimize=True, subsampling=0)


def _encode_webp(canvas: Image.Image, buf: io.BytesIO) -> None:
    canvas.save(buf, format="WEBP", quality=_WEBP_QUALITY, method=4)


def _encode_avif(canvas: Image.Image, buf: io.BytesIO) -> None:
    canvas.save(buf, format="AVIF", quality=_AVIF_QUALITY, speed=_AVIF_SPEED)


def _encode_gif(canvas: Image.Image, buf: io.BytesIO) -> None:
    paletted = _flatten(canvas).quantize(
        colors=_GIF_COLORS,
        method=Image.Quantize.MEDIANCUT,
        dither=Image.Dither.NONE,
    )
    paletted.save(buf, format="GIF")


_ENCODERS: dict[RenderFormat, tuple[str, Callable[[Image.Image, io.BytesIO], None]]] = {
    RenderFormat.PNG: ("PNG", _encode_png),
    RenderFormat.JPEG: ("JPEG", _encode_jpeg),
    RenderFormat.WEBP: ("WEBP", _encode_webp),
    RenderFormat.AVIF: ("AVIF", _encode_avif),
    RenderFormat.GIF: ("GIF", _encode_gif),
}


def is_available(fmt: RenderFormat) -> bool:
    """Return True if the installed Pillow build can encode *fmt*."""
    entry = _ENCODERS.get(fmt)
    if entry is None:
        return False
    Image.init()
    return entry[0] in Image.SAVE


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def paint(document: str) -> Image.Image:
    """Paint an SVG document into a ``CARD_WIDTH`` x ``CARD_HEIGHT`` RGBA image.

    Raises:
        RasterizationError: If the document cannot be parsed or painted.
    """
    try:
        png = cairosvg.svg2png(
            bytestring=document.encode("utf-8"),
            output_width=CARD_WIDTH,
            output_height=CARD_HEIGHT,
        )
        canvas = Image.open(io.BytesIO(png))
        canvas.load()
    except Exception as exc:
        raise RasterizationError(f"Failed to render SVG: {exc}") from exc
    return canvas.convert("RGBA")


def rasterize(document: str, fmt: RenderFormat) -> bytes:
    """Rasterize an SVG card document and encode it as *fmt*.

    Raises:
        UnsupportedFormatError: *fmt* is unknown or its codec is unavailable.
        RasterizationError: The document cannot be painted or encoded.
    """
    entry = _ENCODERS.get(fmt)
    if entry is None:
        raise UnsupportedFormatError(f"Unsupported image format: {fmt!r}")
    if not is_available(fmt):
        raise UnsupportedFormatError(f"{entry[0]} encoding is not available in this Pillow build")
    _, encode = entry

    start = time.perf_counter()
    canvas = paint(document)
    painted = time.perf_counter()

    buf = io.BytesIO()
    try:
        encode(canvas, buf)
    except (OSError, ValueError, KeyError) as exc:
        raise RasterizationError(f"Failed to write {entry[0]}: {exc}") from exc
    data = buf.getvalue()

    end = time.perf_counter()
    logger.debug(
        "%s card: rasterized in %.1fms, encoded in %.1fms (%d bytes)",
        entry[0], (painted - start) * 1000, (end - painted) * 1000, len(data),
    )
    if end - start > _SLOW_THRESHOLD:
        logger.warning("Slow %s encoding: %.1fms total", entry[0], (end - start) * 1000)
    return data
