"""SVG card template rendering.

Substitutes :class:`RepositoryMetadata` into an SVG template with
``{{field}}`` placeholders.  Rendering is a pure function of the metadata:
the same input always yields the same document, and the canvas size never
depends on the metadata (absent fields render as empty slots).
"""

from __future__ import annotations

import re
import textwrap
import xml.etree.ElementTree as ET
from pathlib import Path

from glim.cards.colors import DEFAULT_COLOR, get_color
from glim.core.errors import TemplateError
from glim.core.types import RepositoryMetadata

# Card dimensions
CARD_WIDTH = 600
CARD_HEIGHT = 300

# Bundled template (shipped as package data)
_TEMPLATE_PATH = Path(__file__).parent / "card.svg"

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")

_FIELDS = frozenset(
    {
        "owner",
        "name",
        "description",
        "language",
        "language_color",
        "language_opacity",
        "stars",
        "forks",
        "updated",
    }
)

# Description layout
_WRAP_WIDTH = 65
_MAX_LINES = 3
_LINE_HEIGHT = "1.5em"

# Display limits so long names never overflow the canvas
_MAX_OWNER_CHARS = 48
_MAX_NAME_CHARS = 32
_MAX_LANGUAGE_CHARS = 20

_SUFFIXES = ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "k"))

# Anything outside the XML 1.0 Char production (control codes, lone surrogates)
_INVALID_XML_RE = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def escape_xml(text: str) -> str:
    """Escape the XML reserved characters in *text*.

    Characters XML cannot represent at all (e.g. the ESC of an ANSI color
    code in a repository description) are dropped.
    """
    return (
        _INVALID_XML_RE.sub("", text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def format_count(count: int) -> str:
    """Abbreviate a count, truncating (never rounding) to one decimal.

    999 -> "999", 1000 -> "1.0k", 1549 -> "1.5k", 12345 -> "12.3k".
    """
    for threshold, suffix in _SUFFIXES:
        if count >= threshold:
            tenths = count // (threshold // 10)
            return f"{tenths // 10}.{tenths % 10}{suffix}"
    return str(count)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def wrap_text(text: str, width: int = _WRAP_WIDTH, max_lines: int = _MAX_LINES) -> list[str]:
    """Word-wrap *text* into at most *max_lines* lines of *width* columns.

    Overflow is dropped and the last kept line ends with an ellipsis.
    """
    lines = textwrap.wrap(text, width=width)
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = lines[-1][: width - 1].rstrip() + "…"
    return lines


def _description_tspans(description: str | None) -> str:
    """Render the description as ``<tspan>`` rows sharing the text's x."""
    if not description:
        return ""
    rows = []
    for i, line in enumerate(wrap_text(description)):
        dy = "0" if i == 0 else _LINE_HEIGHT
        rows.append(f'<tspan x="32" dy="{dy}">{escape_xml(line)}</tspan>')
    return "".join(rows)


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------


class CardTemplate:
    """A validated SVG card template.

    Raises :class:`TemplateError` at construction if *source* is not
    well-formed XML or its placeholders differ from the known field set.
    """

    def __init__(self, source: str) -> None:
        found = set(_PLACEHOLDER_RE.findall(source))
        missing = _FIELDS - found
        unknown = found - _FIELDS
        if missing:
            raise TemplateError(f"Template is missing placeholders: {', '.join(sorted(missing))}")
        if unknown:
            raise TemplateError(f"Template has unknown placeholders: {', '.join(sorted(unknown))}")
        try:
            ET.fromstring(_PLACEHOLDER_RE.sub("0", source))
        except ET.ParseError as exc:
            raise TemplateError(f"Template is not well-formed SVG: {exc}") from exc
        self._source = source

    @classmethod
    def load(cls, path: Path | str) -> CardTemplate:
        try:
            source = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(f"Cannot read template {path}: {exc}") from exc
        return cls(source)

    def render(self, metadata: RepositoryMetadata) -> str:
        """Return the SVG document for *metadata*."""
        language = metadata.language or ""
        values = {
            "owner": escape_xml(_truncate(metadata.identifier.owner, _MAX_OWNER_CHARS)),
            "name": escape_xml(_truncate(metadata.identifier.name, _MAX_NAME_CHARS)),
            "description": _description_tspans(metadata.description),
            "language": escape_xml(_truncate(language, _MAX_LANGUAGE_CHARS)),
            "language_color": get_color(language) or DEFAULT_COLOR,
            "language_opacity": "1" if language else "0",
            "stars": format_count(metadata.stars),
            "forks": format_count(metadata.forks),
            "updated": f"Updated {metadata.updated_at.strftime('%Y-%m-%d')}",
        }
        return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], self._source)


_default_template: CardTemplate | None = None


def default_template() -> CardTemplate:
    """Return the bundled template, loading it on first use."""
    global _default_template
    if _default_template is None:
        _default_template = CardTemplate.load(_TEMPLATE_PATH)
    return _default_template


def render_card_svg(metadata: RepositoryMetadata) -> str:
    """Render *metadata* into the bundled card template."""
    return default_template().render(metadata)
