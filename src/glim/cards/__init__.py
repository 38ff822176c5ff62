"""glim card generation -- SVG templating and raster encoding."""

from glim.cards.raster import rasterize
from glim.cards.template import CARD_HEIGHT, CARD_WIDTH, CardTemplate, format_count, render_card_svg

__all__ = [
    "CARD_HEIGHT",
    "CARD_WIDTH",
    "CardTemplate",
    "format_count",
    "rasterize",
    "render_card_svg",
]
