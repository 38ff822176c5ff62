"""glim -- GitHub repository cards.

Top-level convenience re-exports::

    from glim import CardPipeline, RenderFormat, parse_identifier
    from glim.core import RateLimitedError  # error hierarchy
"""

__version__ = "0.1.0"

from glim.core import RenderFormat, RepositoryIdentifier, RepositoryMetadata, parse_identifier
from glim.pipeline import CardCache, CardPipeline

__all__ = [
    "__version__",
    "CardCache",
    "CardPipeline",
    "RenderFormat",
    "RepositoryIdentifier",
    "RepositoryMetadata",
    "parse_identifier",
]
