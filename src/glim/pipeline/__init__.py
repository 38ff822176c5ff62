"""glim card pipeline -- caching, coalescing and orchestration."""

from glim.pipeline.cache import CacheEntry, CardCache
from glim.pipeline.generator import CardPipeline, MetadataFetcher, build_card

__all__ = [
    "CacheEntry",
    "CardCache",
    "CardPipeline",
    "MetadataFetcher",
    "build_card",
]
