"""Prompt preparation pipeline package."""

from .config import (
    CacheConfig,
    IndexerConfig,
    NormalizerConfig,
    PipelineConfig,
    RetrievalConfig,
)

__all__ = [
    "CacheConfig",
    "IndexerConfig",
    "NormalizerConfig",
    "PipelineConfig",
    "RetrievalConfig",
]
