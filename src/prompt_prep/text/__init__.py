"""Text normalization and cross-lingual indexing."""

from .indexer import IndexResult, LanguageIndexer
from .normalizer import NormalizationResult, Normalizer

__all__ = ["IndexResult", "LanguageIndexer", "NormalizationResult", "Normalizer"]
