"""Configuration models for the prompt preparation pipeline."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_STAGE_ORDER: tuple[str, ...] = (
    "unified-clean-correct",
    "language-detector",
    "intent-classifier",
    "common-response",
    "prompt-cache-lookup",
    "prompt-template",
    "knowledge-base-enrichment",
    "generation",
    "prompt-cache-record",
)


class NormalizerConfig(BaseModel):
    """Configures text cleanup and the output length ceiling."""

    char_limit: int = Field(default=8000, ge=1)
    min_char_limit: int = Field(default=2000, ge=1)
    max_char_limit: int = Field(default=8000, ge=1)


class IndexerConfig(BaseModel):
    """Configures language detection sampling and the lingua language set.

    `languages` holds lingua `Language` member names (e.g. "ENGLISH"). An empty
    list builds a detector over every language lingua ships.
    """

    max_sample_chars: int = Field(default=12_000, ge=1)
    max_detection_chars: int = Field(default=4_000, ge=1)
    max_index_source_chars: int = Field(default=6_000, ge=1)
    languages: list[str] = Field(default_factory=list)


class RetrievalConfig(BaseModel):
    """Configures knowledge-base ranking bounds."""

    default_k: int = Field(default=5, ge=1)
    max_k: int = Field(default=50, ge=1)
    enrichment_k: int = Field(default=3, ge=1)


class CacheConfig(BaseModel):
    """Configures the in-memory prompt cache. `None` means unbounded."""

    max_entries: int | None = Field(default=None, ge=1)


class PipelineConfig(BaseModel):
    """Configures stage order and pre-pipeline validation."""

    stages: list[str] = Field(default_factory=lambda: list(DEFAULT_STAGE_ORDER))
    max_input_chars: int = Field(default=8000, ge=1)
    assistant_name: str = Field(default="Assistant", min_length=1)
