"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

INTENT_UNKNOWN = "UNKNOWN"
INTENT_GREETING = "GREETING"

OUTLINE_BUCKETS: tuple[str, ...] = ("TASKS", "CONSTRAINTS", "CONTEXT", "OUTPUT")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def empty_outline() -> dict[str, list[str]]:
    return {bucket: [] for bucket in OUTLINE_BUCKETS}


class Script(str, Enum):
    """Writing system label attached to a detected language."""

    LATIN = "Latin"
    CYRILLIC = "Cyrillic"
    ARABIC = "Arabic"
    HEBREW = "Hebrew"
    DEVANAGARI = "Devanagari"
    THAI = "Thai"
    HANGUL = "Hangul"
    HAN = "Han"
    MIXED = "Mixed"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class Language:
    """Detected language of the non-code part of a request."""

    iso_code: str
    display_name: str
    confidence: float
    script: Script = Script.UNKNOWN

    @classmethod
    def undetermined(cls) -> "Language":
        return cls(iso_code="und", display_name="Undetermined", confidence=0.0)

    def matches(self, code: str | None) -> bool:
        return code is not None and code.lower() == self.iso_code.lower()


@dataclass(slots=True, frozen=True)
class LanguageCandidate:
    iso_code: str
    confidence: float


@dataclass(slots=True)
class StepLog:
    """One audit trace entry appended by a pipeline stage."""

    name: str
    note: str
    at: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class LexiconEntry:
    """Canonical term with its case-folded synonym set."""

    canonical: str
    synonyms: frozenset[str]
    active: bool = True


@dataclass(slots=True, frozen=True)
class IntentRule:
    """Scored keyword rule mapping token features to an intent."""

    name: str
    intent: str
    min_score: int = 1
    any_of: tuple[str, ...] = ()
    all_of: tuple[str, ...] = ()
    none_of: tuple[str, ...] = ()
    tags_boost: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """Snapshot of a cached prompt/answer; `frequency` only grows."""

    key: str
    system_prompt: str | None
    user_prompt: str | None
    final_prompt: str | None
    answer: str | None
    frequency: int
    first_seen: datetime
    last_seen: datetime


@dataclass(slots=True)
class KbCandidate:
    """A knowledge document carrying its precomputed embedding."""

    id: int
    doc_type: str
    content: str
    metadata: dict[str, Any]
    embedding: list[float] | None = None


@dataclass(slots=True, frozen=True)
class KbMatch:
    """A ranked knowledge document; produced once and never mutated."""

    document_id: int
    doc_type: str
    content: str
    metadata: dict[str, Any]
    similarity: float
    embedding_dimension: int


@dataclass(slots=True)
class ProcessingContext:
    """Per-request record threaded through the pipeline stages.

    The driver hands the context to exactly one stage at a time and receives it
    back before invoking the next stage.
    """

    raw_input: str
    user_id: str | None = None
    session_id: str | None = None
    char_limit: int = 8000

    normalized: str | None = None
    outline: dict[str, list[str]] = field(default_factory=empty_outline)
    change_ratio: float = 0.0

    language: Language = field(default_factory=Language.undetermined)
    language_candidates: list[LanguageCandidate] = field(default_factory=list)
    index_language: str = "en"
    index_text: str | None = None

    intent: str = INTENT_UNKNOWN
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    template_id: str | None = None
    system_prompt: str | None = None
    user_prompt: str | None = None
    final_prompt: str | None = None
    common_response: bool = False

    cache_key: str | None = None
    cache_hit: bool = False
    cache_frequency: int = 0

    kb_matches: list[KbMatch] = field(default_factory=list)
    answer: str | None = None

    validation_notices: list[str] = field(default_factory=list)
    failed_stages: list[str] = field(default_factory=list)
    steps: list[StepLog] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    def add_step(self, name: str, note: str) -> "ProcessingContext":
        self.steps.append(StepLog(name=name, note=note))
        return self

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def source_text(self) -> str:
        """Normalized text when present, otherwise the raw input."""
        if self.normalized and self.normalized.strip():
            return self.normalized
        return self.raw_input or ""
