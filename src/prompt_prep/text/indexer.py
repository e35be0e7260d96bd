"""Language detection and ASCII cross-lingual index text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from unidecode import unidecode

from prompt_prep.config import IndexerConfig
from prompt_prep.resource_loader import INDEX_TERMS_ENV, load_resource
from prompt_prep.text.fences import HAN_RUN, count_han, strip_fences
from prompt_prep.types import Language, LanguageCandidate, Script

logger = logging.getLogger(__name__)

_APOSTROPHES = re.compile(r"['`]")
_NON_INDEX = re.compile(r"[^A-Za-z0-9\s]")

_SCRIPT_BY_ISO: dict[str, Script] = {
    **dict.fromkeys(
        ("en", "de", "fr", "es", "pt", "it", "nl", "id", "sw", "vi", "tr", "ro", "pl"), Script.LATIN
    ),
    **dict.fromkeys(("ru", "uk", "bg", "sr", "mk", "be", "kk"), Script.CYRILLIC),
    **dict.fromkeys(("ar", "fa", "ur", "ps"), Script.ARABIC),
    **dict.fromkeys(("he", "yi"), Script.HEBREW),
    **dict.fromkeys(("hi", "mr", "ne"), Script.DEVANAGARI),
    "th": Script.THAI,
    "ko": Script.HANGUL,
    "ja": Script.MIXED,
    "zh": Script.HAN,
}


class SubstitutionRule(BaseModel):
    source: str = Field(min_length=1)
    target: str


class IndexTermsResource(BaseModel):
    """Literal name/term substitutions and the Han phrase dictionary."""

    substitutions: list[SubstitutionRule] = Field(default_factory=list)
    phrases: dict[str, str] = Field(default_factory=dict)


@dataclass(slots=True)
class IndexResult:
    language: Language
    candidates: list[LanguageCandidate] = field(default_factory=list)
    index_language: str = "en"
    index_text: str = ""


def build_detector(languages: list[str] | None = None) -> Any:
    """Build a lingua detector over `languages` (member names) or all languages."""

    from lingua import Language as LinguaLanguage
    from lingua import LanguageDetectorBuilder

    if languages:
        members = [getattr(LinguaLanguage, name.upper()) for name in languages]
        return LanguageDetectorBuilder.from_languages(*members).build()
    return LanguageDetectorBuilder.from_all_languages().build()


def load_index_terms(override: str | Path | None = None) -> IndexTermsResource:
    resource = load_resource(
        IndexTermsResource,
        env_var=INDEX_TERMS_ENV,
        default_name="index_terms.json",
        override=override,
    )
    return resource or IndexTermsResource()


class LanguageIndexer:
    """Detects the language of non-code text and builds ASCII index text.

    Detection and indexing only see prose: fenced code is removed up front.
    The indexer never raises; a detector failure or a `None` verdict yields the
    undetermined language while the index text is still produced.
    """

    def __init__(
        self,
        detector: Any | None = None,
        *,
        config: IndexerConfig | None = None,
        terms: IndexTermsResource | None = None,
    ) -> None:
        self.config = config or IndexerConfig()
        self._detector = detector
        self._terms = terms if terms is not None else load_index_terms()
        self._max_phrase = max((len(key) for key in self._terms.phrases), default=1)

    @property
    def detector(self) -> Any:
        if self._detector is None:
            self._detector = build_detector(self.config.languages)
        return self._detector

    def index(self, source: str | None) -> IndexResult:
        sample = strip_fences(source).strip()[: self.config.max_sample_chars]
        if not sample:
            return IndexResult(language=Language.undetermined())

        index_text = self.build_index_text(sample[: self.config.max_index_source_chars])
        detection_sample = sample[: self.config.max_detection_chars]
        try:
            best = self.detector.detect_language_of(detection_sample)
            confidences = (
                self.detector.compute_language_confidence_values(detection_sample)
                if best is not None
                else []
            )
        except Exception as exc:  # noqa: BLE001 - detection failure degrades to "und"
            logger.warning("Language detection failed: %s", exc)
            best, confidences = None, []

        if best is None:
            return IndexResult(language=Language.undetermined(), index_text=index_text)

        iso = _iso_code(best)
        confidence = next((c.value for c in confidences if c.language == best), 0.0)
        language = Language(
            iso_code=iso,
            display_name=best.name.title(),
            confidence=float(confidence),
            script=_script_for(iso, sample),
        )
        candidates = [
            LanguageCandidate(iso_code=_iso_code(c.language), confidence=float(c.value))
            for c in confidences[:3]
        ]
        return IndexResult(language=language, candidates=candidates, index_text=index_text)

    def build_index_text(self, text: str) -> str:
        """Substitute known terms, translate/transliterate, reduce to `[a-z0-9 ]`."""

        if not text:
            return ""
        for rule in self._terms.substitutions:
            text = text.replace(rule.source, f" {rule.target} ")
        if self._terms.phrases:
            text = HAN_RUN.sub(lambda m: self._translate_han(m.group(0)), text)
        text = unidecode(text)
        text = _APOSTROPHES.sub("", text)
        text = _NON_INDEX.sub(" ", text)
        return " ".join(text.lower().split())

    def _translate_han(self, run: str) -> str:
        """Greedy longest-match phrase lookup; unknown characters pass through."""

        pieces: list[str] = []
        i = 0
        while i < len(run):
            for size in range(min(self._max_phrase, len(run) - i), 0, -1):
                english = self._terms.phrases.get(run[i : i + size])
                if english is not None:
                    pieces.append(f" {english} ")
                    i += size
                    break
            else:
                pieces.append(run[i])
                i += 1
        return "".join(pieces)


def _iso_code(language: Any) -> str:
    iso_1 = getattr(language, "iso_code_639_1", None)
    if iso_1 is not None:
        return iso_1.name.lower()
    return language.iso_code_639_3.name.lower()


def _script_for(iso: str, sample: str) -> Script:
    if count_han(sample, stop_after=3) > 2:
        return Script.HAN
    return _SCRIPT_BY_ISO.get(iso.lower(), Script.UNKNOWN)
