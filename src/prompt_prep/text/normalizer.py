"""Code-fence aware text cleanup, light correction and outline extraction."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field

from prompt_prep.config import NormalizerConfig
from prompt_prep.text.fences import HAN_RANGES, Segment, fence_safe_cut, has_fence, split_fences
from prompt_prep.types import empty_outline

TRUNCATION_MARKER = "\n[Content condensed to enforce length limit]"

_INVISIBLE = re.compile("[\ufeff\u200b\u200c\u200d\u200e\u200f\u2060]")
_CONTROL = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")
_DOUBLE_QUOTES = re.compile("[\u201c\u201d\u201e\u00ab\u00bb]")
_SINGLE_QUOTES = re.compile("[\u2018\u2019\u201a]")
_DASHES = re.compile("[\u2014\u2013]")
_REPEATED_PUNCT = (
    (re.compile(r"\?{2,}"), "?"),
    (re.compile(r"!{2,}"), "!"),
    (re.compile("。{2,}"), "。"),
    (re.compile(r"\.{3,}"), "."),
    (re.compile("，{2,}"), "，"),
    (re.compile(r",{2,}"), ","),
)
_INLINE_SPACES = re.compile(r"[ \t]{2,}")

_SENTENCE_START_I = re.compile(r"(^|[.!?]\s+)i\b", re.MULTILINE)
_COMMON_TYPOS = {
    "teh": "the",
    "adn": "and",
    "recieve": "receive",
    "wiht": "with",
    "taht": "that",
    "becuase": "because",
    "seperate": "separate",
    "definately": "definitely",
    "occured": "occurred",
    "untill": "until",
}
_TYPO_PATTERN = re.compile(r"\b(" + "|".join(_COMMON_TYPOS) + r")\b", re.IGNORECASE)
_HAN_GAP = re.compile(f"(?<=[{HAN_RANGES}])[ \t]+(?=[{HAN_RANGES}])")
_HAN_LATIN_GAP = re.compile(
    f"(?<=[{HAN_RANGES}])[ \t]+(?=[A-Za-z0-9])|(?<=[A-Za-z0-9])[ \t]+(?=[{HAN_RANGES}])"
)
_CJK_PUNCT_REPEAT = re.compile("([！？。；，、：])\\1+")

_SENTENCE_SPLIT = re.compile("[\n；;。.!?！？]+\\s*")
_TASK_PREFIX = re.compile(
    r"^(please|help|write|implement|create|generate|compare|analy[sz]e|explain|summari[sz]e|list|give)\b"
)
_TASK_PREFIX_CJK = ("请", "实现", "编写", "生成", "比较", "分析", "给我", "需要", "帮我")
_CONSTRAINT_MARKERS = re.compile(
    r"\b(must|should|do not|don't|never|only)\b|不要|必须|仅|禁止|不可|不能|不允许"
)
_OUTPUT_MARKERS = re.compile(r"\b(output|format|schema|json|table)\b|格式|返回|字段|结构化|以.*格式")

_REPEATED_WORD = re.compile(r"\b(\w{2,})(?:\s+\1\b)+")
_MERGE_BLOCKER = re.compile(r"[^\w\s'-]")


@dataclass(slots=True)
class NormalizationResult:
    text: str
    outline: dict[str, list[str]] = field(default_factory=empty_outline)
    change_ratio: float = 0.0


class Normalizer:
    """Cleans raw user text while leaving fenced code byte-identical.

    Processing order:
    1. Split on triple-backtick fences; code segments are never touched.
    2. Prose segments get Unicode/punctuation normalization and light rule-based
       fixes, then each sentence is filed into one outline bucket.
    3. The rejoined text is de-duplicated line by line, blank-line runs are
       collapsed, and very short plain text is merged into one sentence.
    4. The result is clamped to the configured character ceiling.
    """

    def __init__(self, config: NormalizerConfig | None = None) -> None:
        self.config = config or NormalizerConfig()

    def normalize(self, raw: str | None, char_limit: int | None = None) -> NormalizationResult:
        raw = raw or ""
        if not raw:
            return NormalizationResult(text="")

        outline = empty_outline()
        segments: list[Segment] = []
        for segment in split_fences(raw):
            if segment.is_code:
                segments.append(segment)
                continue
            prose = _apply_light_rules(_normalize_prose(segment.text))
            _classify_outline(prose, outline)
            segments.append(Segment(prose, False))

        text = _condense(segments)
        text = _merge_short_plain_text(text)
        text = self._enforce_limit(text, char_limit)

        change_ratio = abs(len(text) - len(raw)) / len(raw)
        return NormalizationResult(text=text, outline=outline, change_ratio=change_ratio)

    def clamp_limit(self, char_limit: int | None) -> int:
        requested = char_limit if char_limit is not None else self.config.char_limit
        return max(self.config.min_char_limit, min(requested, self.config.max_char_limit))

    def _enforce_limit(self, text: str, char_limit: int | None) -> str:
        limit = self.clamp_limit(char_limit)
        if len(text) <= limit:
            return text
        if limit <= len(TRUNCATION_MARKER):
            return text[: fence_safe_cut(text, limit)]
        cut = fence_safe_cut(text, limit - len(TRUNCATION_MARKER))
        return text[:cut] + TRUNCATION_MARKER


def _normalize_prose(text: str) -> str:
    if not text:
        return ""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _INVISIBLE.sub("", text)
    text = _CONTROL.sub("", text)
    text = _DOUBLE_QUOTES.sub('"', text)
    text = _SINGLE_QUOTES.sub("'", text)
    text = _DASHES.sub("-", text)
    for pattern, replacement in _REPEATED_PUNCT:
        text = pattern.sub(replacement, text)
    return _INLINE_SPACES.sub(" ", text)


def _apply_light_rules(text: str) -> str:
    text = _SENTENCE_START_I.sub(lambda m: m.group(1) + "I", text)
    text = _TYPO_PATTERN.sub(_fix_typo, text)
    text = _HAN_GAP.sub("", text)
    text = _HAN_LATIN_GAP.sub("", text)
    return _CJK_PUNCT_REPEAT.sub(r"\1", text)


def _fix_typo(match: re.Match[str]) -> str:
    word = match.group(0)
    fixed = _COMMON_TYPOS[word.lower()]
    if word[0].isupper():
        return fixed[0].upper() + fixed[1:]
    return fixed


def _classify_outline(text: str, outline: dict[str, list[str]]) -> None:
    for part in _SENTENCE_SPLIT.split(text.strip()):
        sentence = part.strip()
        if not sentence:
            continue
        lower = sentence.lower()
        if _TASK_PREFIX.match(lower) or lower.startswith(_TASK_PREFIX_CJK):
            outline["TASKS"].append(sentence)
        elif _CONSTRAINT_MARKERS.search(lower):
            outline["CONSTRAINTS"].append(sentence)
        elif _OUTPUT_MARKERS.search(lower):
            outline["OUTPUT"].append(sentence)
        else:
            outline["CONTEXT"].append(sentence)


def _condense(segments: list[Segment]) -> str:
    """De-duplicate prose lines across segments.

    Code segments are swapped for NUL-delimited placeholders first; NUL never
    survives prose normalization, so placeholders cannot collide with prose.
    """

    placeholders: dict[str, str] = {}
    parts: list[str] = []
    for segment in segments:
        if segment.is_code:
            token = f"\x00{len(placeholders)}\x00"
            placeholders[token] = segment.text
            parts.append(token)
        else:
            parts.append(segment.text)

    seen: set[str] = set()
    lines: list[str] = []
    blanks = 0
    for line in "".join(parts).split("\n"):
        stripped = line.strip()
        if not stripped:
            blanks += 1
            if blanks == 1:
                lines.append("")
            continue
        blanks = 0
        key = stripped.lower()
        if key in seen:
            continue
        seen.add(key)
        lines.append(_REPEATED_WORD.sub(r"\1", stripped))

    text = "\n".join(lines).strip()
    for token, code in placeholders.items():
        text = text.replace(token, code)
    return text


def _merge_short_plain_text(text: str) -> str:
    if not text or has_fence(text):
        return text
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    if not lines or len(lines) > 4:
        return text
    if any(_MERGE_BLOCKER.search(line) for line in lines):
        return text
    merged = re.sub(r"\s{2,}", " ", " ".join(lines)).strip()
    merged = _REPEATED_WORD.sub(r"\1", merged)
    if not merged:
        return text
    if merged[0].isalpha():
        merged = merged[0].upper() + merged[1:]
    return merged
