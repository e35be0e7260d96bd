"""Rule-based intent classification over cross-lingual index text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from prompt_prep.intent.resources import load_lexicon, load_rules
from prompt_prep.intent.tokenizer import is_good_keyword, tokenize
from prompt_prep.types import (
    INTENT_GREETING,
    INTENT_UNKNOWN,
    IntentRule,
    LexiconEntry,
    ProcessingContext,
)

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 5

GREETING_PHRASES: frozenset[str] = frozenset(
    {
        "hi",
        "hi there",
        "hello",
        "hello there",
        "hey",
        "hey there",
        "greetings",
        "howdy",
        "hola",
        "good morning",
        "good afternoon",
        "good evening",
        "good day",
        "morning",
        "evening",
        "ni hao",
        "nin hao",
        "你好",
        "您好",
    }
)

_GREETING_NOISE = re.compile(r"[^a-z\s你您好]")


@dataclass(slots=True)
class Classification:
    intent: str
    rule: str | None = None
    score: int | None = None
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)


class IntentClassifier:
    """Scores configured rules against the request's token set.

    Rules and the lexicon are read once, at construction. Either may be empty,
    in which case everything but a plain greeting classifies as UNKNOWN.
    """

    def __init__(
        self,
        rules: list[IntentRule] | None = None,
        lexicon: list[LexiconEntry] | None = None,
    ) -> None:
        self.rules = list(rules) if rules is not None else load_rules()
        entries = lexicon if lexicon is not None else load_lexicon()
        self.lexicon = {entry.canonical: entry for entry in entries if entry.active}

    def classify(self, text: str | None, tags: list[str] | None = None) -> Classification:
        tags = [t for t in (tags or []) if not t.startswith("intent:")]
        if not text or not text.strip():
            return Classification(intent=INTENT_UNKNOWN, tags=tags)

        tokens = tokenize(text)
        token_set = set(tokens)
        canonicals = self._canonicals_hit(token_set)
        for canonical in canonicals:
            if canonical not in tags:
                tags.append(canonical)
        keywords = _derive_keywords(canonicals)

        if is_greeting(text):
            return Classification(
                intent=INTENT_GREETING, rule="builtin:greeting", tags=tags, keywords=keywords
            )

        best_intent, best_rule, best_score = INTENT_UNKNOWN, None, None
        for rule in self.rules:
            score = self._score(rule, token_set, tags)
            if score >= rule.min_score and (best_score is None or score > best_score):
                best_intent, best_rule, best_score = rule.intent, rule.name, score
        return Classification(
            intent=best_intent, rule=best_rule, score=best_score, tags=tags, keywords=keywords
        )

    def apply(self, ctx: ProcessingContext) -> ProcessingContext:
        """Classify the context's index text (or normalized text) in place."""

        text = ctx.index_text if ctx.index_text and ctx.index_text.strip() else ctx.normalized
        result = self.classify(text, ctx.tags)
        logger.debug("Classified intent=%s rule=%s score=%s", result.intent, result.rule, result.score)
        ctx.intent = result.intent
        ctx.keywords = result.keywords
        ctx.tags = result.tags
        ctx.add_tag(f"intent:{result.intent.lower()}")

        note = f"intent={result.intent}"
        if result.rule:
            note += f", rule={result.rule}"
        if not text or not text.strip():
            note = "empty text; keep UNKNOWN"
        ctx.add_step("intent-classifier", f"{note}, tags={ctx.tags}, keywords={ctx.keywords}")
        return ctx

    def hit(self, keyword: str, token_set: set[str]) -> bool:
        if keyword in token_set:
            return True
        entry = self.lexicon.get(keyword)
        return entry is not None and not entry.synonyms.isdisjoint(token_set)

    def _canonicals_hit(self, token_set: set[str]) -> list[str]:
        return [
            canonical
            for canonical, entry in self.lexicon.items()
            if not entry.synonyms.isdisjoint(token_set)
        ]

    def _score(self, rule: IntentRule, token_set: set[str], tags: list[str]) -> int:
        score = sum(1 for kw in rule.any_of if self.hit(kw, token_set))
        if rule.all_of and all(self.hit(kw, token_set) for kw in rule.all_of):
            score += 2
        score -= 2 * sum(1 for kw in rule.none_of if self.hit(kw, token_set))
        score += sum(1 for tag in rule.tags_boost if tag in tags)
        return score


def is_greeting(text: str | None) -> bool:
    """Exact match of the letters-only text against the greeting phrases."""

    if not text or not text.strip():
        return False
    cleaned = _GREETING_NOISE.sub("", text.strip().lower())
    return " ".join(cleaned.split()) in GREETING_PHRASES


def _derive_keywords(canonicals: list[str]) -> list[str]:
    good = {c for c in canonicals if is_good_keyword(c)}
    return sorted(good, key=lambda c: (-len(c), c))[:MAX_KEYWORDS]
