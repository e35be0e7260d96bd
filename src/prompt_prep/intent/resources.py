"""Intent rule and keyword lexicon resources."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, RootModel

from prompt_prep.resource_loader import INTENT_RULES_ENV, LEXICON_ENV, load_resource
from prompt_prep.types import IntentRule, LexiconEntry

logger = logging.getLogger(__name__)


class IntentRuleModel(BaseModel):
    """One rule as written in `intent_rules.json`."""

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    intent: str = Field(min_length=1)
    min_score: int = Field(default=1, alias="minScore")
    any_of: list[str] = Field(default_factory=list, alias="any")
    all_of: list[str] = Field(default_factory=list, alias="all")
    none_of: list[str] = Field(default_factory=list, alias="none")
    tags_boost: list[str] = Field(default_factory=list, alias="tagsBoost")

    def to_rule(self, position: int) -> IntentRule:
        intent = self.intent.strip().upper()
        return IntentRule(
            name=self.name or f"{intent.lower()}-{position}",
            intent=intent,
            min_score=self.min_score,
            any_of=_lowered(self.any_of),
            all_of=_lowered(self.all_of),
            none_of=_lowered(self.none_of),
            tags_boost=_lowered(self.tags_boost),
        )


class IntentRulesFile(BaseModel):
    version: int = 1
    rules: list[IntentRuleModel] = Field(default_factory=list)


class LexiconTermModel(BaseModel):
    domain: list[str] = Field(default_factory=list)
    contextual: list[str] = Field(default_factory=list)
    active: bool = True


class LexiconFile(RootModel[dict[str, LexiconTermModel]]):
    """Canonical term -> synonym lists."""


def load_rules(override: str | Path | None = None) -> list[IntentRule]:
    """Load rules in file order; empty when the resource is unavailable."""

    resource = load_resource(
        IntentRulesFile,
        env_var=INTENT_RULES_ENV,
        default_name="intent_rules.json",
        override=override,
    )
    if resource is None:
        return []
    rules = [model.to_rule(i) for i, model in enumerate(resource.rules, start=1)]
    logger.info("Loaded %d intent rules", len(rules))
    return rules


def load_lexicon(override: str | Path | None = None) -> list[LexiconEntry]:
    resource = load_resource(
        LexiconFile,
        env_var=LEXICON_ENV,
        default_name="keywords_lexicon.json",
        override=override,
    )
    if resource is None:
        return []

    entries: list[LexiconEntry] = []
    for canonical, term in resource.root.items():
        name = canonical.strip().lower()
        if not name:
            continue
        synonyms = frozenset(_lowered([name, *term.domain, *term.contextual]))
        entries.append(LexiconEntry(canonical=name, synonyms=synonyms, active=term.active))
    logger.info("Loaded %d lexicon entries", len(entries))
    return entries


def _lowered(values: list[str]) -> tuple[str, ...]:
    return tuple(v.strip().lower() for v in values if v and v.strip())
