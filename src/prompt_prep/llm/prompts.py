"""Prompt templates, prompt assembly and knowledge-context rendering."""

from __future__ import annotations

import logging
from pathlib import Path

from langchain_core.prompts import PromptTemplate
from pydantic import BaseModel, Field

from prompt_prep.resource_loader import TEMPLATES_ENV, load_resource
from prompt_prep.types import KbMatch, ProcessingContext

logger = logging.getLogger(__name__)

CONTEXT_PLACEHOLDER = "{{CONTEXT}}"
SEGMENT_SEPARATOR = "\n---\n"

DEFAULT_SYSTEM_TEMPLATE = (
    "You are {assistant_name}, an AI assistant focused on helping users quickly. "
    "Keep answers concise.\n\n{context}"
)
DEFAULT_USER_TEMPLATE = "User({user_label}): {input}"

_GUIDELINES = """Guidelines:
- Prefer the context; if unsure, answer "I don't know".
- Reply in language: {language}.
- Keep the answer concise and directly address the question."""


class PromptTemplateSpec(BaseModel):
    """A system/user template pair selected by intent and language."""

    id: str
    intent: str = "default"
    language: str = "default"
    system: str = DEFAULT_SYSTEM_TEMPLATE
    user: str = DEFAULT_USER_TEMPLATE
    few_shot: list[str] = Field(default_factory=list)


class TemplateBundle(BaseModel):
    templates: list[PromptTemplateSpec] = Field(default_factory=list)


class TemplateCatalog:
    """Looks templates up by (intent, language) with `default`/`*` fallbacks."""

    def __init__(self, templates: list[PromptTemplateSpec] | None = None) -> None:
        self._by_key: dict[tuple[str, str], PromptTemplateSpec] = {}
        for template in templates or []:
            intent = template.intent.strip().lower() or "default"
            language = template.language.strip().lower() or "default"
            self._by_key[(intent, language)] = template

    @classmethod
    def load(cls, override: str | Path | None = None) -> "TemplateCatalog":
        bundle = load_resource(
            TemplateBundle,
            env_var=TEMPLATES_ENV,
            default_name="prompt_templates.json",
            override=override,
        )
        templates = bundle.templates if bundle is not None else []
        logger.info("Loaded %d prompt templates", len(templates))
        return cls(templates)

    def __len__(self) -> int:
        return len(self._by_key)

    def find(self, intent: str | None, language: str | None) -> PromptTemplateSpec | None:
        intent_keys: list[str] = []
        if intent and intent.strip():
            lowered = intent.strip().lower()
            intent_keys += [lowered, lowered.replace("-", "_")]
        intent_keys += ["default", "*"]

        language_keys: list[str] = []
        if language and language.strip():
            lowered = language.strip().lower()
            language_keys.append(lowered)
            if "-" in lowered:
                language_keys.append(lowered.split("-", 1)[0])
        language_keys += ["default", "*"]

        for intent_key in intent_keys:
            for language_key in language_keys:
                template = self._by_key.get((intent_key, language_key))
                if template is not None:
                    return template
        return None


def user_label(ctx: ProcessingContext) -> str:
    return ctx.user_id if ctx.user_id and ctx.user_id.strip() else "anonymous"


def render_user_prompt(ctx: ProcessingContext, template: str = DEFAULT_USER_TEMPLATE) -> str:
    """`User(<id|anonymous>): <text>` unless a template says otherwise."""
    return render(template, ctx, assistant_name="")


def render(template: str, ctx: ProcessingContext, *, assistant_name: str) -> str:
    """Fill an f-string template with the request's variables.

    `{context}` renders to the literal `{{CONTEXT}}` placeholder so the
    enrichment stage can substitute knowledge context later.
    """

    return PromptTemplate.from_template(template).format(
        assistant_name=assistant_name,
        context=CONTEXT_PLACEHOLDER,
        input=ctx.source_text(),
        user_label=user_label(ctx),
        language=language_code(ctx),
        intent=ctx.intent,
        keywords=", ".join(ctx.keywords),
    )


def ensure_context_placeholder(system_prompt: str | None) -> tuple[str, bool]:
    """Return the prompt with `{{CONTEXT}}` present, and whether it was added."""

    prompt = system_prompt or ""
    if CONTEXT_PLACEHOLDER in prompt:
        return prompt, False
    if not prompt.strip():
        return CONTEXT_PLACEHOLDER, True
    return f"{prompt.rstrip()}\n\n{CONTEXT_PLACEHOLDER}", True


def assemble_final_prompt(*segments: str | None) -> str:
    """Join the non-blank, stripped segments with the `---` separator."""
    return SEGMENT_SEPARATOR.join(s.strip() for s in segments if s and s.strip())


def language_code(ctx: ProcessingContext) -> str:
    iso = ctx.language.iso_code
    if iso and iso != "und":
        return iso.lower()
    return (ctx.index_language or "en").lower()


def render_context(matches: list[KbMatch]) -> str:
    """Numbered knowledge snippets, best match first."""

    if not matches:
        return "[Context]\n(no matching knowledge base entries)"
    lines = ["[Context]"]
    for idx, match in enumerate(matches, start=1):
        lines.append(
            f"[{idx}] ({match.doc_type} #{match.document_id}, score={match.similarity:.3f}) "
            f"{' '.join(match.content.split())}"
        )
    return "\n".join(lines)


def render_guidelines(ctx: ProcessingContext) -> str:
    lines = [f"Intent: {ctx.intent}"]
    if ctx.keywords:
        lines.append(f"Keywords: {', '.join(ctx.keywords)}")
    lines.append(_GUIDELINES.format(language=language_code(ctx)))
    return "\n".join(lines)


def fill_context(system_prompt: str, ctx: ProcessingContext) -> str:
    block = f"{render_context(ctx.kb_matches)}\n\n{render_guidelines(ctx)}"
    prompt, _ = ensure_context_placeholder(system_prompt)
    return prompt.replace(CONTEXT_PLACEHOLDER, block)


def strip_context_placeholder(system_prompt: str | None) -> str:
    return (system_prompt or "").replace(CONTEXT_PLACEHOLDER, "").strip()
