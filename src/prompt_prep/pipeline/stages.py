"""Pipeline stages, one per processing step."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Protocol

from prompt_prep.cache import PromptCache, build_cache_key
from prompt_prep.intent import CannedResponder, IntentClassifier
from prompt_prep.llm.generator import Generator
from prompt_prep.llm.prompts import (
    CONTEXT_PLACEHOLDER,
    DEFAULT_SYSTEM_TEMPLATE,
    DEFAULT_USER_TEMPLATE,
    TemplateCatalog,
    assemble_final_prompt,
    ensure_context_placeholder,
    fill_context,
    language_code,
    render,
    strip_context_placeholder,
)
from prompt_prep.retrieval import KnowledgeRetriever
from prompt_prep.text import LanguageIndexer, Normalizer
from prompt_prep.types import ProcessingContext

logger = logging.getLogger(__name__)


class Stage(Protocol):
    """One pipeline step.

    A stage receives the context, mutates it and hands it back. Stages with
    `bypass_on_cache_hit` set are not run when the cache already holds an
    answer for the request.
    """

    name: str
    bypass_on_cache_hit: bool

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        ...


class NormalizeStage:
    name = "unified-clean-correct"
    bypass_on_cache_hit = False

    def __init__(self, normalizer: Normalizer) -> None:
        self.normalizer = normalizer

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        result = self.normalizer.normalize(ctx.raw_input, ctx.char_limit)
        ctx.normalized = result.text
        ctx.outline = result.outline
        ctx.change_ratio = result.change_ratio
        filled = {bucket: len(items) for bucket, items in result.outline.items() if items}
        return ctx.add_step(
            self.name, f"chars={len(result.text)}, ratio={result.change_ratio:.3f}, outline={filled}"
        )


class LanguageStage:
    name = "language-detector"
    bypass_on_cache_hit = False

    def __init__(self, indexer: LanguageIndexer) -> None:
        self.indexer = indexer

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        result = self.indexer.index(ctx.source_text())
        ctx.language = result.language
        ctx.language_candidates = result.candidates
        ctx.index_language = result.index_language
        ctx.index_text = result.index_text
        language = result.language
        return ctx.add_step(
            self.name,
            f"lang={language.iso_code}, confidence={language.confidence:.2f}, "
            f"script={language.script.value}",
        )


class IntentStage:
    name = "intent-classifier"
    bypass_on_cache_hit = False

    def __init__(self, classifier: IntentClassifier) -> None:
        self.classifier = classifier

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        return self.classifier.apply(ctx)


class CommonResponseStage:
    name = "common-response"
    bypass_on_cache_hit = False

    def __init__(self, responder: CannedResponder) -> None:
        self.responder = responder

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        text = ctx.source_text().strip()
        if not text:
            return ctx.add_step(self.name, "no-text")
        reply = self.responder.reply_for(text, intent=ctx.intent, language_code=language_code(ctx))
        if reply is None:
            return ctx.add_step(self.name, "no-match")

        system_prompt = strip_context_placeholder(
            render(DEFAULT_SYSTEM_TEMPLATE, ctx, assistant_name=self.responder.assistant_name)
        )
        ctx.common_response = True
        ctx.system_prompt = system_prompt
        ctx.user_prompt = reply.message
        ctx.final_prompt = assemble_final_prompt(system_prompt, reply.message)
        ctx.answer = reply.message
        logger.debug("Canned reply matched language=%s", reply.language)
        return ctx.add_step(self.name, f"matched {reply.language}")


class CacheLookupStage:
    name = "prompt-cache-lookup"
    bypass_on_cache_hit = False

    def __init__(self, cache: PromptCache) -> None:
        self.cache = cache

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        if ctx.common_response:
            return ctx.add_step(self.name, "skip-common")
        ctx.cache_key = build_cache_key(ctx)
        if ctx.cache_key is None:
            return ctx.add_step(self.name, "no-key")

        entry = self.cache.lookup(ctx.cache_key)
        if entry is None:
            return ctx.add_step(self.name, "miss")

        ctx.cache_hit = True
        ctx.cache_frequency = entry.frequency
        ctx.system_prompt = entry.system_prompt
        ctx.user_prompt = entry.user_prompt
        ctx.final_prompt = entry.final_prompt
        ctx.answer = entry.answer
        return ctx.add_step(self.name, f"hit frequency={entry.frequency}")


class PromptTemplateStage:
    name = "prompt-template"
    bypass_on_cache_hit = True

    def __init__(self, catalog: TemplateCatalog, assistant_name: str = "Assistant") -> None:
        self.catalog = catalog
        self.assistant_name = assistant_name

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        if ctx.common_response:
            return ctx.add_step(self.name, "skip-common")

        language = language_code(ctx)
        template = self.catalog.find(ctx.intent, language)
        system_template = template.system if template else DEFAULT_SYSTEM_TEMPLATE
        user_template = template.user if template else DEFAULT_USER_TEMPLATE
        few_shot = [
            render(item, ctx, assistant_name=self.assistant_name)
            for item in (template.few_shot if template else [])
        ]

        if ctx.system_prompt and ctx.system_prompt.strip():
            system_prompt = ctx.system_prompt
            source = "request"
        else:
            system_prompt = render(system_template, ctx, assistant_name=self.assistant_name)
            source = template.id if template else "default"
        system_prompt, _ = ensure_context_placeholder(system_prompt)

        ctx.template_id = template.id if template else None
        ctx.system_prompt = system_prompt
        ctx.user_prompt = render(user_template, ctx, assistant_name=self.assistant_name)
        ctx.final_prompt = assemble_final_prompt(system_prompt, "\n\n".join(few_shot), ctx.user_prompt)
        return ctx.add_step(
            self.name, f"template={source}, intent={ctx.intent}, lang={language}"
        )


class EnrichmentStage:
    name = "knowledge-base-enrichment"
    bypass_on_cache_hit = True

    def __init__(self, retriever: KnowledgeRetriever, top_k: int = 3) -> None:
        self.retriever = retriever
        self.top_k = top_k

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        if ctx.common_response:
            return ctx.add_step(self.name, "skip-common")
        query = ctx.source_text().strip()
        if not query:
            return ctx.add_step(self.name, "skip-empty-query")

        ctx.kb_matches = await self.retriever.search(query, self.top_k)
        _swap_system_prompt(ctx, fill_context(ctx.system_prompt or "", ctx))
        if not ctx.kb_matches:
            return ctx.add_step(self.name, "no-matches")
        return ctx.add_step(self.name, f"matches={len(ctx.kb_matches)}")


class GenerationStage:
    name = "generation"
    bypass_on_cache_hit = True

    def __init__(self, generator: Generator) -> None:
        self.generator = generator

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        if ctx.common_response:
            return ctx.add_step(self.name, "skip-common")
        system_prompt, user_prompt = self._prompts(ctx)
        ctx.answer = await self.generator.generate(system_prompt, user_prompt)
        return ctx.add_step(self.name, f"backend={self.generator.name}, chars={len(ctx.answer)}")

    async def stream(self, ctx: ProcessingContext) -> AsyncIterator[str]:
        """Streaming twin of `process`; the joined chunks become the answer."""

        if ctx.common_response:
            ctx.add_step(self.name, "skip-common")
            return
        system_prompt, user_prompt = self._prompts(ctx)
        chunks: list[str] = []
        async for chunk in self.generator.stream(system_prompt, user_prompt):
            chunks.append(chunk)
            yield chunk
        ctx.answer = "".join(chunks)
        ctx.add_step(self.name, f"backend={self.generator.name}, chars={len(ctx.answer)}, streamed")

    def _prompts(self, ctx: ProcessingContext) -> tuple[str, str]:
        # Enrichment may have been skipped or failed; never send the raw slot.
        if CONTEXT_PLACEHOLDER in (ctx.system_prompt or ""):
            _swap_system_prompt(ctx, fill_context(ctx.system_prompt or "", ctx))
        return ctx.system_prompt or "", ctx.user_prompt or ctx.source_text()


class CacheRecordStage:
    name = "prompt-cache-record"
    bypass_on_cache_hit = False

    def __init__(self, cache: PromptCache) -> None:
        self.cache = cache

    async def process(self, ctx: ProcessingContext) -> ProcessingContext:
        if ctx.common_response:
            return ctx.add_step(self.name, "skip-common")
        if ctx.cache_hit:
            return ctx.add_step(self.name, "skip-cache-hit")
        if ctx.failed_stages:
            return ctx.add_step(self.name, "skip-failed-stage")
        if not ctx.cache_key:
            return ctx.add_step(self.name, "no-key")
        if ctx.answer is None:
            return ctx.add_step(self.name, "skip-no-answer")

        entry = self.cache.store(
            ctx.cache_key, ctx.system_prompt, ctx.user_prompt, ctx.final_prompt, ctx.answer
        )
        if entry is None:
            return ctx.add_step(self.name, "no-key")
        ctx.cache_frequency = entry.frequency
        return ctx.add_step(self.name, f"recorded frequency={entry.frequency}")


def _swap_system_prompt(ctx: ProcessingContext, system_prompt: str) -> None:
    """Replace the system prompt, also inside the already assembled final prompt."""

    previous = (ctx.system_prompt or "").strip()
    final = ctx.final_prompt or ""
    if previous and previous in final:
        ctx.final_prompt = final.replace(previous, system_prompt.strip(), 1)
    else:
        ctx.final_prompt = assemble_final_prompt(system_prompt, ctx.user_prompt)
    ctx.system_prompt = system_prompt
