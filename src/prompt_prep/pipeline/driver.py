"""Ordered, per-request pipeline driver."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass

from prompt_prep.cache import InMemoryPromptCache, PromptCache
from prompt_prep.config import PipelineConfig, RetrievalConfig
from prompt_prep.intent import CannedResponder, IntentClassifier
from prompt_prep.llm.generator import ExtractiveGenerator, Generator
from prompt_prep.llm.prompts import TemplateCatalog
from prompt_prep.obs.tracing import Timer, TraceStore
from prompt_prep.pipeline.stages import (
    CacheLookupStage,
    CacheRecordStage,
    CommonResponseStage,
    EnrichmentStage,
    GenerationStage,
    IntentStage,
    LanguageStage,
    NormalizeStage,
    PromptTemplateStage,
    Stage,
)
from prompt_prep.pipeline.validation import PrepareRequest, ValidationService
from prompt_prep.retrieval import KnowledgeRetriever
from prompt_prep.text import LanguageIndexer, Normalizer
from prompt_prep.types import ProcessingContext

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineResult:
    context: ProcessingContext
    trace_id: str
    latency_ms: float


@dataclass(slots=True)
class PipelineEvent:
    """One streamed update: a finished stage, an answer chunk, or completion."""

    kind: str
    stage: str | None
    context: ProcessingContext
    note: str | None = None
    delta: str | None = None
    trace_id: str | None = None


def build_stages(names: list[str], available: Mapping[str, Stage]) -> list[Stage]:
    """Resolve configured stage names, in order, against the available stages."""

    missing = [name for name in names if name not in available]
    if missing:
        raise ValueError(f"Unknown pipeline stages: {', '.join(missing)}")
    return [available[name] for name in names]


class PromptPipeline:
    """Runs each request through an explicit ordered list of stages.

    Every request gets its own `ProcessingContext`, handed to one stage at a
    time. A stage that raises is logged and recorded as a `skipped: <ExcType>`
    step and listed in `failed_stages`; the remaining stages still run, but
    the request is not cached. The prompt cache is the only state shared
    between requests.
    """

    def __init__(
        self,
        stages: list[Stage],
        *,
        validation: ValidationService | None = None,
        trace_store: TraceStore | None = None,
        default_char_limit: int = 8000,
    ) -> None:
        self.stages = list(stages)
        self.validation = validation or ValidationService()
        self.trace_store = trace_store or TraceStore()
        self.default_char_limit = default_char_limit

    @classmethod
    def from_components(
        cls,
        *,
        retriever: KnowledgeRetriever,
        config: PipelineConfig | None = None,
        retrieval_config: RetrievalConfig | None = None,
        normalizer: Normalizer | None = None,
        indexer: LanguageIndexer | None = None,
        classifier: IntentClassifier | None = None,
        cache: PromptCache | None = None,
        catalog: TemplateCatalog | None = None,
        generator: Generator | None = None,
        trace_store: TraceStore | None = None,
    ) -> "PromptPipeline":
        """Wire the standard stages and order them by `config.stages`."""

        config = config or PipelineConfig()
        retrieval_config = retrieval_config or RetrievalConfig()
        normalizer = normalizer or Normalizer()
        cache = cache if cache is not None else InMemoryPromptCache()
        available: list[Stage] = [
            NormalizeStage(normalizer),
            LanguageStage(indexer or LanguageIndexer()),
            IntentStage(classifier or IntentClassifier()),
            CommonResponseStage(CannedResponder(config.assistant_name)),
            CacheLookupStage(cache),
            PromptTemplateStage(catalog or TemplateCatalog.load(), config.assistant_name),
            EnrichmentStage(retriever, retrieval_config.enrichment_k),
            GenerationStage(generator or ExtractiveGenerator()),
            CacheRecordStage(cache),
        ]
        stages = build_stages(config.stages, {stage.name: stage for stage in available})
        return cls(
            stages,
            validation=ValidationService(max_chars=config.max_input_chars),
            trace_store=trace_store,
            default_char_limit=normalizer.config.char_limit,
        )

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def create_context(self, request: PrepareRequest) -> ProcessingContext:
        """Validate the request and open its context.

        Raises:
            InputValidationError: when the query is blank.
        """

        validated = self.validation.validate(request.query, request.system_prompt)
        ctx = ProcessingContext(
            raw_input=validated.processed_input,
            user_id=request.user_id,
            session_id=request.session_id,
            char_limit=request.char_limit or self.default_char_limit,
        )
        ctx.system_prompt = validated.system_prompt
        ctx.validation_notices = list(validated.notices)
        return ctx

    async def run(self, request: PrepareRequest) -> PipelineResult:
        ctx = self.create_context(request)
        with Timer() as timer:
            for stage in self.stages:
                ctx = await self._run_stage(stage, ctx)
        record = self.trace_store.create_record(ctx, latency_ms=timer.elapsed_ms)
        return PipelineResult(context=ctx, trace_id=record.trace_id, latency_ms=record.latency_ms)

    async def run_streaming(self, request: PrepareRequest) -> AsyncIterator[PipelineEvent]:
        """Yield the context after every stage, plus answer chunks while generating."""

        ctx = self.create_context(request)
        with Timer() as timer:
            for stage in self.stages:
                if isinstance(stage, GenerationStage) and not self._bypassed(stage, ctx):
                    async for event in self._stream_generation(stage, ctx):
                        yield event
                else:
                    ctx = await self._run_stage(stage, ctx)
                last = ctx.steps[-1] if ctx.steps else None
                yield PipelineEvent(
                    kind="step",
                    stage=stage.name,
                    context=ctx,
                    note=last.note if last and last.name == stage.name else None,
                )
        record = self.trace_store.create_record(ctx, latency_ms=timer.elapsed_ms)
        yield PipelineEvent(kind="done", stage=None, context=ctx, trace_id=record.trace_id)

    async def _run_stage(self, stage: Stage, ctx: ProcessingContext) -> ProcessingContext:
        if self._bypassed(stage, ctx):
            return ctx.add_step(stage.name, "bypass-cache")
        try:
            return await stage.process(ctx)
        except Exception as exc:
            logger.warning("Stage %s failed: %s", stage.name, exc, exc_info=True)
            ctx.failed_stages.append(stage.name)
            return ctx.add_step(stage.name, f"skipped: {exc.__class__.__name__}")

    async def _stream_generation(
        self, stage: GenerationStage, ctx: ProcessingContext
    ) -> AsyncIterator[PipelineEvent]:
        try:
            async for chunk in stage.stream(ctx):
                yield PipelineEvent(kind="delta", stage=stage.name, context=ctx, delta=chunk)
        except Exception as exc:
            logger.warning("Stage %s failed: %s", stage.name, exc, exc_info=True)
            ctx.failed_stages.append(stage.name)
            ctx.answer = None
            ctx.add_step(stage.name, f"skipped: {exc.__class__.__name__}")

    @staticmethod
    def _bypassed(stage: Stage, ctx: ProcessingContext) -> bool:
        return stage.bypass_on_cache_hit and ctx.cache_hit and ctx.answer is not None
