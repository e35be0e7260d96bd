import asyncio

import pytest

from prompt_prep.cache import InMemoryPromptCache
from prompt_prep.config import PipelineConfig
from prompt_prep.intent import IntentClassifier
from prompt_prep.llm import Generator, TemplateCatalog
from prompt_prep.pipeline import InputValidationError, PrepareRequest, PromptPipeline, build_stages
from prompt_prep.retrieval import HashingEmbedder, InMemoryDocumentStore, KnowledgeBase, KnowledgeRetriever
from prompt_prep.text import LanguageIndexer
from prompt_prep.text.indexer import IndexTermsResource
from prompt_prep.types import IntentRule, LexiconEntry

QUESTION = "How much does RAV4 insurance cost?"


class NoVerdictDetector:
    def detect_language_of(self, text: str) -> None:
        return None


class FlakyEmbedder(HashingEmbedder):
    down = False

    def embed_query(self, text: str) -> list[float]:
        if self.down:
            raise ConnectionError("embedding service unreachable")
        return super().embed_query(text)


class FailingGenerator(Generator):
    name = "failing"

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        raise RuntimeError("model timeout")


def _build(
    generator: Generator | None = None,
    config: PipelineConfig | None = None,
    embedder: HashingEmbedder | None = None,
    classifier: IntentClassifier | None = None,
):
    store = InMemoryDocumentStore()
    embedder = embedder or HashingEmbedder()
    retriever = KnowledgeRetriever(store, embedder)
    kb = KnowledgeBase(store, embedder, retriever)
    asyncio.run(kb.create("blog", content="RAV4 insurance cost averages 1500 dollars per year."))
    asyncio.run(kb.create("blog", content="Zion National Park trails are best in spring."))

    classifier = classifier or IntentClassifier(
        rules=[IntentRule(name="cars", intent="VEHICLE", any_of=("vehicle",))],
        lexicon=[LexiconEntry(canonical="vehicle", synonyms=frozenset({"vehicle", "rav4"}))],
    )
    cache = InMemoryPromptCache()
    pipeline = PromptPipeline.from_components(
        retriever=retriever,
        config=config,
        indexer=LanguageIndexer(NoVerdictDetector(), terms=IndexTermsResource()),
        classifier=classifier,
        cache=cache,
        catalog=TemplateCatalog([]),
        generator=generator,
    )
    return pipeline, cache


def _notes(ctx) -> dict[str, str]:
    return {step.name: step.note for step in ctx.steps}


def test_repeated_question_is_served_from_cache() -> None:
    pipeline, cache = _build()

    first = asyncio.run(pipeline.run(PrepareRequest(query=QUESTION, user_id="u-7")))
    second = asyncio.run(pipeline.run(PrepareRequest(query=QUESTION, user_id="u-7")))

    ctx = first.context
    assert ctx.intent == "VEHICLE"
    assert [step.name for step in ctx.steps] == pipeline.stage_names
    assert ctx.user_prompt == f"User(u-7): {QUESTION}"
    assert "[Context]" in ctx.system_prompt
    assert "{{CONTEXT}}" not in ctx.final_prompt
    assert ctx.kb_matches[0].document_id == 1
    assert "[blog #1]" in ctx.answer.splitlines()[0]
    assert _notes(ctx)["prompt-cache-record"] == "recorded frequency=1"

    cached = second.context
    notes = _notes(cached)
    assert cached.cache_hit is True
    assert cached.answer == ctx.answer
    assert cached.final_prompt == ctx.final_prompt
    assert notes["prompt-cache-lookup"] == "hit frequency=2"
    for name in ("prompt-template", "knowledge-base-enrichment", "generation"):
        assert notes[name] == "bypass-cache"
    assert notes["prompt-cache-record"] == "skip-cache-hit"
    assert len(cache) == 1
    assert pipeline.trace_store.get(second.trace_id).cache_hit is True


def test_generation_failure_is_isolated_and_not_cached() -> None:
    pipeline, cache = _build(generator=FailingGenerator())

    result = asyncio.run(pipeline.run(PrepareRequest(query=QUESTION)))

    notes = _notes(result.context)
    assert notes["generation"] == "skipped: RuntimeError"
    assert notes["prompt-cache-record"] == "skip-failed-stage"
    assert result.context.failed_stages == ["generation"]
    assert result.context.answer is None
    assert result.context.final_prompt
    assert len(cache) == 0


def test_enrichment_failure_answers_but_is_not_cached() -> None:
    embedder = FlakyEmbedder()
    pipeline, cache = _build(embedder=embedder)
    embedder.down = True

    first = asyncio.run(pipeline.run(PrepareRequest(query=QUESTION))).context
    embedder.down = False
    second = asyncio.run(pipeline.run(PrepareRequest(query=QUESTION))).context

    notes = _notes(first)
    assert notes["knowledge-base-enrichment"] == "skipped: ConnectionError"
    assert notes["prompt-cache-record"] == "skip-failed-stage"
    assert first.failed_stages == ["knowledge-base-enrichment"]
    assert first.answer is not None
    assert "{{CONTEXT}}" not in first.final_prompt
    assert second.cache_hit is False
    assert second.kb_matches
    assert len(cache) == 1


def test_greeting_without_any_rules() -> None:
    pipeline, cache = _build(classifier=IntentClassifier(rules=[], lexicon=[]))

    ctx = asyncio.run(pipeline.run(PrepareRequest(query="Hello there!"))).context

    assert ctx.intent == "GREETING"
    assert "intent:greeting" in ctx.tags
    assert ctx.common_response is True
    assert len(cache) == 0


def test_greeting_short_circuits_to_common_response() -> None:
    pipeline, cache = _build()

    ctx = asyncio.run(pipeline.run(PrepareRequest(query="Hello there!"))).context

    notes = _notes(ctx)
    assert ctx.intent == "GREETING"
    assert ctx.common_response is True
    assert ctx.answer.startswith("Hi there!")
    assert ctx.final_prompt.endswith(ctx.answer)
    assert "{{CONTEXT}}" not in ctx.system_prompt
    assert notes["common-response"] == "matched en"
    for name in ("prompt-cache-lookup", "prompt-template", "generation", "prompt-cache-record"):
        assert notes[name] == "skip-common"
    assert len(cache) == 0


def test_blank_query_is_rejected_before_any_stage() -> None:
    pipeline, _ = _build()

    with pytest.raises(InputValidationError):
        asyncio.run(pipeline.run(PrepareRequest(query="   \n ")))
    assert pipeline.trace_store.summary()["total_requests"] == 0


def test_request_system_prompt_gets_context_slot() -> None:
    pipeline, _ = _build()

    ctx = asyncio.run(
        pipeline.run(PrepareRequest(query=QUESTION, system_prompt="You are a car pricing expert."))
    ).context

    assert ctx.validation_notices == ["Injected missing {{CONTEXT}} placeholder into system prompt."]
    assert ctx.system_prompt.startswith("You are a car pricing expert.\n\n[Context]")
    assert _notes(ctx)["prompt-template"].startswith("template=request")


def test_long_input_is_truncated_with_notice() -> None:
    pipeline, _ = _build(config=PipelineConfig(max_input_chars=20))

    ctx = asyncio.run(pipeline.run(PrepareRequest(query="word " * 40))).context

    assert len(ctx.raw_input) == 20
    assert ctx.validation_notices[0].startswith("Input truncated to 20 characters")


def test_streaming_emits_steps_deltas_and_done() -> None:
    pipeline, _ = _build()

    async def _collect():
        return [event async for event in pipeline.run_streaming(PrepareRequest(query=QUESTION))]

    events = asyncio.run(_collect())

    assert events[-1].kind == "done"
    assert events[-1].trace_id
    step_names = [event.stage for event in events if event.kind == "step"]
    assert step_names == pipeline.stage_names
    deltas = "".join(event.delta for event in events if event.kind == "delta")
    assert deltas == events[-1].context.answer
    assert "streamed" in _notes(events[-1].context)["generation"]


def test_stage_order_is_configurable() -> None:
    pipeline, _ = _build(config=PipelineConfig(stages=["unified-clean-correct", "language-detector"]))

    ctx = asyncio.run(pipeline.run(PrepareRequest(query=QUESTION))).context

    assert pipeline.stage_names == ["unified-clean-correct", "language-detector"]
    assert ctx.intent == "UNKNOWN"
    assert ctx.index_text == "how much does rav4 insurance cost"


def test_unknown_stage_names_are_rejected() -> None:
    with pytest.raises(ValueError):
        build_stages(["generation", "spell-check"], {})
    with pytest.raises(ValueError):
        _build(config=PipelineConfig(stages=["spell-check"]))
