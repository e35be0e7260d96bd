"""FastAPI entrypoint for prompt preparation, knowledge base and trace endpoints."""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from prompt_prep.cache import InMemoryPromptCache
from prompt_prep.config import CacheConfig, IndexerConfig, PipelineConfig, RetrievalConfig
from prompt_prep.llm.generator import ChatModelGenerator, ExtractiveGenerator, Generator
from prompt_prep.obs.logger import configure_logging
from prompt_prep.obs.tracing import TraceStore
from prompt_prep.pipeline import InputValidationError, PipelineEvent, PrepareRequest, PromptPipeline
from prompt_prep.retrieval import (
    HashingEmbedder,
    InMemoryDocumentStore,
    KbDocument,
    KnowledgeBase,
    KnowledgeRetriever,
)
from prompt_prep.text import LanguageIndexer
from prompt_prep.types import KbMatch, ProcessingContext


def _create_llm() -> Any:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"), temperature=0)


_DEFAULT_LANGUAGES = "ENGLISH,CHINESE,JAPANESE,KOREAN,SPANISH,FRENCH,GERMAN,PORTUGUESE,RUSSIAN,ARABIC"


def _indexer_languages() -> list[str]:
    raw = os.getenv("PROMPT_PREP_LANGUAGES", _DEFAULT_LANGUAGES)
    if raw.strip().lower() == "all":
        return []
    return [name.strip() for name in raw.split(",") if name.strip()]


class CreateDocumentRequest(BaseModel):
    doc_type: str = Field(default="blog", pattern="^(blog|chat_qa)$")
    content: str | None = None
    question: str | None = None
    answer: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=5)


configure_logging()

app = FastAPI(title="Prompt Prep", version="0.1.0")

_retrieval_config = RetrievalConfig()
_embedder = HashingEmbedder()
_document_store = InMemoryDocumentStore()
_retriever = KnowledgeRetriever(_document_store, _embedder, _retrieval_config)
_knowledge_base = KnowledgeBase(_document_store, _embedder, _retriever)

_trace_store = TraceStore()
_cache = InMemoryPromptCache(CacheConfig())
_llm = _create_llm()
_generator: Generator = ChatModelGenerator(_llm) if _llm is not None else ExtractiveGenerator()
_pipeline = PromptPipeline.from_components(
    retriever=_retriever,
    config=PipelineConfig(),
    retrieval_config=_retrieval_config,
    indexer=LanguageIndexer(config=IndexerConfig(languages=_indexer_languages())),
    cache=_cache,
    generator=_generator,
    trace_store=_trace_store,
)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "llm_configured": _llm is not None,
        "generator": _generator.name,
        "stages": _pipeline.stage_names,
        "cache_entries": len(_cache),
        **_trace_store.summary(),
    }


@app.post("/prepare")
async def prepare(request: PrepareRequest) -> dict[str, Any]:
    try:
        result = await _pipeline.run(request)
    except InputValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        **_context_payload(result.context),
        "trace_id": result.trace_id,
        "latency_ms": result.latency_ms,
    }


@app.post("/prepare/stream")
async def prepare_stream(request: PrepareRequest) -> StreamingResponse:
    # Validate eagerly so a blank query still maps to 400, not a broken stream.
    try:
        _pipeline.validation.validate(request.query, request.system_prompt)
    except InputValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    async def _events() -> AsyncIterator[str]:
        async for event in _pipeline.run_streaming(request):
            yield json.dumps(_event_payload(event), ensure_ascii=False) + "\n"

    return StreamingResponse(_events(), media_type="application/x-ndjson")


@app.post("/kb/documents", status_code=201)
async def create_document(request: CreateDocumentRequest) -> dict[str, Any]:
    try:
        doc = await _knowledge_base.create(
            request.doc_type,
            content=request.content,
            question=request.question,
            answer=request.answer,
            metadata=request.metadata,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _document_payload(doc)


@app.get("/kb/documents")
def list_documents(doc_type: str | None = None, page: int = 0, size: int = 20) -> dict[str, Any]:
    try:
        result = _knowledge_base.list(doc_type=doc_type, page=page, size=size)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "items": [_document_payload(doc) for doc in result.items],
        "page": result.page,
        "size": result.size,
        "total": result.total,
    }


@app.get("/kb/documents/{document_id}")
def get_document(document_id: int) -> dict[str, Any]:
    try:
        doc = _knowledge_base.get(document_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _document_payload(doc)


@app.post("/kb/search")
async def search_documents(request: SearchRequest) -> dict[str, Any]:
    try:
        matches = await _knowledge_base.search(request.query, request.top_k)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"items": [_match_payload(match) for match in matches]}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str) -> dict[str, Any]:
    try:
        record = _trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    payload = asdict(record)
    payload["steps"] = [_step_payload(step) for step in record.steps]
    return payload


def _context_payload(ctx: ProcessingContext) -> dict[str, Any]:
    return {
        "normalized": ctx.normalized,
        "outline": ctx.outline,
        "change_ratio": ctx.change_ratio,
        "language": {
            "iso_code": ctx.language.iso_code,
            "display_name": ctx.language.display_name,
            "confidence": ctx.language.confidence,
            "script": ctx.language.script.value,
        },
        "language_candidates": [asdict(c) for c in ctx.language_candidates],
        "index_language": ctx.index_language,
        "index_text": ctx.index_text,
        "intent": ctx.intent,
        "tags": list(ctx.tags),
        "keywords": list(ctx.keywords),
        "template_id": ctx.template_id,
        "system_prompt": ctx.system_prompt,
        "user_prompt": ctx.user_prompt,
        "final_prompt": ctx.final_prompt,
        "common_response": ctx.common_response,
        "cache_hit": ctx.cache_hit,
        "cache_frequency": ctx.cache_frequency,
        "kb_matches": [_match_payload(match) for match in ctx.kb_matches],
        "answer": ctx.answer,
        "validation_notices": list(ctx.validation_notices),
        "failed_stages": list(ctx.failed_stages),
        "steps": [_step_payload(step) for step in ctx.steps],
    }


def _event_payload(event: PipelineEvent) -> dict[str, Any]:
    if event.kind == "delta":
        return {"type": "delta", "stage": event.stage, "delta": event.delta}
    if event.kind == "done":
        return {"type": "done", "trace_id": event.trace_id, **_context_payload(event.context)}
    return {"type": "step", "stage": event.stage, "note": event.note}


def _step_payload(step: Any) -> dict[str, Any]:
    return {"name": step.name, "note": step.note, "at": step.at.isoformat()}


def _match_payload(match: KbMatch) -> dict[str, Any]:
    return asdict(match)


def _document_payload(doc: KbDocument) -> dict[str, Any]:
    return {
        "id": doc.id,
        "doc_type": doc.doc_type,
        "content": doc.content,
        "metadata": doc.metadata,
        "embedding_dimension": len(doc.embedding or ()),
        "created_at": doc.created_at.isoformat(),
    }
