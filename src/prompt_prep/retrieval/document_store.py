"""Knowledge document store contract and in-memory adapter."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from prompt_prep.types import KbCandidate, utc_now


@dataclass(slots=True)
class KbDocument:
    id: int
    doc_type: str
    content: str
    metadata: dict[str, Any]
    embedding: list[float] | None = None
    created_at: datetime = field(default_factory=utc_now)

    def as_candidate(self) -> KbCandidate:
        return KbCandidate(
            id=self.id,
            doc_type=self.doc_type,
            content=self.content,
            metadata=dict(self.metadata),
            embedding=self.embedding,
        )


@dataclass(slots=True)
class DocumentPage:
    items: list[KbDocument]
    page: int
    size: int
    total: int


class DocumentStore(Protocol):
    """Minimal persistence contract for knowledge documents."""

    def add(
        self,
        doc_type: str,
        content: str,
        metadata: dict[str, Any],
        embedding: list[float] | None,
    ) -> KbDocument:
        """Persist a document and assign its id."""

    def get(self, document_id: int) -> KbDocument | None:
        """Fetch one document."""

    def list(self, *, doc_type: str | None = None, page: int = 0, size: int = 20) -> DocumentPage:
        """Page through documents, newest id first, optionally by type."""

    def candidates(self) -> list[KbCandidate]:
        """Every document as a ranking candidate."""


class InMemoryDocumentStore:
    """Deterministic document store used for tests and local prototyping."""

    def __init__(self) -> None:
        self._docs: dict[int, KbDocument] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add(
        self,
        doc_type: str,
        content: str,
        metadata: dict[str, Any],
        embedding: list[float] | None,
    ) -> KbDocument:
        with self._lock:
            doc = KbDocument(
                id=next(self._ids),
                doc_type=doc_type,
                content=content,
                metadata=dict(metadata),
                embedding=list(embedding) if embedding is not None else None,
            )
            self._docs[doc.id] = doc
        return doc

    def get(self, document_id: int) -> KbDocument | None:
        return self._docs.get(document_id)

    def list(self, *, doc_type: str | None = None, page: int = 0, size: int = 20) -> DocumentPage:
        if page < 0 or size < 1:
            raise ValueError("page must be >= 0 and size >= 1")
        with self._lock:
            docs = [
                doc
                for doc in sorted(self._docs.values(), key=lambda d: d.id, reverse=True)
                if doc_type is None or doc.doc_type == doc_type
            ]
        start = page * size
        return DocumentPage(items=docs[start : start + size], page=page, size=size, total=len(docs))

    def candidates(self) -> list[KbCandidate]:
        with self._lock:
            return [doc.as_candidate() for doc in self._docs.values()]
