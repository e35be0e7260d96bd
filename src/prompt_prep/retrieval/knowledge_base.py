"""Knowledge base service: document creation, listing and search."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from prompt_prep.retrieval.document_store import DocumentPage, DocumentStore, KbDocument
from prompt_prep.retrieval.embedder import Embedder
from prompt_prep.retrieval.retriever import KnowledgeRetriever
from prompt_prep.types import KbMatch

logger = logging.getLogger(__name__)


class DocType(str, Enum):
    BLOG = "blog"
    CHAT_QA = "chat_qa"


def render_chat_qa(question: str, answer: str) -> str:
    return f"Question: {question.strip()}\nAnswer: {answer.strip()}"


class KnowledgeBase:
    """Creates embedded documents and exposes them for retrieval."""

    def __init__(self, store: DocumentStore, embedder: Embedder, retriever: KnowledgeRetriever) -> None:
        self.store = store
        self.embedder = embedder
        self.retriever = retriever

    async def create(
        self,
        doc_type: DocType | str,
        *,
        content: str | None = None,
        question: str | None = None,
        answer: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> KbDocument:
        """Embed and persist a document.

        A `chat_qa` document is built from `question` and `answer`; a `blog`
        document needs non-blank `content`.

        Raises:
            ValueError: for an unknown type or missing text.
        """

        kind = DocType(doc_type)
        meta = dict(metadata or {})
        if kind is DocType.CHAT_QA:
            if not question or not question.strip() or not answer or not answer.strip():
                raise ValueError("chat_qa documents need a question and an answer")
            text = render_chat_qa(question, answer)
            meta.setdefault("question", question.strip())
        else:
            if not content or not content.strip():
                raise ValueError("content must not be blank")
            text = content.strip()

        embedding = await self.embedder.aembed_query(text)
        doc = self.store.add(kind.value, text, meta, embedding)
        logger.info("Stored %s document id=%d dim=%d", kind.value, doc.id, len(embedding))
        return doc

    def list(self, *, doc_type: str | None = None, page: int = 0, size: int = 20) -> DocumentPage:
        if doc_type is not None:
            doc_type = DocType(doc_type).value
        return self.store.list(doc_type=doc_type, page=page, size=size)

    def get(self, document_id: int) -> KbDocument:
        doc = self.store.get(document_id)
        if doc is None:
            raise KeyError(f"Document not found: {document_id}")
        return doc

    async def search(self, query: str, top_k: int | None = None) -> list[KbMatch]:
        return await self.retriever.search(query, top_k)
