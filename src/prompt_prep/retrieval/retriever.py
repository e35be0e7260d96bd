"""Cosine-similarity ranking of knowledge documents."""

from __future__ import annotations

from math import sqrt

from prompt_prep.config import RetrievalConfig
from prompt_prep.retrieval.document_store import DocumentStore
from prompt_prep.retrieval.embedder import Embedder
from prompt_prep.types import KbCandidate, KbMatch


class KnowledgeRetriever:
    """Embeds a query and ranks the store's documents against it.

    `rank` is pure and synchronous; `search` awaits the embedding collaborator
    and lets its errors propagate to the caller.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.config = config or RetrievalConfig()

    def clamp_k(self, top_k: int | None) -> int:
        if top_k is None or top_k <= 0:
            return self.config.default_k
        return min(top_k, self.config.max_k)

    def rank(
        self,
        query_vector: list[float],
        candidates: list[KbCandidate],
        top_k: int | None = None,
    ) -> list[KbMatch]:
        limit = self.clamp_k(top_k)
        scored: list[KbMatch] = []
        for candidate in candidates:
            similarity = cosine_similarity(query_vector, candidate.embedding)
            if similarity is None:
                continue
            scored.append(
                KbMatch(
                    document_id=candidate.id,
                    doc_type=candidate.doc_type,
                    content=candidate.content,
                    metadata=dict(candidate.metadata),
                    similarity=similarity,
                    embedding_dimension=len(candidate.embedding or ()),
                )
            )
        # sorted() is stable, so ties keep candidate order.
        scored.sort(key=lambda match: match.similarity, reverse=True)
        return scored[:limit]

    async def search(self, query: str, top_k: int | None = None) -> list[KbMatch]:
        if not query or not query.strip():
            raise ValueError("query must not be blank")
        query_vector = await self.embedder.aembed_query(query.strip())
        return self.rank(query_vector, self.store.candidates(), top_k)


def cosine_similarity(a: list[float] | None, b: list[float] | None) -> float | None:
    """Cosine over the common prefix; `None` when undefined."""

    if not a or not b:
        return None
    length = min(len(a), len(b))
    left, right = a[:length], b[:length]
    norm_a = sqrt(sum(x * x for x in left))
    norm_b = sqrt(sum(y * y for y in right))
    if norm_a == 0 or norm_b == 0:
        return None
    numerator = sum(x * y for x, y in zip(left, right, strict=True))
    return numerator / (norm_a * norm_b)
