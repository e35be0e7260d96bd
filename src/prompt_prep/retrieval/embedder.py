"""Embedding abstractions and deterministic baseline implementation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import cast

from langchain_core.embeddings import Embeddings


class Embedder(ABC):
    """Embedder interface used by the knowledge base and the retriever."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        return await asyncio.to_thread(self.embed_documents, texts)

    async def aembed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(self.embed_query, text)


class HashingEmbedder(Embedder):
    """Deterministic feature-hashing embedding without external model calls.

    Tokens are lowercased alphanumeric runs, so the vector only depends on the
    words of the text. Used offline and in tests.
    """

    def __init__(self, dimension: int = 256) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        tokens = "".join(ch if ch.isalnum() else " " for ch in text.lower()).split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapts any langchain-core `Embeddings` (OpenAI, HuggingFace, ...)."""

    def __init__(self, embeddings: Embeddings) -> None:
        self._embeddings = embeddings

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return cast(list[list[float]], self._embeddings.embed_documents(texts))

    def embed_query(self, text: str) -> list[float]:
        return cast(list[float], self._embeddings.embed_query(text))

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        return cast(list[list[float]], await self._embeddings.aembed_documents(texts))

    async def aembed_query(self, text: str) -> list[float]:
        return cast(list[float], await self._embeddings.aembed_query(text))
