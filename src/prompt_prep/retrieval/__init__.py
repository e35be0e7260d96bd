"""Knowledge-base storage, embedding and similarity ranking."""

from .document_store import DocumentPage, DocumentStore, InMemoryDocumentStore, KbDocument
from .embedder import Embedder, HashingEmbedder, LangChainEmbedder
from .knowledge_base import DocType, KnowledgeBase
from .retriever import KnowledgeRetriever, cosine_similarity

__all__ = [
    "DocType",
    "DocumentPage",
    "DocumentStore",
    "Embedder",
    "HashingEmbedder",
    "InMemoryDocumentStore",
    "KbDocument",
    "KnowledgeBase",
    "KnowledgeRetriever",
    "LangChainEmbedder",
    "cosine_similarity",
]
