"""Prompt cache."""

from .store import InMemoryPromptCache, PromptCache, build_cache_key

__all__ = ["InMemoryPromptCache", "PromptCache", "build_cache_key"]
