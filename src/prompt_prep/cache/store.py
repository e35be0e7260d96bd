"""Process-wide prompt cache with hit-frequency accounting."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Protocol

from prompt_prep.config import CacheConfig
from prompt_prep.types import CacheEntry, ProcessingContext, utc_now

logger = logging.getLogger(__name__)


class PromptCache(Protocol):
    """Content-addressed store of rendered prompts and answers."""

    def lookup(self, key: str | None) -> CacheEntry | None:
        """Count a hit and return a snapshot, or `None` on a miss."""

    def store(
        self,
        key: str | None,
        system_prompt: str | None,
        user_prompt: str | None,
        final_prompt: str | None,
        answer: str | None = None,
    ) -> CacheEntry | None:
        """Insert or overwrite an entry and count the write."""


class InMemoryPromptCache:
    """Thread-safe dictionary cache.

    Entries are immutable snapshots swapped under the lock, so a caller never
    observes a half-updated entry. With `max_entries` set, the least recently
    seen entry is evicted on insert.
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self.config = config or CacheConfig()
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def lookup(self, key: str | None) -> CacheEntry | None:
        if not key or not key.strip():
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry = replace(entry, frequency=entry.frequency + 1, last_seen=utc_now())
            self._touch(key, entry)
        logger.debug("Prompt cache hit key=%s frequency=%d", key, entry.frequency)
        return entry

    def store(
        self,
        key: str | None,
        system_prompt: str | None,
        user_prompt: str | None,
        final_prompt: str | None,
        answer: str | None = None,
    ) -> CacheEntry | None:
        if not key or not key.strip():
            return None
        now = utc_now()
        with self._lock:
            existing = self._entries.get(key)
            if existing is None:
                entry = CacheEntry(
                    key=key,
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    final_prompt=final_prompt,
                    answer=answer,
                    frequency=1,
                    first_seen=now,
                    last_seen=now,
                )
                self._evict_if_full()
            else:
                entry = replace(
                    existing,
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    final_prompt=final_prompt,
                    answer=answer,
                    frequency=existing.frequency + 1,
                    last_seen=now,
                )
            self._touch(key, entry)
        logger.debug("Prompt cache record key=%s frequency=%d", key, entry.frequency)
        return entry

    def get(self, key: str) -> CacheEntry | None:
        """Peek without counting a hit."""
        with self._lock:
            return self._entries.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _touch(self, key: str, entry: CacheEntry) -> None:
        # Dict order doubles as recency order: oldest first.
        self._entries.pop(key, None)
        self._entries[key] = entry

    def _evict_if_full(self) -> None:
        limit = self.config.max_entries
        if limit is None or len(self._entries) < limit:
            return
        oldest = next(iter(self._entries))
        del self._entries[oldest]
        logger.debug("Prompt cache evicted key=%s", oldest)


def build_cache_key(ctx: ProcessingContext) -> str | None:
    """`<lang>::<scope>::<text>`; `None` when there is nothing to key on."""

    text = ctx.source_text().strip()
    if not text:
        return None
    if ctx.user_id:
        scope = f"user:{ctx.user_id}"
    elif ctx.session_id:
        scope = f"session:{ctx.session_id}"
    else:
        scope = "anon"
    language = ctx.language.iso_code or "und"
    return f"{language}::{scope}::{text}"
