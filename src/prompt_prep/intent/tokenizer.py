"""Script-aware tokenization for rule matching."""

from __future__ import annotations

import re

from prompt_prep.text.fences import HAN_CHAR, HAN_RANGES

_TOKEN = re.compile(rf"([a-z0-9+.#-]+)|([{HAN_RANGES}]+)")

STOPWORDS: frozenset[str] = frozenset(
    {
        "他", "她", "你", "我", "它", "我们", "你们", "他们", "她们", "它们",
        "吗", "呢", "啊", "吧", "了", "的",
        "he", "she", "you", "i", "we", "they", "it", "me", "him", "her", "them", "us",
    }
)


def tokenize(raw: str | None) -> list[str]:
    """Tokenize lowercased text into words, word bigrams and Han n-grams.

    Latin/digit runs and whole Han runs are the base words. Adjacent base words
    also yield a space-joined bigram, and every Han run contributes its
    character unigrams, bigrams and trigrams.
    """

    if not raw or not raw.strip():
        return []

    text = raw.lower()
    words: list[str] = []
    han_grams: list[str] = []
    for match in _TOKEN.finditer(text):
        latin, han = match.groups()
        if latin is not None:
            # Sentence-final periods are not part of the word.
            latin = latin.rstrip(".")
            if latin:
                words.append(latin)
            continue
        words.append(han)
        for size in (1, 2, 3):
            han_grams.extend(han[i : i + size] for i in range(len(han) - size + 1))

    if not words:
        words = [part for part in text.split() if part]

    tokens = list(words)
    tokens.extend(f"{prev} {cur}" for prev, cur in zip(words, words[1:]))
    tokens.extend(han_grams)
    return tokens


def is_good_keyword(term: str | None) -> bool:
    """Reject stopwords, Latin terms under 3 chars and Han terms under 2."""

    if not term:
        return False
    value = term.strip().lower()
    if not value or value in STOPWORDS:
        return False
    if HAN_CHAR.search(value):
        return len(value) >= 2
    return len(value) >= 3
