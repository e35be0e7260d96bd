import random
import re

import pytest

from prompt_prep.config import NormalizerConfig
from prompt_prep.intent import IntentClassifier
from prompt_prep.retrieval import HashingEmbedder, InMemoryDocumentStore, KnowledgeRetriever
from prompt_prep.text import LanguageIndexer, Normalizer
from prompt_prep.text.fences import split_fences
from prompt_prep.types import KbCandidate, ProcessingContext

SAMPLES = [
    "i like teh apples!! see https://a.b",
    "Please compare the RAV4 and CR-V.\n\n\n\nYou must include insurance.\nYou must include insurance.",
    "请  比较 丰田 和 本田。。必须 使用 表格！！",
    "hello\nworld\nthis is short",
    "the the the cat sat",
    "Привет! Как дела?",
    "thank you\nyou too",
]


class NoVerdictDetector:
    def detect_language_of(self, text: str) -> None:
        return None


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalized_text_is_bounded_and_idempotent(raw: str) -> None:
    normalizer = Normalizer()

    once = normalizer.normalize(raw).text
    twice = normalizer.normalize(once).text

    assert len(once) <= normalizer.clamp_limit(None)
    assert "\n\n\n" not in once
    assert twice == once


def test_char_limit_is_clamped_into_configured_range() -> None:
    normalizer = Normalizer(NormalizerConfig(char_limit=50, min_char_limit=40, max_char_limit=60))
    raw = " ".join(f"token{i}" for i in range(200))

    assert len(normalizer.normalize(raw, char_limit=1).text) <= 40
    assert len(normalizer.normalize(raw, char_limit=10_000).text) <= 60


def test_fenced_code_round_trips_byte_for_byte() -> None:
    blocks = ["```\n  a  =  1\n\n\n\nb!!\n```", "```js\nconst s = '你好  世界';\n```"]
    raw = f"Explain  these!!\n{blocks[0]}\nand and this\n{blocks[1]}"

    text = Normalizer().normalize(raw).text

    assert [seg.text for seg in split_fences(text) if seg.is_code] == blocks


def test_truncated_code_never_reaches_the_index() -> None:
    code = "```\n" + "\n".join(f"secret_var_{i} = {i}" for i in range(800)) + "\n```"
    normalized = Normalizer().normalize(f"explain this\n{code}").text

    result = LanguageIndexer(NoVerdictDetector()).index(normalized)

    assert len(normalized) <= Normalizer().clamp_limit(None)
    assert "```" not in normalized
    assert "secret" not in result.index_text
    assert result.index_text.startswith("explain this")


@pytest.mark.parametrize("raw", SAMPLES + ["高盛的保险成本", "```\ncode\n```", "   "])
def test_index_text_is_lowercase_ascii(raw: str) -> None:
    indexer = LanguageIndexer(NoVerdictDetector())

    index_text = indexer.index(raw).index_text

    assert re.fullmatch(r"[a-z0-9 ]*", index_text)
    assert index_text == index_text.strip()
    assert "  " not in index_text


@pytest.mark.parametrize("raw", SAMPLES + ["hello", "compare rav4 and cr-v prices", ""])
def test_exactly_one_intent_tag(raw: str) -> None:
    ctx = ProcessingContext(raw_input=raw, normalized=raw, tags=["intent:stale"])

    IntentClassifier().apply(ctx)
    IntentClassifier().apply(ctx)

    assert [tag for tag in ctx.tags if tag.startswith("intent:")] == [f"intent:{ctx.intent.lower()}"]


def test_ranking_is_descending_and_bounded() -> None:
    rng = random.Random(7)
    retriever = KnowledgeRetriever(InMemoryDocumentStore(), HashingEmbedder())
    candidates = [
        KbCandidate(
            id=i,
            doc_type="blog",
            content=f"doc {i}",
            metadata={},
            embedding=[rng.uniform(-1, 1) for _ in range(rng.randint(0, 8))],
        )
        for i in range(120)
    ]

    for top_k in (None, 1, 3, 50, 500):
        query = [rng.uniform(-1, 1) for _ in range(6)]
        matches = retriever.rank(query, candidates, top_k)
        sims = [m.similarity for m in matches]
        assert sims == sorted(sims, reverse=True)
        assert len(matches) <= retriever.clamp_k(top_k)
        assert all(-1.0 - 1e-9 <= s <= 1.0 + 1e-9 for s in sims)
