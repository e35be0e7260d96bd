"""Answer generation backends."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

_CONTEXT_LINE = re.compile(r"^\[(?P<idx>\d+)\]\s+\((?P<source>[^)]+)\)\s+(?P<body>.+)$")

NO_EVIDENCE_ANSWER = "I couldn't find verifiable evidence in the knowledge base for this question."


class Generator(ABC):
    """Produces an answer from a rendered system prompt and user prompt."""

    name: str = "generator"

    @abstractmethod
    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Return the complete answer."""

    async def stream(self, system_prompt: str, user_prompt: str) -> AsyncIterator[str]:
        """Yield answer chunks; the default yields the whole answer once."""
        yield await self.generate(system_prompt, user_prompt)


class ChatModelGenerator(Generator):
    """Runs a langchain-core chat model behind a system/human prompt."""

    name = "langchain"

    def __init__(self, llm: Any) -> None:
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", "{system_prompt}"),
                ("human", "{user_prompt}"),
            ]
        )
        self.llm = llm
        self.chain = prompt | llm | StrOutputParser()

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        return await self.chain.ainvoke({"system_prompt": system_prompt, "user_prompt": user_prompt})

    async def stream(self, system_prompt: str, user_prompt: str) -> AsyncIterator[str]:
        async for chunk in self.chain.astream(
            {"system_prompt": system_prompt, "user_prompt": user_prompt}
        ):
            if chunk:
                yield chunk


class ExtractiveGenerator(Generator):
    """Answers from the `[Context]` snippets without any model call.

    Used for local/offline runs where `OPENAI_API_KEY` is not configured. The
    answer lists up to `max_snippets` context entries with their sources.
    """

    name = "extractive"

    def __init__(self, max_snippets: int = 3) -> None:
        self.max_snippets = max_snippets

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        del user_prompt  # the context block already reflects the question.
        return _build_answer(_parse_context(system_prompt)[: self.max_snippets])


def _parse_context(system_prompt: str) -> list[tuple[str, str]]:
    snippets: list[tuple[str, str]] = []
    for line in system_prompt.splitlines():
        match = _CONTEXT_LINE.match(line.strip())
        if match:
            source = match.group("source").split(",", 1)[0].strip()
            snippets.append((source, match.group("body").strip()))
    return snippets


def _build_answer(snippets: list[tuple[str, str]]) -> str:
    if not snippets:
        return NO_EVIDENCE_ANSWER
    return "\n".join(
        f"{idx}. {body} [{source}]" for idx, (source, body) in enumerate(snippets, start=1)
    )
