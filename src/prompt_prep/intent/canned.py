"""Fixed replies for greetings, self-introductions and navigation requests."""

from __future__ import annotations

import re
from dataclasses import dataclass

from prompt_prep.text.fences import HAN_CHAR
from prompt_prep.types import INTENT_GREETING

# Longer messages carry a real question even when they open with "hi".
_MAX_CASUAL_WORDS = 8

_EN_GREETING = re.compile(r"\b(hi|hello|hey|greetings|howdy|hola|sup)\b")
_EN_GREETING_PHRASES = (
    "hi there",
    "hello there",
    "hey there",
    "good morning",
    "good afternoon",
    "good evening",
    "good day",
    "what's up",
)
_EN_INTRO_PHRASES = (
    "who are you",
    "what are you",
    "what's your name",
    "what is your name",
    "what can you do",
    "what do you do",
    "what do you offer",
    "introduce yourself",
    "tell me about yourself",
    "what can u do",
    "how can you help",
    "what are your capabilities",
    "what can you help with",
    "what can you help me with",
    "can you introduce yourself",
)
_EN_NAV_HINTS = (
    "section",
    "project",
    "blog",
    "experience",
    "about",
    "portfolio",
    "navigate",
    "navigation",
    "menu",
    "links",
    "contact",
)
_ZH_GREETINGS = ("你好", "您好", "嗨", "早上好", "晚上好", "下午好")
_ZH_INTROS = ("你是谁", "你叫什么", "自我介绍", "介绍一下", "能做什么", "可以帮", "能帮", "你是做什么的")
_ZH_NAVIGATION = ("导航", "帮助", "去哪", "在哪", "哪里", "怎么找", "目录", "菜单", "链接")


@dataclass(slots=True, frozen=True)
class CannedReply:
    language: str
    message: str


class CannedResponder:
    """Matches casual messages that need no retrieval or generation."""

    def __init__(self, assistant_name: str = "Assistant") -> None:
        self.assistant_name = assistant_name

    def reply_for(self, text: str | None, *, intent: str, language_code: str) -> CannedReply | None:
        if not text or not text.strip():
            return None
        lower = text.strip().lower()
        chinese = HAN_CHAR.search(lower) is not None or language_code.lower().startswith("zh")

        if intent == INTENT_GREETING:
            return self._greeting(chinese)
        if chinese:
            return self._match_chinese(lower)
        if len(lower.split()) > _MAX_CASUAL_WORDS:
            return None
        return self._match_english(lower)

    def _match_chinese(self, lower: str) -> CannedReply | None:
        if len(lower) > _MAX_CASUAL_WORDS * 2:
            return None
        if any(p in lower for p in _ZH_GREETINGS):
            return self._greeting(True)
        if any(p in lower for p in _ZH_INTROS):
            return CannedReply(
                "zh",
                f"我是 {self.assistant_name}，一个 AI 助手，可以介绍背景、项目、经历和技术博客。"
                "告诉我你想了解哪一部分吧！",
            )
        if any(p in lower for p in _ZH_NAVIGATION):
            return CannedReply(
                "zh",
                '导航：<a href="/#about">关于</a>｜<a href="/#experience">经历</a>｜'
                '<a href="/#projects">项目</a>｜<a href="/#blog">技术博客</a>',
            )
        return None

    def _match_english(self, lower: str) -> CannedReply | None:
        if any(p in lower for p in _EN_INTRO_PHRASES):
            return CannedReply(
                "en",
                f"I'm {self.assistant_name}, an AI assistant. I can walk you through my background, "
                "key projects, experience and tech blogs. What would you like to explore?",
            )
        if _EN_GREETING.search(lower) or any(p in lower for p in _EN_GREETING_PHRASES):
            return self._greeting(False)
        if "help" in lower or ("where" in lower and any(h in lower for h in _EN_NAV_HINTS)):
            return CannedReply(
                "en",
                'Need a hand? Sections: <a href="/#about">About</a> | <a href="/#projects">Projects</a> | '
                '<a href="/#blog">Tech Blogs</a> | <a href="/#experience">Experience</a>',
            )
        return None

    def _greeting(self, chinese: bool) -> CannedReply:
        if chinese:
            return CannedReply(
                "zh",
                f"你好！我是 {self.assistant_name}，可以带你了解介绍、项目、经历和技术博客。需要我怎么帮你？",
            )
        return CannedReply(
            "en",
            f"Hi there! I'm {self.assistant_name}, your AI assistant. I can point you to my background, "
            "showcase projects, or chat through blog posts and experience.",
        )
