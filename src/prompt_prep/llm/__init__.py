"""Prompt rendering and generation backends."""

from .generator import ChatModelGenerator, ExtractiveGenerator, Generator
from .prompts import (
    CONTEXT_PLACEHOLDER,
    TemplateCatalog,
    assemble_final_prompt,
    ensure_context_placeholder,
    fill_context,
    render_user_prompt,
)

__all__ = [
    "CONTEXT_PLACEHOLDER",
    "ChatModelGenerator",
    "ExtractiveGenerator",
    "Generator",
    "TemplateCatalog",
    "assemble_final_prompt",
    "ensure_context_placeholder",
    "fill_context",
    "render_user_prompt",
]
