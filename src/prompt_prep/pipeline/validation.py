"""Request model and pre-pipeline validators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from pydantic import BaseModel, Field

from prompt_prep.llm.prompts import ensure_context_placeholder


class InputValidationError(ValueError):
    """Raised before the pipeline starts when the request cannot be processed."""


class PrepareRequest(BaseModel):
    query: str
    user_id: str | None = None
    session_id: str | None = None
    char_limit: int | None = Field(default=None, ge=1)
    system_prompt: str | None = None


@dataclass(slots=True)
class ValidationContext:
    raw_input: str
    processed_input: str
    system_prompt: str | None = None
    notices: list[str] = field(default_factory=list)


class Validator(Protocol):
    def validate(self, context: ValidationContext) -> None:
        """Check or amend the request; raise `InputValidationError` to reject it."""


class NotBlankValidator:
    def validate(self, context: ValidationContext) -> None:
        if not context.processed_input or not context.processed_input.strip():
            raise InputValidationError("query must not be blank")


class MaxCharsValidator:
    """Truncates over-long input and leaves a notice."""

    def __init__(self, max_chars: int = 8000) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars

    def validate(self, context: ValidationContext) -> None:
        if len(context.processed_input) <= self.max_chars:
            return
        context.processed_input = context.processed_input[: self.max_chars]
        context.notices.append(
            f"Input truncated to {self.max_chars} characters to satisfy platform limits."
        )


class ContextPlaceholderValidator:
    """Makes a caller-supplied system prompt carry the `{{CONTEXT}}` slot."""

    def validate(self, context: ValidationContext) -> None:
        if context.system_prompt is None:
            return
        context.system_prompt, injected = ensure_context_placeholder(context.system_prompt)
        if injected:
            context.notices.append("Injected missing {{CONTEXT}} placeholder into system prompt.")


class ValidationService:
    """Runs validators in order; the first rejection aborts the request."""

    def __init__(self, validators: list[Validator] | None = None, *, max_chars: int = 8000) -> None:
        self.validators = (
            validators
            if validators is not None
            else [NotBlankValidator(), MaxCharsValidator(max_chars), ContextPlaceholderValidator()]
        )

    def validate(self, raw_input: str | None, system_prompt: str | None = None) -> ValidationContext:
        context = ValidationContext(
            raw_input=raw_input or "",
            processed_input=raw_input or "",
            system_prompt=system_prompt,
        )
        for validator in self.validators:
            validator.validate(context)
        return context
