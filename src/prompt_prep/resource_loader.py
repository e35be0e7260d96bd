"""Locates and decodes the bundled (or overridden) JSON resources."""

from __future__ import annotations

import logging
import os
from importlib import resources
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

INTENT_RULES_ENV = "PROMPT_PREP_INTENT_RULES"
LEXICON_ENV = "PROMPT_PREP_LEXICON"
INDEX_TERMS_ENV = "PROMPT_PREP_INDEX_TERMS"
TEMPLATES_ENV = "PROMPT_PREP_TEMPLATES"


def read_resource_text(env_var: str, default_name: str, override: str | Path | None = None) -> str:
    """Read a resource from an explicit path, the env override, or the bundle."""

    location = override or os.getenv(env_var)
    if location:
        return Path(location).read_text(encoding="utf-8")
    return resources.files("prompt_prep").joinpath("resources", default_name).read_text(
        encoding="utf-8"
    )


def load_resource(
    model: type[ModelT],
    *,
    env_var: str,
    default_name: str,
    override: str | Path | None = None,
) -> ModelT | None:
    """Decode and validate a JSON resource; `None` when missing or malformed."""

    try:
        payload = read_resource_text(env_var, default_name, override)
        return model.model_validate_json(payload)
    except (OSError, ValidationError) as exc:
        logger.warning(
            "Resource %s unavailable (%s); continuing with an empty set",
            override or os.getenv(env_var) or default_name,
            exc.__class__.__name__,
        )
        return None
