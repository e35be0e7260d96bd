"""Request validation, stages and the pipeline driver."""

from .driver import PipelineEvent, PipelineResult, PromptPipeline, build_stages
from .stages import Stage
from .validation import InputValidationError, PrepareRequest, ValidationService

__all__ = [
    "InputValidationError",
    "PipelineEvent",
    "PipelineResult",
    "PrepareRequest",
    "PromptPipeline",
    "Stage",
    "ValidationService",
    "build_stages",
]
