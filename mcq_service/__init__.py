"""Multiple-choice question generation service."""

from mcq_service.cache import ResultCache
from mcq_service.models import Batch, CacheEntry, GenerationRequest, Question
from mcq_service.orchestrator import GenerationFailedError, GenerationOrchestrator
from mcq_service.planner import InvalidRequestError, plan_batches

__version__ = "0.1.0"

__all__ = [
    "Batch",
    "CacheEntry",
    "GenerationFailedError",
    "GenerationOrchestrator",
    "GenerationRequest",
    "InvalidRequestError",
    "Question",
    "ResultCache",
    "plan_batches",
]
