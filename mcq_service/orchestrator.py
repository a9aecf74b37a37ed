"""Batched question generation.

This module implements the orchestrator that answers a generation request
from the result cache or, on a miss, by driving planned batches through
prompt -> provider -> extraction -> validation one at a time.

Per request:
    LOOKUP -> HIT -> DONE
    LOOKUP -> MISS -> PLANNING -> BATCH_LOOP -> AGGREGATING -> CACHING -> DONE
    BATCH_LOOP -> ABORTED on a systemic failure (nothing cached)

Batch failures other than systemic ones contribute zero questions and the
loop moves on. A run that ends with at least one question succeeds, even if
it delivers fewer than requested.
"""

import logging
import time
from typing import Callable, List, Optional

from .cache import ResultCache
from .config import Settings
from .error_classifier import ClassifiedError, FailureReason
from .metrics import MetricsTracker
from .models import Batch, GenerationRequest, Question
from .planner import InvalidRequestError, plan_batches
from .prompts import build_generation_prompt
from .providers.base import BaseLLMProvider, LLMProviderError
from .text_utils import NoJsonFoundError, extract_json_array
from .validator import (
    CountMismatchError,
    QuestionSchemaError,
    ResponseFormatError,
    validate_questions,
)

logger = logging.getLogger(__name__)

# Defaults mirror Settings
DEFAULT_MAX_BATCH_SIZE = 5
DEFAULT_PACING_DELAY_SECONDS = 1.5
DEFAULT_CACHE_TTL_SECONDS = 30 * 60


class GenerationFailedError(Exception):
    """Raised when a request produced no questions or was aborted.

    Attributes:
        partial_count: Questions collected before the run ended
        reason: Failure that aborted the run, if it was aborted
        aborted: True if a systemic failure stopped the run early
        classified_error: Provider failure that aborted the run, if any
    """

    def __init__(
        self,
        partial_count: int,
        reason: Optional[FailureReason] = None,
        aborted: bool = False,
        detail: str = "",
        classified_error: Optional[ClassifiedError] = None,
    ):
        self.partial_count = partial_count
        self.reason = reason
        self.aborted = aborted
        self.detail = detail
        self.classified_error = classified_error
        if aborted:
            message = f"Generation aborted after {partial_count} questions"
        else:
            message = "Generation produced no valid questions"
        if reason is not None:
            message += f" ({reason.value})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


def _format_failure_reason(error: Exception) -> FailureReason:
    """Map a content failure onto its FailureReason."""
    if isinstance(error, NoJsonFoundError):
        return FailureReason.NO_JSON_FOUND
    if isinstance(error, QuestionSchemaError):
        return FailureReason.SCHEMA_ERROR
    if isinstance(error, CountMismatchError):
        return FailureReason.COUNT_MISMATCH
    return FailureReason.PARSE_ERROR


class GenerationOrchestrator:
    """Answers generation requests with cached or freshly generated questions.

    Batches within one request run strictly sequentially with a pacing delay
    between calls. Concurrent requests share only the cache and metrics.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        cache: Optional[ResultCache] = None,
        metrics: Optional[MetricsTracker] = None,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        pacing_delay_seconds: float = DEFAULT_PACING_DELAY_SECONDS,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        temperature: float = 0.7,
        max_output_tokens: int = 4096,
        max_questions_per_request: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            provider: Client for the generation API
            cache: Result cache (a private one is created if not provided)
            metrics: Metrics tracker (a private one is created if not provided)
            max_batch_size: Largest number of questions requested per call
            pacing_delay_seconds: Pause between successive batch calls
            cache_ttl_seconds: Lifetime of cached results
            temperature: Sampling temperature passed to the provider
            max_output_tokens: Output token cap passed to the provider
            max_questions_per_request: Upper bound on request.count (None = no cap)
            sleep: Sleep function used for pacing
        """
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be at least 1, got {max_batch_size}")
        if pacing_delay_seconds < 0:
            raise ValueError("pacing_delay_seconds must be non-negative")

        self.provider = provider
        self.cache = cache if cache is not None else ResultCache()
        self.metrics = metrics if metrics is not None else MetricsTracker()
        self.max_batch_size = max_batch_size
        self.pacing_delay_seconds = pacing_delay_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.max_questions_per_request = max_questions_per_request
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: BaseLLMProvider,
        cache: Optional[ResultCache] = None,
        metrics: Optional[MetricsTracker] = None,
    ) -> "GenerationOrchestrator":
        """Create an orchestrator configured from application settings."""
        return cls(
            provider=provider,
            cache=cache,
            metrics=metrics,
            max_batch_size=settings.max_batch_size,
            pacing_delay_seconds=settings.pacing_delay_seconds,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            temperature=settings.generation_temperature,
            max_output_tokens=settings.max_output_tokens,
            max_questions_per_request=settings.max_questions_per_request,
        )

    def run(self, request: GenerationRequest) -> List[Question]:
        """Return up to ``request.count`` questions for the request.

        Args:
            request: Topic, subtopic and number of questions

        Returns:
            Validated questions in batch order; may be fewer than requested

        Raises:
            InvalidRequestError: If the count exceeds the configured maximum
            GenerationFailedError: If no questions were produced, or a
                systemic failure aborted the run
        """
        if (
            self.max_questions_per_request is not None
            and request.count > self.max_questions_per_request
        ):
            raise InvalidRequestError(
                f"count must be at most {self.max_questions_per_request}, "
                f"got {request.count}"
            )

        self.metrics.record_request()
        fingerprint = request.fingerprint()
        log_extra = {"fingerprint": fingerprint[:12]}

        cached = self.cache.get(fingerprint)
        if cached is not None:
            self.metrics.record_cache_hit()
            logger.info(
                f"Cache hit for '{request.topic}/{request.sub_topic}' "
                f"x{request.count}: {len(cached.questions)} questions",
                extra=log_extra,
            )
            return cached.question_list()

        self.metrics.record_cache_miss()
        batches = plan_batches(request.count, self.max_batch_size)
        logger.info(
            f"Generating {request.count} questions on "
            f"'{request.topic}/{request.sub_topic}' in {len(batches)} batches: "
            f"{[b.size for b in batches]}",
            extra=log_extra,
        )

        collected: List[Question] = []
        for position, batch in enumerate(batches):
            if position > 0 and self.pacing_delay_seconds > 0:
                self._sleep(self.pacing_delay_seconds)

            try:
                questions = self._run_batch(request, batch)
            except LLMProviderError as e:
                classified = e.classified_error
                self.metrics.record_batch_failure(classified.reason)
                if classified.is_systemic:
                    logger.error(
                        f"Batch {batch.index + 1}/{len(batches)} failed with "
                        f"systemic error, aborting request: {classified}",
                        extra={**log_extra, "failure_reason": classified.reason.value},
                    )
                    self.metrics.record_run_failed(request.count, aborted=True)
                    raise GenerationFailedError(
                        partial_count=len(collected),
                        reason=classified.reason,
                        aborted=True,
                        detail=classified.message,
                        classified_error=classified,
                    ) from e
                logger.warning(
                    f"Batch {batch.index + 1}/{len(batches)} skipped: {classified}",
                    extra={**log_extra, "failure_reason": classified.reason.value},
                )
                continue
            except (NoJsonFoundError, ResponseFormatError) as e:
                reason = _format_failure_reason(e)
                self.metrics.record_batch_failure(reason)
                logger.warning(
                    f"Batch {batch.index + 1}/{len(batches)} skipped, "
                    f"unusable response: {e}",
                    extra={**log_extra, "failure_reason": reason.value},
                )
                continue

            self.metrics.record_batch_success(batch.size, len(questions))
            logger.info(
                f"Batch {batch.index + 1}/{len(batches)} produced "
                f"{len(questions)}/{batch.size} questions",
                extra={**log_extra, "batch_index": batch.index, "batch_size": batch.size},
            )
            collected.extend(questions)

        result = collected[: request.count]

        if not result:
            logger.error(
                f"No questions generated for '{request.topic}/{request.sub_topic}'",
                extra=log_extra,
            )
            self.metrics.record_run_failed(request.count, aborted=False)
            raise GenerationFailedError(partial_count=0)

        if len(result) < request.count:
            logger.warning(
                f"Returning partial result: {len(result)}/{request.count} questions",
                extra=log_extra,
            )

        self.cache.put(fingerprint, result, self.cache_ttl_seconds)
        self.metrics.record_run_complete(request.count, len(result))
        logger.info(
            f"Generation complete: {len(result)}/{request.count} questions",
            extra=log_extra,
        )
        return result

    def _run_batch(self, request: GenerationRequest, batch: Batch) -> List[Question]:
        """Run one batch through prompt, provider, extraction and validation.

        Raises:
            LLMProviderError: If the provider call fails
            NoJsonFoundError: If the response holds no JSON array
            ResponseFormatError: If the array fails validation
        """
        prompt = build_generation_prompt(request.topic, request.sub_topic, batch.size)
        raw_text = self.provider.generate_completion(
            prompt,
            temperature=self.temperature,
            max_tokens=self.max_output_tokens,
        )
        json_text = extract_json_array(raw_text)
        return validate_questions(json_text, batch.size)
