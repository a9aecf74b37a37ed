"""Tests for the generation orchestrator."""

from unittest.mock import Mock, call

import pytest

from conftest import make_response_text, provider_error
from mcq_service.cache import ResultCache
from mcq_service.config import Settings
from mcq_service.error_classifier import ErrorClassifier, FailureReason
from mcq_service.metrics import MetricsTracker
from mcq_service.models import GenerationRequest
from mcq_service.orchestrator import GenerationFailedError, GenerationOrchestrator
from mcq_service.planner import InvalidRequestError
from mcq_service.providers.base import LLMProviderError


def _request(count: int = 7, topic: str = "Mathematics", sub_topic: str = "Algebra"):
    return GenerationRequest(topic=topic, sub_topic=sub_topic, count=count)


@pytest.fixture
def cache(fake_clock, manual_scheduler):
    """Cache driven by a fake clock and manual scheduler."""
    return ResultCache(clock=fake_clock, scheduler=manual_scheduler)


@pytest.fixture
def sleep():
    """Recorded sleep so tests never wait."""
    return Mock()


@pytest.fixture
def orchestrator(mock_provider, cache, sleep):
    """Orchestrator with default batch size and pacing."""
    return GenerationOrchestrator(
        provider=mock_provider,
        cache=cache,
        metrics=MetricsTracker(),
        max_batch_size=5,
        pacing_delay_seconds=1.5,
        cache_ttl_seconds=1800,
        sleep=sleep,
    )


class TestGenerationOrchestratorInit:
    """Tests for orchestrator construction."""

    def test_invalid_batch_size(self, mock_provider):
        """Test that a batch size below one is rejected."""
        with pytest.raises(ValueError, match="max_batch_size"):
            GenerationOrchestrator(provider=mock_provider, max_batch_size=0)

    def test_negative_pacing(self, mock_provider):
        """Test that a negative pacing delay is rejected."""
        with pytest.raises(ValueError, match="pacing_delay_seconds"):
            GenerationOrchestrator(provider=mock_provider, pacing_delay_seconds=-1)

    def test_from_settings(self, mock_provider):
        """Test that settings values are carried onto the orchestrator."""
        settings = Settings(
            max_batch_size=3,
            pacing_delay_seconds=0.25,
            cache_ttl_seconds=60,
            generation_temperature=0.2,
            max_output_tokens=1024,
            max_questions_per_request=20,
        )

        orchestrator = GenerationOrchestrator.from_settings(settings, mock_provider)

        assert orchestrator.provider is mock_provider
        assert orchestrator.max_batch_size == 3
        assert orchestrator.pacing_delay_seconds == 0.25
        assert orchestrator.cache_ttl_seconds == 60
        assert orchestrator.temperature == 0.2
        assert orchestrator.max_output_tokens == 1024
        assert orchestrator.max_questions_per_request == 20


class TestGenerationOrchestratorRun:
    """Tests for GenerationOrchestrator.run."""

    def test_all_batches_succeed(self, orchestrator, mock_provider):
        """Test that 7 questions are requested as batches of 5 and 2."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(5, start=1),
            make_response_text(2, start=6),
        ]

        questions = orchestrator.run(_request(7))

        assert len(questions) == 7
        assert [q.question for q in questions] == [
            f"What is {n} + {n}?" for n in range(1, 8)
        ]
        prompts = [c.args[0] for c in mock_provider.generate_completion.call_args_list]
        assert "Generate exactly 5 multiple choice questions" in prompts[0]
        assert "Generate exactly 2 multiple choice questions" in prompts[1]
        assert "Algebra" in prompts[0] and "Mathematics" in prompts[0]

    def test_provider_receives_generation_parameters(self, mock_provider, cache, sleep):
        """Test that temperature and token cap reach the provider."""
        orchestrator = GenerationOrchestrator(
            provider=mock_provider,
            cache=cache,
            temperature=0.3,
            max_output_tokens=2048,
            sleep=sleep,
        )
        mock_provider.generate_completion.return_value = make_response_text(1)

        orchestrator.run(_request(1))

        kwargs = mock_provider.generate_completion.call_args.kwargs
        assert kwargs == {"temperature": 0.3, "max_tokens": 2048}

    def test_pacing_between_batches(self, orchestrator, mock_provider, sleep):
        """Test that the pacing delay separates consecutive batch calls."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(5, start=1),
            make_response_text(5, start=6),
            make_response_text(2, start=11),
        ]

        orchestrator.run(_request(12))

        assert sleep.call_args_list == [call(1.5), call(1.5)]

    def test_single_batch_does_not_sleep(self, orchestrator, mock_provider, sleep):
        """Test that a one-batch request is not paced."""
        mock_provider.generate_completion.return_value = make_response_text(3)

        orchestrator.run(_request(3))

        sleep.assert_not_called()

    def test_zero_pacing_does_not_sleep(self, mock_provider, cache, sleep):
        """Test that a zero pacing delay skips the sleep call."""
        orchestrator = GenerationOrchestrator(
            provider=mock_provider,
            cache=cache,
            max_batch_size=1,
            pacing_delay_seconds=0,
            sleep=sleep,
        )
        mock_provider.generate_completion.side_effect = [
            make_response_text(1, start=1),
            make_response_text(1, start=2),
        ]

        orchestrator.run(_request(2))

        sleep.assert_not_called()

    def test_transient_failure_skips_batch(self, orchestrator, mock_provider, sleep):
        """Test that a rate-limited batch is skipped and order is kept."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(5, start=1),
            provider_error(429),
            make_response_text(2, start=11),
        ]

        questions = orchestrator.run(_request(12))

        assert len(questions) == 7
        assert [q.question for q in questions][:5] == [
            f"What is {n} + {n}?" for n in range(1, 6)
        ]
        assert [q.question for q in questions][5:] == [
            "What is 11 + 11?",
            "What is 12 + 12?",
        ]
        # Pacing still applies after a failed batch
        assert sleep.call_count == 2

    @pytest.mark.parametrize(
        "error",
        [
            provider_error(429),
            provider_error(500),
            LLMProviderError(ErrorClassifier.malformed_response("gemini", "no text")),
            LLMProviderError(
                ErrorClassifier.classify_error(TimeoutError("timed out"), "gemini")
            ),
            LLMProviderError(
                ErrorClassifier.classify_error(ConnectionError("refused"), "gemini")
            ),
        ],
    )
    def test_tolerated_provider_failures(self, orchestrator, mock_provider, error):
        """Test that non-systemic provider failures do not abort the run."""
        mock_provider.generate_completion.side_effect = [
            error,
            make_response_text(2, start=6),
        ]

        questions = orchestrator.run(_request(7))

        assert len(questions) == 2

    @pytest.mark.parametrize("status_code", [400, 401, 403])
    def test_systemic_failure_aborts(
        self, orchestrator, mock_provider, cache, status_code
    ):
        """Test that a systemic failure aborts and nothing is cached."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(5, start=1),
            provider_error(status_code),
            make_response_text(2, start=11),
        ]
        request = _request(12)

        with pytest.raises(GenerationFailedError) as exc_info:
            orchestrator.run(request)

        error = exc_info.value
        assert error.aborted is True
        assert error.partial_count == 5
        assert error.reason in (FailureReason.FORBIDDEN, FailureReason.BAD_REQUEST)
        assert error.classified_error.status_code == status_code
        assert error.classified_error.is_systemic is True
        assert mock_provider.generate_completion.call_count == 2
        assert cache.get(request.fingerprint()) is None

    def test_unusable_responses_skip_batches(self, mock_provider, cache, sleep):
        """Test that prose, bad JSON and bad items are each skipped."""
        orchestrator = GenerationOrchestrator(
            provider=mock_provider,
            cache=cache,
            max_batch_size=1,
            sleep=sleep,
        )
        mock_provider.generate_completion.side_effect = [
            "I'm sorry, I can't do that.",
            "[{'question': 'single quotes'}]",
            '[{"question": "Q?", "options": ["a", "b", "c"], "correctAnswer": "a"}]',
            "[]",
            make_response_text(1, start=5),
        ]

        questions = orchestrator.run(_request(5))

        assert [q.question for q in questions] == ["What is 5 + 5?"]
        failures = orchestrator.metrics.get_summary()["batches"]["failures_by_reason"]
        assert failures == {
            "no_json_found": 1,
            "parse_error": 1,
            "schema_error": 1,
            "count_mismatch": 1,
        }

    def test_deeply_nested_response_skips_batch(self, mock_provider, cache, sleep):
        """Test that a pathologically nested array is skipped like bad JSON."""
        orchestrator = GenerationOrchestrator(
            provider=mock_provider,
            cache=cache,
            max_batch_size=1,
            sleep=sleep,
        )
        mock_provider.generate_completion.side_effect = [
            "[" * 100000 + "]" * 100000,
            make_response_text(1, start=2),
        ]

        questions = orchestrator.run(_request(2))

        assert [q.question for q in questions] == ["What is 2 + 2?"]
        failures = orchestrator.metrics.get_summary()["batches"]["failures_by_reason"]
        assert failures == {"parse_error": 1}

    def test_all_batches_fail(self, orchestrator, mock_provider, cache):
        """Test that a run with zero questions fails and is not cached."""
        mock_provider.generate_completion.side_effect = [
            provider_error(429),
            "no json here",
        ]
        request = _request(7)

        with pytest.raises(GenerationFailedError) as exc_info:
            orchestrator.run(request)

        assert exc_info.value.partial_count == 0
        assert exc_info.value.aborted is False
        assert cache.get(request.fingerprint()) is None

    def test_over_delivery_truncated(self, orchestrator, mock_provider):
        """Test that extra questions from the model are dropped."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(6, start=1),
            make_response_text(3, start=7),
        ]

        questions = orchestrator.run(_request(7))

        assert len(questions) == 7
        assert questions[-1].question == "What is 7 + 7?"

    def test_under_delivery_returns_partial(self, orchestrator, mock_provider):
        """Test that fewer questions than requested are still returned."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(3, start=1),
            make_response_text(2, start=4),
        ]

        questions = orchestrator.run(_request(7))

        assert len(questions) == 5
        summary = orchestrator.metrics.get_summary()
        assert summary["runs"]["partial"] == 1
        assert summary["batches"]["shortfall"] == 2

    def test_count_above_maximum(self, mock_provider, cache, sleep):
        """Test that an oversized request is rejected before generation."""
        orchestrator = GenerationOrchestrator(
            provider=mock_provider,
            cache=cache,
            max_questions_per_request=10,
            sleep=sleep,
        )

        with pytest.raises(InvalidRequestError, match="at most 10"):
            orchestrator.run(_request(11))

        mock_provider.generate_completion.assert_not_called()
        assert orchestrator.metrics.get_summary()["requests"]["received"] == 0


class TestGenerationOrchestratorCaching:
    """Tests for cache behaviour across runs."""

    def test_cache_hit_skips_provider(self, orchestrator, mock_provider):
        """Test that a repeated request is served from the cache."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(5, start=1),
            make_response_text(2, start=6),
        ]
        first = orchestrator.run(_request(7))

        second = orchestrator.run(_request(7))

        assert second == first
        assert mock_provider.generate_completion.call_count == 2

    def test_cache_key_ignores_surrounding_whitespace(self, orchestrator, mock_provider):
        """Test that trimmed-equal requests share a cache entry."""
        mock_provider.generate_completion.return_value = make_response_text(2)
        orchestrator.run(_request(2))

        orchestrator.run(_request(2, topic="  Mathematics ", sub_topic="Algebra\n"))

        assert mock_provider.generate_completion.call_count == 1

    def test_different_count_is_a_miss(self, orchestrator, mock_provider):
        """Test that the count is part of the cache key."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(2, start=1),
            make_response_text(3, start=1),
        ]

        orchestrator.run(_request(2))
        questions = orchestrator.run(_request(3))

        assert len(questions) == 3
        assert mock_provider.generate_completion.call_count == 2

    def test_partial_result_is_cached(self, orchestrator, mock_provider):
        """Test that a partial success is cached like a full one."""
        mock_provider.generate_completion.side_effect = [
            provider_error(503),
            make_response_text(2, start=6),
        ]
        first = orchestrator.run(_request(7))

        second = orchestrator.run(_request(7))

        assert len(first) == 2
        assert second == first
        assert mock_provider.generate_completion.call_count == 2

    def test_expired_entry_regenerates(self, orchestrator, mock_provider, fake_clock):
        """Test that a request after the TTL calls the provider again."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(2, start=1),
            make_response_text(2, start=10),
        ]
        orchestrator.run(_request(2))
        fake_clock.advance(1800)

        questions = orchestrator.run(_request(2))

        assert questions[0].question == "What is 10 + 10?"
        assert mock_provider.generate_completion.call_count == 2

    def test_failed_run_not_cached(self, orchestrator, mock_provider):
        """Test that a failed run is retried on the next request."""
        mock_provider.generate_completion.side_effect = [
            "nothing useful",
            make_response_text(1),
        ]

        with pytest.raises(GenerationFailedError):
            orchestrator.run(_request(1))
        questions = orchestrator.run(_request(1))

        assert len(questions) == 1


class TestGenerationOrchestratorMetrics:
    """Tests for metrics recorded by the orchestrator."""

    def test_metrics_after_mixed_runs(self, orchestrator, mock_provider):
        """Test counters after a hit, a miss and an aborted run."""
        mock_provider.generate_completion.side_effect = [
            make_response_text(5, start=1),
            make_response_text(2, start=6),
            provider_error(403),
        ]
        orchestrator.run(_request(7))
        orchestrator.run(_request(7))
        with pytest.raises(GenerationFailedError):
            orchestrator.run(_request(3, sub_topic="Geometry"))

        summary = orchestrator.metrics.get_summary()

        assert summary["requests"]["received"] == 3
        assert summary["requests"]["cache_hits"] == 1
        assert summary["requests"]["cache_misses"] == 2
        assert summary["runs"]["completed"] == 1
        assert summary["runs"]["aborted"] == 1
        assert summary["batches"]["succeeded"] == 2
        assert summary["batches"]["failures_by_reason"] == {"forbidden": 1}


class TestGenerationFailedError:
    """Tests for GenerationFailedError messages."""

    def test_empty_run_message(self):
        """Test the message for a run with no questions."""
        assert str(GenerationFailedError(0)) == "Generation produced no valid questions"

    def test_aborted_message(self):
        """Test the message for an aborted run."""
        error = GenerationFailedError(
            5, reason=FailureReason.FORBIDDEN, aborted=True, detail="HTTP 403"
        )

        assert str(error) == "Generation aborted after 5 questions (forbidden): HTTP 403"
