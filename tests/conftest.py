"""Pytest configuration and shared fixtures for MCQ service tests."""

import json
from typing import Callable, List, Tuple
from unittest.mock import Mock

import pytest

from mcq_service.cache import ScheduledTask, Scheduler
from mcq_service.error_classifier import ErrorClassifier
from mcq_service.providers.base import BaseLLMProvider, LLMProviderError


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTask(ScheduledTask):
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler that only runs callbacks when a test says so."""

    def __init__(self):
        self.tasks: List[ManualTask] = []

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ManualTask(delay, callback)
        self.tasks.append(task)
        return task

    def run_pending(self) -> None:
        """Run every task that has not been cancelled."""
        for task in list(self.tasks):
            if not task.cancelled:
                task.callback()


def make_question_dict(n: int) -> dict:
    """Build one raw question object as the model would return it."""
    return {
        "question": f"What is {n} + {n}?",
        "options": [str(2 * n - 1), str(2 * n), str(2 * n + 1), str(2 * n + 2)],
        "correctAnswer": str(2 * n),
    }


def make_response_text(count: int, start: int = 1, prose: bool = True) -> str:
    """Build a model response holding ``count`` questions."""
    array = json.dumps([make_question_dict(start + i) for i in range(count)])
    if prose:
        return f"Here are your questions:\n{array}\nGood luck!"
    return array


def provider_error(status_code: int) -> LLMProviderError:
    """Build the error a provider raises for an HTTP status."""
    return LLMProviderError(ErrorClassifier.classify_status(status_code, "gemini"))


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fixture providing a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    """Fixture providing a scheduler driven by the test."""
    return ManualScheduler()


@pytest.fixture
def mock_provider() -> Mock:
    """Fixture providing a mocked LLM provider."""
    provider = Mock(spec=BaseLLMProvider)
    provider.model = "gemini-test"
    return provider


@pytest.fixture
def mock_gemini_api_key() -> str:
    """Fixture providing a mock Gemini API key for testing."""
    return "test-gemini-api-key-12345"


@pytest.fixture
def sample_questions_payload() -> Tuple[dict, ...]:
    """Fixture providing three raw question objects."""
    return tuple(make_question_dict(n) for n in range(1, 4))
