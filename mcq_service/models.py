"""Data models for MCQ generation."""

import hashlib
import json
from dataclasses import dataclass
from typing import List, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

OPTIONS_PER_QUESTION = 4


def normalize_answer(text: str) -> str:
    """Normalize text for answer comparison (collapsed whitespace, casefolded)."""
    return " ".join(text.split()).casefold()


class Question(BaseModel):
    """A validated multiple-choice question.

    Attributes:
        question: The question text
        options: Exactly four distinct answer options
        correct_answer: The option that answers the question
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question: str = Field(..., min_length=1)
    options: Tuple[str, ...] = Field(
        ..., min_length=OPTIONS_PER_QUESTION, max_length=OPTIONS_PER_QUESTION
    )
    correct_answer: str = Field(..., min_length=1, alias="correctAnswer")

    @field_validator("question", "correct_answer", mode="before")
    @classmethod
    def strip_text(cls, v):
        """Trim surrounding whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("options", mode="before")
    @classmethod
    def strip_options(cls, v):
        """Trim surrounding whitespace from every option."""
        if isinstance(v, (list, tuple)):
            return tuple(o.strip() if isinstance(o, str) else o for o in v)
        return v

    @field_validator("options")
    @classmethod
    def validate_options(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Ensure options are non-empty and distinct."""
        if any(not option for option in v):
            raise ValueError("options must not be empty")
        normalized = {normalize_answer(option) for option in v}
        if len(normalized) != len(v):
            raise ValueError("options must be distinct")
        return v

    @model_validator(mode="after")
    def validate_correct_answer(self) -> "Question":
        """Ensure correct_answer is one of the options."""
        target = normalize_answer(self.correct_answer)
        if not any(normalize_answer(option) == target for option in self.options):
            raise ValueError(
                f"correct_answer '{self.correct_answer}' must be one of the options"
            )
        return self

    def to_response(self) -> dict:
        """Serialize using the client wire names."""
        return {
            "question": self.question,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
        }


class GenerationRequest(BaseModel):
    """A request for ``count`` questions on a topic/subtopic."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    topic: str = Field(..., min_length=1)
    sub_topic: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("subTopic", "sub_topic"),
        serialization_alias="subTopic",
    )
    count: int = Field(
        ...,
        ge=1,
        validation_alias=AliasChoices("count", "numberOfQuestions"),
    )

    @field_validator("topic", "sub_topic", mode="before")
    @classmethod
    def strip_text(cls, v):
        """Trim surrounding whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v

    def fingerprint(self) -> str:
        """Deterministic cache key for this request.

        Returns:
            SHA-256 hex digest of the canonical (topic, subTopic, count) tuple
        """
        canonical = json.dumps(
            [self.topic, self.sub_topic, self.count],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Batch:
    """One bounded-size sub-request of a generation run."""

    index: int
    size: int


@dataclass(frozen=True)
class CacheEntry:
    """A completed question list held by the result cache."""

    fingerprint: str
    questions: Tuple[Question, ...]
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the entry has expired at ``now``."""
        return now >= self.expires_at

    def question_list(self) -> List[Question]:
        """Return the questions as a fresh list."""
        return list(self.questions)
