"""Strict validation of generated question arrays.

Second stage of response parsing: the JSON array text located by
``text_utils.extract_json_array`` is parsed and every element is checked
against the question schema before it becomes a ``Question``.
"""

import json
import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from .models import OPTIONS_PER_QUESTION, Question, normalize_answer

logger = logging.getLogger(__name__)


class ResponseFormatError(ValueError):
    """Base class for model output that cannot be turned into questions."""


class QuestionParseError(ResponseFormatError):
    """Raised when the extracted text is not a JSON array."""


class QuestionSchemaError(ResponseFormatError):
    """Raised when an array element does not match the question schema.

    Attributes:
        index: Zero-based position of the offending element
        field: Name of the missing or invalid field
        detail: What was wrong with it
    """

    def __init__(self, index: int, field: str, detail: str):
        self.index = index
        self.field = field
        self.detail = detail
        super().__init__(f"Question {index}: invalid '{field}': {detail}")


class CountMismatchError(ResponseFormatError):
    """Raised when the model returned an empty array."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} questions, got {actual}")


def _coerce_text(value: Any) -> Optional[str]:
    """Convert a scalar JSON value to trimmed text.

    Returns None for null, containers and anything else with no sensible
    text form.
    """
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _validate_item(index: int, item: Any) -> Question:
    """Check one parsed element and build a Question from it."""
    if not isinstance(item, dict):
        raise QuestionSchemaError(index, "item", "expected a JSON object")

    raw_text = item.get("question")
    if raw_text is not None and not isinstance(raw_text, str):
        raise QuestionSchemaError(index, "question", "expected a string")
    text = raw_text.strip() if raw_text else ""
    if not text:
        raise QuestionSchemaError(index, "question", "missing or empty")

    raw_options = item.get("options")
    if not isinstance(raw_options, list):
        raise QuestionSchemaError(index, "options", "missing or not an array")
    if len(raw_options) != OPTIONS_PER_QUESTION:
        raise QuestionSchemaError(
            index,
            "options",
            f"expected {OPTIONS_PER_QUESTION} entries, got {len(raw_options)}",
        )

    options: List[str] = []
    for position, raw_option in enumerate(raw_options):
        option = _coerce_text(raw_option)
        if not option:
            raise QuestionSchemaError(
                index, "options", f"entry {position} is empty or not a string"
            )
        options.append(option)

    if len({normalize_answer(option) for option in options}) != len(options):
        raise QuestionSchemaError(index, "options", "entries are not distinct")

    answer = _coerce_text(item.get("correctAnswer"))
    if not answer:
        raise QuestionSchemaError(index, "correctAnswer", "missing or empty")

    target = normalize_answer(answer)
    matched = next(
        (option for option in options if normalize_answer(option) == target), None
    )
    if matched is None:
        raise QuestionSchemaError(
            index, "correctAnswer", f"'{answer}' is not one of the options"
        )

    try:
        return Question(question=text, options=tuple(options), correct_answer=matched)
    except ValidationError as e:
        raise QuestionSchemaError(index, "item", str(e)) from e


def validate_questions(json_array_text: str, expected_count: int) -> List[Question]:
    """Parse and validate an extracted JSON array of questions.

    Receiving fewer items than ``expected_count`` is not an error; the
    shortfall is logged and left for the caller to account for. Any invalid
    element fails the whole array.

    Args:
        json_array_text: Substring located by ``extract_json_array``
        expected_count: Number of questions the prompt asked for

    Returns:
        Validated questions in the order the model returned them

    Raises:
        QuestionParseError: If the text is not valid JSON or not an array
        QuestionSchemaError: If an element violates the question schema
        CountMismatchError: If the array is empty
    """
    try:
        parsed = json.loads(json_array_text)
    except (TypeError, ValueError, RecursionError) as e:
        raise QuestionParseError(f"Invalid JSON: {e}") from e

    if not isinstance(parsed, list):
        raise QuestionParseError(
            f"Expected a JSON array, got {type(parsed).__name__}"
        )

    if not parsed:
        raise CountMismatchError(expected_count, 0)

    questions = [_validate_item(index, item) for index, item in enumerate(parsed)]

    if len(questions) < expected_count:
        logger.warning(
            f"Model returned {len(questions)}/{expected_count} questions"
        )

    return questions
