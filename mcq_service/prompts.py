"""Prompt templates for question generation.

This module contains the prompt used to ask the model for a batch of
multiple-choice questions on a topic and subtopic.
"""

import json

from .models import OPTIONS_PER_QUESTION

# Worked example shown inline so the model copies the exact field names
EXAMPLE_QUESTION = {
    "question": "What is the capital of France?",
    "options": ["London", "Paris", "Berlin", "Madrid"],
    "correctAnswer": "Paris",
}

GENERATION_PROMPT_TEMPLATE = """Generate exactly {count} multiple choice {noun} about {sub_topic} in {topic}.

Each question must be a JSON object with exactly these fields:
- "question": the question text
- "options": an array of exactly {option_count} distinct answer options
- "correctAnswer": the correct option, copied verbatim from "options"

Exactly one option must be correct. The other options must be plausible but definitively wrong.

Format your answer exactly like this example, maintaining the exact structure:
{example}

Respond with ONLY a JSON array of {count} {noun}. Do not include any explanation, \
commentary or markdown code fences before or after the array."""


def build_generation_prompt(topic: str, sub_topic: str, batch_size: int) -> str:
    """Build the prompt for one batch of questions.

    Args:
        topic: Broad subject area (e.g. "Mathematics")
        sub_topic: Narrower focus within the topic (e.g. "Algebra")
        batch_size: Exact number of questions to request

    Returns:
        Prompt text

    Raises:
        ValueError: If batch_size is less than 1
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    return GENERATION_PROMPT_TEMPLATE.format(
        count=batch_size,
        noun="question" if batch_size == 1 else "questions",
        topic=topic,
        sub_topic=sub_topic,
        option_count=OPTIONS_PER_QUESTION,
        example=json.dumps([EXAMPLE_QUESTION], indent=2),
    )
