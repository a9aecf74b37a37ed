"""Shared text utility functions for the MCQ service.

Provides the lenient first stage of response parsing: locating the JSON
array inside free-form model output.
"""

import re

# A fenced block anywhere in the text, optionally tagged "json"
_FENCED_BLOCK = re.compile(r"```(?:json)?[ \t]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)


class NoJsonFoundError(ValueError):
    """Raised when model output contains no bracketed JSON array."""


def strip_markdown_code_blocks(text: str) -> str:
    """Strip markdown code blocks from text.

    LLMs often wrap JSON responses in markdown code blocks like:
    ```json
    [...]
    ```

    This function extracts the content from the first such block.

    Args:
        text: Raw text that may contain markdown code blocks

    Returns:
        Content of the first fenced block, or the stripped text if none found
    """
    if not text:
        return text

    stripped = text.strip()
    match = _FENCED_BLOCK.search(stripped)
    if match:
        return match.group(1).strip()

    return stripped


def extract_json_array(raw_text: str) -> str:
    """Isolate the JSON array substring in model output.

    Takes the content of a fenced block if there is one, then the span from
    the first ``[`` to the last ``]`` inclusive. Prose around the array is
    discarded; nothing here checks that the span is valid JSON.

    Args:
        raw_text: Free-form text returned by the model

    Returns:
        The outermost bracketed substring

    Raises:
        NoJsonFoundError: If no ``[`` ... ``]`` pair exists
    """
    if raw_text is None:
        raise NoJsonFoundError("Response text is empty")

    candidates = [strip_markdown_code_blocks(raw_text), raw_text.strip()]

    # Fenced content first; whole text when the fence held no array
    for text in candidates:
        start = text.find("[")
        end = text.rfind("]")
        if start != -1 and end > start:
            return text[start : end + 1]

    raise NoJsonFoundError("No JSON array found in response text")
