"""Batch planning for generation requests."""

from typing import List

from .models import Batch


class InvalidRequestError(ValueError):
    """Raised when caller input cannot be planned or generated."""


def _require_positive_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidRequestError(f"{name} must be a positive integer, got {value!r}")
    return value


def plan_batches(count: int, max_batch_size: int) -> List[Batch]:
    """Split a question count into bounded batches.

    Full batches of ``max_batch_size`` come first, followed by one remainder
    batch if the count does not divide evenly: count=12, max=5 -> [5, 5, 2].

    Args:
        count: Total number of questions requested
        max_batch_size: Largest number of questions per batch

    Returns:
        Batches in dispatch order

    Raises:
        InvalidRequestError: If either argument is not a positive integer
    """
    count = _require_positive_int("count", count)
    max_batch_size = _require_positive_int("max_batch_size", max_batch_size)

    full_batches, remainder = divmod(count, max_batch_size)
    sizes = [max_batch_size] * full_batches
    if remainder:
        sizes.append(remainder)

    return [Batch(index=i, size=size) for i, size in enumerate(sizes)]
