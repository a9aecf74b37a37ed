"""Metrics tracking for MCQ generation.

This module provides an in-process tracker for generation requests, cache
usage and per-batch outcomes, summarised for the stats endpoint.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .error_classifier import FailureReason

logger = logging.getLogger(__name__)


class MetricsTracker:
    """Tracks metrics for generation runs.

    All recording methods are thread-safe; concurrent requests share one
    tracker.
    """

    def __init__(self):
        """Initialize metrics tracker."""
        self._lock = threading.Lock()
        self.reset()
        logger.debug("MetricsTracker initialized")

    def reset(self) -> None:
        """Reset all metrics to initial state."""
        with self._lock:
            self.start_time: datetime = datetime.now(timezone.utc)
            self.last_run_time: Optional[datetime] = None

            # Request metrics
            self.requests_received = 0
            self.cache_hits = 0
            self.cache_misses = 0
            self.runs_completed = 0
            self.partial_runs = 0
            self.runs_failed = 0
            self.runs_aborted = 0

            # Question metrics
            self.questions_requested = 0
            self.questions_delivered = 0

            # Batch metrics
            self.batches_attempted = 0
            self.batches_succeeded = 0
            self.batch_shortfall = 0
            self.batch_failures_by_reason: Dict[str, int] = defaultdict(int)

    def record_request(self) -> None:
        """Record an incoming generation request."""
        with self._lock:
            self.requests_received += 1

    def record_cache_hit(self) -> None:
        """Record a request answered from the result cache."""
        with self._lock:
            self.cache_hits += 1

    def record_cache_miss(self) -> None:
        """Record a request that had to be generated."""
        with self._lock:
            self.cache_misses += 1

    def record_batch_success(self, requested: int, delivered: int) -> None:
        """Record a batch that produced validated questions.

        Args:
            requested: Questions asked for in the batch
            delivered: Questions the batch actually yielded
        """
        with self._lock:
            self.batches_attempted += 1
            self.batches_succeeded += 1
            self.batch_shortfall += max(requested - delivered, 0)

    def record_batch_failure(self, reason: FailureReason) -> None:
        """Record a batch that contributed no questions.

        Args:
            reason: Why the batch failed
        """
        with self._lock:
            self.batches_attempted += 1
            self.batch_failures_by_reason[reason.value] += 1

    def record_run_complete(self, requested: int, delivered: int) -> None:
        """Record a successful (possibly partial) generation run."""
        with self._lock:
            self.runs_completed += 1
            if delivered < requested:
                self.partial_runs += 1
            self.questions_requested += requested
            self.questions_delivered += delivered
            self.last_run_time = datetime.now(timezone.utc)

    def record_run_failed(self, requested: int, aborted: bool) -> None:
        """Record a run that ended in GenerationFailed.

        Args:
            requested: Questions asked for
            aborted: True if a systemic failure stopped the run early
        """
        with self._lock:
            self.runs_failed += 1
            if aborted:
                self.runs_aborted += 1
            self.questions_requested += requested
            self.last_run_time = datetime.now(timezone.utc)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics.

        Returns:
            Dictionary of counters grouped by concern
        """
        with self._lock:
            lookups = self.cache_hits + self.cache_misses
            fulfillment = (
                self.questions_delivered / self.questions_requested
                if self.questions_requested
                else 0.0
            )
            return {
                "started_at": self.start_time.isoformat(),
                "last_run_at": (
                    self.last_run_time.isoformat() if self.last_run_time else None
                ),
                "requests": {
                    "received": self.requests_received,
                    "cache_hits": self.cache_hits,
                    "cache_misses": self.cache_misses,
                    "cache_hit_rate": self.cache_hits / lookups if lookups else 0.0,
                },
                "runs": {
                    "completed": self.runs_completed,
                    "partial": self.partial_runs,
                    "failed": self.runs_failed,
                    "aborted": self.runs_aborted,
                },
                "questions": {
                    "requested": self.questions_requested,
                    "delivered": self.questions_delivered,
                    "fulfillment_rate": fulfillment,
                },
                "batches": {
                    "attempted": self.batches_attempted,
                    "succeeded": self.batches_succeeded,
                    "shortfall": self.batch_shortfall,
                    "failures_by_reason": dict(self.batch_failures_by_reason),
                },
            }
