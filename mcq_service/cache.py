"""In-memory result cache with per-entry expiry.

Completed question lists are stored under the request fingerprint. Entries
expire after a TTL: a scheduled eviction removes them at ``expires_at``, and
any lookup at or after ``expires_at`` is a miss even if the eviction has not
fired yet. Data is lost on process restart.
"""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .models import CacheEntry, Question

logger = logging.getLogger(__name__)


class ScheduledTask(ABC):
    """Handle for a pending scheduled callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""
        pass


class Scheduler(ABC):
    """Runs callbacks after a delay."""

    @abstractmethod
    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run ``callback`` after ``delay`` seconds."""
        pass

    def shutdown(self) -> None:
        """Stop running callbacks."""
        pass


class _QueuedTask(ScheduledTask):
    def __init__(self, callback: Callable[[], None]):
        self._callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def run(self) -> None:
        if self.cancelled:
            return
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback failed")


class BackgroundScheduler(Scheduler):
    """Scheduler that runs callbacks on one daemon worker thread.

    Pending callbacks sit in a heap ordered by deadline, so the number of
    threads stays at one however many entries are waiting. The worker is
    started on the first ``schedule`` call.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._queue: List[Tuple[float, int, _QueuedTask]] = []
        self._sequence = itertools.count()
        self._condition = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = _QueuedTask(callback)
        deadline = self._clock() + max(delay, 0.0)
        with self._condition:
            if self._stopped:
                raise RuntimeError("Scheduler has been shut down")
            heapq.heappush(self._queue, (deadline, next(self._sequence), task))
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run, name="cache-eviction", daemon=True
                )
                self._thread.start()
            self._condition.notify()
        return task

    def pending(self) -> int:
        """Number of queued callbacks that have not been cancelled."""
        with self._condition:
            return sum(1 for _, _, task in self._queue if not task.cancelled)

    def shutdown(self) -> None:
        """Drop pending callbacks and stop the worker thread."""
        with self._condition:
            self._stopped = True
            self._queue.clear()
            self._condition.notify()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _next_due(self) -> Optional[_QueuedTask]:
        """Block until a callback is due; None once shut down."""
        with self._condition:
            while not self._stopped:
                if not self._queue:
                    self._condition.wait()
                    continue
                deadline, _, task = self._queue[0]
                if task.cancelled:
                    heapq.heappop(self._queue)
                    continue
                remaining = deadline - self._clock()
                if remaining > 0:
                    self._condition.wait(remaining)
                    continue
                heapq.heappop(self._queue)
                return task
            return None

    def _run(self) -> None:
        while True:
            task = self._next_due()
            if task is None:
                return
            task.run()
class ResultCache:
    """Fingerprint-keyed cache of generated question lists.

    All operations are thread-safe via a single lock. Entries are immutable,
    so a reader either sees a complete entry or none.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        """Initialize an empty cache.

        Args:
            clock: Returns the current time in seconds; expiry is measured on it
            scheduler: Runs eviction callbacks (a private BackgroundScheduler
                by default, shut down by ``close``)
        """
        self._clock = clock
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or BackgroundScheduler()
        self._entries: Dict[str, CacheEntry] = {}
        self._tasks: Dict[str, ScheduledTask] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._puts = 0
        self._evictions = 0

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        """Look up a live entry.

        Returns:
            The entry, or None if absent or expired
        """
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                self._remove_locked(fingerprint)
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def put(
        self,
        fingerprint: str,
        questions: Iterable[Question],
        ttl_seconds: float,
    ) -> CacheEntry:
        """Store questions under a fingerprint, replacing any existing entry.

        Args:
            fingerprint: Request fingerprint
            questions: Completed question list
            ttl_seconds: Lifetime of the entry

        Returns:
            The stored entry

        Raises:
            ValueError: If ttl_seconds is not positive
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        with self._lock:
            entry = CacheEntry(
                fingerprint=fingerprint,
                questions=tuple(questions),
                expires_at=self._clock() + ttl_seconds,
            )
            previous_task = self._tasks.pop(fingerprint, None)
            if previous_task is not None:
                previous_task.cancel()

            self._entries[fingerprint] = entry
            self._tasks[fingerprint] = self._scheduler.schedule(
                ttl_seconds, lambda: self._evict(fingerprint, entry)
            )
            self._puts += 1

        logger.debug(
            f"Cached {len(entry.questions)} questions for {fingerprint[:12]} "
            f"(ttl={ttl_seconds}s)"
        )
        return entry

    def _evict(self, fingerprint: str, entry: CacheEntry) -> None:
        """Scheduled eviction; a no-op if the entry was replaced meanwhile."""
        with self._lock:
            if self._entries.get(fingerprint) is not entry:
                return
            self._remove_locked(fingerprint)
        logger.debug(f"Evicted expired cache entry {fingerprint[:12]}")

    def _remove_locked(self, fingerprint: str) -> None:
        self._entries.pop(fingerprint, None)
        task = self._tasks.pop(fingerprint, None)
        if task is not None:
            task.cancel()
        self._evictions += 1

    def clear(self) -> None:
        """Remove all entries and cancel pending evictions."""
        with self._lock:
            count = len(self._entries)
            for task in self._tasks.values():
                task.cancel()
            self._tasks.clear()
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._puts = 0
            self._evictions = 0
        logger.info(f"Cleared {count} cached question lists")

    def close(self) -> None:
        """Cancel pending evictions and drop all entries."""
        self.clear()
        if self._owns_scheduler:
            self._scheduler.shutdown()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        """Presence check that ignores expiry and does not touch stats."""
        with self._lock:
            return fingerprint in self._entries

    def get_stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            hit_rate = self._hits / total if total > 0 else 0.0
            return {
                "backend": "in_memory",
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "puts": self._puts,
                "evictions": self._evictions,
                "hit_rate": hit_rate,
            }
