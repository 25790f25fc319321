"""
Progress reporting for vaultctx.

Tracks reindex progress at document granularity with ETA calculation, and
forwards (current, total, path) updates to an optional observer. Observers
never influence control flow: a failing callback is logged and ignored.
"""

import logging
import queue
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class ProgressEvent:
    """
    Event emitted during indexing progress.

    Attributes:
        current: Number of documents processed so far
        total: Total number of documents to process
        path: Vault-relative path of the document just processed
        elapsed_seconds: Time elapsed since start
        eta_seconds: Estimated time remaining (None if unknown)
        docs_per_second: Processing rate
    """
    current: int
    total: int
    path: str
    elapsed_seconds: float
    eta_seconds: Optional[float] = None
    docs_per_second: float = 0.0


class ProgressReporter:
    """
    Tracks and reports indexing progress with ETA calculation.

    Emits one (current, total, path) callback per processed document,
    where current is monotonically non-decreasing and never exceeds total.
    """

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None):
        """
        Initialize progress reporter.

        Args:
            total: Total number of documents to process
            callback: Optional observer called as callback(current, total, path)
        """
        self.total = total
        self.current = 0
        self.start_time = time.time()
        self.callback = callback

    def update(self, path: str) -> ProgressEvent:
        """
        Record that one more document has been processed.

        Args:
            path: Document that was just processed

        Returns:
            ProgressEvent with current statistics
        """
        self.current = min(self.current + 1, self.total)
        elapsed = time.time() - self.start_time

        docs_per_second = self.current / elapsed if elapsed > 0 else 0
        remaining = self.total - self.current
        eta = remaining / docs_per_second if docs_per_second > 0 else None

        event = ProgressEvent(
            current=self.current,
            total=self.total,
            path=path,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
            docs_per_second=docs_per_second,
        )

        if self.callback:
            try:
                self.callback(event.current, event.total, event.path)
            except Exception as e:
                logger.warning(f"Progress callback raised {type(e).__name__}: {e}")

        return event

    @staticmethod
    def format_eta(seconds: Optional[float]) -> str:
        """
        Format ETA in human-readable form.

        Args:
            seconds: Number of seconds (None if unknown)

        Returns:
            Formatted string like "2m 30s", "1h 15m", or "unknown"
        """
        if seconds is None:
            return "unknown"

        total_secs = int(seconds)
        minutes, secs = divmod(total_secs, 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        else:
            return f"{secs}s"

    def get_summary(self) -> str:
        """Human-readable progress summary."""
        elapsed = time.time() - self.start_time
        rate = self.current / elapsed if elapsed > 0 else 0
        return (
            f"Processed {self.current}/{self.total} documents "
            f"in {elapsed:.1f}s ({rate:.1f} docs/sec)"
        )


class ProgressQueue:
    """
    Progress observer that buffers updates in a thread-safe queue.

    Pass an instance as the progress callback of a reindex running in a
    worker thread and consume the (current, total, path) tuples from
    another thread. `close()` ends iteration.
    """

    _DONE = object()

    def __init__(self, maxsize: int = 0):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)

    def __call__(self, current: int, total: int, path: str) -> None:
        self._queue.put((current, total, path))

    def close(self) -> None:
        self._queue.put(self._DONE)

    def get(self, timeout: Optional[float] = None) -> Optional[tuple[int, int, str]]:
        """Next update, or None once closed."""
        item = self._queue.get(timeout=timeout)
        return None if item is self._DONE else item

    def __iter__(self) -> Iterator[tuple[int, int, str]]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item
