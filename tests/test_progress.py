"""
Tests for progress reporting.
"""

import threading
import time

from vaultctx.progress import ProgressEvent, ProgressQueue, ProgressReporter


class TestProgressReporter:
    """Test suite for ProgressReporter class."""

    def test_progress_reporter_initialization(self):
        """ProgressReporter initializes correctly."""
        reporter = ProgressReporter(total=100)

        assert reporter.total == 100
        assert reporter.current == 0
        assert reporter.callback is None

    def test_progress_reporter_update(self):
        """Progress reporter updates correctly."""
        reporter = ProgressReporter(total=10)

        event = reporter.update("notes/a.md")

        assert isinstance(event, ProgressEvent)
        assert event.current == 1
        assert event.total == 10
        assert event.path == "notes/a.md"
        assert event.elapsed_seconds >= 0

    def test_progress_reporter_eta_calculation(self):
        """Progress reporter calculates ETA correctly."""
        reporter = ProgressReporter(total=100)

        for i in range(10):
            reporter.update(f"note{i}.md")
            time.sleep(0.001)

        event = reporter.update("note10.md")

        assert event.eta_seconds is not None
        assert event.eta_seconds > 0
        assert event.docs_per_second > 0

    def test_current_never_exceeds_total(self):
        reporter = ProgressReporter(total=2)

        events = [reporter.update(f"{i}.md") for i in range(4)]

        assert [e.current for e in events] == [1, 2, 2, 2]

    def test_progress_callback(self):
        """Callback receives (current, total, path) for every update."""
        calls = []
        reporter = ProgressReporter(total=3, callback=lambda *args: calls.append(args))

        reporter.update("a.md")
        reporter.update("b.md")

        assert calls == [(1, 3, "a.md"), (2, 3, "b.md")]

    def test_callback_errors_are_swallowed(self):
        """A broken observer does not interrupt progress."""
        def broken(current, total, path):
            raise ValueError("observer failed")

        reporter = ProgressReporter(total=2, callback=broken)

        assert reporter.update("a.md").current == 1
        assert reporter.update("b.md").current == 2

    def test_format_eta_seconds(self):
        assert ProgressReporter.format_eta(45) == "45s"
        assert ProgressReporter.format_eta(0) == "0s"

    def test_format_eta_minutes(self):
        assert ProgressReporter.format_eta(150) == "2m 30s"

    def test_format_eta_hours(self):
        assert ProgressReporter.format_eta(4500) == "1h 15m"

    def test_format_eta_unknown(self):
        assert ProgressReporter.format_eta(None) == "unknown"

    def test_get_summary(self):
        reporter = ProgressReporter(total=10)
        for i in range(5):
            reporter.update(f"{i}.md")

        summary = reporter.get_summary()

        assert "5/10" in summary
        assert "docs/sec" in summary


class TestProgressQueue:
    """Test suite for the queue-backed observer."""

    def test_consumed_from_another_thread(self):
        updates = ProgressQueue()

        def produce():
            for i in range(1, 4):
                updates(i, 3, f"{i}.md")
            updates.close()

        thread = threading.Thread(target=produce)
        thread.start()
        received = list(updates)
        thread.join()

        assert received == [(1, 3, "1.md"), (2, 3, "2.md"), (3, 3, "3.md")]

    def test_get_after_close(self):
        updates = ProgressQueue()
        updates.close()

        assert updates.get(timeout=1) is None
