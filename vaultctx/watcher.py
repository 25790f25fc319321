"""
File system watcher for vaultctx.

Monitors the vault's directories for note changes and feeds them to the
Reindexer once the vault has been quiet for the debounce period.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Optional
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import ReindexInProgressError
from .indexer import Reindexer
from .vault import has_suffix, is_skipped, relative_path, walk_vault_dirs

logger = logging.getLogger(__name__)


def enumerate_watch_dirs(vault_root: Path, skip_dirs: Iterable[str]) -> list[Path]:
    """Directories to watch: every vault directory not named in skip_dirs."""
    return walk_vault_dirs(vault_root, skip_dirs)


class VaultChangeHandler(FileSystemEventHandler):
    """
    Event handler for note changes.

    Events are coalesced into a set of pending vault-relative paths. Once no
    event has arrived for debounce_seconds the pending paths are handed to
    the Reindexer in one incremental run. A path that changes again while
    its reindex is in flight simply becomes pending again.
    """

    def __init__(
        self,
        reindexer: Reindexer,
        debounce_seconds: float = 2.0,
        on_change: Optional[Callable[[str, str], None]] = None,
        on_directory_created: Optional[Callable[[Path], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the change handler.

        Args:
            reindexer: Reindexer that processes batches of changed notes
            debounce_seconds: Quiet period before pending changes are processed
            on_change: Optional callback(path, event_type) per queued event
            on_directory_created: Called with new, non-skipped directories
            clock: Monotonic time source
        """
        super().__init__()
        self.reindexer = reindexer
        self.vault_root = reindexer.vault_root
        self.skip_dirs = reindexer.skip_dirs
        self.suffixes = reindexer.suffixes
        self.debounce_seconds = debounce_seconds
        self.on_change = on_change
        self.on_directory_created = on_directory_created
        self._clock = clock

        self._lock = threading.Lock()
        self._pending: set[str] = set()
        self._in_flight: set[str] = set()
        self._last_event_time = 0.0

    @property
    def pending(self) -> set[str]:
        with self._lock:
            return set(self._pending)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        if not event.is_directory:
            self._queue_change(event.src_path, "modified")

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file and directory creation events."""
        if event.is_directory:
            self._directory_created(event.src_path)
            return
        self._queue_change(event.src_path, "created")

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file deletion events."""
        if not event.is_directory:
            self._queue_change(event.src_path, "deleted")

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moves as a deletion of the source and a change at the destination."""
        if event.is_directory:
            self._directory_created(event.dest_path)
            return
        self._queue_change(event.src_path, "deleted")
        self._queue_change(event.dest_path, "created")

    def _directory_created(self, path) -> None:
        try:
            rel = relative_path(self.vault_root, str(path))
        except ValueError:
            return
        if any(part in self.skip_dirs for part in rel.split("/")):
            return
        if self.on_directory_created:
            self.on_directory_created(Path(path))

    def _queue_change(self, path, event_type: str) -> None:
        """
        Queue a note change for processing.

        Args:
            path: Absolute path reported by watchdog
            event_type: Type of event (modified, created, deleted)
        """
        try:
            rel = relative_path(self.vault_root, str(path))
        except ValueError:
            return
        if not has_suffix(rel, self.suffixes) or is_skipped(rel, self.skip_dirs):
            return

        with self._lock:
            self._pending.add(rel)
            self._last_event_time = self._clock()

        logger.debug(f"Queued {event_type} event for {rel}")
        if self.on_change:
            self.on_change(rel, event_type)

    def process_pending_changes(self, force: bool = False) -> int:
        """
        Reindex pending notes if the debounce period has elapsed.

        Called periodically by the watch loop. Paths whose previous reindex
        is still in flight stay pending. If another reindex (for example a
        full rebuild) holds the Reindexer, the batch is requeued.

        Args:
            force: Ignore the debounce period

        Returns:
            Number of paths handed to the Reindexer
        """
        with self._lock:
            if not self._pending:
                return 0
            if not force and self._clock() - self._last_event_time < self.debounce_seconds:
                return 0
            batch = sorted(self._pending - self._in_flight)
            if not batch:
                return 0
            self._pending.difference_update(batch)
            self._in_flight.update(batch)

        logger.info(f"Processing {len(batch)} changed notes")
        try:
            stats = self.reindexer.reindex_paths(batch)
            if stats.lite_mode:
                logger.warning("Watcher indexed changes without vectors (embedding provider unavailable)")
        except ReindexInProgressError:
            logger.info("Reindex already running; will retry pending changes")
            with self._lock:
                self._pending.update(batch)
        finally:
            with self._lock:
                self._in_flight.difference_update(batch)
        return len(batch)


class VaultWatcher:
    """
    File system watcher for a vault.

    Schedules a non-recursive watchdog watch on every non-skipped directory
    (and on directories created later), and drives the handler's debounce
    loop until stopped.
    """

    def __init__(self, reindexer: Reindexer, debounce_seconds: float = 2.0, poll_interval: float = 0.2):
        """
        Initialize the watcher.

        Args:
            reindexer: Reindexer used for incremental updates
            debounce_seconds: Quiet period before changes are processed
            poll_interval: Seconds between checks of the pending set
        """
        self.reindexer = reindexer
        self.debounce_seconds = debounce_seconds
        self.poll_interval = poll_interval
        self.observer: Optional[Observer] = None
        self.handler: Optional[VaultChangeHandler] = None
        self._watched: set[Path] = set()
        self._stop = threading.Event()

    def _watch(self, directory: Path) -> None:
        if directory in self._watched or self.observer is None:
            return
        self.observer.schedule(self.handler, str(directory), recursive=False)
        self._watched.add(directory)
        logger.debug(f"Watching {directory}")

    def _watch_tree(self, directory: Path) -> None:
        for sub in enumerate_watch_dirs(directory, self.reindexer.skip_dirs):
            self._watch(sub)

    def start(self, on_change: Optional[Callable[[str, str], None]] = None, blocking: bool = True) -> None:
        """
        Start watching the vault.

        Args:
            on_change: Optional callback(path, event_type) for change notifications
            blocking: Run the processing loop in this thread until stop()
        """
        if self.observer is not None:
            logger.warning("Watcher is already running")
            return

        root = self.reindexer.vault_root
        if not root.is_dir():
            raise ValueError(f"Vault is not a directory: {root}")

        self.handler = VaultChangeHandler(
            self.reindexer,
            debounce_seconds=self.debounce_seconds,
            on_change=on_change,
            on_directory_created=self._watch_tree,
        )
        self.observer = Observer()
        self._stop.clear()
        self._watch_tree(root)
        self.observer.start()
        logger.info(f"Watching {len(self._watched)} directories under {root}")

        if blocking:
            self.run()

    def run(self) -> None:
        """Process pending changes until stop() is called."""
        try:
            while not self._stop.wait(self.poll_interval):
                if self.handler:
                    self.handler.process_pending_changes()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the watcher."""
        self._stop.set()
        if self.observer is None:
            return

        logger.info("Stopping file watcher")
        self.observer.stop()
        self.observer.join()
        self.observer = None
        self._watched.clear()
        self.handler = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        """Check if the watcher is currently running."""
        return self.observer is not None

    def __repr__(self) -> str:
        """String representation."""
        status = "running" if self.is_running else "stopped"
        return f"VaultWatcher({status})"
