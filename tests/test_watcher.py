"""
Tests for the vault watcher.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from vaultctx.exceptions import ReindexInProgressError
from vaultctx.models import IndexStats
from vaultctx.watcher import VaultChangeHandler, VaultWatcher, enumerate_watch_dirs


@pytest.fixture
def mock_reindexer(vault):
    reindexer = MagicMock()
    reindexer.vault_root = vault
    reindexer.skip_dirs = frozenset({".obsidian", ".git"})
    reindexer.suffixes = (".md",)
    reindexer.reindex_paths.return_value = IndexStats()
    return reindexer


@pytest.fixture
def clock():
    now = [0.0]
    return now


@pytest.fixture
def handler(mock_reindexer, clock):
    return VaultChangeHandler(mock_reindexer, debounce_seconds=2.0, clock=lambda: clock[0])


def modified(vault, rel):
    return FileModifiedEvent(str(vault / rel))


class TestEnumerateWatchDirs:
    """Test suite for watch directory enumeration."""

    def test_skips_configured_directories(self, vault):
        (vault / "notes" / ".git" / "objects").mkdir(parents=True)

        dirs = enumerate_watch_dirs(vault, {".obsidian", ".git"})

        assert dirs == sorted([vault, vault / "decisions", vault / "notes"])


class TestVaultChangeHandler:
    """Test suite for event coalescing and debouncing."""

    def test_events_coalesce_per_path(self, handler, mock_reindexer, vault):
        for _ in range(5):
            handler.on_modified(modified(vault, "notes/a.md"))
        handler.on_created(FileCreatedEvent(str(vault / "notes" / "c.md")))

        processed = handler.process_pending_changes(force=True)

        assert processed == 2
        mock_reindexer.reindex_paths.assert_called_once_with(["notes/a.md", "notes/c.md"])
        assert handler.pending == set()

    def test_ignores_non_notes_and_skipped_dirs(self, handler, vault):
        handler.on_modified(modified(vault, "notes/readme.txt"))
        handler.on_modified(modified(vault, ".obsidian/workspace.md"))
        handler.on_modified(FileModifiedEvent("/elsewhere/outside.md"))

        assert handler.pending == set()

    def test_debounce_waits_for_quiet_period(self, handler, mock_reindexer, vault, clock):
        handler.on_modified(modified(vault, "notes/a.md"))

        clock[0] = 1.0
        assert handler.process_pending_changes() == 0

        handler.on_modified(modified(vault, "notes/b.md"))
        clock[0] = 2.5
        assert handler.process_pending_changes() == 0
        mock_reindexer.reindex_paths.assert_not_called()

        clock[0] = 3.0
        assert handler.process_pending_changes() == 2

    def test_deletions_and_moves_are_queued(self, handler, vault):
        """Deleted and moved-away paths are handed to the reindexer too."""
        handler.on_deleted(FileDeletedEvent(str(vault / "notes" / "a.md")))
        handler.on_moved(FileMovedEvent(str(vault / "notes" / "b.md"), str(vault / "archive" / "b.md")))

        assert handler.pending == {"notes/a.md", "notes/b.md", "archive/b.md"}

    def test_change_callback(self, mock_reindexer, vault):
        seen = []
        handler = VaultChangeHandler(mock_reindexer, on_change=lambda path, kind: seen.append((path, kind)))

        handler.on_deleted(FileDeletedEvent(str(vault / "notes" / "a.md")))

        assert seen == [("notes/a.md", "deleted")]

    def test_busy_reindexer_requeues_batch(self, handler, mock_reindexer, vault):
        mock_reindexer.reindex_paths.side_effect = ReindexInProgressError("busy")
        handler.on_modified(modified(vault, "notes/a.md"))

        assert handler.process_pending_changes(force=True) == 1
        assert handler.pending == {"notes/a.md"}

    def test_change_during_reindex_stays_pending(self, handler, mock_reindexer, vault):
        """A path edited while its reindex is in flight is not processed twice at once."""
        nested = []

        def reindex_paths(paths):
            handler.on_modified(modified(vault, "notes/a.md"))
            nested.append(handler.process_pending_changes(force=True))
            return IndexStats()

        mock_reindexer.reindex_paths.side_effect = reindex_paths
        handler.on_modified(modified(vault, "notes/a.md"))

        handler.process_pending_changes(force=True)

        assert nested == [0]
        assert handler.pending == {"notes/a.md"}
        assert mock_reindexer.reindex_paths.call_count == 1

    def test_new_directories_reported(self, mock_reindexer, vault):
        created = []
        handler = VaultChangeHandler(mock_reindexer, on_directory_created=created.append)

        handler.on_created(DirCreatedEvent(str(vault / "projects")))
        handler.on_created(DirCreatedEvent(str(vault / ".obsidian" / "plugins")))

        assert created == [Path(vault / "projects")]


class TestVaultWatcher:
    """Test suite for VaultWatcher lifecycle."""

    def test_start_and_stop(self, reindexer, vault):
        watcher = VaultWatcher(reindexer, debounce_seconds=0.1, poll_interval=0.05)

        watcher.start(blocking=False)
        try:
            assert watcher.is_running
            assert watcher._watched == {vault, vault / "decisions", vault / "notes"}
        finally:
            watcher.stop()

        assert not watcher.is_running
        assert repr(watcher) == "VaultWatcher(stopped)"

    def test_missing_vault(self, reindexer, temp_dir):
        reindexer.vault_root = temp_dir / "missing"
        watcher = VaultWatcher(reindexer)

        with pytest.raises(ValueError):
            watcher.start(blocking=False)
