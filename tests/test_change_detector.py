"""
Tests for content-hash change detection.
"""

import pytest

from vaultctx.change_detector import ChangeDetector
from vaultctx.models import ChangeKind, Document, NoteRecord
from vaultctx.store.memory import MemoryStore


def stored(path: str, content_hash: str) -> NoteRecord:
    return NoteRecord(
        path=path, title=path, chunk_ordinal=0, heading="(full)",
        text="text", content_hash=content_hash,
    )


class TestChangeDetector:
    """Test suite for ChangeDetector."""

    def test_classify(self):
        """Notes are new, unchanged or changed relative to the stored hash."""
        doc = Document.from_text("a.md", "hello\n")

        assert ChangeDetector.classify(doc, None) == ChangeKind.NEW
        assert ChangeDetector.classify(doc, doc.content_hash) == ChangeKind.UNCHANGED
        assert ChangeDetector.classify(doc, "0" * 64) == ChangeKind.CHANGED

    def test_classify_missing_note(self):
        """A note gone from disk is deleted only if it was indexed."""
        assert ChangeDetector.classify(None, "0" * 64) == ChangeKind.DELETED

        with pytest.raises(ValueError):
            ChangeDetector.classify(None, None)

    def test_modification_time_is_ignored(self):
        """Touching a note without editing it does not count as a change."""
        old = Document.from_text("a.md", "same\n", modified=1.0)
        touched = Document.from_text("a.md", "same\n", modified=2.0)

        assert ChangeDetector.classify(touched, old.content_hash) == ChangeKind.UNCHANGED

    def test_snapshot_reads_store_hashes(self):
        store = MemoryStore()
        store.bulk_upsert_lite([stored("a.md", "h1"), stored("b.md", "h2")])

        assert ChangeDetector(store).snapshot() == {"a.md": "h1", "b.md": "h2"}

    def test_deleted_paths(self):
        """Indexed paths missing from the current scan are deleted, in sorted order."""
        snapshot = {"b.md": "1", "a.md": "2", "c.md": "3"}

        assert ChangeDetector.deleted_paths(snapshot, ["c.md"]) == ["a.md", "b.md"]
        assert ChangeDetector.deleted_paths(snapshot, snapshot) == []
