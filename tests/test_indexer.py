"""
Unit tests for the Reindexer.

Tests change detection, deletion, lite-mode fallback, embedding identity
checks, progress reporting, cancellation and the single-run lock.
"""

import pytest

from vaultctx.config import Config
from vaultctx.embeddings import EmbeddingOrchestrator
from vaultctx.exceptions import (
    DimensionMismatchError,
    EmbeddingConfigError,
    EmbeddingUnavailableError,
    ReindexInProgressError,
)
from vaultctx.indexer import Reindexer

from conftest import FAKE_DIMS, FakeProvider, SpyStore, UnreachableProvider, write_note

ALL_NOTES = ["decisions/db.md", "notes/a.md", "notes/b.md"]


class FlakyProvider(FakeProvider):
    """Works for the first call, then the endpoint goes away."""

    def embed(self, text, purpose="document"):
        if self.calls:
            self.calls.append((purpose, text))
            raise EmbeddingUnavailableError("timeout", provider="fake")
        return super().embed(text, purpose)


def make_reindexer(vault, store, provider, config):
    return Reindexer(vault, store, EmbeddingOrchestrator(provider), config)


class TestFullScan:
    """Test suite for full-vault reindexing."""

    def test_initial_index(self, reindexer, store):
        """Every note outside skip directories is indexed with vectors."""
        stats = reindexer.reindex()

        assert stats.total_files == 3
        assert stats.newly_indexed == 3
        assert stats.errors == 0
        assert stats.notes_in_index == 3
        assert stats.chunks_in_index == 3
        assert not stats.lite_mode
        assert sorted(store.content_hashes()) == ALL_NOTES
        assert store.get_embedding_meta().dimensions == FAKE_DIMS

    def test_second_run_writes_nothing(self, reindexer, store):
        """Reindexing an unchanged vault performs zero store writes."""
        reindexer.reindex()
        store.writes.clear()

        stats = reindexer.reindex()

        assert stats.newly_indexed == 0
        assert stats.skipped_unchanged == 3
        assert store.writes == []

    def test_unchanged_notes_are_not_embedded_again(self, reindexer, provider):
        reindexer.reindex()
        calls = len(provider.calls)

        reindexer.reindex()

        assert len(provider.calls) == calls

    def test_changed_note_is_reindexed(self, reindexer, store, vault):
        reindexer.reindex()
        store.writes.clear()
        write_note(vault, "notes/b.md", "# Beta\n\nNow about composting.\n")

        stats = reindexer.reindex()

        assert stats.newly_indexed == 1
        assert stats.skipped_unchanged == 2
        assert store.writes == [("bulk_upsert", ("notes/b.md",))]

    def test_deleted_note_is_removed(self, reindexer, store, vault):
        """A note that disappeared is deleted exactly once."""
        reindexer.reindex()
        store.writes.clear()
        (vault / "notes" / "a.md").unlink()

        stats = reindexer.reindex()

        assert stats.deleted == 1
        assert store.calls("delete_by_path") == [("delete_by_path", "notes/a.md")]
        assert "notes/a.md" not in store.content_hashes()
        assert stats.notes_in_index == 2

    def test_deleting_split_note_drops_its_chunks(self, vault, store, provider, config):
        """The chunk count falls by exactly the deleted note's chunk count."""
        write_note(
            vault,
            "projects/launch.md",
            "# Launch\n\nOverview of the launch.\n\n## Rollout\n\nShip it on Monday morning.\n\n"
            "## Retro\n\nWhat we learned from it.\n",
        )
        config.set("indexer", "chunk_token_threshold", value=50)
        reindexer = make_reindexer(vault, store, provider, config)
        before = reindexer.reindex()
        assert len(store.keyword_search("launch", ["launch"], 10, paths={"projects/launch.md"})) == 3

        (vault / "projects" / "launch.md").unlink()
        after = reindexer.reindex()

        assert before.chunks_in_index - after.chunks_in_index == 3
        assert after.chunks_in_index == store.chunk_count()
        assert after.deleted == 1

    def test_single_note_vault_lifecycle(self, temp_dir, store, provider):
        """A short note with two sections is one full chunk, and deleting it empties the index."""
        write_note(temp_dir, "notes/a.md", "## One\n\nfirst part\n\n## Two\n\nsecond part\n")
        config = Config(vault_root=temp_dir, env={})
        config.set("performance", "max_workers", value=1)
        reindexer = make_reindexer(temp_dir, store, provider, config)

        stats = reindexer.reindex()

        assert stats.total_files == 1
        assert stats.notes_in_index == 1
        assert stats.chunks_in_index == 1
        hits = store.keyword_search("first part", ["first", "part"], 5)
        assert [r.heading for r, _ in hits] == ["(full)"]

        (temp_dir / "notes" / "a.md").unlink()
        stats = reindexer.reindex()

        assert stats.total_files == 0
        assert stats.notes_in_index == 0
        assert stats.chunks_in_index == 0
        assert store.calls("delete_by_path") == [("delete_by_path", "notes/a.md")]

    def test_blank_note_has_no_chunks(self, reindexer, store, vault):
        write_note(vault, "notes/empty.md", "   \n")

        stats = reindexer.reindex()

        assert stats.total_files == 4
        assert stats.newly_indexed == 3
        assert "notes/empty.md" not in store.content_hashes()

    def test_note_emptied_after_indexing_is_removed(self, reindexer, store, vault):
        reindexer.reindex()
        write_note(vault, "notes/a.md", "\n")

        stats = reindexer.reindex()

        assert stats.deleted == 1
        assert "notes/a.md" not in store.content_hashes()

    def test_undecodable_note_is_skipped(self, reindexer, store, vault):
        """Invalid UTF-8 is reported per note and does not stop the run."""
        (vault / "notes" / "bad.md").write_bytes(b"\xff\xfe not utf-8 \x80")

        stats = reindexer.reindex()

        assert stats.errors == 1
        assert "UTF-8" in stats.failed["notes/bad.md"]
        assert stats.newly_indexed == 3
        assert "notes/bad.md" not in store.content_hashes()

    def test_oversized_note_is_skipped(self, reindexer):
        reindexer.max_file_size = 10

        stats = reindexer.reindex()

        assert stats.errors == 3
        assert stats.newly_indexed == 0

    def test_parallel_matches_serial(self, vault, config):
        config.set("performance", "max_workers", value=3)
        store = SpyStore()
        reindexer = make_reindexer(vault, store, FakeProvider(), config)

        stats = reindexer.reindex()

        assert stats.newly_indexed == 3
        assert sorted(store.content_hashes()) == ALL_NOTES
        assert store.lite_paths() == set()


class TestLiteMode:
    """Test suite for indexing without an embedding provider."""

    def test_unreachable_provider_falls_back(self, vault, config):
        """All notes are stored without vectors and the run says so."""
        store = SpyStore()
        provider = UnreachableProvider()
        reindexer = make_reindexer(vault, store, provider, config)

        stats = reindexer.reindex()

        assert stats.lite_mode
        assert stats.newly_indexed == 3
        assert len(stats.warnings) == 1
        assert "connection refused" in stats.warnings[0]
        assert store.lite_paths() == set(ALL_NOTES)
        assert store.get_embedding_meta() is None
        assert len(provider.calls) == 1

    def test_provider_lost_mid_run(self, vault, config):
        """Notes after the failure are stored lite; earlier vectors stay."""
        store = SpyStore()
        reindexer = make_reindexer(vault, store, FlakyProvider(), config)

        stats = reindexer.reindex()

        assert stats.lite_mode
        assert stats.errors == 0
        assert store.lite_paths() == {"notes/a.md", "notes/b.md"}
        assert store.get_embedding_meta() is not None

    def test_lite_notes_upgraded_when_provider_returns(self, vault, config):
        store = SpyStore()
        make_reindexer(vault, store, UnreachableProvider(), config).reindex()

        stats = make_reindexer(vault, store, FakeProvider(), config).reindex()

        assert stats.newly_indexed == 3
        assert not stats.lite_mode
        assert store.lite_paths() == set()
        assert store.get_embedding_meta().provider == "fake"

    def test_lite_notes_untouched_while_still_unavailable(self, vault, config):
        store = SpyStore()
        make_reindexer(vault, store, UnreachableProvider(), config).reindex()
        store.writes.clear()

        stats = make_reindexer(vault, store, UnreachableProvider(), config).reindex()

        assert stats.skipped_unchanged == 3
        assert stats.lite_mode
        assert store.writes == []

    def test_reindex_lite_never_embeds(self, vault, config):
        store = SpyStore()
        provider = FakeProvider()
        reindexer = make_reindexer(vault, store, provider, config)

        stats = reindexer.reindex_lite()

        assert stats.newly_indexed == 3
        assert provider.calls == []
        assert store.lite_paths() == set(ALL_NOTES)


class TestEmbeddingIdentity:
    """Test suite for provider and model changes."""

    def test_config_error_is_fatal(self, vault, config):
        provider = FakeProvider()
        reindexer = make_reindexer(vault, SpyStore(), provider, config)

        def reject(text, purpose="document"):
            raise EmbeddingConfigError("model not found")

        provider.embed = reject

        with pytest.raises(EmbeddingConfigError, match="model not found"):
            reindexer.reindex()
        assert not reindexer.is_running

    def test_dimension_change_requires_rebuild(self, vault, config):
        store = SpyStore()
        make_reindexer(vault, store, FakeProvider(dims=16), config).reindex()
        reindexer = make_reindexer(vault, store, FakeProvider(dims=32), config)

        with pytest.raises(DimensionMismatchError):
            reindexer.reindex()

        stats = reindexer.reindex(force=True)

        assert store.calls("delete_all") == [("delete_all",)]
        assert stats.newly_indexed == 3
        assert store.get_embedding_meta().dimensions == 32

    def test_model_change_with_same_dimensions(self, vault, config):
        store = SpyStore()
        make_reindexer(vault, store, FakeProvider(model="one"), config).reindex()

        with pytest.raises(EmbeddingConfigError, match="forced full rebuild") as exc_info:
            make_reindexer(vault, store, FakeProvider(model="two"), config).reindex()
        assert not isinstance(exc_info.value, DimensionMismatchError)


class TestIncremental:
    """Test suite for path-scoped reindexing."""

    def test_reindex_paths_handles_deletion(self, reindexer, store, vault):
        reindexer.reindex()
        (vault / "notes" / "a.md").unlink()

        stats = reindexer.reindex_paths(["notes/a.md"])

        assert stats.deleted == 1
        assert sorted(store.content_hashes()) == ["decisions/db.md", "notes/b.md"]

    def test_reindex_paths_accepts_absolute_paths(self, reindexer, store, vault):
        reindexer.reindex()
        store.writes.clear()
        path = write_note(vault, "notes/b.md", "# Beta\n\nRewritten.\n")

        stats = reindexer.reindex_paths([path])

        assert stats.newly_indexed == 1
        assert store.writes == [("bulk_upsert", ("notes/b.md",))]

    def test_reindex_paths_ignores_skipped_and_foreign_paths(self, reindexer, store):
        stats = reindexer.reindex_paths([
            ".obsidian/workspace.md",
            "notes/readme.txt",
            "/somewhere/else/x.md",
        ])

        assert stats.total_files == 0
        assert store.writes == []

    def test_forced_path_reindex_skips_hash_check(self, reindexer, store):
        reindexer.reindex()
        store.writes.clear()

        stats = reindexer.reindex(full_scan=False, paths=["notes/a.md"], force=True)

        assert stats.newly_indexed == 1
        assert store.calls("delete_all") == []


class TestRunControl:
    """Test suite for progress, cancellation and the run lock."""

    def test_progress_is_monotonic(self, reindexer):
        events = []

        reindexer.reindex(progress=lambda current, total, path: events.append((current, total, path)))

        assert [e[0] for e in events] == [1, 2, 3]
        assert {e[1] for e in events} == {3}
        assert [e[2] for e in events] == ALL_NOTES

    def test_progress_counts_deletions(self, reindexer, vault):
        reindexer.reindex()
        (vault / "notes" / "a.md").unlink()
        events = []

        reindexer.reindex(progress=lambda current, total, path: events.append((current, total, path)))

        assert events[0] == (1, 3, "notes/a.md")
        assert events[-1][0] == 3

    def test_empty_vault_reports_no_progress(self, temp_dir):
        root = temp_dir / "empty"
        root.mkdir()
        reindexer = make_reindexer(root, SpyStore(), FakeProvider(), Config(vault_root=root, env={}))
        events = []

        stats = reindexer.reindex(progress=lambda *args: events.append(args))

        assert events == []
        assert stats.total_files == 0
        assert stats.notes_in_index == 0

    def test_failing_progress_callback_is_ignored(self, reindexer):
        def explode(current, total, path):
            raise RuntimeError("observer bug")

        stats = reindexer.reindex(progress=explode)

        assert stats.newly_indexed == 3

    def test_cancel_stops_between_notes(self, reindexer):
        stats = reindexer.reindex(progress=lambda *args: reindexer.cancel())

        assert stats.cancelled
        assert stats.newly_indexed == 1

        stats = reindexer.reindex()

        assert not stats.cancelled
        assert stats.newly_indexed == 2

    def test_concurrent_reindex_rejected(self, reindexer):
        """A second run while one is in progress fails fast."""
        rejected = []
        running = []

        def reenter(current, total, path):
            running.append(reindexer.is_running)
            try:
                reindexer.reindex()
            except ReindexInProgressError:
                rejected.append(path)

        reindexer.reindex(progress=reenter)

        assert len(rejected) == 3
        assert running == [True, True, True]
        assert not reindexer.is_running
