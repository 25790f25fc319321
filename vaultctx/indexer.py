"""
Core indexing logic for vaultctx.

The Reindexer walks the vault (or a given set of paths), skips notes whose
content hash is unchanged, chunks and embeds the rest, and writes each note's
chunk set through the store in one replacement. When the embedding provider
is unreachable it keeps going in lite mode and reports that in the stats.
"""

import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from .change_detector import ChangeDetector
from .chunkers import ChunkStrategy, MarkdownChunker
from .config import Config
from .embeddings import EmbeddingOrchestrator
from .exceptions import (
    DimensionMismatchError,
    DocumentReadError,
    EmbeddingConfigError,
    EmbeddingError,
    ReindexInProgressError,
)
from .models import ChangeKind, Document, EmbeddingMeta, IndexStats, NoteRecord
from .notes import compute_confidence
from .progress import ProgressCallback, ProgressReporter
from .store.base import ChunkStore
from .vault import has_suffix, is_skipped, relative_path, walk_vault_files

logger = logging.getLogger(__name__)


@dataclass
class _Prepared:
    """Result of reading, classifying, chunking and embedding one note."""
    path: str
    kind: Optional[ChangeKind] = None
    records: list[NoteRecord] = field(default_factory=list)
    with_vectors: bool = False
    upgrade: bool = False
    removed: bool = False
    cancelled: bool = False
    error: Optional[str] = None


@dataclass
class _RunState:
    snapshot: dict[str, str]
    lite_paths: set[str]
    use_vectors: bool
    force: bool
    stats: IndexStats
    vectors_written: bool = False


class Reindexer:
    """
    Incremental indexer for a vault.

    Features:
    - Content-hash change detection (unchanged notes cost nothing)
    - Deletion of notes that disappeared from the vault
    - Optional parallel embedding with all store writes on the calling thread
    - Lite-mode fallback when the embedding provider is unreachable
    - Cooperative cancellation between notes
    - One run at a time per Reindexer
    """

    def __init__(
        self,
        vault_root: Path,
        store: ChunkStore,
        orchestrator: EmbeddingOrchestrator,
        config: Optional[Config] = None,
        chunker: Optional[ChunkStrategy] = None,
    ):
        """
        Initialize the reindexer.

        Args:
            vault_root: Root directory of the vault
            store: Chunk store to write to
            orchestrator: Embedding orchestrator
            config: Vault configuration (loaded from vault_root if omitted)
            chunker: Chunking strategy (MarkdownChunker from config if omitted)
        """
        self.vault_root = Path(vault_root)
        self.store = store
        self.orchestrator = orchestrator
        self.config = config or Config(self.vault_root)

        settings = self.config.indexer
        self.suffixes = tuple(settings.suffixes)
        self.max_file_size = settings.max_file_size
        self.large_note_warning_bytes = settings.large_note_warning_bytes
        self.chunker = chunker or MarkdownChunker(
            chunk_threshold=settings.chunk_token_threshold,
            max_embed_chars=settings.max_embed_chars,
        )
        self.skip_dirs = self.config.skip_dirs
        self.max_workers = self.config.max_workers
        self.detector = ChangeDetector(store)

        self._run_lock = threading.Lock()
        self._cancel = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def cancel(self) -> None:
        """Ask the running reindex to stop after the current note."""
        self._cancel.set()

    def reindex(
        self,
        full_scan: bool = True,
        paths: Optional[Iterable[Union[str, Path]]] = None,
        progress: Optional[ProgressCallback] = None,
        force: bool = False,
    ) -> IndexStats:
        """
        Bring the index in line with the vault.

        Args:
            full_scan: Walk the whole vault (and remove notes that disappeared)
            paths: Notes to process when full_scan is False
            progress: Optional callback(current, total, path) per note
            force: Reprocess notes regardless of their hash; with full_scan
                the store is cleared first (needed to switch embedding models)

        Returns:
            IndexStats for the run

        Raises:
            ReindexInProgressError: If a reindex is already running
            EmbeddingConfigError: If the embedding provider is misconfigured
            DimensionMismatchError: If stored vectors do not match the provider
            StoreError: If the store cannot be written
        """
        return self._run(full_scan, paths, progress, force, use_vectors=True)

    def reindex_lite(
        self,
        full_scan: bool = True,
        paths: Optional[Iterable[Union[str, Path]]] = None,
        progress: Optional[ProgressCallback] = None,
        force: bool = False,
    ) -> IndexStats:
        """Same as reindex(), but never calls the embedding provider."""
        return self._run(full_scan, paths, progress, force, use_vectors=False)

    def reindex_paths(
        self,
        paths: Iterable[Union[str, Path]],
        progress: Optional[ProgressCallback] = None,
    ) -> IndexStats:
        """Incrementally process specific notes (used by the watcher)."""
        return self.reindex(full_scan=False, paths=paths, progress=progress)

    def _run(self, full_scan, paths, progress, force, use_vectors) -> IndexStats:
        if not self._run_lock.acquire(blocking=False):
            raise ReindexInProgressError(f"A reindex of {self.vault_root} is already running")
        try:
            self._cancel.clear()
            return self._reindex(full_scan, paths, progress, force, use_vectors)
        finally:
            self._run_lock.release()

    def _reindex(self, full_scan, paths, progress, force, use_vectors) -> IndexStats:
        start_time = time.time()
        stats = IndexStats()

        if force and full_scan:
            logger.info("Forced rebuild: clearing the index")
            self.store.delete_all()

        identity = None
        if use_vectors:
            identity = self._check_embedding_identity()
            if identity is None:
                self._note_lite(stats)

        state = _RunState(
            snapshot=self.detector.snapshot(),
            lite_paths=self.store.lite_paths() if use_vectors else set(),
            use_vectors=use_vectors,
            force=force,
            stats=stats,
        )

        if full_scan:
            candidates = walk_vault_files(self.vault_root, self.skip_dirs, self.suffixes)
            deleted = self.detector.deleted_paths(state.snapshot, candidates)
        else:
            candidates, deleted = self._select_paths(paths or [], state.snapshot)

        stats.total_files = len(candidates)
        logger.info(f"Reindexing {len(candidates)} notes ({len(deleted)} deleted)")

        reporter = ProgressReporter(len(candidates) + len(deleted), progress) if progress else None

        for path in deleted:
            if self._cancel.is_set():
                break
            self.store.delete_by_path(path)
            stats.deleted += 1
            if reporter:
                reporter.update(path)

        if not self._cancel.is_set():
            if self.max_workers > 1 and len(candidates) > 1:
                self._process_parallel(candidates, state, reporter)
            else:
                self._process_serial(candidates, state, reporter)

        if self._cancel.is_set():
            stats.cancelled = True
            logger.warning("Reindex cancelled before completion")

        if identity is not None and state.vectors_written and self.store.get_embedding_meta() != identity:
            self.store.set_embedding_meta(identity)

        stats.notes_in_index = self.store.note_count()
        stats.chunks_in_index = self.store.chunk_count()

        logger.info(
            f"Reindex complete: {stats.newly_indexed} indexed, {stats.skipped_unchanged} unchanged, "
            f"{stats.deleted} deleted, {stats.errors} errors "
            f"({time.time() - start_time:.2f}s{', lite mode' if stats.lite_mode else ''})"
        )
        return stats

    def _check_embedding_identity(self) -> Optional[EmbeddingMeta]:
        """
        Compare the active provider with the one behind the stored vectors.

        Returns:
            The active identity, or None if the provider is unavailable
        """
        active = self.orchestrator.identity()
        stored = self.store.get_embedding_meta()
        if active is None or stored is None:
            return active

        if stored.dimensions != active.dimensions:
            raise DimensionMismatchError(
                stored.dimensions, active.dimensions,
                detail=f"index built with {stored.provider}/{stored.model}",
            )
        if stored.model != active.model:
            raise EmbeddingConfigError(
                f"Index was built with {stored.provider}/{stored.model} but the active provider is "
                f"{active.provider}/{active.model}; run a forced full rebuild to switch models"
            )
        return active

    def _select_paths(self, paths, snapshot: dict[str, str]) -> tuple[list[str], list[str]]:
        candidates: set[str] = set()
        deleted: set[str] = set()
        for raw in paths:
            try:
                rel = relative_path(self.vault_root, raw)
            except ValueError:
                logger.warning(f"Ignoring path outside the vault: {raw}")
                continue
            if not has_suffix(rel, self.suffixes) or is_skipped(rel, self.skip_dirs):
                continue
            if (self.vault_root / rel).is_file():
                candidates.add(rel)
            elif rel in snapshot:
                kind = self.detector.classify(None, snapshot[rel])
                logger.debug(f"{rel}: {kind.value}")
                deleted.add(rel)
        return sorted(candidates), sorted(deleted)

    def _process_serial(self, candidates: list[str], state: _RunState, reporter) -> None:
        for path in candidates:
            if self._cancel.is_set():
                return
            prepared = self._prepare(path, state)
            if prepared.cancelled:
                return
            self._apply(prepared, state)
            if reporter:
                reporter.update(path)

    def _process_parallel(self, candidates: list[str], state: _RunState, reporter) -> None:
        """
        Prepare notes on a thread pool and apply them as they complete.

        Store writes stay on this thread; workers only read, chunk and embed.
        """
        workers = min(self.max_workers, len(candidates))
        logger.info(f"Using parallel indexing with {workers} workers")

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers)
        try:
            future_to_path = {
                executor.submit(self._prepare, path, state): path for path in candidates
            }
            for future in concurrent.futures.as_completed(future_to_path):
                if self._cancel.is_set():
                    return
                prepared = future.result()
                if prepared.cancelled:
                    return
                self._apply(prepared, state)
                if reporter:
                    reporter.update(prepared.path)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _prepare(self, path: str, state: _RunState) -> _Prepared:
        """Read, classify, chunk and embed one note without touching the store."""
        full_path = self.vault_root / path
        try:
            size = full_path.stat().st_size
            if size > self.max_file_size:
                return _Prepared(path, error=f"{size} bytes exceeds max_file_size ({self.max_file_size})")
            document = Document.from_file(self.vault_root, path)
        except FileNotFoundError:
            return _Prepared(path, removed=True)
        except DocumentReadError as e:
            return _Prepared(path, error=e.reason)

        kind = self.detector.classify(document, state.snapshot.get(path))
        upgrade = False
        if kind == ChangeKind.UNCHANGED and not state.force:
            if state.use_vectors and path in state.lite_paths and not self.orchestrator.degraded:
                upgrade = True
            else:
                return _Prepared(path, kind=kind)

        if size > self.large_note_warning_bytes:
            logger.warning(f"Large note {path} ({size / 1024:.0f} KB); consider splitting it")

        chunks = self.chunker.chunk(document)
        meta = document.meta
        confidence = compute_confidence(meta.content_type, document.modified, 0, bool(meta.review_by))
        records = [
            NoteRecord(
                path=path,
                title=meta.title,
                tags=meta.tags,
                domain=meta.domain,
                workstream=meta.workstream,
                chunk_ordinal=chunk.ordinal,
                heading=chunk.heading,
                text=chunk.text,
                modified=document.modified,
                content_hash=document.content_hash,
                content_type=meta.content_type,
                confidence=confidence,
            )
            for chunk in chunks
        ]

        with_vectors = False
        if state.use_vectors and chunks:
            vectors = []
            try:
                for chunk in chunks:
                    if self._cancel.is_set():
                        return _Prepared(path, cancelled=True)
                    vector = self.orchestrator.embed_document(chunk.embed_text)
                    if vector is None:
                        break
                    vectors.append(vector)
            except EmbeddingConfigError:
                raise
            except EmbeddingError as e:
                return _Prepared(path, error=f"embedding failed: {e}")

            if len(vectors) == len(chunks):
                for record, vector in zip(records, vectors):
                    record.vector = vector
                with_vectors = True

        return _Prepared(path, kind=kind, records=records, with_vectors=with_vectors, upgrade=upgrade)

    def _apply(self, prepared: _Prepared, state: _RunState) -> None:
        """Write one prepared note to the store and update the stats."""
        stats = state.stats
        path = prepared.path

        if prepared.removed:
            if path in state.snapshot:
                self.store.delete_by_path(path)
                stats.deleted += 1
            return

        if prepared.error:
            logger.error(f"Skipping {path}: {prepared.error}")
            stats.errors += 1
            stats.failed[path] = prepared.error
            return

        if prepared.kind == ChangeKind.UNCHANGED and not prepared.upgrade and not state.force:
            stats.skipped_unchanged += 1
            return

        if not prepared.records:
            logger.debug(f"No content in {path}")
            if path in state.snapshot:
                self.store.delete_by_path(path)
                stats.deleted += 1
            return

        if state.use_vectors and not prepared.with_vectors:
            self._note_lite(stats)
            if prepared.upgrade:
                # still no provider; keep the existing lite chunks
                stats.skipped_unchanged += 1
                return

        if prepared.with_vectors:
            self.store.bulk_upsert(prepared.records)
            state.vectors_written = True
        else:
            self.store.bulk_upsert_lite(prepared.records)

        stats.newly_indexed += 1
        stats.chunks_written += len(prepared.records)
        logger.debug(f"Indexed {path} ({prepared.kind.value}): {len(prepared.records)} chunks")

    def _note_lite(self, stats: IndexStats) -> None:
        if stats.lite_mode:
            return
        stats.lite_mode = True
        reason = self.orchestrator.degraded_reason or "embedding provider unavailable"
        stats.warnings.append(f"{reason}; notes indexed without vectors (keyword search only)")

    def __repr__(self) -> str:
        """String representation."""
        return f"Reindexer(vault={self.vault_root}, store={self.store})"
