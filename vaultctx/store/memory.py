"""
In-process chunk store.

Keeps each path's chunks as an immutable tuple swapped under a lock, so a
reader sees either the old or the new chunk set of a note, never a mix.
"""

import logging
import threading
from typing import Iterable, Optional

from .base import ChunkStore, score_keyword_match
from ..models import EmbeddingMeta, NoteRecord

logger = logging.getLogger(__name__)


def _squared_l2(a: list[float], b: list[float]) -> float:
    return sum((x - y) ** 2 for x, y in zip(a, b))


class MemoryStore(ChunkStore):
    """Thread-safe dictionary-backed ChunkStore using squared L2 distance."""

    def __init__(self):
        self._chunks: dict[str, tuple[NoteRecord, ...]] = {}
        self._meta: Optional[EmbeddingMeta] = None
        self._lock = threading.RLock()

    def _replace(self, records: list[NoteRecord], with_vectors: bool) -> None:
        grouped: dict[str, list[NoteRecord]] = {}
        for record in records:
            if with_vectors and record.vector is None:
                raise ValueError(f"bulk_upsert requires vectors ({record.path}#{record.chunk_ordinal})")
            if not with_vectors:
                record = record.model_copy(update={"vector": None})
            grouped.setdefault(record.path, []).append(record)

        with self._lock:
            for path, chunks in grouped.items():
                chunks.sort(key=lambda r: r.chunk_ordinal)
                self._chunks[path] = tuple(chunks)
        logger.debug(f"Stored {len(records)} chunks for {len(grouped)} notes")

    def bulk_upsert(self, records: list[NoteRecord]) -> None:
        self._replace(records, with_vectors=True)

    def bulk_upsert_lite(self, records: list[NoteRecord]) -> None:
        self._replace(records, with_vectors=False)

    def delete_by_path(self, path: str) -> int:
        with self._lock:
            removed = self._chunks.pop(path, ())
        if removed:
            logger.info(f"Deleted {len(removed)} chunks for {path}")
        return len(removed)

    def delete_all(self) -> None:
        with self._lock:
            self._chunks.clear()
            self._meta = None

    def _all(self) -> list[NoteRecord]:
        with self._lock:
            snapshot = list(self._chunks.values())
        return [record for chunks in snapshot for record in chunks]

    def vector_search(self, query_vector: list[float], top_k: int) -> list[tuple[NoteRecord, float]]:
        scored = []
        for record in self._all():
            if record.vector is None or len(record.vector) != len(query_vector):
                continue
            scored.append((record, _squared_l2(record.vector, query_vector)))
        scored.sort(key=lambda pair: pair[1])
        return scored[:top_k]

    def keyword_search(
        self, query: str, terms: list[str], limit: int, paths: Optional[Iterable[str]] = None
    ) -> list[tuple[NoteRecord, float]]:
        allowed = None if paths is None else set(paths)
        scored = []
        for record in self._all():
            if allowed is not None and record.path not in allowed:
                continue
            score = score_keyword_match(query, terms, f"{record.title}\n{record.text}")
            if score > 0:
                scored.append((record, score))
        scored.sort(key=lambda pair: (-pair[1], pair[0].path, pair[0].chunk_ordinal))
        return scored[:limit]

    def content_hashes(self) -> dict[str, str]:
        with self._lock:
            return {path: chunks[0].content_hash for path, chunks in self._chunks.items() if chunks}

    def lite_paths(self) -> set[str]:
        with self._lock:
            return {
                path for path, chunks in self._chunks.items()
                if any(record.vector is None for record in chunks)
            }

    def has_vectors(self) -> bool:
        return any(record.vector is not None for record in self._all())

    def increment_access(self, keys: Iterable[tuple[str, int]]) -> None:
        with self._lock:
            for path, ordinal in keys:
                chunks = self._chunks.get(path)
                if not chunks:
                    continue
                self._chunks[path] = tuple(
                    r.model_copy(update={"access_count": r.access_count + 1}) if r.chunk_ordinal == ordinal else r
                    for r in chunks
                )

    def note_count(self) -> int:
        with self._lock:
            return len(self._chunks)

    def chunk_count(self) -> int:
        with self._lock:
            return sum(len(chunks) for chunks in self._chunks.values())

    def get_embedding_meta(self) -> Optional[EmbeddingMeta]:
        return self._meta

    def set_embedding_meta(self, meta: EmbeddingMeta) -> None:
        self._meta = meta

    def __repr__(self) -> str:
        return f"MemoryStore(notes={self.note_count()}, chunks={self.chunk_count()})"
