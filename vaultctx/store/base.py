"""
Chunk store contract for vaultctx.

The indexing and retrieval engine only talks to storage through ChunkStore.
Records are keyed by (path, chunk_ordinal); a write for a path always
replaces that path's whole chunk set in one step.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..models import EmbeddingMeta, NoteRecord


class ChunkStore(ABC):
    """Abstract persistent store of indexed chunks."""

    @abstractmethod
    def bulk_upsert(self, records: list[NoteRecord]) -> None:
        """
        Write chunks with vectors.

        For every path present in records, the stored chunk set is replaced
        atomically by the given chunks; ordinals no longer present are
        removed in the same step.
        """

    @abstractmethod
    def bulk_upsert_lite(self, records: list[NoteRecord]) -> None:
        """Same as bulk_upsert, but the chunks are stored without vectors."""

    @abstractmethod
    def delete_by_path(self, path: str) -> int:
        """Remove every chunk of path; returns the number removed."""

    @abstractmethod
    def delete_all(self) -> None:
        """Remove all chunks and embedding metadata."""

    @abstractmethod
    def vector_search(self, query_vector: list[float], top_k: int) -> list[tuple[NoteRecord, float]]:
        """
        Nearest chunks to query_vector.

        Returns:
            Up to top_k (record, distance) pairs in ascending distance order.
            Chunks stored without vectors are never returned.
        """

    @abstractmethod
    def keyword_search(
        self, query: str, terms: list[str], limit: int, paths: Optional[Iterable[str]] = None
    ) -> list[tuple[NoteRecord, float]]:
        """
        Case-insensitive substring search over chunk text and titles.

        When paths is given, only chunks of those notes are considered.

        Returns:
            Up to limit (record, match_score) pairs, best first. A chunk
            containing the whole query scores 1.0; otherwise the score is the
            fraction of terms found.
        """

    @abstractmethod
    def content_hashes(self) -> dict[str, str]:
        """Map of every indexed path to its stored content hash."""

    @abstractmethod
    def lite_paths(self) -> set[str]:
        """Paths whose chunks are stored without vectors."""

    @abstractmethod
    def has_vectors(self) -> bool:
        """Whether any stored chunk carries a vector."""

    @abstractmethod
    def increment_access(self, keys: Iterable[tuple[str, int]]) -> None:
        """Add one to access_count of each (path, chunk_ordinal)."""

    @abstractmethod
    def note_count(self) -> int:
        """Number of distinct indexed paths."""

    @abstractmethod
    def chunk_count(self) -> int:
        """Number of stored chunks."""

    @abstractmethod
    def get_embedding_meta(self) -> Optional[EmbeddingMeta]:
        """Identity of the provider behind the stored vectors, if any."""

    @abstractmethod
    def set_embedding_meta(self, meta: EmbeddingMeta) -> None:
        """Record the identity of the provider behind the stored vectors."""


def score_keyword_match(query: str, terms: list[str], haystack: str) -> float:
    """
    Substring match score shared by store implementations.

    Args:
        query: Full query text
        terms: Lowercased query terms
        haystack: Text to search (any case)

    Returns:
        1.0 if the whole query occurs, else the fraction of terms found
    """
    lowered = haystack.lower()
    if query and query.lower() in lowered:
        return 1.0
    if not terms:
        return 0.0
    found = sum(1 for term in terms if term in lowered)
    return found / len(terms)
