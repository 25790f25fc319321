"""
Data models for vaultctx.

Pydantic models for notes, chunks, persisted chunk records, retrieval
results and indexing statistics.
"""

import time
from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, computed_field

from .exceptions import DocumentReadError
from .utils import sha256_text


class ChangeKind(str, Enum):
    """Outcome of comparing a note against the last indexed snapshot."""
    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class NoteMeta(BaseModel):
    """Frontmatter-derived metadata of a note."""
    title: str
    tags: list[str] = Field(default_factory=list)
    domain: Optional[str] = None
    workstream: Optional[str] = None
    content_type: str = "note"
    review_by: Optional[str] = None


class Document(BaseModel):
    """
    A note in the vault.

    `path` is vault-relative with forward slashes. `content_hash` covers the
    full raw text, frontmatter included, so a metadata-only edit still counts
    as a change.
    """
    path: str
    text: str
    modified: float = 0.0
    meta: NoteMeta
    body: str

    @computed_field
    @property
    def content_hash(self) -> str:
        return sha256_text(self.text)

    @classmethod
    def from_text(cls, path: str, text: str, modified: float = 0.0) -> "Document":
        """Build a document from already-decoded text."""
        from .notes import parse_note

        meta, body = parse_note(path, text)
        return cls(path=path, text=text, modified=modified, meta=meta, body=body)

    @classmethod
    def from_file(cls, vault_root: Path, path: str) -> "Document":
        """
        Read and decode a note from disk.

        Args:
            vault_root: Vault root directory
            path: Vault-relative path of the note

        Returns:
            Parsed Document

        Raises:
            FileNotFoundError: If the note no longer exists
            DocumentReadError: If the note cannot be read or is not valid UTF-8
        """
        full_path = Path(vault_root) / path
        try:
            raw = full_path.read_bytes()
            modified = full_path.stat().st_mtime
        except FileNotFoundError:
            raise
        except OSError as e:
            raise DocumentReadError(path, f"unreadable: {e}") from e

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DocumentReadError(path, f"not valid UTF-8 ({e.reason} at byte {e.start})") from e

        return cls.from_text(path, text, modified)


class Chunk(BaseModel):
    """A contiguous section of a note, the unit of embedding."""
    parent_path: str
    ordinal: int = Field(ge=0)
    heading: str
    text: str
    embed_text: str
    token_estimate: int = 0


class NoteRecord(BaseModel):
    """
    A persisted chunk with its note metadata and optional vector.

    Records are keyed by (path, chunk_ordinal). A record without a vector
    was written in lite mode and is reachable only through keyword search.
    """
    path: str
    title: str
    tags: list[str] = Field(default_factory=list)
    domain: Optional[str] = None
    workstream: Optional[str] = None
    chunk_ordinal: int = Field(ge=0)
    heading: str
    text: str
    modified: float = 0.0
    content_hash: str
    content_type: str = "note"
    confidence: float = 0.5
    access_count: int = 0
    vector: Optional[list[float]] = None

    @property
    def has_vector(self) -> bool:
        return self.vector is not None

    @property
    def key(self) -> tuple[str, int]:
        return (self.path, self.chunk_ordinal)


class EmbeddingMeta(BaseModel):
    """Identity of the provider that produced the stored vectors."""
    provider: str
    model: str
    dimensions: int


class ScoredResult(BaseModel):
    """A retrieval result with its scores and display snippet."""
    record: NoteRecord
    distance: Optional[float] = None
    similarity: float
    composite_score: float
    snippet: str
    token_cost: int
    match: str = "vector"

    @property
    def path(self) -> str:
        return self.record.path

    def __str__(self) -> str:
        """Format result for display."""
        return (
            f"{self.record.path} [{self.record.heading}] "
            f"({self.composite_score:.3f})\n{self.snippet}"
        )


class IndexStats(BaseModel):
    """Outcome of a reindex run."""
    total_files: int = 0
    newly_indexed: int = 0
    skipped_unchanged: int = 0
    deleted: int = 0
    errors: int = 0
    chunks_written: int = 0
    notes_in_index: int = 0
    chunks_in_index: int = 0
    lite_mode: bool = False
    cancelled: bool = False
    failed: dict[str, str] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)

    def __str__(self) -> str:
        """Format stats for display."""
        lines = [
            f"Files scanned: {self.total_files}",
            f"Indexed: {self.newly_indexed}",
            f"Unchanged: {self.skipped_unchanged}",
            f"Deleted: {self.deleted}",
            f"Errors: {self.errors}",
            f"Notes in index: {self.notes_in_index}",
            f"Chunks in index: {self.chunks_in_index}",
        ]
        if self.lite_mode:
            lines.append("Mode: lite (keyword search only for new content)")
        if self.cancelled:
            lines.append("Run was cancelled before completion")
        for warning in self.warnings:
            lines.append(f"Warning: {warning}")
        return "\n".join(lines)
