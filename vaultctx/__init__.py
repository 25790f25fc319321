"""
vaultctx - Local-first context retrieval over a markdown vault for AI agents.

This package provides:
- Heading-aware chunking of markdown notes
- Content-hash incremental indexing with deletion tracking
- Pluggable embedding providers with keyword-only fallback
- Composite-scored, token-budgeted retrieval
- File watching for continuous incremental updates
"""

from .models import (
    ChangeKind,
    Chunk,
    Document,
    EmbeddingMeta,
    IndexStats,
    NoteMeta,
    NoteRecord,
    ScoredResult,
)
from .config import Config
from .exceptions import (
    DimensionMismatchError,
    DocumentReadError,
    EmbeddingConfigError,
    EmbeddingError,
    EmbeddingUnavailableError,
    ReindexInProgressError,
    StoreError,
    VaultCtxError,
)
from .chunkers import ChunkStrategy, MarkdownChunker
from .embeddings import EmbeddingOrchestrator, EmbeddingProvider, create_provider
from .store import ChunkStore, LanceStore, MemoryStore
from .change_detector import ChangeDetector
from .indexer import Reindexer
from .progress import ProgressQueue, ProgressReporter
from .retrieval import RetrievalScorer, composite_score
from .watcher import VaultWatcher

__version__ = "0.1.0"

__all__ = [
    # Models
    "ChangeKind",
    "Chunk",
    "Document",
    "EmbeddingMeta",
    "IndexStats",
    "NoteMeta",
    "NoteRecord",
    "ScoredResult",
    # Errors
    "VaultCtxError",
    "EmbeddingError",
    "EmbeddingUnavailableError",
    "EmbeddingConfigError",
    "DimensionMismatchError",
    "StoreError",
    "DocumentReadError",
    "ReindexInProgressError",
    # Core components
    "Config",
    "ChunkStrategy",
    "MarkdownChunker",
    "EmbeddingProvider",
    "EmbeddingOrchestrator",
    "create_provider",
    "ChunkStore",
    "MemoryStore",
    "LanceStore",
    "ChangeDetector",
    "Reindexer",
    "ProgressReporter",
    "ProgressQueue",
    "RetrievalScorer",
    "composite_score",
    "VaultWatcher",
]
