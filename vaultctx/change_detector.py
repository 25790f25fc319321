"""
Change detection for vaultctx.

Compares each note's content hash against a snapshot of the hashes stored
at the start of a reindex. Modification times are never consulted.
"""

import logging
from typing import Iterable, Optional

from .models import ChangeKind, Document
from .store.base import ChunkStore

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Classifies notes as new, changed, unchanged or deleted."""

    def __init__(self, store: ChunkStore):
        self.store = store

    def snapshot(self) -> dict[str, str]:
        """Map of indexed path to content hash, taken before scanning."""
        hashes = self.store.content_hashes()
        logger.debug(f"Snapshot holds {len(hashes)} indexed notes")
        return hashes

    @staticmethod
    def classify(document: Optional[Document], previous_hash: Optional[str]) -> ChangeKind:
        """
        Classify a note against its previously stored hash.

        Args:
            document: Note read from disk, or None if the file is gone
            previous_hash: Stored hash, or None if the path was not indexed

        Returns:
            NEW, CHANGED, UNCHANGED or DELETED

        Raises:
            ValueError: If the note is neither on disk nor indexed
        """
        if document is None:
            if previous_hash is None:
                raise ValueError("Cannot classify a note that is neither on disk nor indexed")
            return ChangeKind.DELETED
        if previous_hash is None:
            return ChangeKind.NEW
        if previous_hash == document.content_hash:
            return ChangeKind.UNCHANGED
        return ChangeKind.CHANGED

    @staticmethod
    def deleted_paths(snapshot: dict[str, str], current_paths: Iterable[str]) -> list[str]:
        """Indexed paths that no longer exist in the vault, sorted."""
        return sorted(set(snapshot) - set(current_paths))
