"""
Base chunking strategy interface for vaultctx.

Defines the abstract base class that all chunking strategies must implement.
"""

from abc import ABC, abstractmethod

from ..models import Chunk, Document


class ChunkStrategy(ABC):
    """
    Abstract base class for chunking strategies.

    A strategy must be deterministic: the same document always yields the
    same ordered chunk list, with ordinals numbered from zero.
    """

    @abstractmethod
    def chunk(self, document: Document) -> list[Chunk]:
        """
        Split a document into chunks.

        Args:
            document: Parsed note to split

        Returns:
            Ordered list of chunks (possibly empty for a blank note)
        """
        pass
