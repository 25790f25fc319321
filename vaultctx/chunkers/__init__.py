"""
Chunking strategies for vaultctx.

- MarkdownChunker: whole-note or H2-section chunking for Markdown notes
"""

from .base import ChunkStrategy
from .markdown import MarkdownChunker, FULL_HEADING, INTRO_HEADING

__all__ = [
    "ChunkStrategy",
    "MarkdownChunker",
    "FULL_HEADING",
    "INTRO_HEADING",
]
