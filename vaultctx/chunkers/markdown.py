"""
Markdown chunking strategy.

Short notes are kept whole. Long notes are split at level-2 headings so each
section can be embedded and retrieved on its own.
"""

import logging
import re
from typing import Optional

from .base import ChunkStrategy
from ..models import Chunk, Document
from ..utils import estimate_tokens

logger = logging.getLogger(__name__)

FULL_HEADING = "(full)"
INTRO_HEADING = "(intro)"

_H1 = re.compile(r"^#\s+(.+?)\s*#*\s*$")
_H2 = re.compile(r"^##\s+(.+?)\s*#*\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")


class MarkdownChunker(ChunkStrategy):
    """
    Heading-based chunking strategy for Markdown notes.

    Bodies shorter than chunk_threshold characters become a single chunk
    labeled "(full)". Longer bodies are split at "## " headings (ignoring
    headings inside fenced code blocks); any text before the first such
    heading becomes its own chunk. Stored section text is never truncated;
    only the text sent to the embedding provider is capped at
    max_embed_chars.
    """

    def __init__(self, chunk_threshold: int = 6000, max_embed_chars: int = 7500):
        """
        Initialize the chunker.

        Args:
            chunk_threshold: Body length (characters) at which notes are split
            max_embed_chars: Maximum characters of text sent for embedding
        """
        self.chunk_threshold = chunk_threshold
        self.max_embed_chars = max_embed_chars

    def chunk(self, document: Document) -> list[Chunk]:
        """
        Split a note into chunks.

        Args:
            document: Parsed note

        Returns:
            Ordered list of chunks; empty when the body is blank
        """
        body = document.body
        if not body.strip():
            return []

        if len(body) < self.chunk_threshold:
            sections = [(FULL_HEADING, body.strip())]
        else:
            sections = self._split_sections(body)
            logger.debug(f"Split {document.path} into {len(sections)} sections")

        title = document.meta.title
        return [
            Chunk(
                parent_path=document.path,
                ordinal=ordinal,
                heading=heading,
                text=text,
                embed_text=self._embed_text(title, text),
                token_estimate=estimate_tokens(text),
            )
            for ordinal, (heading, text) in enumerate(sections)
        ]

    def _split_sections(self, body: str) -> list[tuple[str, str]]:
        """Split body at H2 headings into (heading, text) pairs."""
        lines = body.split("\n")
        sections: list[tuple[Optional[str], list[str]]] = []
        current_heading: Optional[str] = None
        current: list[str] = []
        in_fence = False

        for line in lines:
            if _FENCE.match(line):
                in_fence = not in_fence
            match = None if in_fence else _H2.match(line)
            if match:
                sections.append((current_heading, current))
                current_heading = match.group(1).strip()
                current = [line]
            else:
                current.append(line)
        sections.append((current_heading, current))

        result = []
        for heading, section_lines in sections:
            text = "\n".join(section_lines).strip()
            if not text:
                continue
            if heading is None:
                if len(sections) == 1:
                    heading = FULL_HEADING
                else:
                    heading = self._intro_heading(section_lines)
            result.append((heading, text))
        return result

    @staticmethod
    def _intro_heading(lines: list[str]) -> str:
        for line in lines:
            match = _H1.match(line)
            if match:
                return match.group(1).strip()
        return INTRO_HEADING

    def _embed_text(self, title: str, text: str) -> str:
        combined = f"{title}\n{text}" if title else text
        return combined[: self.max_embed_chars]
