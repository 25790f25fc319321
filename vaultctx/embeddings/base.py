"""
Embedding provider interface for vaultctx.

Every backend (local sentence-transformers, Ollama, OpenAI and compatible
servers) implements EmbeddingProvider. Providers raise
EmbeddingUnavailableError for connectivity problems and
EmbeddingConfigError for misconfiguration; the orchestrator decides what to
do with each.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from ..exceptions import EmbeddingConfigError, EmbeddingError

DOCUMENT = "document"
QUERY = "query"


def validate_embedding(vector: Sequence[float], expected_dims: int, provider: str) -> list[float]:
    """
    Check a vector returned by a provider.

    Args:
        vector: Raw embedding
        expected_dims: Required length (0 accepts any length)
        provider: Provider name for error messages

    Returns:
        The vector as a list of floats

    Raises:
        EmbeddingConfigError: If the dimension does not match
        EmbeddingError: If the vector is empty or all zeros
    """
    values = [float(v) for v in vector]
    if not values:
        raise EmbeddingError(f"{provider}: empty embedding returned")
    if expected_dims and len(values) != expected_dims:
        raise EmbeddingConfigError(
            f"{provider}: expected {expected_dims}-dimensional embeddings, got {len(values)}; "
            f"check the configured model and dimensions"
        )
    if not any(values):
        raise EmbeddingError(f"{provider}: all-zero embedding returned")
    return values


class EmbeddingProvider(ABC):
    """Strategy interface for a single embedding backend."""

    name: str = "provider"

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier used for requests."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of the vectors this provider produces."""

    @abstractmethod
    def embed(self, text: str, purpose: str = DOCUMENT) -> list[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed
            purpose: DOCUMENT for indexed content, QUERY for search queries

        Returns:
            Embedding vector
        """

    def embed_document(self, text: str) -> list[float]:
        return self.embed(text, DOCUMENT)

    def embed_query(self, text: str) -> list[float]:
        return self.embed(text, QUERY)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model})"
