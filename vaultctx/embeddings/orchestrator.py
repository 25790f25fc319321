"""
Embedding orchestration for vaultctx.

Wraps a single provider and turns its failures into policy: connectivity
problems put the orchestrator into a degraded state where callers get None
and fall back to keyword-only behaviour, while configuration problems are
raised to the caller.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .base import DOCUMENT, QUERY, EmbeddingProvider
from .registry import NONE, create_provider
from ..config import Config
from ..exceptions import EmbeddingUnavailableError
from ..models import EmbeddingMeta

logger = logging.getLogger(__name__)


class EmbeddingOrchestrator:
    """
    Provider wrapper with sticky degradation.

    Once a connectivity failure is seen, further calls return None without
    touching the provider until retry_after seconds have passed; the next
    call after that probes the provider again.
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider],
        max_embed_chars: int = 7500,
        retry_after: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the orchestrator.

        Args:
            provider: Embedding backend, or None for keyword-only operation
            max_embed_chars: Texts are truncated to this length before embedding
            retry_after: Seconds to stay degraded before probing again
            clock: Monotonic time source
        """
        self.provider = provider
        self.max_embed_chars = max_embed_chars
        self.retry_after = retry_after
        self._clock = clock
        self._lock = threading.Lock()
        self._degraded_reason: Optional[str] = None
        self._degraded_at = 0.0
        if provider is None:
            self._degraded_reason = "embedding provider is 'none'"

    @classmethod
    def from_config(cls, config: Config) -> "EmbeddingOrchestrator":
        """
        Build an orchestrator from vault configuration.

        Raises:
            EmbeddingConfigError: If the configured provider is invalid
        """
        settings = config.embedding
        return cls(
            create_provider(settings),
            max_embed_chars=config.indexer.max_embed_chars,
            retry_after=settings.degraded_retry_seconds,
        )

    @property
    def provider_name(self) -> str:
        return self.provider.name if self.provider else NONE

    @property
    def degraded(self) -> bool:
        """True while embedding calls are being short-circuited."""
        with self._lock:
            return self._is_degraded_locked()

    @property
    def degraded_reason(self) -> Optional[str]:
        with self._lock:
            return self._degraded_reason

    def _is_degraded_locked(self) -> bool:
        if self._degraded_reason is None:
            return False
        if self.provider is None:
            return True
        return self._clock() - self._degraded_at < self.retry_after

    def _mark_degraded(self, reason: str) -> None:
        with self._lock:
            first = self._degraded_reason is None
            self._degraded_reason = reason
            self._degraded_at = self._clock()
        if first:
            logger.warning(f"Embedding provider unavailable, continuing without vectors: {reason}")
        else:
            logger.debug(f"Embedding provider still unavailable: {reason}")

    def reset(self) -> None:
        """Clear the degraded state so the next call probes the provider."""
        with self._lock:
            if self.provider is not None:
                self._degraded_reason = None
                self._degraded_at = 0.0

    @property
    def dimensions(self) -> Optional[int]:
        """Vector length of the active provider, or None while degraded."""
        if self.degraded:
            return None
        try:
            return self.provider.dimensions
        except EmbeddingUnavailableError as e:
            self._mark_degraded(e.reason)
            return None

    def identity(self) -> Optional[EmbeddingMeta]:
        """Provider, model and dimensions of vectors produced right now."""
        dims = self.dimensions
        if dims is None:
            return None
        return EmbeddingMeta(provider=self.provider.name, model=self.provider.model, dimensions=dims)

    def embed_document(self, text: str) -> Optional[list[float]]:
        """Embed indexed content; None when degraded."""
        return self._embed(text, DOCUMENT)

    def embed_query(self, text: str) -> Optional[list[float]]:
        """Embed a search query; None when degraded."""
        return self._embed(text, QUERY)

    def _embed(self, text: str, purpose: str) -> Optional[list[float]]:
        if self.degraded:
            return None

        try:
            vector = self.provider.embed(text[: self.max_embed_chars], purpose)
        except EmbeddingUnavailableError as e:
            self._mark_degraded(e.reason)
            return None

        with self._lock:
            if self._degraded_reason is not None:
                logger.info("Embedding provider recovered")
                self._degraded_reason = None
        return vector

    def __repr__(self) -> str:
        state = f"degraded: {self.degraded_reason}" if self.degraded else "ready"
        return f"EmbeddingOrchestrator(provider={self.provider_name}, {state})"
