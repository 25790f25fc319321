"""
Local embedding provider backed by sentence-transformers.

Runs the model in-process, with lazy loading.
"""

import logging
import threading
from typing import Optional

from sentence_transformers import SentenceTransformer

from .base import DOCUMENT, EmbeddingProvider, validate_embedding
from ..exceptions import EmbeddingUnavailableError
from ..utils import retry_on_failure

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class LocalEmbeddingProvider(EmbeddingProvider):
    """
    In-process sentence-transformers model, loaded on first use.

    Vectors are L2-normalized. A model that cannot be loaded (typically a
    first-time download without network access) is reported as
    EmbeddingUnavailableError so indexing can continue in lite mode.
    """

    name = "local"

    def __init__(self, model_name: str = DEFAULT_MODEL, device: Optional[str] = None, dimensions: int = 0):
        """
        Args:
            model_name: sentence-transformers model id or local path
            device: Torch device, or None to let sentence-transformers choose
            dimensions: Expected vector length (0: read from the model)
        """
        self.model_name = model_name or DEFAULT_MODEL
        self.device = device
        self._model: Optional[SentenceTransformer] = None
        self._dimension: Optional[int] = dimensions or None
        self._model_lock = threading.Lock()

    @property
    def model(self) -> str:
        return self.model_name

    @property
    def encoder(self) -> SentenceTransformer:
        """The loaded SentenceTransformer; loads it on first access."""
        if self._model is None:
            with self._model_lock:
                if self._model is None:
                    logger.info(f"Loading embedding model: {self.model_name}")
                    try:
                        self._model = SentenceTransformer(self.model_name, device=self.device)
                    except OSError as e:
                        raise EmbeddingUnavailableError(
                            f"could not load model {self.model_name}: {e}", provider=self.name
                        ) from e
                    logger.info(f"{self.model_name} ready on {self._model.device}")
        return self._model

    @property
    def dimensions(self) -> int:
        """Vector length, probed from the model unless configured."""
        if self._dimension is None:
            probe = self.encoder.encode("dimension probe", show_progress_bar=False)
            self._dimension = len(probe)
            logger.debug(f"{self.model_name} produces {self._dimension}-dim vectors")
        return self._dimension

    @retry_on_failure(max_attempts=3, delay=0.5, exceptions=(RuntimeError,))
    def embed(self, text: str, purpose: str = DOCUMENT) -> list[float]:
        """Embed one text. Purpose is ignored; these models are symmetric."""
        embedding = self.encoder.encode(
            text,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return validate_embedding(embedding.tolist(), self._dimension or 0, self.name)

    def __repr__(self) -> str:
        state = "loaded" if self._model is not None else "lazy"
        return f"LocalEmbeddingProvider(model={self.model_name}, {state})"
