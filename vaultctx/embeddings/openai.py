"""
OpenAI and OpenAI-compatible embedding providers.

Uses the official openai SDK. The "openai-compatible" flavour points the
same client at a self-hosted server (llama.cpp, vLLM, LM Studio, ...)
through base_url.
"""

import logging
import threading
from typing import Optional
from urllib.parse import urlparse

import openai
from openai import OpenAI

from .base import DOCUMENT, EmbeddingProvider, validate_embedding
from ..exceptions import EmbeddingConfigError, EmbeddingUnavailableError
from ..utils import redact

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
KNOWN_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}
VARIABLE_DIM_MODELS = ("text-embedding-3-small", "text-embedding-3-large")
PLACEHOLDER_KEY = "EMPTY"


def _api_base(base_url: str) -> str:
    base = base_url.rstrip("/")
    return base if base.endswith("/v1") else f"{base}/v1"


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings via the OpenAI embeddings endpoint.

    For api.openai.com an API key is mandatory and the model defaults to
    text-embedding-3-small. A compatible server needs an explicit model and
    base URL; when no dimensions are configured the length of the first
    returned vector is adopted.
    """

    def __init__(
        self,
        model: str = "",
        api_key: str = "",
        base_url: str = "",
        dimensions: int = 0,
        timeout: float = 30.0,
        compatible: bool = False,
        client: Optional[OpenAI] = None,
        max_retries: int = 2,
    ):
        self.name = "openai-compatible" if compatible else "openai"
        self.api_key = api_key

        if compatible:
            if not base_url:
                raise EmbeddingConfigError("openai-compatible provider requires embedding.base_url")
            if not model:
                raise EmbeddingConfigError("openai-compatible provider requires embedding.model")
            host = urlparse(base_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                logger.warning(f"Embedding requests will be sent to remote server {host}")
            self.base_url: Optional[str] = _api_base(base_url)
            self._model = model
            self._dimensions = dimensions
        else:
            if not api_key:
                raise EmbeddingConfigError(
                    "openai provider requires an API key "
                    "(set VAULTCTX_EMBED_API_KEY, OPENAI_API_KEY or embedding.api_key)"
                )
            self.base_url = _api_base(base_url) if base_url else None
            self._model = model or DEFAULT_MODEL
            self._dimensions = dimensions or KNOWN_DIMENSIONS.get(self._model, 1536)

        self._client = client or OpenAI(
            api_key=api_key or PLACEHOLDER_KEY,
            base_url=self.base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self._dims_lock = threading.Lock()

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        """Configured dimensions, probing the server once when unknown."""
        if not self._dimensions:
            self.embed("dimension probe")
        return self._dimensions

    def embed(self, text: str, purpose: str = DOCUMENT) -> list[float]:
        """
        Embed text with the configured model.

        Raises:
            EmbeddingUnavailableError: Network failure, rate limit or server error
            EmbeddingConfigError: Authentication, permission or request errors
        """
        kwargs = {"model": self._model, "input": [text]}
        if self._dimensions and self._model in VARIABLE_DIM_MODELS:
            kwargs["dimensions"] = self._dimensions

        try:
            response = self._client.embeddings.create(**kwargs)
        except openai.APIConnectionError as e:
            raise EmbeddingUnavailableError(self._clean(e), provider=self.name) from e
        except (openai.RateLimitError, openai.InternalServerError) as e:
            raise EmbeddingUnavailableError(self._clean(e), provider=self.name) from e
        except openai.APIStatusError as e:
            raise EmbeddingConfigError(
                f"{self.name} rejected the request ({e.status_code}): {self._clean(e)}"
            ) from e

        if not response.data:
            raise EmbeddingUnavailableError("empty response", provider=self.name)
        vector = validate_embedding(response.data[0].embedding, self._dimensions, self.name)

        if not self._dimensions:
            with self._dims_lock:
                if not self._dimensions:
                    self._dimensions = len(vector)
                    logger.info(f"{self.name} model {self._model} produces {self._dimensions}-d vectors")
        return vector

    def _clean(self, error: Exception) -> str:
        return redact(str(error), self.api_key)
