"""
Ollama embedding provider.

Talks to a local Ollama daemon over HTTP. Only localhost URLs are accepted
so note content never leaves the machine through this provider.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

import requests

from .base import DOCUMENT, QUERY, EmbeddingProvider, validate_embedding
from ..exceptions import EmbeddingConfigError, EmbeddingUnavailableError
from ..utils import retry_on_failure

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "nomic-embed-text"
DEFAULT_BASE_URL = "http://localhost:11434"
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")
TRUNCATE_ON_ERROR_CHARS = 3000

KNOWN_DIMENSIONS = {
    "nomic-embed-text": 768,
    "nomic-embed-text-v2-moe": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "snowflake-arctic-embed": 1024,
    "snowflake-arctic-embed2": 768,
    "embeddinggemma": 768,
    "qwen3-embedding": 1024,
    "bge-m3": 1024,
}


class _ServerError(Exception):
    """A 5xx answer, retried before giving up."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"ollama returned {status}: {body[:200]}")


def validate_localhost(url: str) -> str:
    """Return url without a trailing slash, or raise if it is not local."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise EmbeddingConfigError(f"Invalid Ollama URL: {url!r}")
    if parsed.hostname not in LOCAL_HOSTS:
        raise EmbeddingConfigError(
            f"Ollama URL must point to localhost, got: {parsed.hostname}"
        )
    return url.rstrip("/")


def _classify(error: requests.RequestException) -> str:
    if isinstance(error, requests.Timeout):
        return "timeout"
    message = str(error).lower()
    if "refused" in message:
        return "connection refused"
    if "name or service not known" in message or "nodename nor servname" in message:
        return "dns failure"
    return "network error"


class OllamaEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings via POST {base_url}/api/embeddings.

    Network errors and 5xx responses are retried three times with linear
    backoff before surfacing as EmbeddingUnavailableError. 4xx responses are
    configuration problems and are not retried. Nomic models receive the
    search_document / search_query task prefixes they were trained with.
    """

    name = "ollama"

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        dimensions: int = 0,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
        retry_delay: float = 2.0,
    ):
        self._model = model or DEFAULT_MODEL
        self.base_url = validate_localhost(base_url or DEFAULT_BASE_URL)
        self._dimensions = dimensions or KNOWN_DIMENSIONS.get(self._model, 768)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.retry_delay = retry_delay

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _prompt(self, text: str, purpose: str) -> str:
        if "nomic" not in self._model:
            return text
        prefix = "search_query" if purpose == QUERY else "search_document"
        return f"{prefix}: {text}"

    def embed(self, text: str, purpose: str = DOCUMENT) -> list[float]:
        """
        Embed text through the Ollama daemon.

        Raises:
            EmbeddingUnavailableError: Daemon unreachable or failing after retries
            EmbeddingConfigError: Model missing or request rejected
        """
        try:
            return self._request_with_retry(self._prompt(text, purpose))
        except _ServerError as e:
            if e.status == 500 and len(text) > TRUNCATE_ON_ERROR_CHARS:
                logger.warning(f"Ollama failed on {len(text)} chars, retrying with half the text")
                return self.embed(text[: len(text) // 2], purpose)
            raise EmbeddingUnavailableError(str(e), provider=self.name) from e
        except requests.RequestException as e:
            raise EmbeddingUnavailableError(
                f"{_classify(e)} at {self.base_url}", provider=self.name
            ) from e

    def _request_with_retry(self, prompt: str) -> list[float]:
        request = retry_on_failure(
            max_attempts=3,
            delay=self.retry_delay,
            exceptions=(_ServerError, requests.ConnectionError, requests.Timeout),
        )(self._request)
        return request(prompt)

    def _request(self, prompt: str) -> list[float]:
        response = self.session.post(
            f"{self.base_url}/api/embeddings",
            json={"model": self._model, "prompt": prompt},
            timeout=self.timeout,
        )
        if response.status_code >= 500:
            raise _ServerError(response.status_code, response.text)
        if response.status_code == 404:
            raise EmbeddingConfigError(
                f"Ollama model {self._model!r} not found; run `ollama pull {self._model}`"
            )
        if response.status_code >= 400:
            raise EmbeddingConfigError(
                f"Ollama rejected the request ({response.status_code}): {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise EmbeddingUnavailableError(f"invalid JSON from Ollama: {e}", provider=self.name) from e

        return validate_embedding(payload.get("embedding") or [], self._dimensions, self.name)
