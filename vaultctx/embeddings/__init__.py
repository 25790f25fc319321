"""
Embedding providers and orchestration for vaultctx.

- EmbeddingProvider: backend interface (local, ollama, openai, openai-compatible)
- EmbeddingOrchestrator: degradation policy around one provider
- create_provider / resolve_provider_name: provider selection from settings

Provider modules are imported lazily by the registry so that only the
selected backend's client library is loaded.
"""

from .base import DOCUMENT, QUERY, EmbeddingProvider, validate_embedding
from .orchestrator import EmbeddingOrchestrator
from .registry import PROVIDERS, ProviderSpec, create_provider, resolve_provider_name

__all__ = [
    "DOCUMENT",
    "QUERY",
    "EmbeddingProvider",
    "EmbeddingOrchestrator",
    "PROVIDERS",
    "ProviderSpec",
    "create_provider",
    "resolve_provider_name",
    "validate_embedding",
]
