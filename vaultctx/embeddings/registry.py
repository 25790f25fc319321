"""
Embedding provider resolution.

Providers are described as data: a name, a constructor and a static
requirement check. "auto" walks the configured fallback order and picks the
first provider whose requirements are satisfied by the settings alone, so
resolution never touches the network.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .base import EmbeddingProvider
from ..config import EmbeddingSettings
from ..exceptions import EmbeddingConfigError

logger = logging.getLogger(__name__)

NONE = "none"
AUTO = "auto"


def _no_requirements(settings: EmbeddingSettings) -> Optional[str]:
    return None


def _openai_requirements(settings: EmbeddingSettings) -> Optional[str]:
    if not settings.api_key:
        return "no API key configured"
    return None


def _compatible_requirements(settings: EmbeddingSettings) -> Optional[str]:
    if not settings.base_url:
        return "no base_url configured"
    if not settings.model:
        return "no model configured"
    return None


def _make_local(settings: EmbeddingSettings) -> EmbeddingProvider:
    from .local import LocalEmbeddingProvider

    return LocalEmbeddingProvider(model_name=settings.model, dimensions=settings.dimensions)


def _make_ollama(settings: EmbeddingSettings) -> EmbeddingProvider:
    from .ollama import DEFAULT_BASE_URL, OllamaEmbeddingProvider

    return OllamaEmbeddingProvider(
        model=settings.model,
        base_url=settings.base_url or DEFAULT_BASE_URL,
        dimensions=settings.dimensions,
        timeout=settings.timeout,
    )


def _make_openai(settings: EmbeddingSettings) -> EmbeddingProvider:
    from .openai import OpenAIEmbeddingProvider

    return OpenAIEmbeddingProvider(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        dimensions=settings.dimensions,
        timeout=settings.timeout,
    )


def _make_compatible(settings: EmbeddingSettings) -> EmbeddingProvider:
    from .openai import OpenAIEmbeddingProvider

    return OpenAIEmbeddingProvider(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        dimensions=settings.dimensions,
        timeout=settings.timeout,
        compatible=True,
    )


@dataclass(frozen=True)
class ProviderSpec:
    """How to check for and build one provider."""
    name: str
    factory: Optional[Callable[[EmbeddingSettings], EmbeddingProvider]]
    requirements: Callable[[EmbeddingSettings], Optional[str]] = _no_requirements


PROVIDERS: dict[str, ProviderSpec] = {
    "local": ProviderSpec("local", _make_local),
    "ollama": ProviderSpec("ollama", _make_ollama),
    "openai": ProviderSpec("openai", _make_openai, _openai_requirements),
    "openai-compatible": ProviderSpec("openai-compatible", _make_compatible, _compatible_requirements),
    NONE: ProviderSpec(NONE, None),
}


def resolve_provider_name(settings: EmbeddingSettings) -> str:
    """
    Decide which provider the settings select.

    Args:
        settings: Embedding settings

    Returns:
        A key of PROVIDERS

    Raises:
        EmbeddingConfigError: Unknown provider name, or no provider in the
            fallback order is usable
    """
    name = (settings.provider or AUTO).strip().lower()
    if name != AUTO:
        if name not in PROVIDERS:
            raise EmbeddingConfigError(
                f"Unknown embedding provider {name!r}; expected one of "
                f"{', '.join(sorted(PROVIDERS))} or 'auto'"
            )
        return name

    for candidate in settings.fallback_order:
        spec = PROVIDERS.get(candidate)
        if spec is None:
            raise EmbeddingConfigError(f"Unknown embedding provider {candidate!r} in fallback_order")
        missing = spec.requirements(settings)
        if missing is None:
            logger.info(f"Auto-selected embedding provider: {candidate}")
            return candidate
        logger.debug(f"Skipping provider {candidate}: {missing}")

    raise EmbeddingConfigError("No embedding provider in fallback_order is usable")


def create_provider(settings: EmbeddingSettings) -> Optional[EmbeddingProvider]:
    """
    Build the provider selected by settings.

    Returns:
        The provider, or None for the keyword-only "none" provider

    Raises:
        EmbeddingConfigError: If the selected provider is misconfigured
    """
    name = resolve_provider_name(settings)
    spec = PROVIDERS[name]
    if spec.factory is None:
        return None
    missing = spec.requirements(settings)
    if missing is not None:
        raise EmbeddingConfigError(f"{name} embedding provider: {missing}")
    return spec.factory(settings)
