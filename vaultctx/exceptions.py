"""
Exception hierarchy for vaultctx.

Errors fall into two families: recoverable ones that the indexing and
retrieval policies handle locally (an unreachable embedding provider, an
unreadable note) and fatal ones that must reach the caller (bad provider
configuration, an unusable store).
"""

from typing import Optional


class VaultCtxError(Exception):
    """Base class for all vaultctx errors."""


class EmbeddingError(VaultCtxError):
    """Base class for embedding provider failures."""


class EmbeddingUnavailableError(EmbeddingError):
    """
    The embedding provider could not be reached.

    Connection refused, timeouts, DNS failures and server errors that
    persisted through retries all land here. Callers degrade to
    keyword-only operation instead of failing.
    """

    def __init__(self, reason: str, provider: Optional[str] = None):
        self.reason = reason
        self.provider = provider
        prefix = f"{provider}: " if provider else ""
        super().__init__(f"{prefix}{reason}")


class EmbeddingConfigError(EmbeddingError):
    """The embedding provider is misconfigured (fatal)."""


class DimensionMismatchError(EmbeddingConfigError):
    """Stored vectors and the active provider disagree on dimensions."""

    def __init__(self, stored: int, active: int, detail: str = ""):
        self.stored = stored
        self.active = active
        message = (
            f"Index holds {stored}-dimensional vectors but the active embedding "
            f"provider produces {active}; run a forced full rebuild to switch models"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class StoreError(VaultCtxError):
    """The chunk store could not be opened or written (fatal)."""


class DocumentReadError(VaultCtxError):
    """A single note could not be read or decoded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ReindexInProgressError(VaultCtxError):
    """Another reindex is already running against the same vault."""
