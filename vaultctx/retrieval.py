"""
Retrieval scoring for vaultctx.

Turns a free-text query into a short, budgeted list of chunks: vector
candidates are thresholded by distance, filtered for noise paths, ranked by a
composite of similarity, note confidence and prior usage, and cut to fit
both a result count and a token budget. When embeddings are unavailable, or
the index holds no vectors yet, the same pipeline runs over keyword matches.
Notes stored without vectors next to embedded ones join in by keyword.
"""

import logging
import re
from typing import Callable, Optional

from .config import Config, RetrievalSettings, ScoreWeights
from .embeddings import EmbeddingOrchestrator
from .exceptions import DimensionMismatchError, EmbeddingConfigError, EmbeddingError
from .models import ScoredResult
from .store.base import ChunkStore
from .utils import estimate_tokens, make_snippet

logger = logging.getLogger(__name__)

ScoreFn = Callable[[float, float, int, ScoreWeights, float], float]

STOP_WORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had", "her", "was",
    "one", "our", "out", "has", "have", "from", "that", "this", "with", "what", "when",
    "where", "which", "who", "why", "how", "about", "into", "there", "their", "them",
    "then", "than", "some", "does", "did", "were", "been", "will", "would", "should",
    "could", "your", "its", "any",
})
_WORD = re.compile(r"[\w][\w\-']*")


def similarity_from_distance(distance: float) -> float:
    """Map a non-negative distance to a similarity in (0, 1]."""
    return 1.0 / (1.0 + max(distance, 0.0))


def composite_score(
    similarity: float,
    confidence: float,
    access_count: int,
    weights: ScoreWeights,
    usage_saturation: float = 5.0,
) -> float:
    """
    Weighted mean of similarity, confidence and saturating usage.

    Each component lies in [0, 1] and the weights are normalized, so the
    result does too. Usage grows as n / (n + usage_saturation).

    Args:
        similarity: Query similarity in [0, 1]
        confidence: Note confidence prior in [0, 1]
        access_count: Times the chunk was returned before
        weights: Component weights
        usage_saturation: Access count at which usage reaches 0.5

    Returns:
        Composite score in [0, 1]
    """
    usage = access_count / (access_count + usage_saturation) if access_count > 0 else 0.0
    total = weights.similarity + weights.confidence + weights.usage
    if total <= 0:
        return similarity
    score = (
        weights.similarity * similarity
        + weights.confidence * confidence
        + weights.usage * usage
    ) / total
    return min(1.0, max(0.0, score))


def query_terms(query: str) -> list[str]:
    """Lowercased distinct search terms of at least three characters."""
    seen = []
    for word in _WORD.findall(query.lower()):
        if len(word) >= 3 and word not in STOP_WORDS and word not in seen:
            seen.append(word)
    return seen


class RetrievalScorer:
    """
    Query-time ranking over a ChunkStore.

    The scoring function is pluggable: pass score_fn with the signature of
    composite_score to change how similarity, confidence and usage combine.
    """

    def __init__(
        self,
        store: ChunkStore,
        orchestrator: EmbeddingOrchestrator,
        settings: Optional[RetrievalSettings] = None,
        score_fn: ScoreFn = composite_score,
    ):
        """
        Initialize the scorer.

        Args:
            store: Chunk store to search
            orchestrator: Embedding orchestrator for query vectors
            settings: Retrieval thresholds and budgets (defaults if omitted)
            score_fn: Composite scoring function
        """
        self.store = store
        self.orchestrator = orchestrator
        self.settings = settings or RetrievalSettings()
        self.score_fn = score_fn

    @classmethod
    def from_config(cls, store: ChunkStore, orchestrator: EmbeddingOrchestrator, config: Config) -> "RetrievalScorer":
        return cls(store, orchestrator, config.retrieval)

    def retrieve(self, query_text: str, top_k: Optional[int] = None) -> list[ScoredResult]:
        """
        Find the chunks most worth showing for a query.

        Args:
            query_text: Free-text query
            top_k: Override for the maximum number of results

        Returns:
            Results in descending composite order; empty when the query is
            too short or nothing clears the thresholds

        Raises:
            DimensionMismatchError: If the query vector does not match the index
            EmbeddingConfigError: If the embedding provider is misconfigured
        """
        settings = self.settings
        query = (query_text or "").strip()
        if len(query) < settings.min_query_chars:
            logger.debug(f"Query too short ({len(query)} < {settings.min_query_chars} chars)")
            return []

        max_results = settings.max_results if top_k is None else top_k
        if max_results <= 0:
            return []
        fetch_k = max_results * settings.candidate_multiplier

        if self.store.has_vectors():
            vector = self._embed_query(query)
        else:
            logger.debug("Index holds no vectors, using keyword search")
            vector = None

        if vector is None:
            candidates = list(self._keyword_candidates(query, fetch_k))
        else:
            candidates = list(self._vector_candidates(vector, fetch_k))
            lite = self.store.lite_paths()
            if lite:
                # Notes indexed in lite mode are only reachable by keyword
                candidates.extend(self._keyword_candidates(query, fetch_k, paths=lite))

        scored = []
        for record, distance, similarity, match in candidates:
            if self._is_noise(record.path):
                continue
            score = self.score_fn(
                similarity, record.confidence, record.access_count,
                settings.weights, settings.usage_saturation,
            )
            if score < settings.min_composite:
                continue
            snippet = make_snippet(record.text, settings.max_snippet_chars)
            scored.append(ScoredResult(
                record=record,
                distance=distance,
                similarity=similarity,
                composite_score=score,
                snippet=snippet,
                token_cost=estimate_tokens(snippet),
                match=match,
            ))

        scored.sort(key=lambda r: (-r.composite_score, len(r.record.text)))
        if settings.dedupe_paths:
            scored = self._best_per_path(scored)

        results = self._apply_budget(scored, max_results, settings.max_token_budget)

        if results:
            self.store.increment_access([r.record.key for r in results])
        logger.debug(f"Query returned {len(results)} of {len(scored)} scored candidates")
        return results

    def _embed_query(self, query: str) -> Optional[list[float]]:
        try:
            vector = self.orchestrator.embed_query(query)
        except EmbeddingConfigError:
            raise
        except EmbeddingError as e:
            logger.warning(f"Query embedding failed, using keyword search: {e}")
            return None
        if vector is None:
            return None

        meta = self.store.get_embedding_meta()
        if meta is not None and meta.dimensions != len(vector):
            raise DimensionMismatchError(meta.dimensions, len(vector))
        return vector

    def _vector_candidates(self, vector: list[float], fetch_k: int):
        max_distance = self.settings.max_distance
        for record, distance in self.store.vector_search(vector, fetch_k):
            if distance > max_distance:
                continue
            yield record, distance, similarity_from_distance(distance), "vector"

    def _keyword_candidates(self, query: str, fetch_k: int, paths: Optional[set[str]] = None):
        terms = query_terms(query)
        logger.debug(f"Keyword search for {terms!r}")
        for record, match_score in self.store.keyword_search(query, terms, fetch_k, paths=paths):
            yield record, None, match_score, "keyword"

    def _is_noise(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.settings.noise_paths)

    @staticmethod
    def _best_per_path(results: list[ScoredResult]) -> list[ScoredResult]:
        seen: set[str] = set()
        best = []
        for result in results:
            if result.record.path in seen:
                continue
            seen.add(result.record.path)
            best.append(result)
        return best

    @staticmethod
    def _apply_budget(results: list[ScoredResult], max_results: int, max_tokens: int) -> list[ScoredResult]:
        """Longest prefix of results within the count and token budgets."""
        accepted = []
        used = 0
        for result in results:
            if len(accepted) >= max_results:
                break
            if used + result.token_cost > max_tokens:
                break
            accepted.append(result)
            used += result.token_cost
        return accepted
