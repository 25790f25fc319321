"""
Note metadata for vaultctx.

Parses YAML frontmatter, infers a note's content type and computes the
confidence prior that retrieval blends into its composite score.
"""

import logging
import math
import time
from pathlib import PurePosixPath
from typing import Any, Optional

import frontmatter

from .models import NoteMeta

logger = logging.getLogger(__name__)

# Days until a note's recency score halves; None never decays.
DECAY_HALF_LIFE_DAYS: dict[str, Optional[float]] = {
    "decision": None,
    "hub": None,
    "research": 90.0,
    "project": 90.0,
    "note": 60.0,
    "handoff": 30.0,
    "progress": 30.0,
}
DEFAULT_HALF_LIFE_DAYS = 60.0

TYPE_BASELINES: dict[str, float] = {
    "decision": 0.9,
    "hub": 0.85,
    "research": 0.7,
    "project": 0.65,
    "handoff": 0.6,
    "progress": 0.5,
    "note": 0.5,
}

_PATH_HINTS = (
    (("handoff", "session"), "handoff"),
    (("decision",), "decision"),
    (("research",), "research"),
    (("project",), "project"),
    (("hub", "moc", "index"), "hub"),
)
_TAG_HINTS = ("decision", "research", "handoff", "hub", "project", "progress")


def _as_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.replace(",", " ").split()
    elif isinstance(value, (list, tuple, set)):
        parts = [str(v) for v in value if v is not None]
    else:
        parts = [str(value)]
    return [p.strip().lstrip("#") for p in parts if p.strip().lstrip("#")]


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_note(path: str, text: str) -> tuple[NoteMeta, str]:
    """
    Split a note into frontmatter metadata and body.

    Malformed frontmatter is logged and the whole text is treated as body.

    Args:
        path: Vault-relative note path (title fallback and type hints)
        text: Raw note text

    Returns:
        Tuple of (NoteMeta, body)
    """
    try:
        post = frontmatter.loads(text)
        fm = dict(post.metadata or {})
        body = post.content
    except Exception as e:
        # python-frontmatter surfaces YAML parser errors of several types
        logger.warning(f"Ignoring malformed frontmatter in {path}: {e}")
        fm, body = {}, text

    title = _as_str(fm.get("title")) or PurePosixPath(path).stem
    tags = _as_tags(fm.get("tags"))
    explicit_type = _as_str(fm.get("content_type") or fm.get("type"))
    review_by = _as_str(fm.get("review_by") or fm.get("review-by"))

    meta = NoteMeta(
        title=title,
        tags=tags,
        domain=_as_str(fm.get("domain")),
        workstream=_as_str(fm.get("workstream")),
        content_type=infer_content_type(path, explicit_type, tags),
        review_by=review_by,
    )
    return meta, body


def infer_content_type(path: str, explicit_type: Optional[str] = None, tags: Optional[list[str]] = None) -> str:
    """
    Infer a note's content type.

    An explicit, known type wins; then path keywords; then tags; else "note".
    """
    if explicit_type:
        lowered = explicit_type.strip().lower()
        if lowered in DECAY_HALF_LIFE_DAYS:
            return lowered

    path_lower = path.lower()
    for keywords, content_type in _PATH_HINTS:
        if any(k in path_lower for k in keywords):
            return content_type

    tag_set = {t.lower() for t in tags or []}
    for tag in _TAG_HINTS:
        if tag in tag_set:
            return tag

    return "note"


def recency_score(modified: float, content_type: str, now: Optional[float] = None) -> float:
    """Exponential recency decay in [0, 1] using the type's half-life."""
    half_life = DECAY_HALF_LIFE_DAYS.get(content_type, DEFAULT_HALF_LIFE_DAYS)
    if half_life is None:
        return 1.0
    now = time.time() if now is None else now
    age_days = (now - modified) / 86400.0
    if age_days <= 0:
        return 1.0
    return math.pow(0.5, age_days / half_life)


def compute_confidence(
    content_type: str,
    modified: float,
    access_count: int = 0,
    has_review_by: bool = False,
    now: Optional[float] = None,
) -> float:
    """
    Confidence prior for a note, rounded to three decimals.

    Blends the type baseline with recency decay, adds a capped logarithmic
    boost for prior use and a small boost for notes with a review date.
    """
    baseline = TYPE_BASELINES.get(content_type, 0.5)
    recency = recency_score(modified, content_type, now)
    access_boost = min(0.15, math.log2(access_count + 1) / 10)
    review_boost = 0.05 if has_review_by else 0.0
    confidence = 0.5 * baseline + 0.35 * recency + access_boost + review_boost
    return round(min(1.0, max(0.0, confidence)), 3)
