"""
Shared helpers for vaultctx.

Retry decorator for flaky provider calls plus small text utilities used by
both the indexer and the retrieval path.
"""

import functools
import hashlib
import logging
import re
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: str = "linear",
    exceptions: tuple = (Exception,),
) -> Callable:
    """
    Retry a function when it raises one of the given exceptions.

    Args:
        max_attempts: Total number of attempts (including the first)
        delay: Base delay in seconds between attempts
        backoff: "linear" waits delay * attempt, "constant" always waits delay
        exceptions: Exception types that trigger a retry

    Returns:
        Decorator that wraps the function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise
                    wait = delay * attempt if backoff == "linear" else delay
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}; "
                        f"retrying in {wait:.1f}s"
                    )
                    if wait > 0:
                        time.sleep(wait)
        return wrapper
    return decorator


def sha256_text(text: str) -> str:
    """Hex SHA-256 digest of the UTF-8 encoding of text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def estimate_tokens(text: str) -> int:
    """Rough token count (about four characters per token)."""
    return len(text) // 4


def make_snippet(text: str, max_chars: int = 400) -> str:
    """
    Collapse whitespace and cut text to at most max_chars characters.

    Cuts on a word boundary when one is reasonably close and marks the cut
    with an ellipsis.
    """
    flat = _WHITESPACE.sub(" ", text).strip()
    if len(flat) <= max_chars:
        return flat
    if max_chars <= 3:
        return flat[:max_chars]
    cut = flat[: max_chars - 3]
    space = cut.rfind(" ")
    if space > max_chars // 2:
        cut = cut[:space]
    return cut.rstrip() + "..."


def redact(message: str, secret: Optional[str]) -> str:
    """Replace every occurrence of secret in message."""
    if secret and len(secret) >= 4:
        return message.replace(secret, "***")
    return message
