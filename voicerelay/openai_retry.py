"""
voicerelay/openai_retry.py
===========================
Chat-Completion Retry Helper — VoiceRelay

Wraps ``client.chat.completions.create`` with exponential back-off on
transient failures. Works for any OpenAI-compatible endpoint, which is how
the ``openai`` and ``groq`` translation engines share one client type::

    from voicerelay.openai_retry import chat_completions_with_retry

    response = chat_completions_with_retry(
        client,
        model="gpt-4o-mini",
        messages=[...],
        temperature=0.0,
    )

The call is blocking; async callers run it through ``asyncio.to_thread``.

This module does NOT:
    - Create clients or read API keys
    - Fall back to another engine (handled by nlp/translator.py)
"""

import logging
import time
from typing import Any

import openai

logger = logging.getLogger("voicerelay.openai_retry")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MAX_RETRIES: int = 2          # total attempts = MAX_RETRIES + 1
BASE_DELAY: float = 1.0       # seconds
MAX_DELAY: float = 8.0        # seconds
BACKOFF_FACTOR: float = 2.0

_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


def is_retryable(exc: Exception) -> bool:
    """Return True for rate limits, timeouts, dropped connections and 5xx."""
    if isinstance(exc, (openai.RateLimitError, openai.APITimeoutError, openai.APIConnectionError)):
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code in _RETRYABLE_STATUS_CODES
    return False


def chat_completions_with_retry(
    client: Any,
    *,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any,
) -> Any:
    """
    Call ``client.chat.completions.create(**kwargs)`` with retry.

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable one immediately.
    """
    delay = base_delay

    for attempt in range(1, max_retries + 2):
        try:
            return client.chat.completions.create(**kwargs)
        except Exception as exc:
            if not is_retryable(exc):
                logger.warning("Chat completion failed with non-retryable error: %s", exc)
                raise
            if attempt > max_retries:
                logger.error("Chat completion failed after %d attempts: %s", attempt, exc)
                raise
            logger.warning(
                "Chat completion failed (attempt %d/%d): %s; retrying in %.1fs",
                attempt, max_retries + 1, exc, delay,
            )
            time.sleep(delay)
            delay = min(delay * BACKOFF_FACTOR, MAX_DELAY)
