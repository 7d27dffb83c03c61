"""
voicerelay/stt/hosted.py
=========================
Hosted-API Transcriber — VoiceRelay STT Layer

Responsibility:
    - Transcribe a payload through a hosted Whisper backend (backends.py)
    - Retry retryable failures with linear back-off
    - Convert terminal failures and exhausted retries to ``TranscriptionError``

Retry policy:
    attempts  = max_retries + 1
    delay(n)  = retry_delay * n   (n = 1 after the first failure, 2, ...)
    Only responses flagged ``retryable`` are retried.

This module does NOT:
    - Perform HTTP itself (handled by backends.py)
    - Choose the backend (handled by router.py)
"""

import asyncio
import logging
from typing import Any

from voicerelay.audio.downloader import BinaryPayload
from voicerelay.errors import TranscriptionError
from voicerelay.stt.backends import HostedSTTResponse

logger = logging.getLogger("voicerelay.stt.hosted")

DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds


class HostedTranscriber:
    """TranscriptionStrategy backed by a hosted speech-to-text API."""

    def __init__(
        self,
        backend: Any,
        api_key: str | None = None,
        model: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self.backend = backend
        self.api_key = api_key or ""
        self.model = model or backend.default_model
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @property
    def name(self) -> str:
        return self.backend.name

    def is_supported(self) -> bool:
        return bool(self.api_key.strip())

    async def check_status(self) -> bool:
        """Ask the backend whether the configured model is reachable."""
        if not self.is_supported():
            return False
        return await self.backend.status(self.api_key, self.model)

    def update_config(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        if api_key is not None:
            self.api_key = api_key
        if model is not None:
            self.model = model
        if max_retries is not None:
            self.max_retries = max_retries
        if retry_delay is not None:
            self.retry_delay = retry_delay
        logger.info("%s transcriber reconfigured (model: %s).", self.name, self.model)

    async def transcribe_from_blob(
        self, payload: BinaryPayload, language_hint: str | None = None,
    ) -> str:
        """
        Transcribe ``payload``. The hosted models detect the language
        themselves, so ``language_hint`` is only logged.

        Raises:
            TranscriptionError: Missing API key, terminal backend failure,
                                exhausted retries or empty text.
        """
        if not self.is_supported():
            raise TranscriptionError(f"No API key configured for {self.name} speech recognition.")

        logger.info(
            "Hosted transcription started: %s (model: %s, %d bytes, hint: %s)",
            self.name, self.model, payload.size, language_hint or "auto",
        )

        response = await self._call_with_retry(payload)
        text = response.text.strip()
        if not text:
            raise TranscriptionError("No speech was recognized in the voice message.")

        logger.info("Hosted transcription complete: %d chars.", len(text))
        return text

    async def _call_with_retry(self, payload: BinaryPayload) -> HostedSTTResponse:
        total = self.max_retries + 1

        for attempt in range(1, total + 1):
            try:
                response = await self.backend.transcribe(payload, self.api_key, self.model)
            except TranscriptionError:
                raise
            except Exception as exc:
                raise TranscriptionError(f"Speech recognition failed: {exc}") from exc

            if response.success:
                return response

            if not response.retryable:
                logger.error("%s transcription failed: %s", self.name, response.error)
                raise TranscriptionError(f"Speech recognition failed: {response.error}")

            if attempt < total:
                delay = self.retry_delay * attempt
                logger.warning(
                    "%s transcription failed (attempt %d/%d): %s; retrying in %.1fs",
                    self.name, attempt, total, response.error, delay,
                )
                await asyncio.sleep(delay)

        logger.error("%s transcription failed after %d attempts: %s", self.name, total, response.error)
        raise TranscriptionError(
            f"Speech recognition failed after {total} attempts: {response.error}"
        )
