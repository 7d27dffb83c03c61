"""
voicerelay/stt/speech_engine.py
================================
In-Process Speech Engine Transcriber — VoiceRelay STT Layer

Responsibility:
    - Transcribe a voice-message payload with the host's own speech
      recognizer (no network, no API key)
    - Map translation language codes to recognizer locales
    - Replay the payload through a muted media element the interceptor
      leaves alone, and stop the recognizer shortly after playback ends
    - Keep only final recognition segments

The host recognizer can run one session at a time, so calls are serialized
with an ``asyncio.Lock``. There is no retry: a failed recognition is
reported as ``TranscriptionError``.

This module does NOT:
    - Capture or download audio
    - Translate text
"""

import asyncio
import logging
from typing import Any, Sequence

from voicerelay.audio.downloader import BinaryPayload
from voicerelay.capture.suppression import SuppressionContext
from voicerelay.errors import TranscriptionError
from voicerelay.host import HostMediaSurface, RecognitionSegment, settle

logger = logging.getLogger("voicerelay.stt.speech_engine")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_LOCALE = "en-US"
STOP_GRACE_SECONDS: float = 0.5        # seconds after replay ends
RECOGNITION_TIMEOUT_SECONDS: float = 60.0

# Translation language code → recognizer locale
_LOCALE_MAP: dict[str, str] = {
    "zh-CN": "zh-CN",
    "zh-TW": "zh-TW",
    "en": "en-US",
    "ja": "ja-JP",
    "ko": "ko-KR",
    "vi": "vi-VN",
    "th": "th-TH",
    "id": "id-ID",
    "ms": "ms-MY",
    "tl": "fil-PH",
    "es": "es-ES",
    "fr": "fr-FR",
    "de": "de-DE",
    "it": "it-IT",
    "pt": "pt-PT",
    "ru": "ru-RU",
    "ar": "ar-SA",
    "hi": "hi-IN",
    "tr": "tr-TR",
}


def normalize_locale(language_hint: str | None) -> str:
    """Return the recognizer locale for ``language_hint``.

    Empty hints, ``auto`` and codes outside the table all map to en-US.
    """
    if not language_hint or language_hint == "auto":
        return DEFAULT_LOCALE
    locale = _LOCALE_MAP.get(language_hint)
    if locale is None:
        logger.debug("No recognizer locale for '%s'; using %s.", language_hint, DEFAULT_LOCALE)
        return DEFAULT_LOCALE
    return locale


# ---------------------------------------------------------------------------
# Transcriber
# ---------------------------------------------------------------------------


class SpeechEngineTranscriber:
    """TranscriptionStrategy backed by the host speech recognizer."""

    name = "speech"

    def __init__(
        self,
        surface: HostMediaSurface,
        suppression: SuppressionContext,
        grace: float = STOP_GRACE_SECONDS,
        recognition_timeout: float = RECOGNITION_TIMEOUT_SECONDS,
        max_alternatives: int = 1,
    ) -> None:
        self._surface = surface
        self._suppression = suppression
        self.grace = grace
        self.recognition_timeout = recognition_timeout
        self.max_alternatives = max_alternatives
        self._lock = asyncio.Lock()

    def is_supported(self) -> bool:
        return (
            self._surface.speech_recognizer_factory is not None
            and self._surface.create_media_element is not None
            and self._surface.create_object_url is not None
        )

    @staticmethod
    def supported_languages() -> list[str]:
        return list(dict.fromkeys(_LOCALE_MAP.values()))

    async def transcribe_from_blob(
        self, payload: BinaryPayload, language_hint: str | None = None,
    ) -> str:
        """
        Replay ``payload`` silently and return the recognized text.

        Raises:
            TranscriptionError: Recognizer unavailable, recognition error,
                                timeout, or no speech recognized.
        """
        if not self.is_supported():
            raise TranscriptionError("Speech recognition is not available in this host.")

        locale = normalize_locale(language_hint)
        logger.info("In-process recognition started (%s, %d bytes).", locale, payload.size)

        async with self._lock:
            text = await self._recognize(payload, locale)

        if not text:
            raise TranscriptionError("No speech was recognized in the voice message.")

        logger.info("In-process recognition complete: %d chars.", len(text))
        return text

    # ------------------------------------------------------------------
    # Recognition session
    # ------------------------------------------------------------------

    def _new_recognizer(self, locale: str) -> Any:
        recognizer = self._surface.speech_recognizer_factory()
        recognizer.lang = locale
        recognizer.continuous = False
        recognizer.interim_results = False
        recognizer.max_alternatives = self.max_alternatives
        return recognizer

    async def _recognize(self, payload: BinaryPayload, locale: str) -> str:
        loop = asyncio.get_running_loop()
        finished: asyncio.Future = loop.create_future()
        finals: list[str] = []
        stop_timer: list[asyncio.TimerHandle] = []

        recognizer = self._new_recognizer(locale)
        element = self._surface.create_media_element()
        url = self._surface.create_object_url(payload)

        def on_start() -> None:
            logger.debug("Recognizer started.")

        def on_result(segments: Sequence[RecognitionSegment]) -> None:
            for segment in segments:
                if segment.is_final and segment.transcript.strip():
                    finals.append(segment.transcript.strip())

        def on_error(code: str) -> None:
            if not finished.done():
                finished.set_exception(TranscriptionError(f"Speech recognition error: {code}"))

        def on_end() -> None:
            if not finished.done():
                finished.set_result(" ".join(finals).strip())

        def on_playback_ended() -> None:
            logger.debug("Replay finished; stopping recognizer in %.1fs.", self.grace)
            stop_timer.append(loop.call_later(self.grace, recognizer.stop))

        recognizer.on_start = on_start
        recognizer.on_result = on_result
        recognizer.on_error = on_error
        recognizer.on_end = on_end

        with self._suppression.exempt(element):
            try:
                element.volume = 0
                element.muted = True
                element.on_ended = on_playback_ended
                element.src = url

                try:
                    await settle(element.play())
                except Exception as exc:
                    raise TranscriptionError(f"Failed to replay audio for recognition: {exc}") from exc

                recognizer.start()
                try:
                    return await asyncio.wait_for(finished, self.recognition_timeout)
                except asyncio.TimeoutError as exc:
                    recognizer.stop()
                    raise TranscriptionError(
                        f"Speech recognition timed out after {self.recognition_timeout:.1f}s."
                    ) from exc
            finally:
                for handle in stop_timer:
                    handle.cancel()
                element.on_ended = None
                element.pause()
                if self._surface.revoke_object_url is not None:
                    self._surface.revoke_object_url(url)
