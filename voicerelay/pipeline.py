"""
voicerelay/pipeline.py
=======================
Voice Translation Pipeline — VoiceRelay Orchestrator

Responsibility:
    The single public entry point. For one voice message:
        1. Fast path: reuse audio the host has already loaded in the region,
           otherwise run a silent capture cycle (capture/controller.py)
        2. Download the payload behind the captured handle (cached)
        3. Transcribe it with the configured strategy, under silent mode
        4. Translate the transcript (primary engine, then public fallback)
        5. Return an immutable VoiceTranslationResult

    Only one translation runs at a time. A second call while one is in
    flight fails immediately with ``BusyError``; it is never queued.

Teardown (every exit path):
    - lingering playback of the captured element is stopped and restored
    - any media element muted during transcription gets its volume/mute back
    - the single-flight guard is released

This layer does NOT:
    - Patch host APIs, click controls or wait for handles itself
    - Render results (the caller displays ``result.to_dict()``)
    - Persist settings
"""

import logging
from typing import Any

from voicerelay.audio.downloader import BinaryPayload, ResourceDownloader
from voicerelay.capture.controller import CaptureController
from voicerelay.capture.interceptor import ResourceInterceptor
from voicerelay.capture.suppression import SuppressionContext
from voicerelay.config import PipelineConfig
from voicerelay.errors import BusyError, PipelineUnavailableError, TranscriptionError
from voicerelay.host import HostMediaSurface
from voicerelay.models import VoiceTranslationResult
from voicerelay.nlp.translator import EngineTranslator, TranslationRequest
from voicerelay.stt.interface import TranscriptionStrategy
from voicerelay.stt.router import build_transcriber

logger = logging.getLogger("voicerelay.pipeline")

# Config keys that require rebuilding a collaborator
_STT_KEYS = {
    "stt_provider", "stt_max_retries", "stt_retry_delay", "normalize_audio",
    "huggingface_api_key", "huggingface_model", "groq_api_key", "groq_model",
}
_TRANSLATION_KEYS = {
    "openai_api_key", "openai_translation_model", "groq_api_key", "groq_translation_model",
}


class VoiceTranslationPipeline:
    """Capture → download → transcribe → translate, one message at a time."""

    def __init__(
        self,
        surface: HostMediaSurface,
        config: PipelineConfig | None = None,
        *,
        suppression: SuppressionContext | None = None,
        downloader: ResourceDownloader | None = None,
        transcriber: TranscriptionStrategy | None = None,
        translator: EngineTranslator | None = None,
    ) -> None:
        self.config = config or PipelineConfig.from_env()
        self.surface = surface
        self.suppression = suppression or SuppressionContext()

        self.interceptor = ResourceInterceptor(surface, self.suppression)
        self.controller = CaptureController(
            surface, self.interceptor, self.suppression,
            timeout=self.config.capture_timeout,
        )
        self.downloader = downloader or ResourceDownloader(surface.fetch_resource)

        self._fixed_transcriber = transcriber is not None
        self._fixed_translator = translator is not None
        self.transcriber = transcriber or build_transcriber(self.config, surface, self.suppression)
        self.translator = translator or EngineTranslator.from_config(self.config)

        self.is_initialized = False
        self.is_translating = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Install the resource interceptor. Safe to call repeatedly."""
        self.interceptor.install()
        self.is_initialized = True
        logger.info(
            "Voice translation pipeline initialized (stt: %s, engine: %s).",
            self.transcriber.name, self.config.engine,
        )

    def is_available(self) -> bool:
        return self.is_initialized and self.transcriber.is_supported()

    def cleanup(self) -> None:
        """Uninstall the interceptor, drop cached payloads and stop playback."""
        self.interceptor.uninstall()
        self.downloader.clear_cache()
        self.controller.stop_playback()
        self.is_initialized = False
        logger.info("Voice translation pipeline cleaned up.")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def translate_voice_message(
        self,
        region: Any,
        options: dict[str, Any] | None = None,
        trigger: Any = None,
    ) -> VoiceTranslationResult:
        """
        Translate the voice message shown in ``region``.

        Args:
            region:  The host UI region holding the voice-message player.
            options: Per-call overrides: ``source_lang``, ``target_lang``,
                     ``engine``; any other key is passed to the engine.
            trigger: Optional pre-resolved playback control.

        Raises:
            BusyError:                Another translation is in flight.
            PipelineUnavailableError: Not initialized, or STT unsupported.
            CaptureError:             Trigger missing, timeout, re-entrancy.
            DownloadError:            The captured handle could not be read.
            TranscriptionError:       STT failed or recognized nothing.
            TranslationServiceError:  Primary and fallback engines failed.
        """
        self._acquire()
        try:
            if not self.is_available():
                raise PipelineUnavailableError(self._unavailable_reason())

            logger.info("Voice message translation started.")
            captured = self.controller.find_loaded_handle(region)
            if captured is None:
                captured = await self.controller.capture(region, trigger)

            payload = await self.downloader.fetch(captured.handle)
            return await self._transcribe_and_translate(payload, options)
        finally:
            self.controller.stop_playback()
            self._restore_silenced()
            self.is_translating = False

    async def translate_payload(
        self,
        payload: BinaryPayload | bytes,
        options: dict[str, Any] | None = None,
    ) -> VoiceTranslationResult:
        """Run transcription and translation on audio already in hand."""
        self._acquire()
        try:
            if not self.transcriber.is_supported():
                raise PipelineUnavailableError(self._unavailable_reason())
            if not isinstance(payload, BinaryPayload):
                payload = BinaryPayload(data=bytes(payload))
            return await self._transcribe_and_translate(payload, options)
        finally:
            self.is_translating = False

    def update_config(self, partial: dict[str, Any]) -> PipelineConfig:
        """
        Apply a partial config; takes effect from the next translation.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        self.config = self.config.merged(partial)
        changed = set(partial)

        if "capture_timeout" in changed:
            self.controller.timeout = self.config.capture_timeout
        if changed & _STT_KEYS and not self._fixed_transcriber:
            self.transcriber = build_transcriber(self.config, self.surface, self.suppression)
        if changed & _TRANSLATION_KEYS and not self._fixed_translator:
            self.translator = EngineTranslator.from_config(self.config)

        logger.info("Configuration updated: %s", ", ".join(sorted(changed)) or "(nothing)")
        return self.config

    def get_status(self) -> dict[str, Any]:
        return {
            "initialized": self.is_initialized,
            "available": self.is_available(),
            "translating": self.is_translating,
            "stt_supported": self.transcriber.is_supported(),
            "stt_provider": self.transcriber.name,
            "cache_size": self.downloader.cache_size(),
            "capture_state": self.controller.state.value,
        }

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _acquire(self) -> None:
        # No await before this point: the check and the set are atomic on the loop.
        if self.is_translating:
            raise BusyError("A voice message is already being translated.")
        self.is_translating = True

    def _restore_silenced(self) -> None:
        if self.suppression.active:
            return
        restored = self.suppression.restore_all()
        if restored:
            logger.info("Restored %d media element(s) muted during silent mode.", restored)

    def _unavailable_reason(self) -> str:
        if not self.is_initialized:
            return "Voice translation is not initialized."
        return f"Speech recognition ({self.transcriber.name}) is not available."

    async def _transcribe_and_translate(
        self,
        payload: BinaryPayload,
        options: dict[str, Any] | None,
    ) -> VoiceTranslationResult:
        options = dict(options or {})
        source_lang = options.pop("source_lang", None) or self.config.source_lang
        target_lang = options.pop("target_lang", None) or self.config.target_lang
        engine = options.pop("engine", None) or self.config.engine

        try:
            with self.suppression.engaged(), self.controller.silent_ui():
                original = await self.transcriber.transcribe_from_blob(payload, source_lang)
        finally:
            # Anything muted while transcribing gets its volume/mute back.
            self._restore_silenced()

        original = (original or "").strip()
        if not original:
            raise TranscriptionError("No speech was recognized in the voice message.")
        logger.info("Transcript received: %d chars.", len(original))

        response = await self.translator.translate(
            TranslationRequest(
                text=original,
                source_lang=source_lang,
                target_lang=target_lang,
                engine=engine,
                options=options,
            )
        )

        result = VoiceTranslationResult(
            original=original,
            translated=response.translated_text,
            source_lang=response.detected_language or source_lang,
            target_lang=target_lang,
            engine=engine,
        )
        logger.info(
            "Voice message translated: %s → %s via %s.",
            result.source_lang, result.target_lang, result.engine,
        )
        return result
