"""
voicerelay/stt/router.py
=========================
STT Router — VoiceRelay STT Layer

Responsibility:
    Build the transcription strategy named by ``PipelineConfig.stt_provider``:
        speech       → SpeechEngineTranscriber (host recognizer, in-process)
        huggingface  → HostedTranscriber + HuggingFaceInferenceBackend
        groq         → HostedTranscriber + GroqWhisperBackend

    This is the single place where the provider name is interpreted.

This module does NOT:
    - Transcribe anything itself
    - Fall back between providers: an unsupported provider is reported by
      ``is_supported()`` and surfaces as ``PipelineUnavailableError``
"""

import logging

from voicerelay.capture.suppression import SuppressionContext
from voicerelay.config import PipelineConfig
from voicerelay.host import HostMediaSurface
from voicerelay.stt.backends import GroqWhisperBackend, HuggingFaceInferenceBackend
from voicerelay.stt.hosted import HostedTranscriber
from voicerelay.stt.interface import TranscriptionStrategy
from voicerelay.stt.speech_engine import SpeechEngineTranscriber

logger = logging.getLogger("voicerelay.stt.router")


def build_transcriber(
    config: PipelineConfig,
    surface: HostMediaSurface,
    suppression: SuppressionContext,
) -> TranscriptionStrategy:
    """Return the transcription strategy for ``config.stt_provider``."""
    provider = config.stt_provider

    if provider == "huggingface":
        logger.info("STT provider selected: Hugging Face (model: %s)", config.huggingface_model)
        return HostedTranscriber(
            HuggingFaceInferenceBackend(normalize_audio=config.normalize_audio),
            api_key=config.huggingface_api_key,
            model=config.huggingface_model,
            max_retries=config.stt_max_retries,
            retry_delay=config.stt_retry_delay,
        )

    if provider == "groq":
        logger.info("STT provider selected: Groq Whisper (model: %s)", config.groq_model)
        return HostedTranscriber(
            GroqWhisperBackend(),
            api_key=config.groq_api_key,
            model=config.groq_model,
            max_retries=config.stt_max_retries,
            retry_delay=config.stt_retry_delay,
        )

    logger.info("STT provider selected: in-process speech engine")
    return SpeechEngineTranscriber(surface, suppression)
