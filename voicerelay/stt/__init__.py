# voicerelay/stt/__init__.py
# ===========================
# Speech-to-Text Layer — VoiceRelay
#
# Providers (chosen by PipelineConfig.stt_provider):
#   speech:       host speech recognizer, replayed silently (speech_engine.py)
#   huggingface:  Hugging Face Inference API (hosted.py + backends.py)
#   groq:         Groq Whisper endpoint (hosted.py + backends.py)
#
# Public API:
#   build_transcriber(config, surface, suppression) → TranscriptionStrategy

from voicerelay.stt.router import build_transcriber  # noqa: F401
from voicerelay.stt.interface import TranscriptionStrategy  # noqa: F401

__all__ = [
    "build_transcriber",
    "TranscriptionStrategy",
]
