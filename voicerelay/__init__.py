# voicerelay/__init__.py
# =======================
# VoiceRelay — silent voice-message capture, transcription and translation
#
# Public API:
#   VoiceTranslationPipeline:  the single entry point (pipeline.py)
#   PipelineConfig:            env-backed configuration (config.py)
#   HostMediaSurface:          the host runtime slice the pipeline touches
#   VoiceTranslationResult:    result handed to the caller

from voicerelay.config import PipelineConfig  # noqa: F401
from voicerelay.host import HostMediaSurface  # noqa: F401
from voicerelay.models import CapturedHandle, VoiceTranslationResult  # noqa: F401
from voicerelay.pipeline import VoiceTranslationPipeline  # noqa: F401

__all__ = [
    "VoiceTranslationPipeline",
    "PipelineConfig",
    "HostMediaSurface",
    "CapturedHandle",
    "VoiceTranslationResult",
]
