"""
voicerelay/models.py
=====================
Shared Data Types — VoiceRelay

Responsibility:
    - CapturedHandle: the intercepted resource handle for one capture
    - VoiceTranslationResult: the immutable result handed to the caller

Neither type is persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CapturedHandle:
    """A resource handle observed on a media element.

    Also the payload of the interceptor's capture notifications.
    """

    handle: str
    element: Any = field(default=None, compare=False, repr=False)
    captured_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class VoiceTranslationResult:
    """Outcome of one successful ``translate_voice_message`` call."""

    original: str
    translated: str
    source_lang: str
    target_lang: str
    engine: str

    def to_dict(self) -> dict[str, str]:
        """Serialize with the caller-facing key names."""
        return {
            "original": self.original,
            "translated": self.translated,
            "sourceLang": self.source_lang,
            "targetLang": self.target_lang,
            "engine": self.engine,
        }
