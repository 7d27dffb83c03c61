"""
voicerelay/stt/interface.py
============================
Transcription Strategy Interface — VoiceRelay STT Layer

Every speech-to-text variant exposes the same two calls, so the orchestrator
never branches on the provider:

    is_supported()                                  -> bool
    await transcribe_from_blob(payload, language)   -> str

Implementations raise ``TranscriptionError`` on empty or failed results.
"""

from typing import Protocol, runtime_checkable

from voicerelay.audio.downloader import BinaryPayload


@runtime_checkable
class TranscriptionStrategy(Protocol):
    name: str

    def is_supported(self) -> bool: ...

    async def transcribe_from_blob(
        self, payload: BinaryPayload, language_hint: str | None = None,
    ) -> str: ...
