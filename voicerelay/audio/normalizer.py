"""
voicerelay/audio/normalizer.py
===============================
Audio Normalizer — VoiceRelay Audio Layer

Responsibility:
    - Decode a captured voice-message payload (ogg/opus, mp4, webm, mp3, wav)
    - Convert it to mono, 16 kHz WAV for hosted backends that reject the
      host's native container

This module does NOT:
    - Fetch payloads (handled by downloader.py)
    - Enforce duration limits: voice messages are short and already bounded
      by the host
"""

import io
import logging

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from voicerelay.errors import TranscriptionError

logger = logging.getLogger("voicerelay.audio.normalizer")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16000  # Hz
TARGET_CHANNELS = 1  # mono
OUTPUT_FORMAT = "wav"

# MIME subtype → ffmpeg demuxer name
_CONTAINER_FORMATS: dict[str, str] = {
    "ogg": "ogg",
    "opus": "ogg",
    "mp4": "mp4",
    "m4a": "mp4",
    "aac": "aac",
    "webm": "webm",
    "mpeg": "mp3",
    "mp3": "mp3",
    "wav": "wav",
    "x-wav": "wav",
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def container_format(content_type: str) -> str | None:
    """Return the decoder format for a MIME type, or None to let ffmpeg probe."""
    if not content_type or "/" not in content_type:
        return None
    subtype = content_type.split(";", 1)[0].split("/", 1)[1].strip().lower()
    return _CONTAINER_FORMATS.get(subtype)


def to_wav(payload) -> bytes:
    """
    Decode ``payload`` and export it as mono 16 kHz WAV bytes.

    Args:
        payload: A ``BinaryPayload`` from the downloader.

    Returns:
        WAV bytes.

    Raises:
        TranscriptionError: If the audio cannot be decoded or exported.
    """
    fmt = container_format(payload.content_type)
    try:
        audio = AudioSegment.from_file(io.BytesIO(payload.data), format=fmt)
    except CouldntDecodeError as exc:
        raise TranscriptionError("Voice message audio could not be decoded.") from exc

    if audio.channels != TARGET_CHANNELS:
        audio = audio.set_channels(TARGET_CHANNELS)
    if audio.frame_rate != TARGET_SAMPLE_RATE:
        audio = audio.set_frame_rate(TARGET_SAMPLE_RATE)

    buffer = io.BytesIO()
    try:
        audio.export(buffer, format=OUTPUT_FORMAT)
    except Exception as exc:
        raise TranscriptionError(f"Failed to export normalized audio: {exc}") from exc

    logger.debug(
        "Normalized %s payload to WAV: %.1fs, %d bytes.",
        payload.content_type,
        len(audio) / 1000.0,
        buffer.tell(),
    )
    return buffer.getvalue()
