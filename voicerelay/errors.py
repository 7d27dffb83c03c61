"""
voicerelay/errors.py
=====================
Error Taxonomy — VoiceRelay

Responsibility:
    - Define every exception a voice-message translation can end with
    - Keep messages human readable: callers show ``str(exc)`` to the user

Every error is scoped to a single ``translate_voice_message`` call. None of
them is fatal to the host process, and teardown always runs before they
reach the caller.
"""


class VoiceRelayError(Exception):
    """Base class for all voice-translation failures."""
    pass


class PipelineUnavailableError(VoiceRelayError):
    """Raised when the pipeline is not initialized or STT is unsupported."""
    pass


class BusyError(VoiceRelayError):
    """Raised when a translation is requested while another is in flight."""
    pass


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class CaptureError(VoiceRelayError):
    """Base class for failures of a silent capture cycle."""
    pass


class CaptureInProgressError(CaptureError):
    """Raised on re-entrant capture while a cycle is not idle."""
    pass


class TriggerNotFoundError(CaptureError):
    """Raised when no playback control exists inside the target region."""
    pass


class CaptureTimeoutError(CaptureError):
    """Raised when no resource handle appears before the capture timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for the voice message audio."
        )


# ---------------------------------------------------------------------------
# Downstream stages
# ---------------------------------------------------------------------------


class DownloadError(VoiceRelayError):
    """Raised when a captured resource handle cannot be fetched."""

    def __init__(self, handle: str, reason: str) -> None:
        self.handle = handle
        self.reason = reason
        super().__init__(f"Failed to download audio: {reason}")


class TranscriptionError(VoiceRelayError):
    """Raised when speech-to-text fails or yields no usable text."""
    pass


class TranslationServiceError(VoiceRelayError):
    """Raised when both the primary engine and the public fallback fail."""
    pass
