"""
voicerelay/stt/backends.py
===========================
Hosted STT Backends — VoiceRelay STT Layer

Responsibility:
    - Send one payload to a hosted Whisper deployment and report the outcome
      as a ``HostedSTTResponse`` instead of raising
    - Classify failures as retryable (model loading, rate limited, transport
      error) or terminal (bad key, bad request, unexpected body)

Backends:
    huggingface → Hugging Face Inference API (raw audio body)
    groq        → Groq OpenAI-compatible transcription endpoint (multipart)

This module does NOT:
    - Retry (handled by hosted.py)
    - Decide which backend is used (handled by router.py)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from voicerelay.audio.downloader import BinaryPayload

logger = logging.getLogger("voicerelay.stt.backends")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

HUGGINGFACE_API_BASE = "https://api-inference.huggingface.co/models"
HUGGINGFACE_DEFAULT_MODEL = "openai/whisper-large-v3"

GROQ_TRANSCRIPTION_ENDPOINT = "https://api.groq.com/openai/v1/audio/transcriptions"
GROQ_DEFAULT_MODEL = "whisper-large-v3"

REQUEST_TIMEOUT_SECONDS = 60

# 503: model still loading; 429: rate limited
_RETRYABLE_STATUS_CODES: set[int] = {429, 503}

# MIME subtype → upload filename, so the server can pick a demuxer
_UPLOAD_FILENAMES: dict[str, str] = {
    "ogg": "audio.ogg",
    "opus": "audio.ogg",
    "mp4": "audio.mp4",
    "m4a": "audio.m4a",
    "webm": "audio.webm",
    "mpeg": "audio.mp3",
    "mp3": "audio.mp3",
    "wav": "audio.wav",
    "x-wav": "audio.wav",
}


@dataclass(frozen=True)
class HostedSTTResponse:
    """Outcome of a single hosted transcription request."""

    success: bool
    text: str = ""
    error: str = ""
    retryable: bool = False

    @classmethod
    def ok(cls, text: str) -> "HostedSTTResponse":
        return cls(success=True, text=text)

    @classmethod
    def failed(cls, error: str, retryable: bool = False) -> "HostedSTTResponse":
        return cls(success=False, error=error, retryable=retryable)


# ---------------------------------------------------------------------------
# Hugging Face
# ---------------------------------------------------------------------------


class HuggingFaceInferenceBackend:
    """Hugging Face Inference API for Whisper models."""

    name = "huggingface"
    default_model = HUGGINGFACE_DEFAULT_MODEL

    def __init__(self, normalize_audio: bool = False) -> None:
        self.normalize_audio = normalize_audio

    @staticmethod
    def model_url(model: str) -> str:
        return f"{HUGGINGFACE_API_BASE}/{model}"

    async def transcribe(
        self, payload: BinaryPayload, api_key: str, model: str,
    ) -> HostedSTTResponse:
        body, content_type = payload.data, payload.content_type
        if self.normalize_audio:
            body = await asyncio.to_thread(payload.to_wav)
            content_type = "audio/wav"

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": content_type,
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.model_url(model),
                    data=body,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
                ) as resp:
                    if resp.status != 200:
                        return await _status_failure(self.name, resp)
                    result = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Hugging Face request failed: %s", exc)
            return HostedSTTResponse.failed(f"Network error: {exc}", retryable=True)

        return _text_response(self.name, result)

    async def status(self, api_key: str, model: str) -> bool:
        """True when the model endpoint answers, including while it is still loading."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.model_url(model),
                    headers={"Authorization": f"Bearer {api_key}"},
                    timeout=aiohttp.ClientTimeout(total=10),
                ) as resp:
                    return resp.status < 400 or resp.status == 503
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Hugging Face status check failed: %s", exc)
            return False


# ---------------------------------------------------------------------------
# Groq
# ---------------------------------------------------------------------------


class GroqWhisperBackend:
    """Groq's OpenAI-compatible ``/audio/transcriptions`` endpoint."""

    name = "groq"
    default_model = GROQ_DEFAULT_MODEL

    async def transcribe(
        self, payload: BinaryPayload, api_key: str, model: str,
    ) -> HostedSTTResponse:
        form = aiohttp.FormData()
        form.add_field(
            "file",
            payload.data,
            filename=upload_filename(payload.content_type),
            content_type=payload.content_type,
        )
        form.add_field("model", model)
        form.add_field("response_format", "json")

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    GROQ_TRANSCRIPTION_ENDPOINT,
                    data=form,
                    headers={"Authorization": f"Bearer {api_key}"},
                    timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
                ) as resp:
                    if resp.status != 200:
                        return await _status_failure(self.name, resp)
                    result = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Groq request failed: %s", exc)
            return HostedSTTResponse.failed(f"Network error: {exc}", retryable=True)

        return _text_response(self.name, result)

    async def status(self, api_key: str, model: str) -> bool:
        return bool(api_key)


BACKENDS: dict[str, type] = {
    HuggingFaceInferenceBackend.name: HuggingFaceInferenceBackend,
    GroqWhisperBackend.name: GroqWhisperBackend,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def upload_filename(content_type: str) -> str:
    subtype = (content_type or "").split(";", 1)[0].rpartition("/")[2].strip().lower()
    return _UPLOAD_FILENAMES.get(subtype, "audio.ogg")


async def _status_failure(backend: str, resp: aiohttp.ClientResponse) -> HostedSTTResponse:
    detail = (await resp.text())[:200]
    retryable = resp.status in _RETRYABLE_STATUS_CODES
    logger.warning(
        "%s transcription returned HTTP %d (%s): %s",
        backend,
        resp.status,
        "retryable" if retryable else "terminal",
        detail,
    )
    if resp.status == 503:
        return HostedSTTResponse.failed("Model is loading, retry shortly.", retryable=True)
    return HostedSTTResponse.failed(f"API request failed: {resp.status} {detail}", retryable=retryable)


def _text_response(backend: str, result: Any) -> HostedSTTResponse:
    # Hugging Face may wrap the object in a single-element list.
    if isinstance(result, list) and result:
        result = result[0]
    if isinstance(result, dict) and isinstance(result.get("text"), str):
        return HostedSTTResponse.ok(result["text"].strip())
    if isinstance(result, dict) and result.get("error"):
        return HostedSTTResponse.failed(str(result["error"]))
    logger.error("%s returned an unexpected body: %r", backend, result)
    return HostedSTTResponse.failed("API returned an unexpected response format.")
