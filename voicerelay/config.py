"""
voicerelay/config.py
=====================
Pipeline Configuration — VoiceRelay

Responsibility:
    - Load defaults and secrets from the environment (``.env`` supported)
    - Validate partial updates applied at runtime via ``update_config``

Environment variables:
    VOICERELAY_SOURCE_LANG       spoken language hint ("auto" to let STT decide)
    VOICERELAY_TARGET_LANG       translation target language
    VOICERELAY_ENGINE            google | openai | groq
    VOICERELAY_STT_PROVIDER      speech | huggingface | groq
    VOICERELAY_CAPTURE_TIMEOUT   seconds to wait for the audio handle
    VOICERELAY_NORMALIZE_AUDIO   "1" to send mono 16 kHz WAV to Hugging Face
    HUGGINGFACE_API_KEY / HUGGINGFACE_STT_MODEL
    GROQ_API_KEY / GROQ_STT_MODEL / GROQ_TRANSLATION_MODEL
    OPENAI_API_KEY / OPENAI_TRANSLATION_MODEL
"""

import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_SOURCE_LANG = "auto"
DEFAULT_TARGET_LANG = "en"
DEFAULT_ENGINE = "google"
DEFAULT_STT_PROVIDER = "speech"
DEFAULT_CAPTURE_TIMEOUT = 5.0  # seconds

STT_PROVIDERS = ("speech", "huggingface", "groq")
TRANSLATION_ENGINES = ("google", "openai", "groq")

_SECRET_FIELDS = {"huggingface_api_key", "groq_api_key", "openai_api_key"}


@dataclass(frozen=True)
class PipelineConfig:
    source_lang: str = DEFAULT_SOURCE_LANG
    target_lang: str = DEFAULT_TARGET_LANG
    engine: str = DEFAULT_ENGINE
    stt_provider: str = DEFAULT_STT_PROVIDER

    capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT
    stt_max_retries: int = 3
    stt_retry_delay: float = 1.0
    normalize_audio: bool = False

    huggingface_api_key: str = ""
    huggingface_model: str = "openai/whisper-large-v3"
    groq_api_key: str = ""
    groq_model: str = "whisper-large-v3"
    groq_translation_model: str = "llama-3.1-70b-versatile"
    openai_api_key: str = ""
    openai_translation_model: str = "gpt-4o-mini"

    def __post_init__(self) -> None:
        if self.stt_provider not in STT_PROVIDERS:
            raise ValueError(
                f"Unknown STT provider '{self.stt_provider}'. "
                f"Allowed: {', '.join(STT_PROVIDERS)}"
            )
        if self.engine not in TRANSLATION_ENGINES:
            raise ValueError(
                f"Unknown translation engine '{self.engine}'. "
                f"Allowed: {', '.join(TRANSLATION_ENGINES)}"
            )
        if self.capture_timeout <= 0:
            raise ValueError("capture_timeout must be positive.")
        if self.stt_max_retries < 0:
            raise ValueError("stt_max_retries must not be negative.")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a config from ``.env`` and the process environment."""
        load_dotenv()
        env = os.environ.get
        return cls(
            source_lang=env("VOICERELAY_SOURCE_LANG", DEFAULT_SOURCE_LANG),
            target_lang=env("VOICERELAY_TARGET_LANG", DEFAULT_TARGET_LANG),
            engine=env("VOICERELAY_ENGINE", DEFAULT_ENGINE),
            stt_provider=env("VOICERELAY_STT_PROVIDER", DEFAULT_STT_PROVIDER),
            capture_timeout=float(env("VOICERELAY_CAPTURE_TIMEOUT", DEFAULT_CAPTURE_TIMEOUT)),
            normalize_audio=env("VOICERELAY_NORMALIZE_AUDIO", "0") == "1",
            huggingface_api_key=env("HUGGINGFACE_API_KEY", ""),
            huggingface_model=env("HUGGINGFACE_STT_MODEL", cls.huggingface_model),
            groq_api_key=env("GROQ_API_KEY", ""),
            groq_model=env("GROQ_STT_MODEL", cls.groq_model),
            groq_translation_model=env("GROQ_TRANSLATION_MODEL", cls.groq_translation_model),
            openai_api_key=env("OPENAI_API_KEY", ""),
            openai_translation_model=env("OPENAI_TRANSLATION_MODEL", cls.openai_translation_model),
        )

    def merged(self, partial: dict[str, Any]) -> "PipelineConfig":
        """
        Return a copy with ``partial`` applied.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(partial) - known)
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")
        return replace(self, **partial)

    def api_key_for(self, provider: str) -> str:
        return {
            "huggingface": self.huggingface_api_key,
            "groq": self.groq_api_key,
            "openai": self.openai_api_key,
        }.get(provider, "")

    def redacted(self) -> dict[str, Any]:
        """Config as a dict with secrets masked, safe to log."""
        data = asdict(self)
        for name in _SECRET_FIELDS:
            data[name] = "***" if data[name] else ""
        return data
