"""
voicerelay/nlp/translator.py
=============================
Translator — VoiceRelay Translation Layer

Responsibility:
    - Translate a transcript with the configured engine:
          google → public Google Translate endpoint (no key)
          openai → OpenAI chat completion
          groq   → Groq chat completion (OpenAI-compatible API)
    - On any primary-engine failure, fall back to the public endpoint once
    - Report the detected source language when the engine knows it

This module does NOT:
    - Perform STT or audio processing
    - Cache translations
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp
from openai import OpenAI

from voicerelay.errors import TranslationServiceError
from voicerelay.openai_retry import chat_completions_with_retry

logger = logging.getLogger("voicerelay.nlp.translator")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

GOOGLE_PUBLIC_ENDPOINT = "https://translate.googleapis.com/translate_a/single"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
REQUEST_TIMEOUT_SECONDS = 15

SYSTEM_PROMPT = "You are a professional translator. Output only translated text."


@dataclass(frozen=True)
class TranslationRequest:
    text: str
    source_lang: str
    target_lang: str
    engine: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TranslationResponse:
    translated_text: str
    detected_language: str | None = None


class TranslationEngine(Protocol):
    name: str

    async def translate(self, request: TranslationRequest) -> TranslationResponse: ...


# ---------------------------------------------------------------------------
# Public Google endpoint
# ---------------------------------------------------------------------------


class GooglePublicTranslator:
    """Keyless ``translate_a/single?client=gtx`` endpoint; also the fallback."""

    name = "google"

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        params = {
            "client": "gtx",
            "sl": request.source_lang or "auto",
            "tl": request.target_lang,
            "dt": "t",
            "q": request.text,
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    GOOGLE_PUBLIC_ENDPOINT,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
                ) as resp:
                    if resp.status != 200:
                        raise TranslationServiceError(
                            f"Google Translate returned HTTP {resp.status}."
                        )
                    data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TranslationServiceError(f"Google Translate unreachable: {exc}") from exc

        return parse_google_response(data)


def parse_google_response(data: Any) -> TranslationResponse:
    """
    Parse the nested-array payload::

        [[["hello", "hola", null, null, 10], ...], null, "es", ...]

    Index 0 holds one row per sentence (translated text first); index 2 is
    the detected source language.

    Raises:
        TranslationServiceError: If the payload does not have that shape.
    """
    try:
        rows = data[0]
        translated = "".join(row[0] for row in rows if row and row[0])
    except (TypeError, IndexError, KeyError) as exc:
        raise TranslationServiceError("Google Translate returned an unexpected format.") from exc

    if not translated:
        raise TranslationServiceError("Google Translate returned an empty translation.")

    detected = data[2] if len(data) > 2 and isinstance(data[2], str) else None
    return TranslationResponse(translated_text=translated, detected_language=detected)


# ---------------------------------------------------------------------------
# Chat-completion engines
# ---------------------------------------------------------------------------


class ChatCompletionTranslator:
    """LLM translation over any OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str | None = None,
    ) -> None:
        self.name = name
        self.api_key = api_key
        self.model = model
        self.base_url = base_url

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        if not self.api_key:
            raise TranslationServiceError(f"No API key configured for the {self.name} engine.")

        client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        try:
            response = await asyncio.to_thread(
                chat_completions_with_retry,
                client,
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(request)},
                ],
                temperature=0.0,
            )
        except Exception as exc:
            raise TranslationServiceError(f"{self.name} translation failed: {exc}") from exc

        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise TranslationServiceError(f"{self.name} returned an empty translation.")
        return TranslationResponse(translated_text=content)


def build_prompt(request: TranslationRequest) -> str:
    if request.source_lang and request.source_lang != "auto":
        head = f"Translate the following text from {request.source_lang} to {request.target_lang}."
    else:
        head = f"Translate the following text to {request.target_lang}."
    return f"{head} Output only the translation:\n\n{request.text}"


# ---------------------------------------------------------------------------
# Engine routing with fallback
# ---------------------------------------------------------------------------


class EngineTranslator:
    """Routes a request to its engine and falls back to the public endpoint."""

    def __init__(
        self,
        engines: dict[str, TranslationEngine],
        fallback: TranslationEngine | None = None,
    ) -> None:
        self.fallback = fallback or GooglePublicTranslator()
        self.engines = dict(engines)
        self.engines.setdefault(self.fallback.name, self.fallback)

    @classmethod
    def from_config(cls, config) -> "EngineTranslator":
        return cls(
            {
                "google": GooglePublicTranslator(),
                "openai": ChatCompletionTranslator(
                    "openai", config.openai_api_key, config.openai_translation_model,
                ),
                "groq": ChatCompletionTranslator(
                    "groq", config.groq_api_key, config.groq_translation_model,
                    base_url=GROQ_BASE_URL,
                ),
            }
        )

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        """
        Translate with ``request.engine``, then with the fallback.

        Raises:
            TranslationServiceError: If every attempted engine failed.
        """
        primary = self.engines.get(request.engine)
        if primary is None:
            logger.warning("Unknown translation engine '%s'; using fallback.", request.engine)
        else:
            try:
                response = await primary.translate(request)
                logger.info("Translation complete via %s.", primary.name)
                return response
            except Exception as exc:
                logger.warning("Primary engine %s failed: %s", primary.name, exc)
                if primary is self.fallback:
                    raise TranslationServiceError(
                        f"Translation service unavailable: {exc}"
                    ) from exc

        try:
            response = await self.fallback.translate(request)
        except Exception as exc:
            logger.error("Fallback engine %s failed: %s", self.fallback.name, exc)
            raise TranslationServiceError(f"Translation service unavailable: {exc}") from exc

        logger.info("Translation complete via fallback (%s).", self.fallback.name)
        return response
