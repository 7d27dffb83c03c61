"""
tests/test_translator.py
=========================
Translation Tests — engine routing, fallback, response parsing

Test categories:
    1. Public endpoint nested-array parsing
    2. Primary engine → fallback → TranslationServiceError
    3. Chat-completion engine (OpenAI client mocked)
    4. Retry helper classification and bounds
"""

import os
import sys
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicerelay.config import PipelineConfig
from voicerelay.errors import TranslationServiceError
from voicerelay.nlp.translator import (
    GROQ_BASE_URL,
    ChatCompletionTranslator,
    EngineTranslator,
    GooglePublicTranslator,
    TranslationRequest,
    TranslationResponse,
    build_prompt,
    parse_google_response,
)
from voicerelay.openai_retry import chat_completions_with_retry

REQUEST = TranslationRequest(text="hola", source_lang="auto", target_lang="en", engine="openai")


def stub_engine(name, result=None, error=None):
    engine = MagicMock()
    engine.name = name
    engine.translate = AsyncMock(return_value=result, side_effect=error)
    return engine


def completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


# ===================================================================
# Public endpoint parsing
# ===================================================================


class TestGoogleResponseParsing(unittest.TestCase):

    def test_sentences_are_joined_and_language_detected(self):
        data = [
            [["Hello. ", "Hola. ", None, None, 10], ["How are you?", "¿Cómo estás?", None, None, 10]],
            None,
            "es",
        ]
        response = parse_google_response(data)

        self.assertEqual(response.translated_text, "Hello. How are you?")
        self.assertEqual(response.detected_language, "es")

    def test_missing_language_is_none(self):
        response = parse_google_response([[["hello", "hola"]]])
        self.assertIsNone(response.detected_language)

    def test_malformed_payloads_raise(self):
        for data in (None, [], [None], [[[None]]], {"error": "quota"}):
            with self.subTest(data=data):
                with self.assertRaises(TranslationServiceError):
                    parse_google_response(data)


# ===================================================================
# Routing and fallback
# ===================================================================


class TestEngineTranslator(unittest.IsolatedAsyncioTestCase):

    async def test_primary_engine_result_is_used(self):
        primary = stub_engine("openai", TranslationResponse("hello"))
        fallback = stub_engine("google", TranslationResponse("hello (google)"))
        translator = EngineTranslator({"openai": primary}, fallback=fallback)

        response = await translator.translate(REQUEST)

        self.assertEqual(response.translated_text, "hello")
        fallback.translate.assert_not_awaited()

    async def test_failed_primary_falls_back(self):
        primary = stub_engine("openai", error=TranslationServiceError("quota"))
        fallback = stub_engine("google", TranslationResponse("hello", "es"))
        translator = EngineTranslator({"openai": primary}, fallback=fallback)

        with self.assertLogs("voicerelay.nlp.translator", level="WARNING"):
            response = await translator.translate(REQUEST)

        self.assertEqual(response, TranslationResponse("hello", "es"))
        fallback.translate.assert_awaited_once_with(REQUEST)

    async def test_both_failing_raise_translation_service_error(self):
        primary = stub_engine("openai", error=RuntimeError("boom"))
        fallback = stub_engine("google", error=TranslationServiceError("HTTP 429"))
        translator = EngineTranslator({"openai": primary}, fallback=fallback)

        with self.assertRaises(TranslationServiceError):
            await translator.translate(REQUEST)

    async def test_failing_fallback_as_primary_is_tried_once(self):
        google = stub_engine("google", error=TranslationServiceError("HTTP 503"))
        translator = EngineTranslator({}, fallback=google)
        request = TranslationRequest("hola", "es", "en", "google")

        with self.assertRaises(TranslationServiceError):
            await translator.translate(request)
        self.assertEqual(google.translate.await_count, 1)

    async def test_unknown_engine_uses_fallback(self):
        fallback = stub_engine("google", TranslationResponse("hello"))
        translator = EngineTranslator({}, fallback=fallback)

        request = TranslationRequest("hola", "es", "en", "deepl")
        response = await translator.translate(request)

        self.assertEqual(response.translated_text, "hello")

    def test_from_config_registers_all_engines(self):
        translator = EngineTranslator.from_config(PipelineConfig(groq_api_key="gk"))

        self.assertEqual(set(translator.engines), {"google", "openai", "groq"})
        self.assertIsInstance(translator.fallback, GooglePublicTranslator)
        self.assertEqual(translator.engines["groq"].base_url, GROQ_BASE_URL)
        self.assertEqual(translator.engines["groq"].api_key, "gk")


# ===================================================================
# Chat-completion engine
# ===================================================================


class TestChatCompletionTranslator(unittest.IsolatedAsyncioTestCase):

    @patch("voicerelay.nlp.translator.OpenAI")
    async def test_translates_via_chat_completion(self, openai_cls):
        client = openai_cls.return_value
        client.chat.completions.create.return_value = completion("  hello  ")
        engine = ChatCompletionTranslator("groq", "gk", "llama-3.1-70b-versatile", base_url=GROQ_BASE_URL)

        response = await engine.translate(TranslationRequest("hola", "es", "en", "groq"))

        self.assertEqual(response.translated_text, "hello")
        openai_cls.assert_called_once_with(api_key="gk", base_url=GROQ_BASE_URL)
        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "llama-3.1-70b-versatile")
        self.assertEqual(kwargs["temperature"], 0.0)
        self.assertIn("from es to en", kwargs["messages"][1]["content"])

    async def test_missing_key_raises(self):
        engine = ChatCompletionTranslator("openai", "", "gpt-4o-mini")
        with self.assertRaises(TranslationServiceError):
            await engine.translate(REQUEST)

    @patch("voicerelay.nlp.translator.OpenAI")
    async def test_empty_completion_raises(self, openai_cls):
        openai_cls.return_value.chat.completions.create.return_value = completion(None)
        engine = ChatCompletionTranslator("openai", "sk", "gpt-4o-mini")

        with self.assertRaises(TranslationServiceError):
            await engine.translate(REQUEST)

    def test_prompt_for_auto_source(self):
        prompt = build_prompt(REQUEST)
        self.assertTrue(prompt.startswith("Translate the following text to en."))
        self.assertTrue(prompt.endswith("hola"))


# ===================================================================
# Retry helper
# ===================================================================


class TestChatCompletionRetry(unittest.TestCase):

    @patch("voicerelay.openai_retry.time.sleep")
    def test_retryable_errors_are_retried_until_bound(self, sleep):
        import openai

        client = MagicMock()
        client.chat.completions.create.side_effect = openai.APIConnectionError(request=MagicMock())

        with self.assertRaises(openai.APIConnectionError):
            chat_completions_with_retry(client, max_retries=2, model="m", messages=[])

        self.assertEqual(client.chat.completions.create.call_count, 3)
        self.assertEqual(sleep.call_count, 2)

    @patch("voicerelay.openai_retry.time.sleep")
    def test_non_retryable_error_is_raised_immediately(self, sleep):
        client = MagicMock()
        client.chat.completions.create.side_effect = ValueError("bad request")

        with self.assertRaises(ValueError):
            chat_completions_with_retry(client, model="m", messages=[])

        self.assertEqual(client.chat.completions.create.call_count, 1)
        sleep.assert_not_called()

    @patch("voicerelay.openai_retry.time.sleep")
    def test_success_after_retry(self, sleep):
        import openai

        client = MagicMock()
        client.chat.completions.create.side_effect = [
            openai.APITimeoutError(request=MagicMock()),
            completion("ok"),
        ]

        response = chat_completions_with_retry(client, model="m", messages=[])

        self.assertEqual(response.choices[0].message.content, "ok")
        sleep.assert_called_once_with(1.0)


if __name__ == "__main__":
    unittest.main()
