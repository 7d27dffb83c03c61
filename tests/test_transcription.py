"""
tests/test_transcription.py
============================
Transcription Tests — in-process engine, hosted retry, routing

Test categories:
    1. Locale mapping for the in-process recognizer
    2. In-process recognition against the fake host recognizer
    3. Hosted retry bound and back-off (backend mocked)
    4. Backend response parsing
    5. Provider routing from configuration
"""

import asyncio
import os
import sys
import unittest
from unittest.mock import AsyncMock, MagicMock, call, patch

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicerelay.audio.downloader import BinaryPayload
from voicerelay.capture.interceptor import ResourceInterceptor
from voicerelay.capture.suppression import SuppressionContext
from voicerelay.config import PipelineConfig
from voicerelay.errors import TranscriptionError
from voicerelay.host import HostMediaSurface, RecognitionSegment
from voicerelay.stt.backends import (
    GroqWhisperBackend,
    HostedSTTResponse,
    HuggingFaceInferenceBackend,
    _text_response,
    upload_filename,
)
from voicerelay.stt.hosted import HostedTranscriber
from voicerelay.stt.interface import TranscriptionStrategy
from voicerelay.stt.router import build_transcriber
from voicerelay.stt.speech_engine import SpeechEngineTranscriber, normalize_locale

from tests.fakes import make_host

PAYLOAD = BinaryPayload(b"\x01\x02\x03", content_type="audio/ogg")


# ===================================================================
# Locale mapping
# ===================================================================


class TestLocaleMapping(unittest.TestCase):

    def test_known_codes(self):
        self.assertEqual(normalize_locale("es"), "es-ES")
        self.assertEqual(normalize_locale("tl"), "fil-PH")
        self.assertEqual(normalize_locale("zh-TW"), "zh-TW")

    def test_auto_empty_and_unmapped_fall_back(self):
        self.assertEqual(normalize_locale("auto"), "en-US")
        self.assertEqual(normalize_locale(""), "en-US")
        self.assertEqual(normalize_locale(None), "en-US")
        self.assertEqual(normalize_locale("xx"), "en-US")

    def test_supported_languages_are_unique_locales(self):
        languages = SpeechEngineTranscriber.supported_languages()
        self.assertIn("en-US", languages)
        self.assertEqual(len(languages), len(set(languages)))


# ===================================================================
# In-process recognition
# ===================================================================


class TestSpeechEngineTranscriber(unittest.IsolatedAsyncioTestCase):

    def make(self, **host_kwargs):
        self.host = make_host(**host_kwargs)
        self.suppression = SuppressionContext()
        return SpeechEngineTranscriber(
            self.host.surface, self.suppression, grace=0.01, recognition_timeout=1.0,
        )

    async def test_final_segments_are_joined_and_interim_dropped(self):
        transcriber = self.make(speech_segments=[
            RecognitionSegment("ho", is_final=False),
            RecognitionSegment("hola", is_final=True),
            RecognitionSegment(" amigo ", is_final=True),
        ])

        text = await transcriber.transcribe_from_blob(PAYLOAD, "es")

        self.assertEqual(text, "hola amigo")
        recognizer = self.host.recognizers[0]
        self.assertEqual(recognizer.lang, "es-ES")
        self.assertFalse(recognizer.interim_results)
        self.assertTrue(recognizer.stopped)

    async def test_replay_element_is_muted_and_cleaned_up(self):
        transcriber = self.make()

        await transcriber.transcribe_from_blob(PAYLOAD, "auto")

        element = self.host.created_elements[0]
        self.assertTrue(element.muted)
        self.assertEqual(element.volume, 0)
        self.assertEqual(element.play_calls, 1)
        self.assertTrue(element.paused)
        self.assertIsNone(element.on_ended)
        self.assertEqual(self.host.revoked, [element.src])
        self.assertFalse(self.suppression.is_exempt(element))

    async def test_replay_plays_while_silent_mode_is_active(self):
        transcriber = self.make()
        interceptor = ResourceInterceptor(self.host.surface, self.suppression)
        interceptor.install()
        captured = []
        interceptor.on_captured(captured.append)
        try:
            with self.suppression.engaged():
                text = await transcriber.transcribe_from_blob(PAYLOAD, "es")
        finally:
            interceptor.uninstall()

        self.assertEqual(text, "hola")
        self.assertEqual(self.host.created_elements[0].play_calls, 1)
        self.assertEqual(captured, [])

    async def test_recognizer_error_raises(self):
        transcriber = self.make(speech_error="network")

        with self.assertRaises(TranscriptionError) as ctx:
            await transcriber.transcribe_from_blob(PAYLOAD, "en")
        self.assertIn("network", str(ctx.exception))

    async def test_no_final_segments_raises(self):
        transcriber = self.make(speech_segments=[RecognitionSegment("hm", is_final=False)])

        with self.assertRaises(TranscriptionError):
            await transcriber.transcribe_from_blob(PAYLOAD, "en")

    async def test_silent_recognizer_times_out(self):
        transcriber = self.make()
        transcriber.recognition_timeout = 0.1
        self.host.Recognizer.start = lambda recognizer: None

        with self.assertRaises(TranscriptionError) as ctx:
            await transcriber.transcribe_from_blob(PAYLOAD, "en")
        self.assertIn("timed out", str(ctx.exception))

    async def test_unsupported_host(self):
        transcriber = SpeechEngineTranscriber(HostMediaSurface(), SuppressionContext())

        self.assertFalse(transcriber.is_supported())
        with self.assertRaises(TranscriptionError):
            await transcriber.transcribe_from_blob(PAYLOAD, "en")

    async def test_sessions_are_serialized(self):
        transcriber = self.make()

        results = await asyncio.gather(
            transcriber.transcribe_from_blob(PAYLOAD, "es"),
            transcriber.transcribe_from_blob(PAYLOAD, "es"),
        )

        self.assertEqual(results, ["hola", "hola"])
        self.assertEqual(len(self.host.recognizers), 2)
        self.assertTrue(self.host.recognizers[0].stopped)


# ===================================================================
# Hosted retry
# ===================================================================


def stub_backend(*responses):
    backend = MagicMock()
    backend.name = "stub"
    backend.default_model = "whisper-stub"
    backend.transcribe = AsyncMock(side_effect=list(responses))
    backend.status = AsyncMock(return_value=True)
    return backend


class TestHostedTranscriber(unittest.IsolatedAsyncioTestCase):

    async def test_retry_bound_is_max_retries_plus_one(self):
        loading = HostedSTTResponse.failed("Model is loading", retryable=True)
        backend = stub_backend(*[loading] * 10)
        transcriber = HostedTranscriber(backend, api_key="k", max_retries=3, retry_delay=0)

        with self.assertRaises(TranscriptionError) as ctx:
            await transcriber.transcribe_from_blob(PAYLOAD)

        self.assertEqual(backend.transcribe.await_count, 4)
        self.assertIn("4 attempts", str(ctx.exception))

    async def test_backoff_is_linear(self):
        loading = HostedSTTResponse.failed("Model is loading", retryable=True)
        backend = stub_backend(loading, loading, loading, HostedSTTResponse.ok(" hola "))
        transcriber = HostedTranscriber(backend, api_key="k", max_retries=3, retry_delay=1.5)

        with patch("voicerelay.stt.hosted.asyncio.sleep", new_callable=AsyncMock) as sleep:
            text = await transcriber.transcribe_from_blob(PAYLOAD)

        self.assertEqual(text, "hola")
        self.assertEqual(sleep.await_args_list, [call(1.5), call(3.0), call(4.5)])

    async def test_terminal_failure_is_not_retried(self):
        backend = stub_backend(HostedSTTResponse.failed("401 invalid key"))
        transcriber = HostedTranscriber(backend, api_key="k", retry_delay=0)

        with self.assertRaises(TranscriptionError):
            await transcriber.transcribe_from_blob(PAYLOAD)
        self.assertEqual(backend.transcribe.await_count, 1)

    async def test_recovers_after_retryable_failure(self):
        backend = stub_backend(
            HostedSTTResponse.failed("Network error", retryable=True),
            HostedSTTResponse.ok("hola"),
        )
        transcriber = HostedTranscriber(backend, api_key="k", retry_delay=0)

        self.assertEqual(await transcriber.transcribe_from_blob(PAYLOAD), "hola")
        backend.transcribe.assert_awaited_with(PAYLOAD, "k", "whisper-stub")

    async def test_zero_retries_means_one_attempt(self):
        loading = HostedSTTResponse.failed("busy", retryable=True)
        backend = stub_backend(loading, loading)
        transcriber = HostedTranscriber(backend, api_key="k", max_retries=0)

        with self.assertRaises(TranscriptionError):
            await transcriber.transcribe_from_blob(PAYLOAD)
        self.assertEqual(backend.transcribe.await_count, 1)

    async def test_empty_text_raises(self):
        transcriber = HostedTranscriber(stub_backend(HostedSTTResponse.ok("  ")), api_key="k")

        with self.assertRaises(TranscriptionError):
            await transcriber.transcribe_from_blob(PAYLOAD)

    async def test_missing_api_key(self):
        backend = stub_backend()
        transcriber = HostedTranscriber(backend, api_key="  ")

        self.assertFalse(transcriber.is_supported())
        self.assertFalse(await transcriber.check_status())
        with self.assertRaises(TranscriptionError):
            await transcriber.transcribe_from_blob(PAYLOAD)
        backend.transcribe.assert_not_awaited()

    async def test_check_status_and_update_config(self):
        backend = stub_backend()
        transcriber = HostedTranscriber(backend, api_key="k")

        transcriber.update_config(model="whisper-large-v3-turbo", max_retries=1)

        self.assertTrue(await transcriber.check_status())
        backend.status.assert_awaited_once_with("k", "whisper-large-v3-turbo")
        self.assertEqual(transcriber.max_retries, 1)
        self.assertEqual(transcriber.name, "stub")


# ===================================================================
# Backend parsing
# ===================================================================


class TestBackendParsing(unittest.TestCase):

    def test_text_response_shapes(self):
        self.assertEqual(_text_response("hf", {"text": " hola "}).text, "hola")
        self.assertEqual(_text_response("hf", [{"text": "hola"}]).text, "hola")

        failed = _text_response("hf", {"error": "Model is overloaded"})
        self.assertFalse(failed.success)
        self.assertFalse(failed.retryable)

        self.assertFalse(_text_response("hf", "garbage").success)

    def test_upload_filename(self):
        self.assertEqual(upload_filename("audio/ogg; codecs=opus"), "audio.ogg")
        self.assertEqual(upload_filename("audio/mp4"), "audio.mp4")
        self.assertEqual(upload_filename(""), "audio.ogg")

    def test_model_url(self):
        self.assertEqual(
            HuggingFaceInferenceBackend.model_url("openai/whisper-large-v3"),
            "https://api-inference.huggingface.co/models/openai/whisper-large-v3",
        )


# ===================================================================
# Routing
# ===================================================================


class TestRouter(unittest.TestCase):

    def setUp(self):
        self.host = make_host()
        self.suppression = SuppressionContext()

    def test_speech_provider(self):
        transcriber = build_transcriber(PipelineConfig(), self.host.surface, self.suppression)
        self.assertIsInstance(transcriber, SpeechEngineTranscriber)
        self.assertIsInstance(transcriber, TranscriptionStrategy)
        self.assertTrue(transcriber.is_supported())

    def test_huggingface_provider(self):
        config = PipelineConfig(stt_provider="huggingface", huggingface_api_key="hf", normalize_audio=True)
        transcriber = build_transcriber(config, self.host.surface, self.suppression)

        self.assertIsInstance(transcriber, HostedTranscriber)
        self.assertIsInstance(transcriber.backend, HuggingFaceInferenceBackend)
        self.assertTrue(transcriber.backend.normalize_audio)
        self.assertEqual(transcriber.model, "openai/whisper-large-v3")

    def test_groq_provider(self):
        config = PipelineConfig(stt_provider="groq", groq_api_key="gk", stt_max_retries=5)
        transcriber = build_transcriber(config, self.host.surface, self.suppression)

        self.assertIsInstance(transcriber.backend, GroqWhisperBackend)
        self.assertEqual(transcriber.api_key, "gk")
        self.assertEqual(transcriber.max_retries, 5)


if __name__ == "__main__":
    unittest.main()
