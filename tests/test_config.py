"""
tests/test_config.py
=====================
Configuration Tests — environment loading and partial updates
"""

import os
import sys
import unittest
from unittest.mock import patch

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicerelay.config import PipelineConfig


@patch("voicerelay.config.load_dotenv")
class TestPipelineConfig(unittest.TestCase):

    def test_defaults_from_empty_environment(self, _load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            config = PipelineConfig.from_env()

        self.assertEqual(config.source_lang, "auto")
        self.assertEqual(config.target_lang, "en")
        self.assertEqual(config.engine, "google")
        self.assertEqual(config.stt_provider, "speech")
        self.assertEqual(config.capture_timeout, 5.0)
        self.assertEqual(config.huggingface_api_key, "")

    def test_environment_overrides(self, load_dotenv):
        env = {
            "VOICERELAY_TARGET_LANG": "zh-CN",
            "VOICERELAY_ENGINE": "groq",
            "VOICERELAY_STT_PROVIDER": "huggingface",
            "VOICERELAY_CAPTURE_TIMEOUT": "2.5",
            "VOICERELAY_NORMALIZE_AUDIO": "1",
            "HUGGINGFACE_API_KEY": "hf_secret",
            "GROQ_TRANSLATION_MODEL": "llama-3.3-70b-versatile",
        }
        with patch.dict(os.environ, env, clear=True):
            config = PipelineConfig.from_env()

        load_dotenv.assert_called_once()
        self.assertEqual(config.target_lang, "zh-CN")
        self.assertEqual(config.engine, "groq")
        self.assertEqual(config.stt_provider, "huggingface")
        self.assertEqual(config.capture_timeout, 2.5)
        self.assertTrue(config.normalize_audio)
        self.assertEqual(config.api_key_for("huggingface"), "hf_secret")
        self.assertEqual(config.groq_translation_model, "llama-3.3-70b-versatile")

    def test_invalid_provider_is_rejected(self, _load_dotenv):
        with patch.dict(os.environ, {"VOICERELAY_STT_PROVIDER": "whisper-local"}, clear=True):
            with self.assertRaises(ValueError):
                PipelineConfig.from_env()

    def test_merged_applies_partial_update(self, _load_dotenv):
        config = PipelineConfig()
        updated = config.merged({"target_lang": "ja", "engine": "openai"})

        self.assertEqual(updated.target_lang, "ja")
        self.assertEqual(updated.engine, "openai")
        self.assertEqual(config.target_lang, "en")

    def test_merged_rejects_unknown_keys(self, _load_dotenv):
        with self.assertRaises(ValueError) as ctx:
            PipelineConfig().merged({"targetLang": "ja"})
        self.assertIn("targetLang", str(ctx.exception))

    def test_merged_validates_values(self, _load_dotenv):
        with self.assertRaises(ValueError):
            PipelineConfig().merged({"capture_timeout": 0})

    def test_redacted_masks_secrets(self, _load_dotenv):
        data = PipelineConfig(openai_api_key="sk-live").redacted()
        self.assertEqual(data["openai_api_key"], "***")
        self.assertEqual(data["groq_api_key"], "")


if __name__ == "__main__":
    unittest.main()
