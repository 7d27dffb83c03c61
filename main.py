"""
main.py
========
Command-line entry point for VoiceRelay.

Translates a local voice-message file through hosted speech-to-text and the
configured translation engine (the in-process recognizer needs a host and is
not available here).

Run with:
    python main.py voice.ogg --stt groq --target en
"""

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # Load .env before any module reads env vars

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

for _noisy_logger_name in (
    "openai",
    "openai._base_client",
    "httpx",
    "httpcore",
    "aiohttp",
    "aiohttp.access",
):
    logging.getLogger(_noisy_logger_name).setLevel(logging.WARNING)

from voicerelay.audio.downloader import BinaryPayload  # noqa: E402
from voicerelay.config import PipelineConfig  # noqa: E402
from voicerelay.errors import VoiceRelayError  # noqa: E402
from voicerelay.host import HostMediaSurface  # noqa: E402
from voicerelay.pipeline import VoiceTranslationPipeline  # noqa: E402

logger = logging.getLogger("voicerelay.main")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Transcribe and translate a voice message file.")
    parser.add_argument("audio", type=Path, help="Path to the audio file (ogg, mp4, mp3, wav, ...)")
    parser.add_argument("--stt", choices=("huggingface", "groq"), help="Hosted STT provider")
    parser.add_argument("--source", help="Spoken language hint (default: auto)")
    parser.add_argument("--target", help="Target language (default: en)")
    parser.add_argument("--engine", choices=("google", "openai", "groq"), help="Translation engine")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    config = PipelineConfig.from_env()
    if args.stt:
        config = config.merged({"stt_provider": args.stt})
    elif config.stt_provider == "speech":
        config = config.merged({"stt_provider": "groq" if config.groq_api_key else "huggingface"})

    content_type = mimetypes.guess_type(args.audio.name)[0] or "audio/ogg"
    payload = BinaryPayload(data=args.audio.read_bytes(), content_type=content_type)

    pipeline = VoiceTranslationPipeline(HostMediaSurface(), config)
    options = {
        key: value
        for key, value in (
            ("source_lang", args.source),
            ("target_lang", args.target),
            ("engine", args.engine),
        )
        if value
    }
    try:
        result = await pipeline.translate_payload(payload, options)
    except VoiceRelayError as exc:
        logger.error("%s", exc)
        return 1

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(_run(_parse_args(sys.argv[1:]))))
