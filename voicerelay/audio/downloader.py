"""
voicerelay/audio/downloader.py
===============================
Resource Downloader — VoiceRelay Audio Layer

Responsibility:
    - Resolve a captured resource handle to its binary payload through the
      host's resource fetcher
    - Cache payloads by handle so a repeated capture never refetches
    - Expose the payload as bytes, base64 text, a named file object or a
      data URI, all derived from the cached payload

This module does NOT:
    - Retry failed fetches (the caller owns retry policy)
    - Transcode audio (handled by normalizer.py)
"""

import base64
import io
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import aiohttp

from voicerelay.audio import normalizer
from voicerelay.errors import DownloadError

logger = logging.getLogger("voicerelay.audio.downloader")

DEFAULT_CONTENT_TYPE = "audio/ogg"
DEFAULT_FILENAME = "audio.ogg"
HTTP_TIMEOUT_SECONDS = 30


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BinaryPayload:
    """The fetched bytes of one resource handle."""

    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    def to_bytes(self) -> bytes:
        return self.data

    def to_base64(self) -> str:
        """Base64 text without any data-URI prefix."""
        return base64.b64encode(self.data).decode("ascii")

    def to_file(self, filename: str = DEFAULT_FILENAME) -> io.BytesIO:
        """A named in-memory file, as multipart and SDK uploads expect."""
        audio_file = io.BytesIO(self.data)
        audio_file.name = filename
        return audio_file

    def to_data_uri(self) -> str:
        return f"data:{self.content_type};base64,{self.to_base64()}"

    def to_wav(self) -> bytes:
        """Mono 16 kHz WAV bytes (see normalizer.py)."""
        return normalizer.to_wav(self)


ResourceFetcher = Callable[[str], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Downloader
# ---------------------------------------------------------------------------


class ResourceDownloader:
    """Fetches and caches resource payloads keyed by handle."""

    def __init__(self, fetcher: ResourceFetcher | None = None) -> None:
        self._fetcher = fetcher or http_fetcher
        self._cache: dict[str, BinaryPayload] = {}

    async def fetch(self, handle: str) -> BinaryPayload:
        """
        Return the payload behind ``handle``, fetching it at most once.

        Raises:
            DownloadError: If the fetch fails or returns nothing.
        """
        cached = self._cache.get(handle)
        if cached is not None:
            logger.debug("Using cached payload for %s", handle)
            return cached

        logger.info("Downloading audio: %s", handle)
        try:
            fetched = await self._fetcher(handle)
        except DownloadError:
            raise
        except Exception as exc:
            logger.error("Audio download failed: %s", exc)
            raise DownloadError(handle, str(exc) or type(exc).__name__) from exc

        payload = _as_payload(fetched)
        if payload.size == 0:
            raise DownloadError(handle, "resource is empty")

        logger.info(
            "Audio downloaded: %d bytes (%s).", payload.size, payload.content_type,
        )
        self._cache[handle] = payload
        return payload

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Download cache cleared.")

    def cache_size(self) -> int:
        return len(self._cache)


# ---------------------------------------------------------------------------
# Default fetcher
# ---------------------------------------------------------------------------


async def http_fetcher(url: str) -> BinaryPayload:
    """Fetch an ``http(s)`` resource with aiohttp.

    Host ``blob:`` handles are only resolvable inside the host; embedders
    pass the host's own fetch primitive to ``ResourceDownloader`` instead.
    """
    if not url.startswith(("http://", "https://")):
        raise DownloadError(url, "handle is not reachable over HTTP; supply the host fetcher")

    async with aiohttp.ClientSession() as session:
        async with session.get(
            url, timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS),
        ) as resp:
            if resp.status >= 400:
                raise DownloadError(url, f"{resp.status} {resp.reason}")
            data = await resp.read()
            return BinaryPayload(data=data, content_type=resp.content_type or DEFAULT_CONTENT_TYPE)


def _as_payload(fetched: Any) -> BinaryPayload:
    if isinstance(fetched, BinaryPayload):
        return fetched
    if isinstance(fetched, (bytes, bytearray, memoryview)):
        return BinaryPayload(data=bytes(fetched))
    raise TypeError(f"Fetcher returned unsupported type {type(fetched).__name__}")
