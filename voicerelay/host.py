"""
voicerelay/host.py
===================
Host Media Surface — VoiceRelay

Responsibility:
    - Describe the narrow slice of the host runtime the pipeline touches:
      media elements, generic elements, the document, the audio graph,
      the resource fetcher and the speech recognizer
    - Recognize resource handles (ephemeral ``blob:`` URLs)
    - Settle host calls that may or may not return an awaitable

Every member of ``HostMediaSurface`` is optional. The interceptor and the
transcribers must keep working, in degraded form, when a member is ``None``.

This module does NOT:
    - Implement any host API (the embedding application supplies them)
    - Patch anything (handled by voicerelay.capture.interceptor)
"""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Protocol, Sequence


# ---------------------------------------------------------------------------
# Resource handles
# ---------------------------------------------------------------------------

# The host mints ephemeral object URLs such as
# "blob:https://web.example.com/4f1c2b9e-...".
HANDLE_PATTERN = re.compile(r"^blob:\S+$")

MEDIA_SELECTOR = "audio"


def is_resource_handle(value: Any) -> bool:
    """Return True if ``value`` looks like a host-minted resource handle."""
    return isinstance(value, str) and bool(HANDLE_PATTERN.match(value))


# ---------------------------------------------------------------------------
# Host protocols
# ---------------------------------------------------------------------------


class MediaElement(Protocol):
    """The media element API (an ``<audio>`` element in a browser host)."""

    src: str
    volume: float
    muted: bool
    autoplay: bool
    paused: bool
    ended: bool
    current_time: float
    on_ended: Callable[[], None] | None

    def play(self) -> Awaitable[None] | None: ...

    def pause(self) -> None: ...


class Node(Protocol):
    """A DOM-like element: a UI region, a control or a container."""

    tag_name: str
    class_list: Any  # supports add() / discard()
    inner_html: str

    def query_selector(self, selector: str) -> Node | None: ...

    def query_selector_all(self, selector: str) -> Sequence[Node]: ...

    def get_attribute(self, name: str) -> str | None: ...

    def closest(self, selector: str) -> Node | None: ...

    def click(self) -> None: ...


class Document(Protocol):
    """The host document."""

    root: Node

    def query_selector_all(self, selector: str) -> Sequence[Any]: ...

    def observe_mutations(
        self, callback: Callable[[Iterable[Any]], None]
    ) -> Callable[[], None]:
        """Call ``callback(added_nodes)`` on every insertion; return a disconnect function."""
        ...


@dataclass(frozen=True)
class RecognitionSegment:
    """One segment reported by the host speech recognizer."""

    transcript: str
    is_final: bool
    confidence: float = 0.0


class SpeechRecognizer(Protocol):
    """The in-process recognition engine (Web Speech style).

    ``on_result`` receives only the segments that changed since the last
    call. ``on_end`` fires once, after ``stop()`` or when the engine gives up.
    """

    lang: str
    continuous: bool
    interim_results: bool
    max_alternatives: int
    on_start: Callable[[], None] | None
    on_result: Callable[[Sequence[RecognitionSegment]], None] | None
    on_error: Callable[[str], None] | None
    on_end: Callable[[], None] | None

    def start(self) -> None: ...

    def stop(self) -> None: ...


@dataclass
class HostMediaSurface:
    """Everything the pipeline is allowed to touch in the host runtime."""

    document: Document | None = None
    media_element_type: type | None = None
    element_type: type | None = None
    audio_context_type: type | None = None
    buffer_source_type: type | None = None
    fetch_resource: Callable[[str], Awaitable[Any]] | None = None
    create_media_element: Callable[[], MediaElement] | None = None
    create_object_url: Callable[[Any], str] | None = None
    revoke_object_url: Callable[[str], None] | None = None
    speech_recognizer_factory: Callable[[], SpeechRecognizer] | None = None

    def media_elements(self) -> list:
        """Return every media element currently attached to the document."""
        if self.document is None:
            return []
        return list(self.document.query_selector_all(MEDIA_SELECTOR))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def settle(outcome: Any) -> Any:
    """Await ``outcome`` if the host returned an awaitable, else pass it through."""
    if inspect.isawaitable(outcome):
        return await outcome
    return outcome
