"""
voicerelay/capture/interceptor.py
==================================
Resource Interceptor — VoiceRelay Capture Layer

Responsibility:
    - Make resource-handle assignment on host media elements observable
      (``src`` property and ``set_attribute("src", ...)``)
    - While silent mode is active, make every playback path inert:
        * volume forced to 0, muted forced to True, autoplay forced to False
        * ``play()`` and audio-graph ``resume()`` return an already-resolved
          outcome without executing
        * audio-graph ``connect()`` and buffer ``start()`` become no-ops
    - Mute media elements attached to the document while silent
    - Undo all of it on ``uninstall()``

With silent mode off, every wrapped entry point delegates unchanged; the
only side effect left is the capture notification.

This module does NOT:
    - Decide when silent mode is on (handled by suppression.py callers)
    - Trigger playback or wait for handles (handled by controller.py)
    - Download anything
"""

import asyncio
import functools
import logging
from typing import Any, Callable, Iterable, Iterator

from voicerelay.capture.registry import InterceptionRegistry
from voicerelay.capture.suppression import SuppressionContext
from voicerelay.host import MEDIA_SELECTOR, HostMediaSurface, is_resource_handle
from voicerelay.models import CapturedHandle

logger = logging.getLogger("voicerelay.capture.interceptor")

CaptureListener = Callable[[CapturedHandle], None]


class ResourceInterceptor:
    """Installs and removes the host media interceptions."""

    def __init__(
        self,
        surface: HostMediaSurface,
        suppression: SuppressionContext,
    ) -> None:
        self._surface = surface
        self._suppression = suppression
        self._registry = InterceptionRegistry()
        self._listeners: list[CaptureListener] = []
        self._disconnect_observer: Callable[[], None] | None = None
        self.is_installed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def install(self) -> None:
        """Wrap every available entry point. Safe to call repeatedly."""
        if self.is_installed:
            logger.debug("Interceptor already installed.")
            return

        media = self._surface.media_element_type
        context = self._surface.audio_context_type

        self._registry.add(media, "src", self._wrap_src)
        self._registry.add(self._surface.element_type, "set_attribute", self._wrap_set_attribute)
        self._registry.add(media, "play", self._wrap_play)
        self._registry.add(media, "volume", self._forced_property("volume", 0))
        self._registry.add(media, "muted", self._forced_property("muted", True))
        self._registry.add(media, "autoplay", self._forced_property("autoplay", False))
        self._registry.add(context, "resume", self._wrap_resume)
        self._registry.add(context, "create_media_element_source", self._wrap_create_source)
        self._registry.add(self._surface.buffer_source_type, "start", self._wrap_buffer_start)

        installed = self._registry.install_all()
        self._observe_document()
        self.is_installed = True

        logger.info(
            "Resource interceptor installed: %d/%d entry points, mutation observer %s.",
            installed,
            len(self._registry.entries),
            "on" if self._disconnect_observer else "off",
        )

    def uninstall(self) -> None:
        """Restore every wrapped entry point. No-op when not installed."""
        if not self.is_installed:
            return

        self._registry.uninstall_all()

        if self._disconnect_observer is not None:
            self._disconnect_observer()
            self._disconnect_observer = None

        self.is_installed = False
        logger.info("Resource interceptor uninstalled.")

    def on_captured(self, callback: CaptureListener) -> Callable[[], None]:
        """Register ``callback`` for capture notifications; return an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Capture notification
    # ------------------------------------------------------------------

    def _on_handle_assigned(self, element: Any, handle: str) -> None:
        logger.debug("Resource handle assigned: %s", handle)

        if self._suppression.active:
            self._suppression.silence(element)
            logger.debug("Element muted on handle assignment (silent mode).")

        captured = CapturedHandle(handle=handle, element=element)
        for listener in list(self._listeners):
            try:
                listener(captured)
            except Exception:
                # Listener errors stay out of the host setter.
                logger.exception("Capture listener failed.")

    def _is_media(self, element: Any) -> bool:
        media = self._surface.media_element_type
        if media is not None and isinstance(element, media):
            return True
        tag = getattr(element, "tag_name", "") or ""
        return tag.lower() == MEDIA_SELECTOR

    # ------------------------------------------------------------------
    # Wrapper builders (each receives the original attribute)
    # ------------------------------------------------------------------

    def _wrap_src(self, original: Any) -> property:
        _require_setter(original, "src")

        def fset(element: Any, value: Any) -> None:
            if is_resource_handle(value) and not self._suppression.is_exempt(element):
                self._on_handle_assigned(element, value)
            original.fset(element, value)

        return property(original.fget, fset, original.fdel, original.__doc__)

    def _wrap_set_attribute(self, original: Any) -> Callable:
        @functools.wraps(original)
        def set_attribute(element: Any, name: str, value: Any, *args: Any, **kwargs: Any) -> Any:
            if (
                name == "src"
                and self._is_media(element)
                and is_resource_handle(str(value))
                and not self._suppression.is_exempt(element)
            ):
                self._on_handle_assigned(element, str(value))
            return original(element, name, value, *args, **kwargs)

        return set_attribute

    def _wrap_play(self, original: Any) -> Callable:
        @functools.wraps(original)
        def play(element: Any, *args: Any, **kwargs: Any) -> Any:
            if self._suppression.active and not self._suppression.is_exempt(element):
                logger.debug("Blocked play() (silent mode).")
                return _resolved()
            return original(element, *args, **kwargs)

        return play

    def _forced_property(self, name: str, forced: Any) -> Callable[[Any], property]:
        def build(original: Any) -> property:
            _require_setter(original, name)

            def fset(element: Any, value: Any) -> None:
                original.fset(element, forced if self._suppression.active else value)

            return property(original.fget, fset, original.fdel, original.__doc__)

        return build

    def _wrap_resume(self, original: Any) -> Callable:
        @functools.wraps(original)
        def resume(context: Any, *args: Any, **kwargs: Any) -> Any:
            if self._suppression.active:
                logger.debug("Blocked audio-graph resume() (silent mode).")
                return _resolved()
            return original(context, *args, **kwargs)

        return resume

    def _wrap_create_source(self, original: Any) -> Callable:
        @functools.wraps(original)
        def create_media_element_source(context: Any, element: Any, *args: Any, **kwargs: Any) -> Any:
            node = original(context, element, *args, **kwargs)
            node_type = type(node)
            # Source node classes are only reachable through an instance.
            if not self._registry.has_entry(node_type, "connect"):
                entry = self._registry.add(node_type, "connect", self._wrap_connect)
                if entry is not None:
                    self._registry.install(entry)
            return node

        return create_media_element_source

    def _wrap_connect(self, original: Any) -> Callable:
        @functools.wraps(original)
        def connect(node: Any, *args: Any, **kwargs: Any) -> Any:
            if self._suppression.active:
                logger.debug("Blocked audio-graph connect() (silent mode).")
                return node
            return original(node, *args, **kwargs)

        return connect

    def _wrap_buffer_start(self, original: Any) -> Callable:
        @functools.wraps(original)
        def start(node: Any, *args: Any, **kwargs: Any) -> Any:
            if self._suppression.active:
                logger.debug("Blocked buffer start() (silent mode).")
                return None
            return original(node, *args, **kwargs)

        return start

    # ------------------------------------------------------------------
    # Document mutation pass
    # ------------------------------------------------------------------

    def _observe_document(self) -> None:
        observe = getattr(self._surface.document, "observe_mutations", None)
        if observe is None:
            logger.warning("Document mutation stream unavailable; late elements will not be muted.")
            return
        try:
            self._disconnect_observer = observe(self._on_nodes_added)
        except (AttributeError, TypeError) as exc:
            logger.warning("Failed to observe document mutations: %s", exc)

    def _on_nodes_added(self, nodes: Iterable[Any]) -> None:
        if not self._suppression.active:
            return
        for node in nodes:
            for element in self._media_within(node):
                if self._suppression.is_exempt(element):
                    continue
                self._suppression.silence(element)
                logger.debug("Muted media element attached during silent mode.")

    def _media_within(self, node: Any) -> Iterator[Any]:
        if node is None:
            return
        if self._is_media(node):
            yield node
        query = getattr(node, "query_selector_all", None)
        if query is not None:
            yield from query(MEDIA_SELECTOR)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_setter(original: Any, name: str) -> None:
    if not isinstance(original, property) or original.fset is None:
        raise TypeError(f"'{name}' is not a settable property")


def _resolved() -> Any:
    """An already-completed outcome, shaped like the host's own play()/resume()."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    future = loop.create_future()
    future.set_result(None)
    return future
