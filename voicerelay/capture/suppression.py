"""
voicerelay/capture/suppression.py
==================================
Silent Mode & Original-State Store — VoiceRelay Capture Layer

Responsibility:
    - Hold the silent-mode flag read by every interception point
    - Engage it only through ``engaged()``, which clears it in ``finally``
    - Remember each suppressed element's volume/mute before it is muted,
      keyed weakly so unrelated elements are never kept alive
    - Track exempt elements (the pipeline's own replay element)

The host code we patch reads the flag, so it cannot be a plain local. One
``SuppressionContext`` is created per pipeline and handed explicitly to the
interceptor, the capture controller, the transcriber and the orchestrator.

This module does NOT:
    - Patch host APIs (handled by interceptor.py)
    - Decide when a capture cycle starts or ends (handled by controller.py)
"""

import logging
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

logger = logging.getLogger("voicerelay.capture.suppression")


@dataclass(frozen=True)
class ResourceOriginalState:
    """Volume and mute flag observed before suppression was applied."""

    volume: float
    muted: bool


class SuppressionContext:
    """Process-wide silent mode plus the per-element restoration record."""

    def __init__(self) -> None:
        self._depth = 0
        self._originals: "weakref.WeakKeyDictionary[Any, ResourceOriginalState]" = (
            weakref.WeakKeyDictionary()
        )
        self._exempt: "weakref.WeakSet[Any]" = weakref.WeakSet()

    # ------------------------------------------------------------------
    # Silent-mode flag
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._depth > 0

    @contextmanager
    def engaged(self) -> Iterator["SuppressionContext"]:
        """Hold silent mode for the duration of the block."""
        self._depth += 1
        if self._depth == 1:
            logger.debug("Silent mode engaged.")
        try:
            yield self
        finally:
            self._depth -= 1
            if self._depth == 0:
                logger.debug("Silent mode released.")

    # ------------------------------------------------------------------
    # Original state
    # ------------------------------------------------------------------

    def remember(self, element: Any) -> None:
        """Record ``element``'s current volume/mute unless already recorded."""
        if element in self._originals:
            return
        self._originals[element] = ResourceOriginalState(
            volume=element.volume,
            muted=element.muted,
        )

    def silence(self, element: Any) -> None:
        """Remember ``element``'s state, then mute it."""
        self.remember(element)
        element.volume = 0
        element.muted = True

    def original_state(self, element: Any) -> ResourceOriginalState | None:
        return self._originals.get(element)

    def restore(self, element: Any) -> bool:
        """Put back ``element``'s recorded state. Returns False if none was recorded."""
        state = self._originals.pop(element, None)
        if state is None:
            return False
        if self.active:
            logger.warning(
                "Restoring element state while silent mode is active; "
                "values will be forced until it is released."
            )
        element.volume = state.volume
        element.muted = state.muted
        return True

    def restore_all(self) -> int:
        """Restore every element still recorded. Returns how many were restored."""
        restored = 0
        for element in list(self._originals.keys()):
            if self.restore(element):
                restored += 1
        if restored:
            logger.debug("Safety net restored %d element(s).", restored)
        return restored

    def pending_restorations(self) -> int:
        return len(self._originals)

    # ------------------------------------------------------------------
    # Exempt elements
    # ------------------------------------------------------------------

    def is_exempt(self, element: Any) -> bool:
        return element in self._exempt

    @contextmanager
    def exempt(self, element: Any) -> Iterator[Any]:
        """Let ``element`` play while silent; its volume/mute stay forced."""
        self._exempt.add(element)
        try:
            yield element
        finally:
            self._exempt.discard(element)
