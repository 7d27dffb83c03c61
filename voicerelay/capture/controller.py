"""
voicerelay/capture/controller.py
=================================
Capture Controller — VoiceRelay Capture Layer

Responsibility:
    Run one silent trigger cycle and hand back the resource handle:
        1. Locate the host's playback control in the region (fail fast)
        2. Pause and snapshot any foreground audio already playing
        3. Engage silent mode and mark the region inert
        4. Subscribe to capture notifications, then click the control
        5. Race the notification against a document poll, with one timeout
        6. Restore everything, on every exit path

State machine (one cycle):
    idle → snapshotting-ambient → suppressed → triggering → awaiting-handle
         → {captured | timed-out | trigger-not-found} → restoring → idle

Restoration runs from ``finally``. After ``capture()`` returns or raises,
silent mode is off and every element muted by the cycle has its original
volume/mute back.

This module does NOT:
    - Patch host APIs (handled by interceptor.py)
    - Download, transcribe or translate
"""

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager, suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Iterator

from voicerelay.capture.interceptor import ResourceInterceptor
from voicerelay.capture.suppression import SuppressionContext
from voicerelay.capture.triggers import find_pause_control, find_trigger
from voicerelay.errors import (
    CaptureInProgressError,
    CaptureTimeoutError,
    TriggerNotFoundError,
)
from voicerelay.host import MEDIA_SELECTOR, HostMediaSurface, is_resource_handle, settle
from voicerelay.models import CapturedHandle

logger = logging.getLogger("voicerelay.capture.controller")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CAPTURE_TIMEOUT: float = 5.0   # seconds
DEFAULT_POLL_INTERVAL: float = 0.1     # seconds

INERT_REGION_CLASS = "voicerelay-silent-translation"
INERT_DOCUMENT_CLASS = "voicerelay-silent-mode"


class CaptureState(str, Enum):
    IDLE = "idle"
    SNAPSHOTTING_AMBIENT = "snapshotting-ambient"
    SUPPRESSED = "suppressed"
    TRIGGERING = "triggering"
    AWAITING_HANDLE = "awaiting-handle"
    CAPTURED = "captured"
    TIMED_OUT = "timed-out"
    TRIGGER_NOT_FOUND = "trigger-not-found"
    RESTORING = "restoring"


@dataclass
class AmbientAudioSnapshot:
    """Foreground audio that was playing when the capture began."""

    element: Any
    position: float
    volume: float
    muted: bool


class CaptureController:
    """Drives one silent capture at a time."""

    def __init__(
        self,
        surface: HostMediaSurface,
        interceptor: ResourceInterceptor,
        suppression: SuppressionContext,
        timeout: float = DEFAULT_CAPTURE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._surface = surface
        self._interceptor = interceptor
        self._suppression = suppression
        self.timeout = timeout
        self.poll_interval = poll_interval

        self._state = CaptureState.IDLE
        self._current: Any = None
        self._ambient: AmbientAudioSnapshot | None = None

    @property
    def state(self) -> CaptureState:
        return self._state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def find_loaded_handle(self, region: Any) -> CapturedHandle | None:
        """Return the handle of an already-loaded media element in ``region``."""
        if region is None:
            return None
        element = region.query_selector(MEDIA_SELECTOR)
        if element is not None and is_resource_handle(getattr(element, "src", None)):
            logger.info("Region already holds loaded audio; skipping capture.")
            return CapturedHandle(handle=element.src, element=element)
        return None

    async def capture(self, region: Any, trigger: Any = None) -> CapturedHandle:
        """Silently trigger playback in ``region`` and return the captured handle.

        Args:
            region:  The message region holding the host's player.
            trigger: Optional pre-resolved playback control.

        Raises:
            CaptureInProgressError: A cycle is already running.
            TriggerNotFoundError:   No playback control in the region.
            CaptureTimeoutError:    No handle appeared within ``timeout``.
        """
        if self._state is not CaptureState.IDLE:
            raise CaptureInProgressError(
                f"A voice message capture is already in progress ({self._state.value})."
            )

        async with self._cycle(region):
            control = trigger if trigger is not None else find_trigger(region)
            if control is None:
                self._transition(CaptureState.TRIGGER_NOT_FOUND)
                raise TriggerNotFoundError("No playback control found in the voice message.")

            self._transition(CaptureState.SNAPSHOTTING_AMBIENT)
            self._snapshot_ambient()

            with self._suppression.engaged():
                self._transition(CaptureState.SUPPRESSED)
                self._mark_inert(region)
                existing = region.query_selector(MEDIA_SELECTOR) if region is not None else None
                if existing is not None:
                    self._suppression.silence(existing)
                    self._current = existing

                self._transition(CaptureState.TRIGGERING)
                captured = await self._trigger_and_wait(control)

                self._transition(CaptureState.CAPTURED)
                logger.info("Captured resource handle: %s", captured.handle)
                return captured

    @contextmanager
    def silent_ui(self) -> Iterator[None]:
        """Keep the document marked inert for the duration of the block."""
        self._mark_inert(None)
        try:
            yield
        finally:
            self._clear_inert(None)

    def stop_playback(self) -> None:
        """Stop the element of the current cycle and restore its state."""
        element, self._current = self._current, None
        if element is None:
            return
        try:
            _rewind(element)
        except Exception as exc:
            logger.warning("Could not stop captured playback: %s", exc)
        self._suppression.restore(element)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _cycle(self, region: Any) -> AsyncIterator[None]:
        try:
            yield
        except asyncio.CancelledError:
            logger.warning("Capture cancelled; restoring state.")
            raise
        finally:
            self._transition(CaptureState.RESTORING)
            try:
                await self._restore(region)
            finally:
                self._transition(CaptureState.IDLE)

    def _transition(self, state: CaptureState) -> None:
        if state is not self._state:
            logger.debug("Capture state: %s → %s", self._state.value, state.value)
        self._state = state

    async def _trigger_and_wait(self, control: Any) -> CapturedHandle:
        loop = asyncio.get_running_loop()
        notified: asyncio.Future = loop.create_future()
        baseline = {
            element.src
            for element in self._surface.media_elements()
            if is_resource_handle(getattr(element, "src", None))
        }

        def on_captured(captured: CapturedHandle) -> None:
            if not notified.done():
                notified.set_result(captured)

        # Subscribe before clicking: the host may assign the handle synchronously.
        unsubscribe = self._interceptor.on_captured(on_captured)
        poller = asyncio.create_task(self._poll_for_handle(baseline))
        try:
            logger.debug("Clicking playback control.")
            control.click()

            self._transition(CaptureState.AWAITING_HANDLE)
            done, _pending = await asyncio.wait(
                {notified, poller},
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                self._transition(CaptureState.TIMED_OUT)
                raise CaptureTimeoutError(self.timeout)

            winner = notified if notified in done else poller
            captured = winner.result()
            logger.debug(
                "Handle won by %s.", "notification" if winner is notified else "poll"
            )
        finally:
            unsubscribe()
            notified.cancel()
            poller.cancel()
            with suppress(asyncio.CancelledError):
                await poller

        if captured.element is not None:
            self._suppression.silence(captured.element)
            self._current = captured.element
        return captured

    async def _poll_for_handle(self, baseline: set[str]) -> CapturedHandle:
        while True:
            for element in self._surface.media_elements():
                src = getattr(element, "src", None)
                if is_resource_handle(src) and src not in baseline:
                    return CapturedHandle(handle=src, element=element)
            await asyncio.sleep(self.poll_interval)

    # ------------------------------------------------------------------
    # Ambient audio
    # ------------------------------------------------------------------

    def _snapshot_ambient(self) -> None:
        self._ambient = None
        for element in self._surface.media_elements():
            if not element.paused and not element.ended:
                self._ambient = AmbientAudioSnapshot(
                    element=element,
                    position=element.current_time,
                    volume=element.volume,
                    muted=element.muted,
                )
                element.pause()
                logger.info("Paused foreground audio at %.2fs.", element.current_time)
                return

    # ------------------------------------------------------------------
    # Restoration
    # ------------------------------------------------------------------

    async def _restore(self, region: Any) -> None:
        if self._suppression.active:
            logger.error("Silent mode still active during restore; state will be forced.")

        self.stop_playback()
        self._suppression.restore_all()
        _best_effort("clear inert markers", self._clear_inert, region)
        _best_effort("reset player UI", self._reset_player_ui, region)

        snapshot, self._ambient = self._ambient, None
        if snapshot is not None:
            await self._resume_ambient(snapshot)

    async def _resume_ambient(self, snapshot: AmbientAudioSnapshot) -> None:
        element = snapshot.element
        try:
            element.muted = snapshot.muted
            element.volume = snapshot.volume
            element.current_time = snapshot.position
            await settle(element.play())
        except Exception as exc:
            logger.warning("Foreground audio did not resume: %s", exc)
            return
        logger.info("Resumed foreground audio at %.2fs.", snapshot.position)

    def _mark_inert(self, region: Any) -> None:
        for node, name in self._inert_targets(region):
            node.class_list.add(name)

    def _clear_inert(self, region: Any) -> None:
        for node, name in self._inert_targets(region):
            node.class_list.discard(name)

    def _inert_targets(self, region: Any) -> list[tuple[Any, str]]:
        targets = []
        if getattr(region, "class_list", None) is not None:
            targets.append((region, INERT_REGION_CLASS))
        root = getattr(self._surface.document, "root", None)
        if getattr(root, "class_list", None) is not None:
            targets.append((root, INERT_DOCUMENT_CLASS))
        return targets

    def _reset_player_ui(self, region: Any) -> None:
        if region is None:
            return
        pause = find_pause_control(region)
        if pause is not None:
            pause.click()


def _rewind(element: Any) -> None:
    element.pause()
    element.current_time = 0


def _best_effort(step: str, action: Any, region: Any) -> None:
    try:
        action(region)
    except Exception as exc:
        logger.warning("Restore step '%s' failed: %s", step, exc)
