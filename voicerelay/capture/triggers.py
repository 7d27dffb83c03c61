"""
voicerelay/capture/triggers.py
===============================
Trigger Control Lookup — VoiceRelay Capture Layer

Locates the host's own playback control inside a message region. The host
markup changes without notice, so the lookup is an ordered list of
strategies, most specific first:

    1. explicit test attributes
    2. ARIA labels (several UI languages)
    3. heuristic icon match: a button holding an svg that mentions "play"
"""

import logging
from typing import Any, Callable

logger = logging.getLogger("voicerelay.capture.triggers")

TEST_ATTRIBUTE_SELECTORS: tuple[str, ...] = (
    '[data-testid="play-button"]',
    '[data-icon="audio-play"]',
)

ARIA_LABEL_SELECTORS: tuple[str, ...] = (
    'button[aria-label*="Play"]',
    'button[aria-label*="play"]',
    'button[aria-label*="播放"]',
    'button[aria-label*="Reproducir"]',
    '.audio-play-button',
)

PAUSE_CONTROL_SELECTOR = '[data-icon="audio-pause"]'


def _first_match(selectors: tuple[str, ...]) -> Callable[[Any], Any]:
    def strategy(region: Any) -> Any:
        for selector in selectors:
            found = region.query_selector(selector)
            if found is not None:
                return found
        return None

    return strategy


def _icon_heuristic(region: Any) -> Any:
    for button in region.query_selector_all("button"):
        icon = button.query_selector("svg")
        if icon is None:
            continue
        markup = " ".join(
            filter(None, [icon.inner_html, icon.get_attribute("data-icon")])
        )
        if "play" in markup.lower():
            return button
    return None


TRIGGER_STRATEGIES: list[tuple[str, Callable[[Any], Any]]] = [
    ("test-attribute", _first_match(TEST_ATTRIBUTE_SELECTORS)),
    ("aria-label", _first_match(ARIA_LABEL_SELECTORS)),
    ("icon-heuristic", _icon_heuristic),
]


def find_trigger(region: Any) -> Any:
    """Return the playback control inside ``region``, or None."""
    if region is None:
        return None
    for name, strategy in TRIGGER_STRATEGIES:
        control = strategy(region)
        if control is not None:
            logger.debug("Trigger control located by %s strategy.", name)
            return control
    return None


def find_pause_control(region: Any) -> Any:
    """Return the clickable pause control the host shows while playing, or None."""
    icon = region.query_selector(PAUSE_CONTROL_SELECTOR)
    if icon is None:
        return None
    return icon.closest("button") or icon.closest('[role="button"]')
