# voicerelay/capture/__init__.py
# ===============================
# Silent Capture Layer — VoiceRelay
#
#   suppression.py:  silent-mode flag + original volume/mute store
#   registry.py:     install/uninstall table of host API wrappers
#   interceptor.py:  wraps host media entry points, emits capture notifications
#   triggers.py:     locates the host's playback control in a region
#   controller.py:   one silent trigger → capture → restore cycle
#
# Invariant: after any cycle, silent mode is off and every element it muted
# has its original volume/mute back.

from voicerelay.capture.controller import CaptureController, CaptureState  # noqa: F401
from voicerelay.capture.interceptor import ResourceInterceptor  # noqa: F401
from voicerelay.capture.suppression import SuppressionContext  # noqa: F401
