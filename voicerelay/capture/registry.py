"""
voicerelay/capture/registry.py
===============================
Interception Registry — VoiceRelay Capture Layer

Responsibility:
    - Keep one table of ``{target, member, build, original}`` entries
    - Install every entry independently (one failing entry point never
      blocks the others)
    - Uninstall by replaying the table in reverse, putting back exactly
      what was there before

``build`` receives the original attribute (a function, a property, ...)
and returns the replacement. If the member was inherited rather than defined
on ``target`` itself, uninstall deletes the shadowing attribute instead of
writing the inherited one back.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger("voicerelay.capture.registry")

_MISSING = object()


@dataclass
class Interception:
    """A single patched entry point."""

    target: type
    member: str
    build: Callable[[Any], Any]
    original: Any = None
    owned: bool = False
    installed: bool = False

    @property
    def label(self) -> str:
        return f"{getattr(self.target, '__name__', self.target)}.{self.member}"


@dataclass
class InterceptionRegistry:
    """Ordered table of interceptions installed and removed as a unit."""

    entries: list[Interception] = field(default_factory=list)

    def add(
        self,
        target: type | None,
        member: str,
        build: Callable[[Any], Any],
    ) -> Interception | None:
        """Queue an interception. ``target`` may be None (API absent)."""
        if target is None:
            logger.debug("Skipping interception of '%s': host API absent.", member)
            return None
        entry = Interception(target=target, member=member, build=build)
        self.entries.append(entry)
        return entry

    def install(self, entry: Interception) -> bool:
        """Patch one entry point. Failures are logged and reported as False."""
        if entry.installed:
            return True

        original = _lookup(entry.target, entry.member)
        if original is _MISSING:
            logger.warning("Cannot intercept %s: member not found.", entry.label)
            return False

        try:
            replacement = entry.build(original)
            entry.owned = entry.member in vars(entry.target)
            setattr(entry.target, entry.member, replacement)
        except (AttributeError, TypeError) as exc:
            logger.warning("Cannot intercept %s: %s", entry.label, exc)
            return False

        entry.original = original
        entry.installed = True
        logger.debug("Intercepted %s.", entry.label)
        return True

    def install_all(self) -> int:
        """Install every pending entry. Returns the number now installed."""
        return sum(1 for entry in self.entries if self.install(entry))

    def uninstall_all(self) -> None:
        """Restore every installed entry in reverse order and clear the table."""
        for entry in reversed(self.entries):
            if not entry.installed:
                continue
            try:
                if entry.owned:
                    setattr(entry.target, entry.member, entry.original)
                else:
                    delattr(entry.target, entry.member)
            except (AttributeError, TypeError) as exc:
                logger.warning("Failed to restore %s: %s", entry.label, exc)
                continue
            entry.installed = False
            logger.debug("Restored %s.", entry.label)
        self.entries.clear()

    def installed_count(self) -> int:
        return sum(1 for entry in self.entries if entry.installed)

    def has_entry(self, target: type, member: str) -> bool:
        return any(
            entry.target is target and entry.member == member
            for entry in self.entries
        )


def _lookup(target: type, member: str) -> Any:
    """Find ``member`` along the MRO without triggering descriptors."""
    for klass in getattr(target, "__mro__", (target,)):
        if member in vars(klass):
            return vars(klass)[member]
    return _MISSING
