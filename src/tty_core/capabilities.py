"""
Terminal capability sources.

A capability source answers ``get(name)`` with the literal byte string the
terminal uses for a named capability, or ``None`` when the terminal lacks it.
Key capabilities use their terminfo names (``kcuu1``, ``kf1``, ``kLFT5``...).
Feature sequences use the long names below, since terminfo rarely carries
bracketed paste or mouse tracking and they need xterm-family fallbacks.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Protocol

logger = logging.getLogger(__name__)

ENTER_CA_MODE = "enter_ca_mode"
EXIT_CA_MODE = "exit_ca_mode"
ENTER_BRACKETED_PASTE = "enter_bracketed_paste"
EXIT_BRACKETED_PASTE = "exit_bracketed_paste"
ENTER_MOUSE_MODE = "enter_mouse_mode"
EXIT_MOUSE_MODE = "exit_mouse_mode"

# Long feature name -> terminfo capname (BE/BD are ncurses user capabilities)
TERMINFO_FEATURE_NAMES: dict[str, str] = {
    ENTER_CA_MODE: "smcup",
    EXIT_CA_MODE: "rmcup",
    ENTER_BRACKETED_PASTE: "BE",
    EXIT_BRACKETED_PASTE: "BD",
}

XTERM_FEATURE_SEQUENCES: dict[str, bytes] = {
    ENTER_CA_MODE: b"\x1b[?1049h",
    EXIT_CA_MODE: b"\x1b[?1049l",
    ENTER_BRACKETED_PASTE: b"\x1b[?2004h",
    EXIT_BRACKETED_PASTE: b"\x1b[?2004l",
    # Button press/release plus drag tracking
    ENTER_MOUSE_MODE: b"\x1b[?1000h\x1b[?1002h",
    EXIT_MOUSE_MODE: b"\x1b[?1002l\x1b[?1000l",
}

XTERM_COMPATIBLE_PREFIXES = (
    "xterm", "screen", "tmux", "rxvt", "alacritty", "kitty", "foot",
    "wezterm", "vte", "gnome", "konsole", "st-", "iterm", "contour",
)


def is_xterm_compatible(term: str | None) -> bool:
    """Whether a ``TERM`` value names an xterm-family terminal."""
    if not term:
        return False
    return term.lower().startswith(XTERM_COMPATIBLE_PREFIXES)


class CapabilitySource(Protocol):
    """Lookup of terminal capabilities by name."""

    def get(self, name: str) -> bytes | None: ...


class StaticCapabilities:
    """Capability source backed by a plain mapping."""

    def __init__(self, capabilities: Mapping[str, bytes | None] | None = None) -> None:
        self._capabilities = dict(capabilities or {})

    def get(self, name: str) -> bytes | None:
        return self._capabilities.get(name) or None

    def names(self) -> list[str]:
        return [name for name, value in self._capabilities.items() if value]

    @classmethod
    def xterm(cls, **extra: bytes | None) -> StaticCapabilities:
        """Feature sequences of a typical xterm, plus ``extra``."""
        capabilities: dict[str, bytes | None] = dict(XTERM_FEATURE_SEQUENCES)
        capabilities.update(extra)
        return cls(capabilities)


class TerminfoCapabilities:
    """
    Capability source reading the terminfo database through ``curses``.

    The database is loaded lazily on first lookup. An unknown terminal (or a
    platform without ``curses``) leaves only the xterm fallbacks, and those
    only when ``TERM`` names an xterm-compatible terminal.
    """

    def __init__(self, term: str | None = None, fd: int = -1) -> None:
        self._term = term if term is not None else os.environ.get("TERM")
        self._fd = fd
        self._loaded = False
        self._has_terminfo = False

    @property
    def term(self) -> str | None:
        return self._term

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True

        if not self._term:
            logger.debug("TERM is not set; terminfo lookups disabled")
            return

        try:
            import curses
        except ImportError:
            logger.debug("curses is unavailable; terminfo lookups disabled")
            return

        try:
            curses.setupterm(self._term, self._fd)
        except (curses.error, OSError) as exc:
            # OSError: fd -1 means stdout, which may not be a real file
            logger.debug("No terminfo entry for %s: %s", self._term, exc)
            return
        self._has_terminfo = True

    def _tigetstr(self, capname: str) -> bytes | None:
        self._load()
        if not self._has_terminfo:
            return None

        import curses

        try:
            value = curses.tigetstr(capname)
        except curses.error:
            return None
        return value or None

    def get(self, name: str) -> bytes | None:
        if name in (ENTER_MOUSE_MODE, EXIT_MOUSE_MODE):
            # kmous means the terminal reports mice the xterm way
            if self._tigetstr("kmous") or is_xterm_compatible(self._term):
                return XTERM_FEATURE_SEQUENCES[name]
            return None

        capname = TERMINFO_FEATURE_NAMES.get(name)
        if capname is not None:
            value = self._tigetstr(capname)
            if value:
                return value
            if is_xterm_compatible(self._term):
                return XTERM_FEATURE_SEQUENCES[name]
            return None

        return self._tigetstr(name)
