"""
Key map table: literal escape sequences to logical key identifiers.

The table starts from the sequences common xterm/vt-family terminals send
and overlays whatever the terminfo database declares for the current
terminal. Lookup is longest-match: an entry that is a prefix of another one
is only chosen when no longer entry matches (the decoder bounds the wait
with its escape timeout).

Key identifiers:
- Special keys: "escape", "enter", "tab", "backspace", "insert", "delete",
  "home", "end", "pageUp", "pageDown", "clear", "begin"
- Arrow keys: "up", "down", "left", "right"
- Function keys: "f1" .. "f24"
- Modified keys: "shift+up", "ctrl+delete", "alt+shift+left", ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Iterator

from tty_core.capabilities import CapabilitySource, TerminfoCapabilities

logger = logging.getLogger(__name__)

ESC = b"\x1b"

MODIFIERS = {
    "shift": 1,
    "alt": 2,
    "ctrl": 4,
}


@dataclass(frozen=True)
class KeyMapEntry:
    """A literal sequence and the key it stands for."""
    sequence: bytes
    key: str
    shift: bool = False
    alt: bool = False
    ctrl: bool = False

    @property
    def key_id(self) -> str:
        return format_key_id(self.key, shift=self.shift, alt=self.alt, ctrl=self.ctrl)


def format_key_id(key: str, shift: bool = False, alt: bool = False, ctrl: bool = False) -> str:
    """Build a key identifier such as ``"shift+ctrl+up"``."""
    modifiers = []
    if shift:
        modifiers.append("shift")
    if alt:
        modifiers.append("alt")
    if ctrl:
        modifiers.append("ctrl")
    return "+".join(modifiers + [key])


def parse_key_id(key_id: str) -> tuple[str, bool, bool, bool] | None:
    """Split a key identifier into ``(key, shift, alt, ctrl)``.

    Modifier order does not matter. Returns ``None`` for an empty key.
    """
    parts = key_id.split("+")
    key = parts[-1]
    if not key:
        # "ctrl++" names the plus key
        if key_id.endswith("++"):
            parts = key_id[:-2].split("+") + ["+"]
            key = "+"
        else:
            return None
    modifiers = {part.lower() for part in parts[:-1]}
    return key, "shift" in modifiers, "alt" in modifiers, "ctrl" in modifiers


def modifiers_from_param(value: int) -> tuple[bool, bool, bool]:
    """Decode an xterm modifier parameter (1 + bitmask) into (shift, alt, ctrl).

    Meta (bit 8) is folded into alt; lock bits are ignored.
    """
    mask = max(value - 1, 0)
    return (
        bool(mask & MODIFIERS["shift"]),
        bool(mask & (MODIFIERS["alt"] | 8)),
        bool(mask & MODIFIERS["ctrl"]),
    )


# Sequences sent by common terminals regardless of what terminfo says
DEFAULT_SEQUENCES: dict[bytes, str] = {
    b"\x1b[A": "up",
    b"\x1b[B": "down",
    b"\x1b[C": "right",
    b"\x1b[D": "left",
    b"\x1bOA": "up",
    b"\x1bOB": "down",
    b"\x1bOC": "right",
    b"\x1bOD": "left",
    b"\x1b[H": "home",
    b"\x1b[F": "end",
    b"\x1bOH": "home",
    b"\x1bOF": "end",
    b"\x1b[1~": "home",
    b"\x1b[7~": "home",
    b"\x1b[4~": "end",
    b"\x1b[8~": "end",
    b"\x1b[2~": "insert",
    b"\x1b[3~": "delete",
    b"\x1b[5~": "pageUp",
    b"\x1b[6~": "pageDown",
    b"\x1b[[5~": "pageUp",
    b"\x1b[[6~": "pageDown",
    b"\x1b[E": "clear",
    b"\x1bOE": "clear",
    b"\x1b[G": "begin",
    b"\x1bOM": "enter",
    b"\x1b[Z": "shift+tab",
    b"\x1bOP": "f1",
    b"\x1bOQ": "f2",
    b"\x1bOR": "f3",
    b"\x1bOS": "f4",
    b"\x1b[11~": "f1",
    b"\x1b[12~": "f2",
    b"\x1b[13~": "f3",
    b"\x1b[14~": "f4",
    b"\x1b[[A": "f1",
    b"\x1b[[B": "f2",
    b"\x1b[[C": "f3",
    b"\x1b[[D": "f4",
    b"\x1b[[E": "f5",
    b"\x1b[15~": "f5",
    b"\x1b[17~": "f6",
    b"\x1b[18~": "f7",
    b"\x1b[19~": "f8",
    b"\x1b[20~": "f9",
    b"\x1b[21~": "f10",
    b"\x1b[23~": "f11",
    b"\x1b[24~": "f12",
    # rxvt shift/ctrl variants
    b"\x1b[a": "shift+up",
    b"\x1b[b": "shift+down",
    b"\x1b[c": "shift+right",
    b"\x1b[d": "shift+left",
    b"\x1b[e": "shift+clear",
    b"\x1b[2$": "shift+insert",
    b"\x1b[3$": "shift+delete",
    b"\x1b[5$": "shift+pageUp",
    b"\x1b[6$": "shift+pageDown",
    b"\x1b[7$": "shift+home",
    b"\x1b[8$": "shift+end",
    b"\x1bOa": "ctrl+up",
    b"\x1bOb": "ctrl+down",
    b"\x1bOc": "ctrl+right",
    b"\x1bOd": "ctrl+left",
    b"\x1bOe": "ctrl+clear",
    b"\x1b[2^": "ctrl+insert",
    b"\x1b[3^": "ctrl+delete",
    b"\x1b[5^": "ctrl+pageUp",
    b"\x1b[6^": "ctrl+pageDown",
    b"\x1b[7^": "ctrl+home",
    b"\x1b[8^": "ctrl+end",
}

# terminfo key capname -> key identifier
TERMINFO_KEY_NAMES: dict[str, str] = {
    "kcuu1": "up",
    "kcud1": "down",
    "kcuf1": "right",
    "kcub1": "left",
    "khome": "home",
    "kend": "end",
    "kich1": "insert",
    "kdch1": "delete",
    "kpp": "pageUp",
    "knp": "pageDown",
    "kclr": "clear",
    "kbeg": "begin",
    "kb2": "begin",
    "kent": "enter",
    "kcbt": "shift+tab",
    "kLFT": "shift+left",
    "kRIT": "shift+right",
    "kHOM": "shift+home",
    "kEND": "shift+end",
    "kDC": "shift+delete",
    "kIC": "shift+insert",
    "kNXT": "shift+pageDown",
    "kPRV": "shift+pageUp",
    "kUP": "shift+up",
    "kDN": "shift+down",
}

# xterm numbers modified keys 2..7 in its extended capabilities (kUP5 is ctrl+up)
_EXTENDED_KEY_BASES = {
    "kUP": "up",
    "kDN": "down",
    "kLFT": "left",
    "kRIT": "right",
    "kHOM": "home",
    "kEND": "end",
    "kDC": "delete",
    "kIC": "insert",
    "kNXT": "pageDown",
    "kPRV": "pageUp",
}

for _base, _key in _EXTENDED_KEY_BASES.items():
    for _param in range(2, 8):
        _shift, _alt, _ctrl = modifiers_from_param(_param)
        TERMINFO_KEY_NAMES[f"{_base}{_param}"] = format_key_id(_key, _shift, _alt, _ctrl)

for _n in range(1, 13):
    TERMINFO_KEY_NAMES[f"kf{_n}"] = f"f{_n}"
    # xterm reports shifted F1-F12 as kf13-kf24 and ctrl ones as kf25-kf36
    TERMINFO_KEY_NAMES[f"kf{_n + 12}"] = f"shift+f{_n}"
    TERMINFO_KEY_NAMES[f"kf{_n + 24}"] = f"ctrl+f{_n}"

del _base, _key, _param, _shift, _alt, _ctrl, _n

# Handled structurally by the decoder, never looked up literally
EXCLUDED_CAPABILITIES = frozenset({"kmous"})


def make_entry(sequence: bytes, key_id: str) -> KeyMapEntry:
    parsed = parse_key_id(key_id)
    if parsed is None:
        raise ValueError(f"Invalid key identifier: {key_id!r}")
    key, shift, alt, ctrl = parsed
    return KeyMapEntry(sequence=sequence, key=key, shift=shift, alt=alt, ctrl=ctrl)


def is_literal_sequence(sequence: bytes | None) -> bool:
    """Whether a capability string can be matched byte for byte.

    Parameterized strings (``%`` placeholders) and single bytes are not.
    """
    if not sequence or len(sequence) < 2:
        return False
    if not sequence.startswith(ESC):
        return False
    return b"%" not in sequence


class KeyMap:
    """Longest-prefix-match table of escape sequences."""

    def __init__(self, entries: Iterable[KeyMapEntry] = ()) -> None:
        self._entries: dict[bytes, KeyMapEntry] = {}
        self._prefixes: set[bytes] = set()
        self._max_length = 0
        for entry in entries:
            self.add(entry)

    def add(self, entry: KeyMapEntry) -> None:
        """Add or replace an entry."""
        self._entries[entry.sequence] = entry
        for size in range(1, len(entry.sequence)):
            self._prefixes.add(entry.sequence[:size])
        self._max_length = max(self._max_length, len(entry.sequence))

    def lookup(self, sequence: bytes) -> KeyMapEntry | None:
        return self._entries.get(bytes(sequence))

    def is_prefix(self, sequence: bytes) -> bool:
        """Whether ``sequence`` is a strict prefix of some entry."""
        return bytes(sequence) in self._prefixes

    def longest_match(self, buffer: bytes) -> tuple[KeyMapEntry, int] | None:
        """The longest entry that ``buffer`` starts with, and its length."""
        for size in range(min(len(buffer), self._max_length), 0, -1):
            entry = self._entries.get(bytes(buffer[:size]))
            if entry is not None:
                return entry, size
        return None

    def conflicts(self) -> list[tuple[KeyMapEntry, KeyMapEntry]]:
        """Pairs ``(shorter, longer)`` where one sequence prefixes another."""
        pairs = []
        for sequence, entry in self._entries.items():
            if sequence in self._prefixes:
                for other, other_entry in self._entries.items():
                    if len(other) > len(sequence) and other.startswith(sequence):
                        pairs.append((entry, other_entry))
        return pairs

    @property
    def max_length(self) -> int:
        return self._max_length

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, sequence: object) -> bool:
        return sequence in self._entries

    def __iter__(self) -> Iterator[KeyMapEntry]:
        return iter(self._entries.values())

    @classmethod
    def defaults(cls) -> KeyMap:
        """Table of the built-in xterm/vt/rxvt sequences only."""
        return cls(make_entry(seq, key_id) for seq, key_id in DEFAULT_SEQUENCES.items())

    @classmethod
    def from_capabilities(cls, source: CapabilitySource) -> KeyMap:
        """
        Build the table for a terminal.

        Terminfo entries override the built-in ones for the same sequence.
        Parameterized, single-byte and structurally decoded capabilities
        are skipped.
        """
        keymap = cls.defaults()
        added = 0
        for capname, key_id in TERMINFO_KEY_NAMES.items():
            if capname in EXCLUDED_CAPABILITIES:
                continue
            sequence = source.get(capname)
            if not is_literal_sequence(sequence):
                continue
            assert sequence is not None
            keymap.add(make_entry(sequence, key_id))
            added += 1

        for shorter, longer in keymap.conflicts():
            logger.debug(
                "Key sequence %r (%s) prefixes %r (%s); longest match wins",
                shorter.sequence, shorter.key_id, longer.sequence, longer.key_id,
            )
        logger.debug("Key map built with %d terminfo entries, %d total", added, len(keymap))
        return keymap


@lru_cache(maxsize=1)
def default_keymap() -> KeyMap:
    """Key map for the terminal named by ``TERM`` (built once)."""
    return KeyMap.from_capabilities(TerminfoCapabilities())
