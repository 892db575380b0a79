"""
Escape sequence decoder: raw terminal bytes in, input events out.

Input can arrive in partial chunks, especially for escape sequences like
mouse reports. For example, the SGR mouse report ``\\x1b[<35;20;5m`` might
arrive as:
- Chunk 1: ``\\x1b``
- Chunk 2: ``[<35``
- Chunk 3: ``;20;5m``

The decoder keeps its state between ``feed()`` calls and only emits an
event once a sequence is complete. A lone ESC is ambiguous: it may be the
Escape key or the start of a longer sequence. The decoder does not block
or keep timers; callers check ``deadline`` (or call ``poll()``) and the
pending bytes fall back to a bare Escape key once the timeout elapses.

Usage:
    decoder = InputDecoder()
    for event in decoder.feed(os.read(fd, 1024)):
        ...
    # later, when no more bytes arrived before decoder.deadline
    for event in decoder.poll():
        ...
"""

from __future__ import annotations

import codecs
import logging
import re
import time
from enum import Enum
from typing import Callable, Literal

from tty_core.config import DecoderOptions
from tty_core.events import (
    InputEvent,
    KeyEvent,
    MouseEvent,
    PasteChunkEvent,
    PasteEndEvent,
    PasteStartEvent,
    ResizeEvent,
)
from tty_core.keymap import KeyMap, KeyMapEntry, default_keymap, modifiers_from_param

logger = logging.getLogger(__name__)

ESC = 0x1B
BRACKETED_PASTE_START = b"\x1b[200~"
BRACKETED_PASTE_END = b"\x1b[201~"
X10_MOUSE_PREFIX = b"\x1b[M"

# Longest escape sequence buffered before giving up on it
MAX_SEQUENCE_LENGTH = 64

SequenceStatus = Literal["complete", "incomplete", "invalid"]


class DecoderState(str, Enum):
    GROUND = "ground"
    ESCAPE_SEEN = "escape_seen"
    CSI_COLLECTING = "csi_collecting"
    PASTE_COLLECTING = "paste_collecting"


def _is_complete_csi_sequence(data: bytes) -> SequenceStatus:
    """Check if a CSI sequence is complete.

    CSI sequences: ESC [ parameters (0x30-0x3F) intermediates (0x20-0x2F)
    followed by a final byte (0x40-0x7E).
    """
    if len(data) < 3:
        return "incomplete"

    seen_intermediate = False
    for position, byte in enumerate(data[2:], start=2):
        if 0x30 <= byte <= 0x3F:
            if seen_intermediate:
                return "invalid"
        elif 0x20 <= byte <= 0x2F:
            seen_intermediate = True
        elif 0x40 <= byte <= 0x7E:
            return "complete" if position == len(data) - 1 else "invalid"
        else:
            return "invalid"
    return "incomplete"


def _is_complete_ss3_sequence(data: bytes) -> SequenceStatus:
    """Check if an SS3 sequence (ESC O, optional modifier digit, final) is complete."""
    if len(data) < 3:
        return "incomplete"
    byte = data[2]
    if 0x31 <= byte <= 0x39:
        if len(data) == 3:
            return "incomplete"
        final = data[3]
        return "complete" if len(data) == 4 and 0x40 <= final <= 0x7E else "invalid"
    if 0x40 <= byte <= 0x7E and len(data) == 3:
        return "complete"
    return "invalid"


def classify_sequence(data: bytes, mouse_encoding: str = "sgr") -> SequenceStatus:
    """Check whether an ESC-introduced byte string is complete, needs more data, or cannot be a sequence."""
    if not data or data[0] != ESC:
        return "invalid"
    if len(data) == 1:
        return "incomplete"

    if data.startswith(b"\x1b["):
        if mouse_encoding == "x10" and data.startswith(X10_MOUSE_PREFIX):
            # ESC [ M plus three raw bytes
            if len(data) < 6:
                return "incomplete"
            return "complete" if len(data) == 6 else "invalid"
        return _is_complete_csi_sequence(data)

    if data.startswith(b"\x1bO"):
        return _is_complete_ss3_sequence(data)

    return "invalid"


_SGR_MOUSE = re.compile(rb"^\x1b\[<(\d+);(\d+);(\d+)([Mm])$")
_RESIZE_REPORT = re.compile(rb"^\x1b\[(?:48;(\d+);(\d+)(?:;\d+;\d+)?|8;(\d+);(\d+))t$")
_MODIFIED_CURSOR = re.compile(rb"^\x1b\[1;(\d+)(?::\d+)?([ABCDEFHPQRS])$")
_MODIFIED_SS3 = re.compile(rb"^\x1bO(\d)([ABCDEFHPQRS])$")
_MODIFY_OTHER_KEYS = re.compile(rb"^\x1b\[27;(\d+);(\d+)~$")
_TILDE_KEY = re.compile(rb"^\x1b\[(\d+)(?:;(\d+))?(?::\d+)?~$")
_CSI_U = re.compile(rb"^\x1b\[(\d+)(?::\d*)*(?:;(\d+))?(?::\d+)?u$")

_CURSOR_FINALS = {
    ord("A"): "up",
    ord("B"): "down",
    ord("C"): "right",
    ord("D"): "left",
    ord("E"): "clear",
    ord("F"): "end",
    ord("H"): "home",
    ord("P"): "f1",
    ord("Q"): "f2",
    ord("R"): "f3",
    ord("S"): "f4",
}

_TILDE_KEYS = {
    1: "home",
    2: "insert",
    3: "delete",
    4: "end",
    5: "pageUp",
    6: "pageDown",
    7: "home",
    8: "end",
    11: "f1",
    12: "f2",
    13: "f3",
    14: "f4",
    15: "f5",
    17: "f6",
    18: "f7",
    19: "f8",
    20: "f9",
    21: "f10",
    23: "f11",
    24: "f12",
}

_CODEPOINT_KEYS = {
    9: "tab",
    13: "enter",
    27: "escape",
    32: "space",
    127: "backspace",
    57414: "enter",  # Numpad Enter (Kitty protocol)
}

_MOUSE_BUTTONS = ("left", "middle", "right")
_WHEEL_BUTTONS = ("wheel_up", "wheel_down", "wheel_left", "wheel_right")


def key_for_byte(byte: int) -> KeyEvent:
    """Key event for a single byte read in ground state."""
    raw = bytes([byte])
    if byte == 0x09:
        return KeyEvent(key="tab", text="\t", raw=raw)
    if byte == 0x0D:
        return KeyEvent(key="enter", text="\r", raw=raw)
    if byte == ESC:
        return KeyEvent(key="escape", raw=raw)
    if byte in (0x08, 0x7F):
        return KeyEvent(key="backspace", raw=raw)
    if byte == 0x00:
        return KeyEvent(key="space", ctrl=True, raw=raw)
    if 1 <= byte <= 26:
        return KeyEvent(key=chr(byte + 96), ctrl=True, raw=raw)
    if 28 <= byte <= 31:
        # Ctrl+\ Ctrl+] Ctrl+^ Ctrl+_
        return KeyEvent(key=chr(byte + 64), ctrl=True, raw=raw)
    if byte == 0x20:
        return KeyEvent(key="space", text=" ", raw=raw)

    # Printable ASCII, or a stray high byte mapped through latin-1
    char = chr(byte)
    if char.isalpha() and char.isupper():
        return KeyEvent(key=char.lower(), text=char, shift=True, raw=raw)
    return KeyEvent(key=char, text=char, raw=raw)


def key_for_char(char: str, raw: bytes) -> KeyEvent:
    """Key event for a decoded (non-ASCII) character."""
    if char.isalpha() and char.isupper() and char.lower() != char:
        return KeyEvent(key=char.lower(), text=char, shift=True, raw=raw)
    return KeyEvent(key=char, text=char, raw=raw)


def _key_event(entry: KeyMapEntry, raw: bytes) -> KeyEvent:
    return KeyEvent(key=entry.key, shift=entry.shift, alt=entry.alt, ctrl=entry.ctrl, raw=raw)


def _modified_key(key: str, param: int, raw: bytes) -> KeyEvent:
    shift, alt, ctrl = modifiers_from_param(param)
    return KeyEvent(key=key, shift=shift, alt=alt, ctrl=ctrl, raw=raw)


def _codepoint_key(codepoint: int, param: int, raw: bytes) -> KeyEvent | None:
    shift, alt, ctrl = modifiers_from_param(param)
    key = _CODEPOINT_KEYS.get(codepoint)
    if key is None:
        if codepoint < 32 or codepoint > 0x10FFFF or 0xD800 <= codepoint <= 0xDFFF:
            return None
        key = chr(codepoint)
        if key.isalpha() and key.isupper():
            key, shift = key.lower(), True
    text = None
    if not (ctrl or alt) and len(key) == 1:
        text = key.upper() if shift else key
    return KeyEvent(key=key, text=text, shift=shift, alt=alt, ctrl=ctrl, raw=raw)


def mouse_event(code: int, x: int, y: int, released: bool, raw: bytes) -> MouseEvent:
    """
    Build a mouse event from a report's button code and 1-based position.

    Code bits: 0-1 button, 4 shift, 8 alt, 16 ctrl, 32 motion, 64 wheel.
    """
    base = code & 0b11
    if code & 64:
        button = _WHEEL_BUTTONS[base]
        action = "scroll"
    elif base == 3:
        button = "none"
        action = "move" if code & 32 else "release"
    else:
        button = _MOUSE_BUTTONS[base]
        if code & 32:
            action = "drag"
        else:
            action = "release" if released else "press"

    return MouseEvent(
        button=button,
        action=action,
        column=max(x - 1, 0),
        row=max(y - 1, 0),
        shift=bool(code & 4),
        alt=bool(code & 8),
        ctrl=bool(code & 16),
        raw=raw,
    )


def _partial_marker_length(data: bytes, marker: bytes) -> int:
    """Length of the longest suffix of ``data`` that starts ``marker``."""
    for size in range(min(len(data), len(marker) - 1), 0, -1):
        if data.endswith(marker[:size]):
            return size
    return 0


class InputDecoder:
    """
    Streaming decoder of terminal input bytes.

    States: GROUND, ESCAPE_SEEN (lone ESC buffered), CSI_COLLECTING (longer
    escape sequence buffered), PASTE_COLLECTING (inside bracketed paste).

    Unknown or malformed sequences are never dropped: the decoder emits a
    bare Escape key and decodes the rest of the buffered bytes again from
    ground state, which turns them into literal key events.
    """

    def __init__(
        self,
        keymap: KeyMap | None = None,
        options: DecoderOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._keymap = keymap if keymap is not None else default_keymap()
        self._options = options or DecoderOptions()
        self._clock = clock
        self._timeout_seconds = self._options.timeout / 1000.0

        self._state = DecoderState.GROUND
        self._buffer = bytearray()
        self._deadline: float | None = None
        # Longest exact key match seen while waiting for a longer one
        self._fallback: tuple[KeyMapEntry, int] | None = None

        self._utf8_pending = bytearray()
        self._utf8_needed = 0

        self._paste_pending = bytearray()
        self._paste_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def options(self) -> DecoderOptions:
        return self._options

    @property
    def keymap(self) -> KeyMap:
        return self._keymap

    @property
    def pending(self) -> bytes:
        """Bytes buffered but not yet turned into events."""
        if self._state is DecoderState.PASTE_COLLECTING:
            return bytes(self._paste_pending)
        return bytes(self._buffer) + bytes(self._utf8_pending)

    @property
    def deadline(self) -> float | None:
        """Clock time at which a buffered escape sequence or partial character times out."""
        return self._deadline

    def clock(self) -> float:
        return self._clock()

    def time_until_timeout(self, now: float | None = None) -> float | None:
        """Seconds left before ``poll()`` would time out, or ``None``."""
        if self._deadline is None:
            return None
        if now is None:
            now = self._clock()
        return max(self._deadline - now, 0.0)

    def feed(self, data: bytes | bytearray | memoryview | str) -> list[InputEvent]:
        """
        Decode a chunk of input.

        Args:
            data: Raw bytes read from the terminal (str is UTF-8 encoded)

        Returns:
            Events completed by this chunk, in input order
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        events: list[InputEvent] = []
        self._process(bytes(data), events)
        return events

    def poll(self, now: float | None = None) -> list[InputEvent]:
        """Apply the escape timeout if its deadline has passed."""
        if self._deadline is None:
            return []
        if now is None:
            now = self._clock()
        if now < self._deadline:
            return []
        return self.timeout()

    def timeout(self) -> list[InputEvent]:
        """
        Resolve buffered bytes as if no more input is coming.

        A buffered escape sequence becomes its longest exact key match, or a
        bare Escape key; the bytes after it are decoded again from ground.
        Paste content is not affected.
        """
        events: list[InputEvent] = []
        if self._state in (DecoderState.ESCAPE_SEEN, DecoderState.CSI_COLLECTING):
            buffer = bytes(self._buffer)
            logger.debug("Escape timeout with %r buffered", buffer)
            self._resolve_unmatched(buffer, events)
        elif self._state is DecoderState.GROUND and self._utf8_pending:
            self._flush_utf8(events)
        return events

    def reset(self) -> None:
        """Drop all buffered input and return to ground state."""
        self._to_ground()
        self._utf8_pending.clear()
        self._utf8_needed = 0
        self._paste_pending.clear()
        self._paste_decoder.reset()

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def _to_ground(self) -> None:
        self._state = DecoderState.GROUND
        self._buffer.clear()
        self._deadline = None
        self._fallback = None

    def _process(self, data: bytes, events: list[InputEvent]) -> None:
        index = 0
        while index < len(data):
            if self._state is DecoderState.PASTE_COLLECTING:
                self._collect_paste(data[index:], events)
                return
            byte = data[index]
            index += 1
            if self._state is DecoderState.GROUND:
                self._ground_byte(byte, events)
            else:
                self._escape_byte(byte, events)

    def _ground_byte(self, byte: int, events: list[InputEvent]) -> None:
        if self._utf8_pending:
            if 0x80 <= byte <= 0xBF:
                self._utf8_pending.append(byte)
                if len(self._utf8_pending) == self._utf8_needed:
                    self._finish_utf8(events)
                return
            self._flush_utf8(events)

        if byte == ESC:
            self._state = DecoderState.ESCAPE_SEEN
            self._buffer = bytearray([byte])
            self._deadline = self._clock() + self._timeout_seconds
            return

        if 0xC2 <= byte <= 0xF4:
            self._utf8_pending = bytearray([byte])
            self._utf8_needed = 2 if byte < 0xE0 else 3 if byte < 0xF0 else 4
            self._deadline = self._clock() + self._timeout_seconds
            return

        events.append(key_for_byte(byte))

    def _finish_utf8(self, events: list[InputEvent]) -> None:
        raw = bytes(self._utf8_pending)
        self._utf8_pending.clear()
        self._utf8_needed = 0
        self._deadline = None
        try:
            char = raw.decode("utf-8")
        except UnicodeDecodeError:
            events.extend(key_for_byte(byte) for byte in raw)
            return
        events.append(key_for_char(char, raw))

    def _flush_utf8(self, events: list[InputEvent]) -> None:
        raw = bytes(self._utf8_pending)
        self._utf8_pending.clear()
        self._utf8_needed = 0
        self._deadline = None
        events.extend(key_for_byte(byte) for byte in raw)

    def _escape_byte(self, byte: int, events: list[InputEvent]) -> None:
        buffer = bytes(self._buffer) + bytes([byte])

        if buffer == BRACKETED_PASTE_START:
            self._to_ground()
            self._state = DecoderState.PASTE_COLLECTING
            events.append(PasteStartEvent())
            return

        if len(buffer) > MAX_SEQUENCE_LENGTH:
            self._resolve_unmatched(buffer, events)
            return

        entry = self._keymap.lookup(buffer)
        status = classify_sequence(buffer, self._options.mouse_encoding)

        if self._keymap.is_prefix(buffer) or (entry is None and status == "incomplete"):
            # Longest match wins: remember the exact match and keep waiting
            if entry is not None:
                self._fallback = (entry, len(buffer))
            self._buffer = bytearray(buffer)
            self._state = DecoderState.CSI_COLLECTING
            return

        if entry is not None:
            self._to_ground()
            events.append(_key_event(entry, buffer))
            return

        if status == "complete":
            event = self._interpret(buffer)
            if event is not None:
                self._to_ground()
                events.append(event)
                return

        self._resolve_unmatched(buffer, events)

    def _resolve_unmatched(self, buffer: bytes, events: list[InputEvent]) -> None:
        fallback = self._fallback
        self._to_ground()
        if fallback is not None:
            entry, length = fallback
            events.append(_key_event(entry, buffer[:length]))
            rest = buffer[length:]
        else:
            events.append(key_for_byte(ESC))
            rest = buffer[1:]
        if rest:
            self._process(rest, events)

    def _interpret(self, data: bytes) -> InputEvent | None:
        """Decode a complete sequence that is not a literal key map entry."""
        if self._options.mouse_encoding == "x10" and data.startswith(X10_MOUSE_PREFIX):
            code, x, y = data[3] - 32, data[4] - 32, data[5] - 32
            if min(code, x, y) < 0:
                return None
            return mouse_event(code, x, y, released=False, raw=data)

        match = _SGR_MOUSE.match(data)
        if match:
            return mouse_event(
                int(match.group(1)),
                int(match.group(2)),
                int(match.group(3)),
                released=match.group(4) == b"m",
                raw=data,
            )

        match = _RESIZE_REPORT.match(data)
        if match:
            rows = int(match.group(1) or match.group(3))
            columns = int(match.group(2) or match.group(4))
            return ResizeEvent(columns=columns, rows=rows)

        match = _MODIFIED_CURSOR.match(data) or _MODIFIED_SS3.match(data)
        if match:
            return _modified_key(_CURSOR_FINALS[match.group(2)[0]], int(match.group(1)), data)

        match = _MODIFY_OTHER_KEYS.match(data)
        if match:
            return _codepoint_key(int(match.group(2)), int(match.group(1)), data)

        match = _TILDE_KEY.match(data)
        if match:
            key = _TILDE_KEYS.get(int(match.group(1)))
            if key is None:
                return None
            return _modified_key(key, int(match.group(2) or 1), data)

        match = _CSI_U.match(data)
        if match:
            return _codepoint_key(int(match.group(1)), int(match.group(2) or 1), data)

        return None

    def _collect_paste(self, data: bytes, events: list[InputEvent]) -> None:
        self._paste_pending += data
        end_index = self._paste_pending.find(BRACKETED_PASTE_END)

        if end_index == -1:
            # Hold back a possible partial end marker
            keep = _partial_marker_length(bytes(self._paste_pending), BRACKETED_PASTE_END)
            ready = bytes(self._paste_pending[: len(self._paste_pending) - keep])
            del self._paste_pending[: len(ready)]
            self._emit_paste(ready, events, final=False)
            return

        content = bytes(self._paste_pending[:end_index])
        remaining = bytes(self._paste_pending[end_index + len(BRACKETED_PASTE_END):])
        self._paste_pending.clear()
        self._emit_paste(content, events, final=True)
        self._paste_decoder.reset()
        self._state = DecoderState.GROUND
        events.append(PasteEndEvent())

        if remaining:
            self._process(remaining, events)

    def _emit_paste(self, data: bytes, events: list[InputEvent], final: bool) -> None:
        size = self._options.paste_chunk_size
        for start in range(0, len(data), size):
            text = self._paste_decoder.decode(data[start:start + size])
            if text:
                events.append(PasteChunkEvent(text=text))
        if final:
            text = self._paste_decoder.decode(b"", final=True)
            if text:
                events.append(PasteChunkEvent(text=text))
