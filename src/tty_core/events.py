"""Input events produced by the escape sequence decoder."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from tty_core.keymap import format_key_id, parse_key_id

MouseButton = Literal[
    "left", "middle", "right",
    "wheel_up", "wheel_down", "wheel_left", "wheel_right",
    "none",
]

MouseAction = Literal["press", "release", "drag", "move", "scroll"]


class KeyEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["key"] = "key"
    key: str
    text: str | None = None
    shift: bool = False
    alt: bool = False
    ctrl: bool = False
    raw: bytes = b""

    @property
    def key_id(self) -> str:
        return format_key_id(self.key, shift=self.shift, alt=self.alt, ctrl=self.ctrl)

    def matches(self, key_id: str) -> bool:
        """
        Check this event against a key identifier such as ``"ctrl+c"``.

        Letter keys compare case-insensitively, so ``"shift+a"`` matches
        a typed ``"A"``.
        """
        parsed = parse_key_id(key_id)
        if parsed is None:
            return False
        key, shift, alt, ctrl = parsed
        own_key = self.key.lower() if len(self.key) == 1 else self.key
        other_key = key.lower() if len(key) == 1 else key
        return (own_key, self.shift, self.alt, self.ctrl) == (other_key, shift, alt, ctrl)


class MouseEvent(BaseModel):
    """A mouse report. Coordinates are zero-based cells."""
    model_config = ConfigDict(frozen=True)
    type: Literal["mouse"] = "mouse"
    button: MouseButton
    action: MouseAction
    column: int
    row: int
    shift: bool = False
    alt: bool = False
    ctrl: bool = False
    raw: bytes = b""


class PasteStartEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["paste_start"] = "paste_start"


class PasteChunkEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["paste_chunk"] = "paste_chunk"
    text: str


class PasteEndEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["paste_end"] = "paste_end"


class ResizeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["resize"] = "resize"
    columns: int
    rows: int


InputEvent = Union[
    KeyEvent,
    MouseEvent,
    PasteStartEvent,
    PasteChunkEvent,
    PasteEndEvent,
    ResizeEvent,
]
