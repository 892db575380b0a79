"""Configuration models for tty-core."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MouseEncoding = Literal["sgr", "x10"]

# ncurses reads the same variable for its escape delay
ENV_ESCAPE_DELAY = "ESCDELAY"

DEFAULT_ESCAPE_TIMEOUT_MS = 25.0
DEFAULT_PASTE_CHUNK_SIZE = 1024


class TerminalConfig(BaseModel):
    """What a terminal mode guard should change. Unset fields are left alone."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)
    raw: bool = False
    mouse: bool = False
    bracketed_paste: bool = Field(default=False, alias="bracketedPaste")
    alt_screen: bool = Field(default=False, alias="altScreen")
    keep_signals: bool = Field(default=False, alias="keepSignals")
    keep_output_processing: bool = Field(default=False, alias="keepOutputProcessing")
    mouse_encoding: MouseEncoding = Field(default="sgr", alias="mouseEncoding")
    handle_resize: bool = Field(default=False, alias="handleResize")


class DecoderOptions(BaseModel):
    """Options for the escape sequence decoder."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)
    timeout: float = Field(default=DEFAULT_ESCAPE_TIMEOUT_MS, gt=0)  # milliseconds
    paste_chunk_size: int = Field(default=DEFAULT_PASTE_CHUNK_SIZE, gt=0, alias="pasteChunkSize")
    mouse_encoding: MouseEncoding = Field(default="sgr", alias="mouseEncoding")

    @classmethod
    def from_env(cls, **overrides: object) -> DecoderOptions:
        """Build options, taking the escape timeout from ``ESCDELAY`` when set.

        Invalid or non-positive values are ignored.
        """
        values: dict[str, object] = {}
        raw = os.environ.get(ENV_ESCAPE_DELAY)
        if raw:
            try:
                delay = float(raw)
            except ValueError:
                delay = 0.0
            if delay > 0:
                values["timeout"] = delay
        values.update(overrides)
        return cls(**values)
