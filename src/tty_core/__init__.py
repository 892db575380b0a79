"""
tty-core: terminal mode control and input decoding

Raw mode and reporting features that are always restored, a streaming
escape sequence decoder, and grapheme-aware display widths.
"""

from tty_core.capabilities import CapabilitySource, StaticCapabilities, TerminfoCapabilities
from tty_core.config import DecoderOptions, TerminalConfig
from tty_core.decoder import DecoderState, InputDecoder
from tty_core.errors import (
    AttributeApplyError,
    AttributeCaptureError,
    FeatureUnavailableError,
    FeatureWriteError,
    GuardConflictError,
    TerminalError,
)
from tty_core.events import (
    InputEvent,
    KeyEvent,
    MouseEvent,
    PasteChunkEvent,
    PasteEndEvent,
    PasteStartEvent,
    ResizeEvent,
)
from tty_core.features import FeatureFlag, FeatureToggleStack, ToggleStatus
from tty_core.guard import (
    TeardownReport,
    TerminalAttributes,
    TerminalModeGuard,
    TermiosBackend,
    acquire,
)
from tty_core.keymap import KeyMap, KeyMapEntry, default_keymap
from tty_core.terminal import FdWriter, InputReader
from tty_core.width import (
    GraphemeSpan,
    segment,
    text_width,
    truncate_to_width,
    visible_width,
)

__version__ = "0.1.0"

__all__ = [
    "CapabilitySource",
    "StaticCapabilities",
    "TerminfoCapabilities",
    "DecoderOptions",
    "TerminalConfig",
    "DecoderState",
    "InputDecoder",
    "AttributeApplyError",
    "AttributeCaptureError",
    "FeatureUnavailableError",
    "FeatureWriteError",
    "GuardConflictError",
    "TerminalError",
    "InputEvent",
    "KeyEvent",
    "MouseEvent",
    "PasteChunkEvent",
    "PasteEndEvent",
    "PasteStartEvent",
    "ResizeEvent",
    "FeatureFlag",
    "FeatureToggleStack",
    "ToggleStatus",
    "TeardownReport",
    "TerminalAttributes",
    "TerminalModeGuard",
    "TermiosBackend",
    "acquire",
    "KeyMap",
    "KeyMapEntry",
    "default_keymap",
    "FdWriter",
    "InputReader",
    "GraphemeSpan",
    "segment",
    "text_width",
    "truncate_to_width",
    "visible_width",
]
