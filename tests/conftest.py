"""
Shared pytest fixtures for tty_core tests.
"""

from __future__ import annotations

from typing import Generator, Hashable

import pytest

from tty_core.capabilities import StaticCapabilities
from tty_core.errors import AttributeApplyError, AttributeCaptureError
from tty_core.guard import TerminalAttributes


# =============================================================================
# Terminal Backend Fixtures
# =============================================================================


ORIGINAL_ATTRIBUTES = [
    0x6B02,  # iflag
    0x0003,  # oflag
    0x4B00,  # cflag
    0x0536,  # lflag
    38400,
    38400,
    [b"\x03", b"\x1c", b"\x7f", b"\x15", b"\x04", 0, 1, b"\x00"],
]

RAW_MARKER = 0x1000000


class FakeBackend:
    """In-memory terminal attributes standing in for termios."""

    def __init__(self, device: Hashable = ("dev", 1)) -> None:
        self.device = device
        self.current = TerminalAttributes(ORIGINAL_ATTRIBUTES)
        self.applied: list[TerminalAttributes] = []
        self.fail_capture = False
        self.fail_apply = False
        self.fail_restore = False

    def device_id(self, fd: int) -> Hashable:
        return self.device

    def capture(self, fd: int) -> TerminalAttributes:
        if self.fail_capture:
            raise AttributeCaptureError(fd, OSError("no tty"))
        return self.current

    def apply(self, fd: int, attributes: TerminalAttributes) -> None:
        is_raw = attributes.to_list()[3] & RAW_MARKER
        if is_raw and self.fail_apply:
            raise AttributeApplyError(fd, OSError("apply failed"))
        if not is_raw and self.fail_restore:
            raise AttributeApplyError(fd, OSError("terminal gone"))
        self.applied.append(attributes)
        self.current = attributes

    def make_raw(
        self,
        attributes: TerminalAttributes,
        keep_signals: bool = False,
        keep_output_processing: bool = False,
    ) -> TerminalAttributes:
        values = attributes.to_list()
        values[3] = (values[3] & ~0x0B) | RAW_MARKER
        if keep_signals:
            values[3] |= 0x01
        return TerminalAttributes(values)


class RecordingWriter:
    """Byte sink that records writes and can be told to fail."""

    def __init__(self) -> None:
        self.writes: list[bytes] = []
        self.fail_on: set[bytes] = set()
        self.fail_all = False

    def __call__(self, data: bytes) -> None:
        if self.fail_all or data in self.fail_on:
            raise OSError("write failed")
        self.writes.append(data)

    def clear(self) -> None:
        self.writes.clear()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def xterm_capabilities() -> StaticCapabilities:
    return StaticCapabilities.xterm()


@pytest.fixture
def bare_capabilities() -> StaticCapabilities:
    """A terminal without any optional feature."""
    return StaticCapabilities()


@pytest.fixture(autouse=True)
def clean_guard_registry() -> Generator[None, None, None]:
    """Make sure no guard leaks between tests."""
    from tty_core import guard

    yield
    guard._active_guards.clear()
