"""
Tests for tty_core/features.py - reporting mode toggles.
"""

import pytest

from tty_core.capabilities import StaticCapabilities
from tty_core.errors import FeatureWriteError
from tty_core.features import ENABLE_ORDER, FeatureFlag, FeatureToggleStack, ToggleStatus


@pytest.fixture
def stack(writer, xterm_capabilities):
    return FeatureToggleStack(writer, xterm_capabilities)


class TestSequences:
    """Sequences resolved from capabilities."""

    def test_xterm_sequences(self, stack):
        assert stack.sequences(FeatureFlag.BRACKETED_PASTE) == (b"\x1b[?2004h", b"\x1b[?2004l")
        assert stack.sequences(FeatureFlag.ALTERNATE_SCREEN) == (b"\x1b[?1049h", b"\x1b[?1049l")

    def test_sgr_mouse_sequences(self, stack):
        enable, disable = stack.sequences(FeatureFlag.MOUSE_REPORTING)
        assert enable == b"\x1b[?1000h\x1b[?1002h\x1b[?1006h"
        assert disable == b"\x1b[?1006l\x1b[?1002l\x1b[?1000l"

    def test_x10_mouse_sequences(self, writer, xterm_capabilities):
        stack = FeatureToggleStack(writer, xterm_capabilities, mouse_encoding="x10")
        enable, disable = stack.sequences(FeatureFlag.MOUSE_REPORTING)
        assert enable == b"\x1b[?1000h\x1b[?1002h"
        assert disable == b"\x1b[?1002l\x1b[?1000l"

    def test_terminal_specific_sequences(self, writer):
        capabilities = StaticCapabilities.xterm(enter_ca_mode=b"\x1b7\x1b[?47h", exit_ca_mode=b"\x1b[?47l\x1b8")
        stack = FeatureToggleStack(writer, capabilities)
        assert stack.sequences(FeatureFlag.ALTERNATE_SCREEN) == (b"\x1b7\x1b[?47h", b"\x1b[?47l\x1b8")

    def test_missing_capability(self, writer, bare_capabilities):
        stack = FeatureToggleStack(writer, bare_capabilities)
        for flag in FeatureFlag:
            assert stack.sequences(flag) is None
            assert not stack.is_available(flag)

    def test_half_declared_capability_unavailable(self, writer):
        stack = FeatureToggleStack(writer, StaticCapabilities({"enter_bracketed_paste": b"\x1b[?2004h"}))
        assert not stack.is_available(FeatureFlag.BRACKETED_PASTE)


class TestEnableDisable:
    """Idempotent toggling."""

    def test_enable(self, stack, writer):
        assert stack.enable(FeatureFlag.BRACKETED_PASTE) is ToggleStatus.ENABLED
        assert stack.is_enabled(FeatureFlag.BRACKETED_PASTE)
        assert writer.writes == [b"\x1b[?2004h"]

    def test_enable_twice(self, stack, writer):
        stack.enable(FeatureFlag.BRACKETED_PASTE)
        assert stack.enable(FeatureFlag.BRACKETED_PASTE) is ToggleStatus.ALREADY_ENABLED
        assert writer.writes == [b"\x1b[?2004h"]

    def test_disable(self, stack, writer):
        stack.enable(FeatureFlag.ALTERNATE_SCREEN)
        assert stack.disable(FeatureFlag.ALTERNATE_SCREEN) is ToggleStatus.DISABLED
        assert not stack.is_enabled(FeatureFlag.ALTERNATE_SCREEN)
        assert writer.writes == [b"\x1b[?1049h", b"\x1b[?1049l"]

    def test_disable_when_not_enabled(self, stack, writer):
        assert stack.disable(FeatureFlag.MOUSE_REPORTING) is ToggleStatus.ALREADY_DISABLED
        assert writer.writes == []

    def test_enable_unavailable(self, writer, bare_capabilities):
        stack = FeatureToggleStack(writer, bare_capabilities)
        assert stack.enable(FeatureFlag.MOUSE_REPORTING) is ToggleStatus.UNAVAILABLE
        assert stack.disable(FeatureFlag.MOUSE_REPORTING) is ToggleStatus.UNAVAILABLE
        assert not stack.is_enabled(FeatureFlag.MOUSE_REPORTING)
        assert writer.writes == []

    def test_snapshot(self, stack):
        stack.enable(FeatureFlag.MOUSE_REPORTING)
        stack.enable(FeatureFlag.BRACKETED_PASTE)
        snapshot = stack.snapshot()
        stack.disable(FeatureFlag.MOUSE_REPORTING)

        assert snapshot == frozenset({FeatureFlag.MOUSE_REPORTING, FeatureFlag.BRACKETED_PASTE})
        assert stack.snapshot() == frozenset({FeatureFlag.BRACKETED_PASTE})


class TestWriteFailures:
    """Failed writes leave the recorded state untouched."""

    def test_enable_failure(self, stack, writer):
        writer.fail_all = True

        with pytest.raises(FeatureWriteError) as exc_info:
            stack.enable(FeatureFlag.BRACKETED_PASTE)

        assert exc_info.value.flag is FeatureFlag.BRACKETED_PASTE
        assert exc_info.value.enabling
        assert isinstance(exc_info.value.cause, OSError)
        assert not stack.is_enabled(FeatureFlag.BRACKETED_PASTE)

    def test_disable_failure(self, stack, writer):
        stack.enable(FeatureFlag.BRACKETED_PASTE)
        writer.fail_all = True

        with pytest.raises(FeatureWriteError) as exc_info:
            stack.disable(FeatureFlag.BRACKETED_PASTE)

        assert not exc_info.value.enabling
        assert stack.is_enabled(FeatureFlag.BRACKETED_PASTE)


class TestDisableAll:
    """Bulk disable used by teardown."""

    def test_reverse_order(self, stack, writer):
        for flag in ENABLE_ORDER:
            stack.enable(flag)
        writer.clear()

        errors = stack.disable_all(stack.snapshot())

        assert errors == []
        assert writer.writes == [
            b"\x1b[?1006l\x1b[?1002l\x1b[?1000l",
            b"\x1b[?2004l",
            b"\x1b[?1049l",
        ]
        assert stack.snapshot() == frozenset()

    def test_writes_regardless_of_state(self, stack, writer):
        errors = stack.disable_all([FeatureFlag.BRACKETED_PASTE])
        assert errors == []
        assert writer.writes == [b"\x1b[?2004l"]

    def test_only_requested_flags(self, stack, writer):
        stack.enable(FeatureFlag.MOUSE_REPORTING)
        stack.enable(FeatureFlag.BRACKETED_PASTE)
        writer.clear()

        stack.disable_all([FeatureFlag.BRACKETED_PASTE])

        assert writer.writes == [b"\x1b[?2004l"]
        assert stack.is_enabled(FeatureFlag.MOUSE_REPORTING)

    def test_failures_aggregated(self, stack, writer):
        for flag in ENABLE_ORDER:
            stack.enable(flag)
        writer.clear()
        writer.fail_on.update({b"\x1b[?2004l", b"\x1b[?1049l"})

        errors = stack.disable_all(stack.snapshot())

        assert [error.flag for error in errors] == [
            FeatureFlag.BRACKETED_PASTE,
            FeatureFlag.ALTERNATE_SCREEN,
        ]
        assert writer.writes == [b"\x1b[?1006l\x1b[?1002l\x1b[?1000l"]
        assert stack.snapshot() == frozenset({FeatureFlag.BRACKETED_PASTE, FeatureFlag.ALTERNATE_SCREEN})

    def test_unavailable_flags_skipped(self, writer, bare_capabilities):
        stack = FeatureToggleStack(writer, bare_capabilities)
        assert stack.disable_all(list(FeatureFlag)) == []
        assert writer.writes == []
