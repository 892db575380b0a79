"""
Terminal mode guard: owns every terminal-state change and undoes it.

Acquisition captures the terminal attributes, switches to raw mode and
enables the requested reporting features. Teardown undoes all of it in
reverse order and is safe to call any number of times, from any exit path.
It never raises: failures are logged, passed to ``on_error`` and returned in
a ``TeardownReport``.

Usage:
    config = TerminalConfig(raw=True, bracketed_paste=True)
    with TerminalModeGuard(config) as guard:
        decoder = guard.create_decoder()
        ...
"""

from __future__ import annotations

import atexit
import copy
import logging
import os
import shutil
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Protocol, Sequence

from tty_core.capabilities import CapabilitySource, TerminfoCapabilities
from tty_core.config import DecoderOptions, TerminalConfig
from tty_core.decoder import InputDecoder
from tty_core.errors import (
    AttributeApplyError,
    AttributeCaptureError,
    FeatureUnavailableError,
    GuardConflictError,
    TerminalError,
)
from tty_core.events import ResizeEvent
from tty_core.features import ENABLE_ORDER, FeatureFlag, FeatureToggleStack, ToggleStatus, Writer
from tty_core.keymap import KeyMap
from tty_core.terminal import FdWriter

logger = logging.getLogger(__name__)


class TerminalAttributes:
    """Immutable snapshot of a terminal's mode settings."""

    __slots__ = ("_values",)

    def __init__(self, values: Sequence[Any]) -> None:
        self._values = tuple(
            tuple(value) if isinstance(value, list) else value for value in values
        )

    def to_list(self) -> list[Any]:
        """A fresh mutable copy in the shape ``termios.tcsetattr`` expects."""
        return [list(value) if isinstance(value, tuple) else value for value in self._values]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TerminalAttributes):
            return NotImplemented
        return self._values == other._values

    def __hash__(self) -> int:
        return hash(self._values)

    def __repr__(self) -> str:
        return f"TerminalAttributes({self._values!r})"


class ModeBackend(Protocol):
    """Platform access to terminal attributes."""

    def device_id(self, fd: int) -> Hashable: ...

    def capture(self, fd: int) -> TerminalAttributes: ...

    def apply(self, fd: int, attributes: TerminalAttributes) -> None: ...

    def make_raw(
        self,
        attributes: TerminalAttributes,
        keep_signals: bool = False,
        keep_output_processing: bool = False,
    ) -> TerminalAttributes: ...


class TermiosBackend:
    """POSIX terminal attributes through ``termios``."""

    def device_id(self, fd: int) -> Hashable:
        try:
            st = os.fstat(fd)
        except OSError as exc:
            raise AttributeCaptureError(fd, exc) from exc
        return (st.st_dev, st.st_ino, st.st_rdev)

    def capture(self, fd: int) -> TerminalAttributes:
        try:
            import termios
        except ImportError as exc:
            raise AttributeCaptureError(fd, exc) from exc

        try:
            return TerminalAttributes(termios.tcgetattr(fd))
        except (termios.error, OSError) as exc:
            raise AttributeCaptureError(fd, exc) from exc

    def apply(self, fd: int, attributes: TerminalAttributes) -> None:
        import termios

        try:
            termios.tcsetattr(fd, termios.TCSADRAIN, attributes.to_list())
        except (termios.error, OSError) as exc:
            raise AttributeApplyError(fd, exc) from exc

    def make_raw(
        self,
        attributes: TerminalAttributes,
        keep_signals: bool = False,
        keep_output_processing: bool = False,
    ) -> TerminalAttributes:
        """
        The attributes with raw input mode applied.

        Clears the same flags as ``tty.cfmakeraw`` (cfmakeraw(3)), except
        that ISIG and OPOST can be kept on request.
        """
        import termios

        iflag, oflag, cflag, lflag, ispeed, ospeed, cc = attributes.to_list()
        iflag &= ~(
            termios.IGNBRK | termios.BRKINT | termios.IGNPAR | termios.PARMRK
            | termios.INPCK | termios.ISTRIP | termios.INLCR | termios.IGNCR
            | termios.ICRNL | termios.IXON | termios.IXANY | termios.IXOFF
        )
        if not keep_output_processing:
            oflag &= ~termios.OPOST
        lflag &= ~(
            termios.ECHO | termios.ECHOE | termios.ECHOK | termios.ECHONL
            | termios.ICANON | termios.IEXTEN | termios.NOFLSH | termios.TOSTOP
        )
        if not keep_signals:
            lflag &= ~termios.ISIG
        cflag &= ~(termios.CSIZE | termios.PARENB)
        cflag |= termios.CS8
        cc = copy.copy(cc)
        cc[termios.VMIN] = 1
        cc[termios.VTIME] = 0
        return TerminalAttributes([iflag, oflag, cflag, lflag, ispeed, ospeed, cc])


@dataclass(frozen=True)
class TeardownReport:
    """Failures collected while restoring the terminal."""
    errors: tuple[TerminalError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


# Device identity -> the guard holding it
_active_guards: dict[Hashable, TerminalModeGuard] = {}


def active_guard(device: Hashable) -> TerminalModeGuard | None:
    return _active_guards.get(device)


class TerminalModeGuard:
    """
    Scoped owner of a terminal's mode.

    Only one guard may hold a given terminal device at a time. The guard is
    single use: once torn down it cannot be acquired again.
    """

    def __init__(
        self,
        config: TerminalConfig | None = None,
        *,
        fd: int | None = None,
        writer: Writer | None = None,
        capabilities: CapabilitySource | None = None,
        backend: ModeBackend | None = None,
        on_error: Callable[[TerminalError], None] | None = None,
        on_resize: Callable[[ResizeEvent], None] | None = None,
    ) -> None:
        self._config = config or TerminalConfig()
        self._fd = sys.stdin.fileno() if fd is None else fd
        self._writer = writer if writer is not None else FdWriter()
        self._capabilities = capabilities if capabilities is not None else TerminfoCapabilities()
        self._backend = backend if backend is not None else TermiosBackend()
        self._on_error = on_error
        self._on_resize = on_resize
        self._features = FeatureToggleStack(
            self._writer,
            self._capabilities,
            mouse_encoding=self._config.mouse_encoding,
        )

        self._device: Hashable | None = None
        self._original: TerminalAttributes | None = None
        self._enabled_by_guard: list[FeatureFlag] = []
        self._issues: list[TerminalError] = []
        self._previous_sigwinch: Any = None
        self._sigwinch_installed = False
        self._active = False
        self._released = False
        self._report: TeardownReport | None = None

    @property
    def config(self) -> TerminalConfig:
        return self._config

    @property
    def fd(self) -> int:
        return self._fd

    @property
    def features(self) -> FeatureToggleStack:
        return self._features

    @property
    def active(self) -> bool:
        return self._active

    @property
    def original_attributes(self) -> TerminalAttributes | None:
        return self._original

    @property
    def enabled_by_guard(self) -> tuple[FeatureFlag, ...]:
        return tuple(self._enabled_by_guard)

    @property
    def issues(self) -> tuple[TerminalError, ...]:
        """Non-fatal problems met during acquisition (missing features)."""
        return tuple(self._issues)

    @property
    def report(self) -> TeardownReport | None:
        """Result of teardown, once it ran."""
        return self._report

    def _requested_features(self) -> list[FeatureFlag]:
        wanted = {
            FeatureFlag.ALTERNATE_SCREEN: self._config.alt_screen,
            FeatureFlag.BRACKETED_PASTE: self._config.bracketed_paste,
            FeatureFlag.MOUSE_REPORTING: self._config.mouse,
        }
        return [flag for flag in ENABLE_ORDER if wanted[flag]]

    def _notify(self, error: TerminalError) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("Terminal error callback failed")

    def acquire(self) -> TerminalModeGuard:
        """
        Take over the terminal.

        Raises:
            GuardConflictError: another guard holds this terminal
            AttributeCaptureError: the terminal attributes cannot be read
            AttributeApplyError: raw mode cannot be applied (the original
                attributes were restored first)
            FeatureWriteError: a feature could not be enabled (everything
                applied so far was undone first)
        """
        if self._active:
            return self
        if self._released:
            raise TerminalError("Terminal mode guard was already torn down")

        device = self._backend.device_id(self._fd)
        holder = _active_guards.get(device)
        if holder is not None:
            raise GuardConflictError(device)

        self._original = self._backend.capture(self._fd)
        self._device = device
        _active_guards[device] = self
        self._active = True

        try:
            if self._config.raw:
                raw = self._backend.make_raw(
                    self._original,
                    keep_signals=self._config.keep_signals,
                    keep_output_processing=self._config.keep_output_processing,
                )
                self._backend.apply(self._fd, raw)
                logger.debug("Raw mode applied to fd %d", self._fd)

            for flag in self._requested_features():
                status = self._features.enable(flag)
                if status is ToggleStatus.ENABLED:
                    self._enabled_by_guard.append(flag)
                elif status is ToggleStatus.UNAVAILABLE:
                    issue = FeatureUnavailableError(flag)
                    logger.warning("%s", issue)
                    self._issues.append(issue)
                    self._notify(issue)
        except BaseException:
            report = self.teardown()
            if not report.ok:
                logger.warning("Rollback after failed acquisition was incomplete")
            raise

        self._install_resize_handler()
        atexit.register(self.teardown)
        return self

    def teardown(self) -> TeardownReport:
        """
        Restore the terminal. Idempotent, never raises.

        Order: resize handler, features (every flag this guard enabled plus
        any still recorded as enabled), then the original attributes.
        """
        if not self._active:
            return self._report or TeardownReport()

        errors: list[TerminalError] = []
        self._restore_resize_handler()

        flags = set(self._enabled_by_guard) | self._features.snapshot()
        errors.extend(self._features.disable_all(flags))

        if self._original is not None:
            try:
                self._backend.apply(self._fd, self._original)
            except TerminalError as exc:
                errors.append(AttributeApplyError(self._fd, exc.__cause__ or exc, restoring=True))
            except Exception as exc:
                errors.append(AttributeApplyError(self._fd, exc, restoring=True))
            else:
                logger.debug("Terminal attributes of fd %d restored", self._fd)

        if self._device is not None and _active_guards.get(self._device) is self:
            del _active_guards[self._device]
        atexit.unregister(self.teardown)
        self._active = False
        self._released = True

        self._report = TeardownReport(errors=tuple(errors))
        for error in errors:
            logger.warning("Terminal teardown: %s", error)
            self._notify(error)
        return self._report

    def create_decoder(self, options: DecoderOptions | None = None) -> InputDecoder:
        """An InputDecoder using this terminal's keys and mouse encoding."""
        if options is None:
            options = DecoderOptions.from_env(mouse_encoding=self._config.mouse_encoding)
        return InputDecoder(keymap=KeyMap.from_capabilities(self._capabilities), options=options)

    def terminal_size(self) -> ResizeEvent:
        try:
            size = os.get_terminal_size(self._fd)
        except OSError:
            size = shutil.get_terminal_size((80, 24))
        return ResizeEvent(columns=size.columns, rows=size.lines)

    def _on_sigwinch(self, _signum: int, _frame: object) -> None:
        if self._on_resize:
            self._on_resize(self.terminal_size())

    def _install_resize_handler(self) -> None:
        if not self._config.handle_resize or self._on_resize is None:
            return
        if not hasattr(signal, "SIGWINCH"):
            return
        if threading.current_thread() is not threading.main_thread():
            logger.warning("Resize handling needs the main thread; skipped")
            return
        self._previous_sigwinch = signal.getsignal(signal.SIGWINCH)
        signal.signal(signal.SIGWINCH, self._on_sigwinch)
        self._sigwinch_installed = True

    def _restore_resize_handler(self) -> None:
        if not self._sigwinch_installed:
            return
        self._sigwinch_installed = False
        previous = self._previous_sigwinch
        if previous is None:
            previous = signal.SIG_DFL
        try:
            signal.signal(signal.SIGWINCH, previous)
        except (ValueError, OSError) as exc:
            logger.warning("Could not restore SIGWINCH handler: %s", exc)

    def __enter__(self) -> TerminalModeGuard:
        return self.acquire()

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.teardown()


def acquire(config: TerminalConfig | None = None, **kwargs: Any) -> TerminalModeGuard:
    """Create a guard and acquire the terminal; use the result in ``with``."""
    return TerminalModeGuard(config, **kwargs).acquire()
