"""
Feature toggle stack: optional terminal reporting modes.

Each flag's enable/disable sequences come from the capability source. The
recorded state only changes after the corresponding sequence was written, so
``is_enabled()`` never reports a mode the terminal was not told about.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable

from tty_core.capabilities import (
    ENTER_BRACKETED_PASTE,
    ENTER_CA_MODE,
    ENTER_MOUSE_MODE,
    EXIT_BRACKETED_PASTE,
    EXIT_CA_MODE,
    EXIT_MOUSE_MODE,
    CapabilitySource,
)
from tty_core.config import MouseEncoding
from tty_core.errors import FeatureWriteError

logger = logging.getLogger(__name__)

Writer = Callable[[bytes], object]

SGR_MOUSE_ENABLE = b"\x1b[?1006h"
SGR_MOUSE_DISABLE = b"\x1b[?1006l"


class FeatureFlag(str, Enum):
    MOUSE_REPORTING = "mouse_reporting"
    BRACKETED_PASTE = "bracketed_paste"
    ALTERNATE_SCREEN = "alternate_screen"


class ToggleStatus(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"
    ALREADY_ENABLED = "already_enabled"
    ALREADY_DISABLED = "already_disabled"
    UNAVAILABLE = "unavailable"


CAPABILITY_NAMES: dict[FeatureFlag, tuple[str, str]] = {
    FeatureFlag.MOUSE_REPORTING: (ENTER_MOUSE_MODE, EXIT_MOUSE_MODE),
    FeatureFlag.BRACKETED_PASTE: (ENTER_BRACKETED_PASTE, EXIT_BRACKETED_PASTE),
    FeatureFlag.ALTERNATE_SCREEN: (ENTER_CA_MODE, EXIT_CA_MODE),
}

# Order used when enabling several flags; teardown runs it backwards
ENABLE_ORDER = (
    FeatureFlag.ALTERNATE_SCREEN,
    FeatureFlag.BRACKETED_PASTE,
    FeatureFlag.MOUSE_REPORTING,
)


class FeatureToggleStack:
    """
    Idempotent enable/disable of terminal reporting modes.

    Usage:
        stack = FeatureToggleStack(writer, capabilities)
        stack.enable(FeatureFlag.BRACKETED_PASTE)
        ...
        errors = stack.disable_all(stack.snapshot())
    """

    def __init__(
        self,
        writer: Writer,
        capabilities: CapabilitySource,
        mouse_encoding: MouseEncoding = "sgr",
    ) -> None:
        self._writer = writer
        self._mouse_encoding = mouse_encoding
        self._enabled: set[FeatureFlag] = set()
        self._sequences: dict[FeatureFlag, tuple[bytes, bytes] | None] = {
            flag: self._resolve(flag, capabilities) for flag in FeatureFlag
        }

    def _resolve(self, flag: FeatureFlag, capabilities: CapabilitySource) -> tuple[bytes, bytes] | None:
        enter_name, exit_name = CAPABILITY_NAMES[flag]
        enter = capabilities.get(enter_name)
        leave = capabilities.get(exit_name)
        if not enter or not leave:
            return None
        if flag is FeatureFlag.MOUSE_REPORTING and self._mouse_encoding == "sgr":
            enter = enter + SGR_MOUSE_ENABLE
            leave = SGR_MOUSE_DISABLE + leave
        return enter, leave

    @property
    def mouse_encoding(self) -> MouseEncoding:
        return self._mouse_encoding

    def sequences(self, flag: FeatureFlag) -> tuple[bytes, bytes] | None:
        """The (enable, disable) byte sequences of a flag, if supported."""
        return self._sequences[flag]

    def is_available(self, flag: FeatureFlag) -> bool:
        return self._sequences[flag] is not None

    def is_enabled(self, flag: FeatureFlag) -> bool:
        return flag in self._enabled

    def snapshot(self) -> frozenset[FeatureFlag]:
        """Flags currently enabled."""
        return frozenset(self._enabled)

    def _write(self, flag: FeatureFlag, data: bytes, enabling: bool) -> None:
        try:
            self._writer(data)
        except Exception as exc:
            raise FeatureWriteError(flag, enabling, exc) from exc

    def enable(self, flag: FeatureFlag) -> ToggleStatus:
        """
        Turn a reporting mode on.

        Returns:
            ENABLED, ALREADY_ENABLED, or UNAVAILABLE when the terminal lacks
            the capability (nothing is written)

        Raises:
            FeatureWriteError: the enable sequence could not be written
        """
        if flag in self._enabled:
            return ToggleStatus.ALREADY_ENABLED
        sequences = self._sequences[flag]
        if sequences is None:
            logger.debug("Cannot enable %s: capability missing", flag.value)
            return ToggleStatus.UNAVAILABLE

        self._write(flag, sequences[0], enabling=True)
        self._enabled.add(flag)
        logger.debug("Enabled %s", flag.value)
        return ToggleStatus.ENABLED

    def disable(self, flag: FeatureFlag) -> ToggleStatus:
        """Turn a reporting mode off. Mirrors ``enable()``."""
        if flag not in self._enabled:
            if self._sequences[flag] is None:
                return ToggleStatus.UNAVAILABLE
            return ToggleStatus.ALREADY_DISABLED
        sequences = self._sequences[flag]
        assert sequences is not None

        self._write(flag, sequences[1], enabling=False)
        self._enabled.discard(flag)
        logger.debug("Disabled %s", flag.value)
        return ToggleStatus.DISABLED

    def disable_all(self, flags: Iterable[FeatureFlag]) -> list[FeatureWriteError]:
        """
        Write the disable sequence of every given flag, whatever its recorded state.

        Used by guard teardown. Keeps going after a failed write and returns
        all failures instead of raising. A flag whose write failed stays
        recorded as enabled.
        """
        requested = set(flags)
        errors: list[FeatureWriteError] = []
        for flag in reversed(ENABLE_ORDER):
            if flag not in requested:
                continue
            sequences = self._sequences[flag]
            if sequences is None:
                self._enabled.discard(flag)
                continue
            try:
                self._write(flag, sequences[1], enabling=False)
            except FeatureWriteError as exc:
                logger.warning("Failed to disable %s: %s", flag.value, exc.cause)
                errors.append(exc)
                continue
            self._enabled.discard(flag)
            logger.debug("Disabled %s", flag.value)
        return errors
