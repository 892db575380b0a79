"""
Error kinds raised or reported by tty-core.

Acquisition-time failures are raised. Teardown-time failures are collected
into a report instead, since teardown usually runs while another exception
is unwinding.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tty_core.features import FeatureFlag


class TerminalError(Exception):
    """Base class for all tty-core errors."""
    pass


class AttributeCaptureError(TerminalError):
    """Raised when the current terminal attributes cannot be read."""
    def __init__(self, fd: int, cause: BaseException | None = None):
        self.fd = fd
        self.cause = cause
        super().__init__(f"Cannot read terminal attributes of fd {fd}: {cause}")


class AttributeApplyError(TerminalError):
    """Raised when terminal attributes cannot be applied (or restored)."""
    def __init__(self, fd: int, cause: BaseException | None = None, restoring: bool = False):
        self.fd = fd
        self.cause = cause
        self.restoring = restoring
        action = "restore" if restoring else "apply"
        super().__init__(f"Cannot {action} terminal attributes of fd {fd}: {cause}")


class FeatureUnavailableError(TerminalError):
    """Reported (never raised) when the terminal lacks a feature's capability."""
    def __init__(self, flag: FeatureFlag):
        self.flag = flag
        super().__init__(f"Terminal does not support {flag.value}")


class FeatureWriteError(TerminalError):
    """Raised when writing a feature's enable or disable sequence fails."""
    def __init__(self, flag: FeatureFlag, enabling: bool, cause: BaseException | None = None):
        self.flag = flag
        self.enabling = enabling
        self.cause = cause
        action = "enable" if enabling else "disable"
        super().__init__(f"Failed to {action} {flag.value}: {cause}")


class GuardConflictError(TerminalError):
    """Raised when a second guard is acquired on a terminal that already has one."""
    def __init__(self, device: object):
        self.device = device
        super().__init__(f"A terminal mode guard is already active on {device}")
