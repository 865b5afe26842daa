"""Swarmwatch error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    TRANSIENT_IO = "transient_io"
    ABSENT = "absent"
    MALFORMED = "malformed"
    INVALID_INPUT = "invalid_input"
    WATCHER_SETUP = "watcher_setup"
    SIGNALING = "signaling"
    NO_PROJECT = "no_project"


class SwarmWatchError(Exception):
    """Base error for all swarmwatch exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.TRANSIENT_IO,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class InvalidArgumentError(SwarmWatchError):
    """Caller passed a value that can never be valid (empty name, bad path)."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.INVALID_INPUT, retryable=False, **kwargs)


class WatcherSetupError(SwarmWatchError):
    """A watch scope could not be started (path missing, observer failure)."""

    def __init__(self, message: str, *, scope: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.WATCHER_SETUP, retryable=True, **kwargs)
        self.scope = scope


class SignalingError(SwarmWatchError):
    """Touching a signal file failed at the filesystem level."""

    def __init__(self, message: str, *, signal_name: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.SIGNALING, retryable=True, **kwargs)
        self.signal_name = signal_name


class ProjectNotFoundError(SwarmWatchError):
    """Project root does not exist, or cannot be switched to."""

    def __init__(self, path: str, reason: str = "does not exist") -> None:
        super().__init__(
            f"Project directory {reason}: {path}",
            category=ErrorCategory.INVALID_INPUT,
            retryable=False,
            details={"path": path},
        )
        self.path = path


class NoActiveProjectError(SwarmWatchError):
    """Operation requires an active project but none is selected."""

    def __init__(self, message: str = "No project selected") -> None:
        super().__init__(message, category=ErrorCategory.NO_PROJECT, retryable=False)
