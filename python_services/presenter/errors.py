"""Exceptions raised by the presentation controller and mapped to HTTP envelopes."""

from __future__ import annotations


class ControlError(Exception):
    """Base class for errors reported to Control API callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidCommandError(ControlError):
    status_code = 400


class NoSessionError(ControlError):
    status_code = 404

    def __init__(self, message: str = "No presentation is open") -> None:
        super().__init__(message)


class NotesUnavailableError(ControlError):
    status_code = 404

    def __init__(self, message: str = "No speaker notes window is open") -> None:
        super().__init__(message)


class PresetNotConfiguredError(ControlError):
    status_code = 404


class AutomationError(ControlError):
    """A DOM action ran but could not find what it needed in the hosted page."""

    status_code = 404


class WindowGoneError(Exception):
    """The window handle is stale or already destroyed."""
