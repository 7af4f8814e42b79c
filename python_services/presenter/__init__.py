"""Presenter relay: drives a full-screen Google Slides presentation over HTTP.

Submodules:
- windows / activation / input: the presentation + notes window pair and the key protocol
- state / controller: session tracking and the command surface
- replication: primary to backup command fan-out and health polling
- api / server: the FastAPI Control API
- qt_backend: QtWebEngine implementation of the window and timer seams
"""

from .controller import PresentationController
from .errors import ControlError, InvalidCommandError, NoSessionError
from .preferences import Preferences, PreferencesStore

__all__ = [
    "PresentationController",
    "ControlError",
    "InvalidCommandError",
    "NoSessionError",
    "Preferences",
    "PreferencesStore",
]
