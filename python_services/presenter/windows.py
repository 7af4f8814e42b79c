"""Window lifecycle for the presentation/notes window pair.

`BrowserWindow` and `WindowBackend` describe what the controller needs from the
hosted web view; `qt_backend` implements them with QtWebEngine. `WindowManager`
owns the pair: it creates the presentation window, binds the notes popup spawned
by the hosted page, and tears both down together.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.models import Bounds, Display

from .errors import WindowGoneError
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

# Window events ---------------------------------------------------------------
DID_FINISH_LOAD = "did-finish-load"  # (url)
DID_NAVIGATE = "did-navigate"  # (url)
CLOSED = "closed"  # ()
ESCAPE = "escape"  # () default handling already suppressed by the backend

NOTES_MARGIN_INSET = 50
NOTES_MAXIMIZE_DELAY = 1.5


class BrowserWindow(ABC):
    """A top-level window hosting a web page."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Callable[..., None]]] = defaultdict(list)

    # Events ------------------------------------------------------------------

    def on(self, event: str, handler: Callable[..., None]) -> Callable[..., None]:
        self._handlers[event].append(handler)
        return handler

    def once(self, event: str, handler: Callable[..., None]) -> Callable[..., None]:
        def _wrapper(*args: Any) -> None:
            self.off(event, _wrapper)
            handler(*args)

        return self.on(event, _wrapper)

    def off(self, event: str, handler: Callable[..., None]) -> None:
        try:
            self._handlers[event].remove(handler)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._handlers[event])

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers[event]):
            try:
                handler(*args)
            except Exception:  # noqa: BLE001
                logger.exception(f"[Windows] Handler for '{event}' failed")

    # Window operations ---------------------------------------------------------

    @abstractmethod
    def load_url(self, url: str) -> None: ...

    @abstractmethod
    def current_url(self) -> str: ...

    @abstractmethod
    def show(self) -> None: ...

    @abstractmethod
    def focus(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def is_destroyed(self) -> bool: ...

    @abstractmethod
    def bounds(self) -> Bounds: ...

    @abstractmethod
    def set_bounds(self, bounds: Bounds) -> None: ...

    @abstractmethod
    def maximize(self) -> None: ...

    @abstractmethod
    def send_key(self, key: str, modifiers: Tuple[str, ...] = (), text: str = "") -> None:
        """Dispatch a key down/up pair. Raises WindowGoneError on a dead window."""

    @abstractmethod
    def evaluate_js(self, script: str) -> "Future[Any]":
        """Evaluate `script` in the page; the future resolves with its JSON-able result."""


class Subscription:
    """Handle for a window-created observer; cancel() unregisters it."""

    def __init__(self, observers: List[Callable[[BrowserWindow], None]], callback: Callable[[BrowserWindow], None]) -> None:
        self._observers = observers
        self._callback = callback
        observers.append(callback)

    @property
    def active(self) -> bool:
        return self._callback in self._observers

    def cancel(self) -> None:
        if self.active:
            self._observers.remove(self._callback)


class WindowBackend(ABC):
    """Creates windows, enumerates displays and reports new top-level windows."""

    main_window: Optional[BrowserWindow] = None

    def __init__(self) -> None:
        self._creation_observers: List[Callable[[BrowserWindow], None]] = []

    def subscribe_window_created(self, callback: Callable[[BrowserWindow], None]) -> Subscription:
        return Subscription(self._creation_observers, callback)

    def notify_window_created(self, window: BrowserWindow) -> None:
        for callback in list(self._creation_observers):
            callback(window)

    @abstractmethod
    def create_window(self, bounds: Bounds, *, fullscreen: bool = True) -> BrowserWindow: ...

    @abstractmethod
    def list_displays(self) -> List[Display]: ...

    def is_signed_in(self) -> bool:
        """Whether the credential store holds a signed-in session."""
        return False

    def signed_in_user(self) -> Optional[str]:
        """Account e-mail of the signed-in session, when the store exposes one."""
        return None


class WindowManager:
    """Owns at most one presentation window and at most one notes window."""

    def __init__(
        self,
        backend: WindowBackend,
        scheduler: Scheduler,
        *,
        notes_inset: int = NOTES_MARGIN_INSET,
        notes_maximize_delay: float = NOTES_MAXIMIZE_DELAY,
    ) -> None:
        self._backend = backend
        self._scheduler = scheduler
        self._notes_inset = notes_inset
        self._notes_maximize_delay = notes_maximize_delay

        self.presentation: Optional[BrowserWindow] = None
        self.notes: Optional[BrowserWindow] = None
        self._notes_display: Optional[Display] = None
        self._correlation: Optional[Subscription] = None
        self._maximize_timer: Optional[TimerHandle] = None
        self._listeners: Dict[BrowserWindow, List[Tuple[str, Callable[..., None]]]] = {}

        # Set by the controller
        self.on_closed: Optional[Callable[[str], None]] = None
        self.on_notes_bound: Optional[Callable[[BrowserWindow], None]] = None
        self.on_notes_closed: Optional[Callable[[], None]] = None

    @property
    def presentation_open(self) -> bool:
        return self.presentation is not None and not self.presentation.is_destroyed()

    @property
    def notes_open(self) -> bool:
        return self.presentation_open and self.notes is not None and not self.notes.is_destroyed()

    @property
    def awaiting_notes(self) -> bool:
        return self._correlation is not None and self._correlation.active

    # Open ----------------------------------------------------------------------

    def open(
        self,
        url: str,
        presentation_display: Display,
        notes_display: Display,
        prepare: Optional[Callable[[BrowserWindow], None]] = None,
    ) -> BrowserWindow:
        """Tear down any existing pair, then create and load a new presentation window.

        `prepare` runs after the window exists and before the URL load so the
        caller can attach load/navigation listeners without missing events.
        """
        self.close()

        window = self._backend.create_window(presentation_display.bounds, fullscreen=True)
        self.presentation = window
        self._notes_display = notes_display
        self._listen(window, CLOSED, self._on_presentation_closed)
        self._listen(window, ESCAPE, self._on_escape)

        try:
            # Must be registered before load_url: the load can spawn the notes popup
            self.expect_notes()
            if prepare is not None:
                prepare(window)
            window.load_url(url)
            window.show()
        except Exception:
            logger.error("[Windows] Open aborted, tearing down the new window")
            self.close()
            raise

        logger.debug(f"[Windows] Presentation window opened on display {presentation_display.id}")
        return window

    def expect_notes(self) -> None:
        """Arm a one-shot observer that binds the next foreign window as the notes window."""
        owner = self.presentation
        if owner is None or self.notes_open or self.awaiting_notes:
            return
        self._correlation = self._backend.subscribe_window_created(
            lambda created: self._bind_notes(owner, created)
        )

    def _bind_notes(self, owner: BrowserWindow, created: BrowserWindow) -> None:
        if created is self._backend.main_window or created is owner:
            return
        if owner is not self.presentation:
            # Observer outlived its open call
            self._cancel_correlation()
            return

        self._cancel_correlation()
        self.notes = created
        self._listen(created, CLOSED, self._on_notes_closed)
        self._listen(created, ESCAPE, self._on_escape)
        logger.info("[Windows] Notes window bound")
        self._place_notes(created)

        if self.on_notes_bound is not None:
            self.on_notes_bound(created)

    def _place_notes(self, window: BrowserWindow) -> None:
        display = self._notes_display
        if display is None:
            return
        # Positioning first, maximizing later: doing both at once maximizes on the wrong display
        try:
            window.set_bounds(display.bounds.inset(self._notes_inset))
        except WindowGoneError:
            return
        self._cancel_maximize()
        self._maximize_timer = self._scheduler.call_later(
            self._notes_maximize_delay, lambda: self._maximize_notes(window)
        )

    def _maximize_notes(self, window: BrowserWindow) -> None:
        self._maximize_timer = None
        if window is not self.notes or window.is_destroyed():
            return
        try:
            window.maximize()
        except WindowGoneError:
            logger.debug("[Windows] Notes window went away before maximize")

    # Close ---------------------------------------------------------------------

    def close(self) -> bool:
        """Close notes, then presentation. Returns False when nothing was open."""
        self._cancel_correlation()
        self._cancel_maximize()

        notes, presentation = self.notes, self.presentation
        self.notes = None
        self.presentation = None
        self._notes_display = None

        closed_any = False
        for window in (notes, presentation):
            if window is None:
                continue
            # Listeners go first so our own close does not re-enter session reset
            self._detach(window)
            closed_any = self._close_quietly(window) or closed_any
        return closed_any

    def close_notes(self) -> bool:
        notes = self.notes
        if notes is None:
            return False
        self.notes = None
        self._cancel_maximize()
        self._detach(notes)
        return self._close_quietly(notes)

    def _close_quietly(self, window: BrowserWindow) -> bool:
        if window.is_destroyed():
            return False
        try:
            window.close()
        except WindowGoneError:
            logger.debug("[Windows] Window already gone while closing")
            return False
        return True

    def _on_presentation_closed(self) -> None:
        logger.info("[Windows] Presentation window closed")
        self._close_and_notify("window-closed")

    def _on_escape(self) -> None:
        logger.info("[Windows] Escape pressed, closing presentation and notes windows")
        self._close_and_notify("escape")

    def _close_and_notify(self, reason: str) -> None:
        self.close()
        if self.on_closed is not None:
            self.on_closed(reason)

    def _on_notes_closed(self) -> None:
        notes = self.notes
        if notes is None:
            return
        logger.info("[Windows] Notes window closed")
        self._detach(notes)
        self.notes = None
        self._cancel_maximize()
        if self.on_notes_closed is not None:
            self.on_notes_closed()

    # Helpers -----------------------------------------------------------------

    def _listen(self, window: BrowserWindow, event: str, handler: Callable[..., None]) -> None:
        window.on(event, handler)
        self._listeners.setdefault(window, []).append((event, handler))

    def _detach(self, window: BrowserWindow) -> None:
        for event, handler in self._listeners.pop(window, []):
            window.off(event, handler)

    def _cancel_correlation(self) -> None:
        if self._correlation is not None:
            self._correlation.cancel()
            self._correlation = None

    def _cancel_maximize(self) -> None:
        if self._maximize_timer is not None:
            self._maximize_timer.cancel()
            self._maximize_timer = None
