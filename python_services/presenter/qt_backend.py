"""QtWebEngine implementation of the window, timer and dispatch seams.

Everything in this module runs on the GUI thread except `QtDispatcher.submit`,
which is the one entry point meant to be called from other threads.
"""

from __future__ import annotations

import logging
import re
import zlib
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from PySide6.QtCore import QCoreApplication, QEvent, QObject, Qt, QTimer, QUrl, Signal
from PySide6.QtGui import QGuiApplication, QKeyEvent
from PySide6.QtWebEngineCore import QWebEnginePage, QWebEngineProfile, QWebEngineSettings
from PySide6.QtWebEngineWidgets import QWebEngineView
from PySide6.QtWidgets import QWidget

from shared.models import Bounds, Display

from .bridge import Dispatcher, run_into
from .errors import WindowGoneError
from .scheduler import Scheduler, TimerHandle
from .windows import CLOSED, DID_FINISH_LOAD, DID_NAVIGATE, ESCAPE, BrowserWindow, WindowBackend

logger = logging.getLogger(__name__)

PROFILE_NAME = "presenter"
# Cookies that only exist for a signed-in Google account
SESSION_COOKIES = frozenset({"SID", "HSID", "SSID"})
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_KEYS = {
    "F5": Qt.Key.Key_F5,
    "S": Qt.Key.Key_S,
    "K": Qt.Key.Key_K,
    "Left": Qt.Key.Key_Left,
    "Right": Qt.Key.Key_Right,
    "Escape": Qt.Key.Key_Escape,
}

_MODIFIERS = {
    "control": Qt.KeyboardModifier.ControlModifier,
    "shift": Qt.KeyboardModifier.ShiftModifier,
    "alt": Qt.KeyboardModifier.AltModifier,
    "meta": Qt.KeyboardModifier.MetaModifier,
}


# ----------------------------------------------------------------------------
# Timers and dispatch
# ----------------------------------------------------------------------------

class _QtTimerHandle(TimerHandle):
    def __init__(self, timer: QTimer) -> None:
        self._timer: Optional[QTimer] = timer

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer.deleteLater()
            self._timer = None


class QtScheduler(Scheduler):
    """Single-shot QTimers parented to the application so they outlive callers."""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self._parent = parent or QCoreApplication.instance()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        handle = _QtTimerHandle(timer)

        def _fire() -> None:
            handle._timer = None
            timer.deleteLater()
            try:
                callback()
            except Exception:  # noqa: BLE001
                logger.exception("[Qt] Timer callback failed")

        timer.timeout.connect(_fire)
        timer.start(max(0, int(delay * 1000)))
        return handle


class _Invoker(QObject):
    invoke = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self.invoke.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def _run(self, job: Callable[[], None]) -> None:
        job()


class QtDispatcher(Dispatcher):
    """Queues calls onto the GUI thread through a queued signal."""

    def __init__(self) -> None:
        # Created on the GUI thread, so the slot always runs there
        self._invoker = _Invoker()

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Future[Any]":
        target: "Future[Any]" = Future()
        self._invoker.invoke.emit(lambda: run_into(target, fn, *args, **kwargs))
        return target


# ----------------------------------------------------------------------------
# Windows
# ----------------------------------------------------------------------------

class _PresenterPage(QWebEnginePage):
    def __init__(self, owner: "QtBrowserWindow", profile: QWebEngineProfile, parent: QObject) -> None:
        super().__init__(profile, parent)
        self._owner = owner

    def createWindow(self, _type):
        # The hosted page opens the presenter view with window.open()
        return self._owner.spawn_popup()


class _PresenterView(QWebEngineView):
    def __init__(self, owner: "QtBrowserWindow") -> None:
        super().__init__()
        self._owner = owner

    def closeEvent(self, event) -> None:
        super().closeEvent(event)
        self._owner.handle_closed()


class QtBrowserWindow(BrowserWindow):
    def __init__(self, backend: "QtWindowBackend", *, fullscreen: bool) -> None:
        super().__init__()
        self._backend = backend
        self._fullscreen = fullscreen
        self._destroyed = False
        self._pending: Set["Future[Any]"] = set()

        self.view = _PresenterView(self)
        self.page = _PresenterPage(self, backend.profile, self.view)
        self.view.setPage(self.page)
        self.page.settings().setAttribute(QWebEngineSettings.WebAttribute.FullScreenSupportEnabled, True)
        if fullscreen:
            self.view.setWindowFlag(Qt.WindowType.FramelessWindowHint, True)

        self.page.loadFinished.connect(self._on_load_finished)
        self.page.urlChanged.connect(self._on_url_changed)
        self.page.windowCloseRequested.connect(self.close)
        self.page.fullScreenRequested.connect(lambda request: request.accept())

    # Qt signal handlers ------------------------------------------------------

    def _on_load_finished(self, ok: bool) -> None:
        url = self.current_url()
        if not ok:
            logger.warning(f"[Qt] Load failed: {url}")
            return
        self.emit(DID_FINISH_LOAD, url)

    def _on_url_changed(self, url: QUrl) -> None:
        self.emit(DID_NAVIGATE, url.toString())

    def spawn_popup(self) -> Optional[QWebEnginePage]:
        if self._destroyed:
            return None
        popup = self._backend.create_window(self.bounds(), fullscreen=False)
        popup.show()
        self._backend.notify_window_created(popup)
        return popup.page

    def handle_closed(self) -> None:
        if self._destroyed:
            return
        self._mark_destroyed()
        self.emit(CLOSED)
        self.view.deleteLater()

    def _mark_destroyed(self) -> None:
        self._destroyed = True
        self._backend.forget(self)
        for future in list(self._pending):
            if not future.done():
                future.set_exception(WindowGoneError("window closed before the script returned"))
        self._pending.clear()

    def _require_alive(self) -> None:
        if self._destroyed:
            raise WindowGoneError("window is destroyed")

    # BrowserWindow -------------------------------------------------------------

    def load_url(self, url: str) -> None:
        self._require_alive()
        self.view.load(QUrl(url))

    def current_url(self) -> str:
        if self._destroyed:
            return ""
        return self.page.url().toString()

    def show(self) -> None:
        self._require_alive()
        if self._fullscreen:
            self.view.showFullScreen()
        else:
            self.view.show()

    def focus(self) -> None:
        self._require_alive()
        self.view.raise_()
        self.view.activateWindow()
        self.view.setFocus()

    def close(self) -> None:
        self._require_alive()
        self.view.close()

    def is_destroyed(self) -> bool:
        return self._destroyed

    def bounds(self) -> Bounds:
        rect = self.view.geometry()
        return Bounds(x=rect.x(), y=rect.y(), width=rect.width(), height=rect.height())

    def set_bounds(self, bounds: Bounds) -> None:
        self._require_alive()
        self.view.setGeometry(bounds.x, bounds.y, bounds.width, bounds.height)

    def maximize(self) -> None:
        self._require_alive()
        self.view.showMaximized()

    def send_key(self, key: str, modifiers: Tuple[str, ...] = (), text: str = "") -> None:
        self._require_alive()
        qt_key = _KEYS.get(key)
        if qt_key is None:
            raise ValueError(f"Unsupported key: {key}")
        mods = Qt.KeyboardModifier.NoModifier
        for name in modifiers:
            mods |= _MODIFIERS[name]
        # Chromium listens on the focus proxy, not on the view itself
        target = self.view.focusProxy() or self.view
        for event_type in (QEvent.Type.KeyPress, QEvent.Type.KeyRelease):
            QCoreApplication.sendEvent(target, QKeyEvent(event_type, qt_key, mods, text))

    def evaluate_js(self, script: str) -> "Future[Any]":
        self._require_alive()
        future: "Future[Any]" = Future()
        self._pending.add(future)

        def _callback(result: Any) -> None:
            self._pending.discard(future)
            if not future.done():
                future.set_result(result)

        self.page.runJavaScript(script, 0, _callback)
        return future


class _EscapeFilter(QObject):
    """Swallows Escape in our windows and reports it instead."""

    def __init__(self, backend: "QtWindowBackend") -> None:
        super().__init__()
        self._backend = backend

    def eventFilter(self, obj, event) -> bool:
        if event.type() != QEvent.Type.KeyPress or not isinstance(obj, QWidget):
            return False
        if event.key() != Qt.Key.Key_Escape or not event.spontaneous():
            return False
        window = self._backend.window_for(obj.window())
        if window is None:
            return False
        # Emit after dispatch returns; the handlers close the very view receiving this event
        QTimer.singleShot(0, lambda: window.emit(ESCAPE))
        return True


class QtWindowBackend(WindowBackend):
    def __init__(self, profile_dir: Path, app: Optional[QCoreApplication] = None) -> None:
        super().__init__()
        self._app = app or QCoreApplication.instance()
        self._windows: Dict[QWidget, QtBrowserWindow] = {}
        self._session_cookies: Set[Tuple[str, str]] = set()
        self._account_cookies: Dict[Tuple[str, str], str] = {}

        profile_dir = Path(profile_dir)
        profile_dir.mkdir(parents=True, exist_ok=True)
        self.profile = QWebEngineProfile(PROFILE_NAME, self._app)
        self.profile.setPersistentStoragePath(str(profile_dir))
        self.profile.setCachePath(str(profile_dir / "cache"))
        self.profile.setPersistentCookiesPolicy(QWebEngineProfile.PersistentCookiesPolicy.ForcePersistentCookies)

        cookies = self.profile.cookieStore()
        cookies.cookieAdded.connect(self._on_cookie_added)
        cookies.cookieRemoved.connect(self._on_cookie_removed)
        cookies.loadAllCookies()

        self._escape_filter = _EscapeFilter(self)
        self._app.installEventFilter(self._escape_filter)

    # Windows -------------------------------------------------------------------

    def create_window(self, bounds: Bounds, *, fullscreen: bool = True) -> BrowserWindow:
        window = QtBrowserWindow(self, fullscreen=fullscreen)
        window.view.setGeometry(bounds.x, bounds.y, bounds.width, bounds.height)
        self._windows[window.view] = window
        logger.debug(f"[Qt] Created {'fullscreen' if fullscreen else 'popup'} window at {bounds}")
        return window

    def window_for(self, widget: Optional[QWidget]) -> Optional[QtBrowserWindow]:
        return self._windows.get(widget) if widget is not None else None

    def forget(self, window: QtBrowserWindow) -> None:
        self._windows.pop(window.view, None)

    def close_all(self) -> None:
        for window in list(self._windows.values()):
            if not window.is_destroyed():
                window.close()

    # Displays ------------------------------------------------------------------

    def list_displays(self) -> List[Display]:
        primary = QGuiApplication.primaryScreen()
        displays = []
        for screen in QGuiApplication.screens():
            rect = screen.geometry()
            displays.append(
                Display(
                    id=screen_id(screen.name(), screen.serialNumber()),
                    bounds=Bounds(x=rect.x(), y=rect.y(), width=rect.width(), height=rect.height()),
                    label=f"{rect.width()}x{rect.height()} @ ({rect.x()}, {rect.y()})",
                    primary=screen is primary,
                )
            )
        return displays

    # Credentials ---------------------------------------------------------------

    def _on_cookie_added(self, cookie) -> None:
        key = _session_cookie_key(cookie)
        if key is not None:
            self._session_cookies.add(key)
        email = _account_email(cookie)
        if email is not None:
            self._account_cookies[_cookie_id(cookie)] = email

    def _on_cookie_removed(self, cookie) -> None:
        key = _session_cookie_key(cookie)
        if key is not None:
            self._session_cookies.discard(key)
        self._account_cookies.pop(_cookie_id(cookie), None)

    def is_signed_in(self) -> bool:
        return bool(self._session_cookies)

    def signed_in_user(self) -> Optional[str]:
        if not self._session_cookies:
            return None
        return next(iter(self._account_cookies.values()), None)


def screen_id(name: str, serial: str) -> int:
    """Stable numeric id for a screen across restarts (Qt has none of its own)."""
    return zlib.crc32(f"{name}|{serial}".encode("utf-8")) & 0x7FFFFFFF


def _session_cookie_key(cookie) -> Optional[Tuple[str, str]]:
    name = bytes(cookie.name()).decode("utf-8", "replace")
    domain = cookie.domain().lstrip(".")
    if name in SESSION_COOKIES and domain.endswith("google.com"):
        return name, domain
    return None


def _cookie_id(cookie) -> Tuple[str, str]:
    return bytes(cookie.name()).decode("utf-8", "replace"), cookie.domain().lstrip(".")


def _account_email(cookie) -> Optional[str]:
    """E-mail carried by a google.com cookie, if any (e.g. the `Email` cookie)."""
    if not cookie.domain().lstrip(".").endswith("google.com"):
        return None
    value = bytes(cookie.value()).decode("utf-8", "replace").strip()
    return value if EMAIL_PATTERN.match(value) else None
