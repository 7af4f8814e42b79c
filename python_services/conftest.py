"""Shared pytest fixtures: a fake web-view backend, a manual clock and temp preferences."""

from __future__ import annotations

import sys
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent))

from shared.models import Bounds, Display  # noqa: E402

from presenter.bridge import InlineDispatcher  # noqa: E402
from presenter.controller import PresentationController  # noqa: E402
from presenter.errors import WindowGoneError  # noqa: E402
from presenter.preferences import PreferencesStore  # noqa: E402
from presenter.scheduler import Scheduler, TimerHandle  # noqa: E402
from presenter.windows import CLOSED, DID_FINISH_LOAD, DID_NAVIGATE, ESCAPE, BrowserWindow, WindowBackend  # noqa: E402


# ----------------------------------------------------------------------------
# Fake web view
# ----------------------------------------------------------------------------

class FakeWindow(BrowserWindow):
    def __init__(self, bounds: Bounds, *, fullscreen: bool) -> None:
        super().__init__()
        self.fullscreen = fullscreen
        self._bounds = bounds
        self.url = ""
        self.loaded: List[str] = []
        self.shown = False
        self.maximized = False
        self.focus_count = 0
        self.keys: List[Tuple[str, Tuple[str, ...]]] = []
        self.scripts: List[str] = []
        self.js_result: Any = {}
        self.destroyed = False

    # Test drivers
    def finish_load(self, url: Optional[str] = None) -> None:
        if url is not None:
            self.url = url
        self.emit(DID_FINISH_LOAD, self.url)

    def navigate(self, url: str) -> None:
        self.url = url
        self.emit(DID_NAVIGATE, url)

    def press_escape(self) -> None:
        self.emit(ESCAPE)

    def user_close(self) -> None:
        self.destroyed = True
        self.emit(CLOSED)

    def key_names(self) -> List[str]:
        return [key for key, _ in self.keys]

    # BrowserWindow
    def load_url(self, url: str) -> None:
        self._alive()
        self.url = url
        self.loaded.append(url)

    def current_url(self) -> str:
        return self.url

    def show(self) -> None:
        self._alive()
        self.shown = True

    def focus(self) -> None:
        self._alive()
        self.focus_count += 1

    def close(self) -> None:
        self._alive()
        self.destroyed = True
        self.emit(CLOSED)

    def is_destroyed(self) -> bool:
        return self.destroyed

    def bounds(self) -> Bounds:
        return self._bounds

    def set_bounds(self, bounds: Bounds) -> None:
        self._alive()
        self._bounds = bounds

    def maximize(self) -> None:
        self._alive()
        self.maximized = True

    def send_key(self, key: str, modifiers: Tuple[str, ...] = (), text: str = "") -> None:
        self._alive()
        self.keys.append((key, tuple(modifiers)))

    def evaluate_js(self, script: str) -> "Future[Any]":
        self._alive()
        self.scripts.append(script)
        future: "Future[Any]" = Future()
        result = self.js_result(script) if callable(self.js_result) else self.js_result
        if isinstance(result, Exception):
            future.set_exception(result)
        else:
            future.set_result(result)
        return future

    def _alive(self) -> None:
        if self.destroyed:
            raise WindowGoneError("fake window destroyed")


DISPLAYS = [
    Display(id=1, bounds=Bounds(x=0, y=0, width=1920, height=1080), label="main", primary=True),
    Display(id=2, bounds=Bounds(x=1920, y=0, width=1280, height=720), label="side"),
]


class FakeBackend(WindowBackend):
    def __init__(self, displays: Optional[List[Display]] = None) -> None:
        super().__init__()
        self.displays = list(DISPLAYS if displays is None else displays)
        self.windows: List[FakeWindow] = []
        self.signed_in = False
        self.user: Optional[str] = None

    def create_window(self, bounds: Bounds, *, fullscreen: bool = True) -> FakeWindow:
        window = FakeWindow(bounds, fullscreen=fullscreen)
        self.windows.append(window)
        return window

    def spawn_popup(self) -> FakeWindow:
        """What the hosted page does when it opens the presenter view."""
        popup = self.create_window(Bounds(x=10, y=10, width=800, height=600), fullscreen=False)
        self.notify_window_created(popup)
        return popup

    def live_windows(self) -> List[FakeWindow]:
        return [w for w in self.windows if not w.destroyed]

    def list_displays(self) -> List[Display]:
        return list(self.displays)

    def is_signed_in(self) -> bool:
        return self.signed_in

    def signed_in_user(self) -> Optional[str]:
        return self.user


# ----------------------------------------------------------------------------
# Manual clock
# ----------------------------------------------------------------------------

class ManualTimer(TimerHandle):
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    def __init__(self) -> None:
        self.now = 0.0
        self._timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = ManualTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order (including ones they schedule)."""
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not (t.cancelled or t.fired) and t.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.now = max(self.now, timer.when)
            timer.fired = True
            timer.callback()
        self.now = target

    @property
    def pending(self) -> int:
        return len([t for t in self._timers if not (t.cancelled or t.fired)])


# ----------------------------------------------------------------------------
# Backups
# ----------------------------------------------------------------------------

class FakeBackups:
    """httpx.MockTransport handler playing every backup host at once."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.unreachable: Set[str] = set()
        self.failing: Dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        self.requests.append(request)
        if host in self.failing:
            return httpx.Response(self.failing[host], json={"error": "failed"})
        if request.method == "GET":
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(200, json={"success": True})

    def posts(self, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == "POST" and (path is None or r.url.path == path)
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ----------------------------------------------------------------------------
# Stagetimer
# ----------------------------------------------------------------------------

class FakeStagetimer:
    """httpx.MockTransport handler standing in for api.stagetimer.io."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.replies: Dict[str, Any] = {
            "get_status": {"ok": True, "data": {}},
            "get_all_messages": {"ok": True, "data": []},
            "get_timer": {"ok": True, "data": {}},
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.get(request.url.path.rsplit("/", 1)[-1])
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    def calls(self, endpoint: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/" + endpoint)]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ----------------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------------

@pytest.fixture
def preferences(tmp_path) -> PreferencesStore:
    return PreferencesStore(tmp_path / "preferences.sqlite")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def controller(backend, scheduler, preferences) -> PresentationController:
    return PresentationController(backend, scheduler, preferences, version="test")


@pytest.fixture
def backups() -> FakeBackups:
    return FakeBackups()


@pytest.fixture
def stagetimer() -> FakeStagetimer:
    return FakeStagetimer()


@pytest.fixture
def services(backend, scheduler, preferences, backups, stagetimer):
    from presenter.server import build_services

    return build_services(
        backend, scheduler, InlineDispatcher(), preferences,
        transport=backups.transport, stagetimer_transport=stagetimer.transport,
        service_name="presenter-relay-test", version="test",
    )


@pytest.fixture
def client(services):
    from fastapi.testclient import TestClient

    from presenter.server import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client
