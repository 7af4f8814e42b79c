"""Presentation session controller: the command surface behind the Control API.

All methods run on the GUI thread. Commands that need a page round-trip
(status, notes scroll/zoom, notes text) return a `concurrent.futures.Future`
that resolves once the page answered; everything else returns immediately.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional

from .activation import ActivationProtocol, to_present_url
from .displays import DisplayResolver
from .errors import (
    AutomationError,
    InvalidCommandError,
    NoSessionError,
    NotesUnavailableError,
    PresetNotConfiguredError,
    WindowGoneError,
)
from .input import NEXT_SLIDE, PREVIOUS_SLIDE, TOGGLE_SPEAKER_NOTES, TOGGLE_VIDEO, InputSynthesizer, KeyChord
from .preferences import PRESET_SLOTS, PreferencesStore
from . import scripts
from .scheduler import Scheduler, TimerHandle
from .state import Session, SessionTracker, parse_scrape
from .windows import BrowserWindow, WindowBackend, WindowManager

logger = logging.getLogger(__name__)

GO_TO_SLIDE_STEP_INTERVAL = 0.1
# One timer per step on the GUI thread; larger jumps are rejected
MAX_GO_TO_SLIDE_STEPS = 500
RELOAD_RESTORE_DELAY = 2.0

Result = Dict[str, Any]


def _ok(message: str) -> Result:
    return {"success": True, "message": message}


def _completed(value: Any) -> "Future[Any]":
    future: "Future[Any]" = Future()
    future.set_result(value)
    return future


def _chain(source: "Future[Any]", transform: Callable[["Future[Any]"], Any]) -> "Future[Any]":
    """Future resolving to transform(source) once source is done."""
    target: "Future[Any]" = Future()

    def _done(done: "Future[Any]") -> None:
        try:
            target.set_result(transform(done))
        except Exception as e:  # noqa: BLE001
            target.set_exception(e)

    source.add_done_callback(_done)
    return target


def require_url(url: Any) -> str:
    value = url.strip() if isinstance(url, str) else ""
    if not value:
        raise InvalidCommandError("URL is required")
    return value


def parse_slide_number(value: Any) -> int:
    """Accept positive integers (or their decimal string form); reject everything else."""
    slide: Optional[int] = None
    if isinstance(value, int) and not isinstance(value, bool):
        slide = value
    elif isinstance(value, str) and value.strip().isdigit():
        slide = int(value.strip())
    if slide is None or slide < 1:
        raise InvalidCommandError("Valid slide number (>= 1) is required")
    return slide


def parse_preset_slot(value: Any) -> int:
    slot: Optional[int] = None
    if isinstance(value, int) and not isinstance(value, bool):
        slot = value
    elif isinstance(value, str) and value.strip().isdigit():
        slot = int(value.strip())
    if slot not in PRESET_SLOTS:
        raise InvalidCommandError("Preset must be 1, 2, or 3")
    return slot


class PresentationController:
    """Owns the session and sequences window, input and activation work."""

    def __init__(
        self,
        backend: WindowBackend,
        scheduler: Scheduler,
        preferences: PreferencesStore,
        *,
        displays: Optional[DisplayResolver] = None,
        synthesizer: Optional[InputSynthesizer] = None,
        windows: Optional[WindowManager] = None,
        version: str = "0.1.0",
        build_number: str = "unknown",
    ) -> None:
        self.backend = backend
        self.scheduler = scheduler
        self.preferences = preferences
        self.displays = displays or DisplayResolver(backend.list_displays)
        self.synthesizer = synthesizer or InputSynthesizer()
        self.windows = windows or WindowManager(backend, scheduler)
        self.tracker = SessionTracker()
        self.version = version
        self.build_number = build_number
        self.activation: Optional[ActivationProtocol] = None
        self._pending: List[TimerHandle] = []

        self.windows.on_closed = self._on_windows_closed
        self.windows.on_notes_bound = self._on_notes_bound
        self.windows.on_notes_closed = self._on_notes_closed

    @property
    def session(self) -> Session:
        return self.tracker.session

    # ------------------------------------------------------------------
    # Open / close ------------------------------------------------------
    # ------------------------------------------------------------------

    def open(self, url: Any, *, with_notes: bool = False) -> Result:
        target = require_url(url)
        self._open(target, with_notes=with_notes)
        return _ok("Presentation opened with notes" if with_notes else "Presentation opened")

    def open_preset(self, preset: Any, *, with_notes: bool = False) -> Result:
        slot = parse_preset_slot(preset)
        url = self.preferences.load().preset_url(slot)
        if not url:
            raise PresetNotConfiguredError(f"Preset {slot} is not configured")
        logger.info(f"[Controller] Opening preset {slot}: {url}")
        self._open(url, with_notes=with_notes)
        return _ok(f"Preset {slot} opened")

    def _open(self, url: str, *, with_notes: bool) -> BrowserWindow:
        # Pending timers from the previous session must not reach the new window
        self._invalidate()

        prefs = self.preferences.load()
        presentation_display = self.displays.resolve(prefs.presentation_display_id)
        notes_display = self.displays.resolve(prefs.notes_display_id)
        logger.info(
            f"[Controller] Opening {url} (notes: {with_notes}) on display {presentation_display.id}, "
            f"notes display {notes_display.id}"
        )

        session = self.tracker.begin(url, with_notes=with_notes)

        def _prepare(window: BrowserWindow) -> None:
            self.activation = ActivationProtocol(
                session, window, self.synthesizer, self.scheduler, with_notes=with_notes
            )
            self.activation.attach()

        try:
            return self.windows.open(to_present_url(url), presentation_display, notes_display, prepare=_prepare)
        except Exception:
            self._invalidate()
            self.tracker.reset()
            raise

    def close(self) -> Result:
        self._invalidate()
        if self.windows.close():
            logger.info("[Controller] Presentation closed")
        self.tracker.reset()
        return _ok("Presentation closed")

    def reload(self) -> Result:
        """Close and reopen the current deck, then step back to the tracked slide."""
        self._require_session()
        url = self.session.presentation_url
        if not url:
            raise InvalidCommandError("No previous presentation URL stored")

        saved_slide = self.session.current_slide or 1
        notes_were_open = self.windows.notes_open
        restore = self.preferences.load().restore_slide_on_reload
        logger.info(f"[Controller] Reload: slide {saved_slide}, notes open: {notes_were_open}, url: {url}")

        self._open(url, with_notes=notes_were_open)

        if restore and saved_slide > 1:
            generation = self.session.generation

            def _restore() -> None:
                if self._is_current(generation):
                    logger.info(f"[Controller] Reload: returning to slide {saved_slide}")
                    self._step_to(saved_slide)

            self._later(RELOAD_RESTORE_DELAY, _restore)
        return _ok("Reloading presentation...")

    def _on_windows_closed(self, reason: str) -> None:
        logger.info(f"[Controller] Session closed ({reason})")
        self._invalidate()
        self.tracker.reset()

    def _on_notes_bound(self, window: BrowserWindow) -> None:
        logger.debug(f"[Controller] Notes window bound for session {self.session.generation}")

    def _on_notes_closed(self) -> None:
        logger.debug(f"[Controller] Notes window closed for session {self.session.generation}")

    # ------------------------------------------------------------------
    # Navigation --------------------------------------------------------
    # ------------------------------------------------------------------

    def next_slide(self) -> Result:
        self._require_session()
        self._send(NEXT_SLIDE)
        self.tracker.advance()
        return _ok("Next slide")

    def previous_slide(self) -> Result:
        self._require_session()
        self._send(PREVIOUS_SLIDE)
        self.tracker.retreat()
        return _ok("Previous slide")

    def go_to_slide(self, slide: Any) -> Result:
        target = parse_slide_number(slide)
        self._require_session()
        current = self.session.current_slide or 1
        total = self.session.total_slides
        if total is not None and target > total:
            logger.info(f"[Controller] Slide {target} is past the end, going to {total}")
            target = total
        if abs(target - current) > MAX_GO_TO_SLIDE_STEPS:
            raise InvalidCommandError(
                f"Cannot move more than {MAX_GO_TO_SLIDE_STEPS} slides at once (on slide {current})"
            )
        if target == current:
            result = _ok(f"Already on slide {target}")
        else:
            self._step_to(target)
            result = _ok(f"Navigated to slide {target}")
        result.update({"fromSlide": current, "toSlide": target})
        return result

    def _step_to(self, target: int) -> None:
        """One arrow key per slide; the host UI has no direct jump we can drive."""
        current = self.session.current_slide or 1
        delta = target - current
        self.tracker.jump(target)
        if delta == 0:
            return
        chord = NEXT_SLIDE if delta > 0 else PREVIOUS_SLIDE
        generation = self.session.generation

        def _press() -> None:
            if self._is_current(generation):
                self._send(chord)

        _press()
        for step in range(1, abs(delta)):
            self._later(step * GO_TO_SLIDE_STEP_INTERVAL, _press)

    def toggle_video(self) -> Result:
        self._require_session()
        self._send(TOGGLE_VIDEO)
        return _ok("Video toggled")

    # ------------------------------------------------------------------
    # Speaker notes -----------------------------------------------------
    # ------------------------------------------------------------------

    def open_notes(self) -> Result:
        self._require_session()
        # The key toggles notes, so the activation fallback must not press it again
        self.session.s_key_already_sent = True
        self.windows.expect_notes()
        self._send(TOGGLE_SPEAKER_NOTES)
        return _ok("Speaker notes opened")

    def close_notes(self) -> Result:
        if not self.windows.notes_open:
            raise NotesUnavailableError()
        self.windows.close_notes()
        return _ok("Speaker notes closed")

    def scroll_notes(self, direction: int) -> "Future[Result]":
        message = "Notes scrolled down" if direction > 0 else "Notes scrolled up"
        return self._notes_action(scripts.scroll_notes(direction), message, "Could not scroll notes")

    def zoom_notes(self, direction: int) -> "Future[Result]":
        message = "Zoomed in on notes" if direction > 0 else "Zoomed out on notes"
        return self._notes_action(scripts.zoom_notes(direction), message, "Zoom button not found")

    def _notes_action(self, script: str, message: str, failure: str) -> "Future[Result]":
        notes = self._require_notes()

        def _result(done: "Future[Any]") -> Result:
            try:
                outcome = done.result()
            except WindowGoneError as e:
                raise NotesUnavailableError() from e
            if isinstance(outcome, dict) and outcome.get("success"):
                return _ok(message)
            error = outcome.get("error") if isinstance(outcome, dict) else None
            raise AutomationError(error or failure)

        return _chain(self._evaluate(notes, script), _result)

    def speaker_notes(self) -> "Future[Result]":
        if not self.windows.notes_open:
            return _completed({"success": False, "notes": "", "error": "No speaker notes window is open"})

        def _result(done: "Future[Any]") -> Result:
            try:
                outcome = done.result()
            except Exception as e:  # noqa: BLE001
                logger.debug(f"[Controller] Speaker notes scrape failed: {e}")
                return {"success": False, "notes": "", "error": "Speaker notes not available"}
            if isinstance(outcome, dict):
                return {
                    "success": bool(outcome.get("success")),
                    "notes": str(outcome.get("notes") or ""),
                    **({"error": outcome["error"]} if outcome.get("error") else {}),
                }
            return {"success": False, "notes": "", "error": "Speaker notes not available"}

        return _chain(self._evaluate(self.windows.notes, scripts.SPEAKER_NOTES_TEXT), _result)

    # ------------------------------------------------------------------
    # Status ------------------------------------------------------------
    # ------------------------------------------------------------------

    def status(self) -> "Future[Result]":
        """Tracked state, overridden by a best-effort DOM scrape of the notes window."""
        if not self.windows.notes_open:
            return _completed(self._status_body(None))

        generation = self.session.generation

        def _result(done: "Future[Any]") -> Result:
            scrape = None
            try:
                scrape = parse_scrape(done.result())
            except Exception as e:  # noqa: BLE001
                # Page busy or navigating: report what we tracked
                logger.debug(f"[Controller] Status scrape failed: {e}")
            if not self._is_current(generation):
                scrape = None
            self.tracker.record_scrape(scrape)
            return self._status_body(scrape)

        return _chain(self._evaluate(self.windows.notes, scripts.SCRAPE_STATUS), _result)

    def _status_body(self, scrape: Any) -> Result:
        prefs = self.preferences.load()
        signed_in = self._signed_in()
        body: Result = {"status": "ok", "version": self.version, "buildNumber": self.build_number}
        body.update(
            self.tracker.snapshot(
                presentation_open=self.windows.presentation_open,
                notes_open=self.windows.notes_open,
                scrape=scrape,
            )
        )
        body.update(
            {
                "loginState": signed_in,
                "loggedInUser": self._signed_in_user() if signed_in else None,
                "presentationDisplayId": prefs.presentation_display_id,
                "notesDisplayId": prefs.notes_display_id,
                "mode": prefs.mode.value,
            }
        )
        return body

    def _signed_in(self) -> bool:
        try:
            return bool(self.backend.is_signed_in())
        except Exception as e:  # noqa: BLE001
            logger.error(f"[Controller] Error checking login state: {e}")
            return False

    def _signed_in_user(self) -> Optional[str]:
        try:
            return self.backend.signed_in_user()
        except Exception as e:  # noqa: BLE001
            logger.error(f"[Controller] Error reading signed-in account: {e}")
            return None

    # ------------------------------------------------------------------
    # Helpers -----------------------------------------------------------
    # ------------------------------------------------------------------

    def _require_session(self) -> None:
        if not self.windows.presentation_open:
            raise NoSessionError()

    def _require_notes(self) -> BrowserWindow:
        if not self.windows.notes_open or self.windows.notes is None:
            raise NotesUnavailableError()
        return self.windows.notes

    def _send(self, chord: KeyChord) -> bool:
        return self.synthesizer.send(self.windows.presentation, chord)

    def _evaluate(self, window: Optional[BrowserWindow], script: str) -> "Future[Any]":
        if window is None:
            failed: "Future[Any]" = Future()
            failed.set_exception(WindowGoneError("window is gone"))
            return failed
        try:
            return window.evaluate_js(script)
        except WindowGoneError as e:
            failed = Future()
            failed.set_exception(e)
            return failed

    def _is_current(self, generation: int) -> bool:
        return self.session.generation == generation and self.windows.presentation_open

    def _later(self, delay: float, callback: Callable[[], None]) -> None:
        self._pending.append(self.scheduler.call_later(delay, callback))

    def _invalidate(self) -> None:
        if self.activation is not None:
            self.activation.cancel()
            self.activation = None
        for timer in self._pending:
            timer.cancel()
        self._pending.clear()
