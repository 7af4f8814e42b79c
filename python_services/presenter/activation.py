"""Presentation-mode and speaker-notes activation.

The hosted UI has no call for "start the slideshow" or "open speaker notes"; both
are key presses sent at the right moment of an asynchronous page load. The
protocol for one open session is:

    LOADING --did-finish-load + settle--> PRESENT_TRIGGERED
    PRESENT_TRIGGERED --(navigation to present URL + settle) or fallback timer--> NOTES_TRIGGERED

The notes key is guarded by `Session.s_key_already_sent`: exactly one of the two
trigger sources fires it. `cancel()` invalidates every pending timer so a
superseded session can never send keys into a newer window.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urlparse

from .input import ENTER_PRESENTATION, TOGGLE_SPEAKER_NOTES, InputSynthesizer
from .scheduler import Scheduler, TimerHandle
from .state import ActivationState, Session
from .windows import DID_FINISH_LOAD, DID_NAVIGATE, BrowserWindow

logger = logging.getLogger(__name__)

PRESENT_SETTLE_DELAY = 0.2
NOTES_NAVIGATION_SETTLE_DELAY = 0.25
NOTES_FALLBACK_DELAY = 0.65

_DECK_ID_RE = re.compile(r"/presentation/d/([^/]+)")
_PRESENT_PATH_RE = re.compile(r"/(present|localpresent)(/|$)")
_EDITOR_PATH_RE = re.compile(r"/edit(/|$)")


class NotesTrigger(str, Enum):
    NAVIGATION = "navigation-detected"
    FALLBACK = "timeout-fallback"


def to_present_url(url: str) -> str:
    """Point any deck URL at its slideshow view; other URLs are returned as-is."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    match = _DECK_ID_RE.search(parsed.path or "")
    if not parsed.scheme or not match:
        return url
    return f"https://docs.google.com/presentation/d/{match.group(1)}/present"


def is_present_mode_url(url: str) -> bool:
    """True for slideshow URLs (/present, /localpresent), never for the editor."""
    path = urlparse(url or "").path
    return bool(_PRESENT_PATH_RE.search(path)) and not _EDITOR_PATH_RE.search(path)


class ActivationProtocol:
    """Drives one open session from LOADING to NOTES_TRIGGERED."""

    def __init__(
        self,
        session: Session,
        window: BrowserWindow,
        synthesizer: InputSynthesizer,
        scheduler: Scheduler,
        *,
        with_notes: bool,
    ) -> None:
        self.session = session
        self.window = window
        self.with_notes = with_notes
        self.notes_source: Optional[NotesTrigger] = None
        self._synthesizer = synthesizer
        self._scheduler = scheduler
        self._timers: List[TimerHandle] = []
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach(self) -> None:
        """Register listeners; call before the window starts loading."""
        self.session.activation_state = ActivationState.LOADING
        self.window.on(DID_FINISH_LOAD, self._on_load)
        if self.with_notes:
            self.window.on(DID_NAVIGATE, self._on_navigate)

    def cancel(self) -> None:
        self._cancelled = True
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self.window.off(DID_FINISH_LOAD, self._on_load)
        self.window.off(DID_NAVIGATE, self._on_navigate)

    # Load --------------------------------------------------------------------

    def _on_load(self, url: str = "") -> None:
        # Later in-page loads do not restart the protocol
        self.window.off(DID_FINISH_LOAD, self._on_load)
        if self._cancelled:
            return
        logger.debug(f"[Activation] Page loaded: {url}")
        self._later(PRESENT_SETTLE_DELAY, self._trigger_present)
        if self.with_notes:
            self._later(NOTES_FALLBACK_DELAY, lambda: self._trigger_notes(NotesTrigger.FALLBACK))

    def _trigger_present(self) -> None:
        if self._cancelled:
            return
        loaded = self.window.current_url() if not self.window.is_destroyed() else ""
        if is_present_mode_url(loaded):
            # Loading /present directly already starts the slideshow; the chord would toggle it off
            logger.debug("[Activation] Already in present mode, not sending the present chord")
        else:
            logger.info(f"[Activation] Triggering {ENTER_PRESENTATION} to enter presentation mode")
            self._synthesizer.send(self.window, ENTER_PRESENTATION)
        if self.session.activation_state == ActivationState.LOADING:
            self.session.activation_state = ActivationState.PRESENT_TRIGGERED

    # Notes -------------------------------------------------------------------

    def _on_navigate(self, url: str) -> None:
        if self._cancelled or self.session.s_key_already_sent:
            return
        if not is_present_mode_url(url):
            return
        # At most once: the observer leaves as soon as it matches
        self.window.off(DID_NAVIGATE, self._on_navigate)
        logger.debug(f"[Activation] Present mode detected at {url}")
        self._later(NOTES_NAVIGATION_SETTLE_DELAY, lambda: self._trigger_notes(NotesTrigger.NAVIGATION))

    def _trigger_notes(self, source: NotesTrigger) -> None:
        if self._cancelled or self.session.s_key_already_sent:
            return
        self.session.s_key_already_sent = True
        self.notes_source = source
        self.window.off(DID_NAVIGATE, self._on_navigate)
        logger.info(f"[Activation] Opening speaker notes ({source.value})")
        self._synthesizer.send(self.window, TOGGLE_SPEAKER_NOTES)
        self.session.activation_state = ActivationState.NOTES_TRIGGERED

    def _later(self, delay: float, callback: Callable[[], None]) -> None:
        self._timers.append(self._scheduler.call_later(delay, callback))
