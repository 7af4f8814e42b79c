"""Synthetic keyboard input for the hosted slide-show UI.

Dispatching a key says nothing about whether the page acted on it; the only
feedback is whether the event reached a live window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import WindowGoneError
from .windows import BrowserWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyChord:
    key: str
    modifiers: Tuple[str, ...] = ()
    text: str = ""

    def __str__(self) -> str:
        return "+".join([*(m.capitalize() for m in self.modifiers), self.key])


ENTER_PRESENTATION = KeyChord("F5", ("control", "shift"))
TOGGLE_SPEAKER_NOTES = KeyChord("S", text="s")
NEXT_SLIDE = KeyChord("Right")
PREVIOUS_SLIDE = KeyChord("Left")
TOGGLE_VIDEO = KeyChord("K", text="k")


class InputSynthesizer:
    """Sends key chords to a window, focusing it first."""

    def send(self, window: Optional[BrowserWindow], chord: KeyChord) -> bool:
        if window is None or window.is_destroyed():
            logger.debug(f"[Input] Dropped {chord}: no live window")
            return False
        try:
            window.focus()
            window.send_key(chord.key, chord.modifiers, chord.text)
        except WindowGoneError:
            logger.debug(f"[Input] Dropped {chord}: window destroyed during dispatch")
            return False
        logger.debug(f"[Input] Sent {chord}")
        return True
