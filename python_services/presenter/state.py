"""Session state: what the controller believes about the open presentation.

Nothing here is authoritative. The current slide is tracked optimistically from
the commands we send, and a status read may override it with values scraped from
the notes window DOM. The precedence is explicit in `resolve_slide_position`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ActivationState(str, Enum):
    CLOSED = "closed"
    LOADING = "loading"
    PRESENT_TRIGGERED = "present-triggered"
    NOTES_TRIGGERED = "notes-triggered"


@dataclass
class SlidePosition:
    current: Optional[int] = None
    total: Optional[int] = None


@dataclass
class DomScrape:
    """Values read from the notes window in one status poll."""

    current: Optional[int] = None
    total: Optional[int] = None
    title: Optional[str] = None
    timer: Optional[str] = None


@dataclass
class Session:
    presentation_url: Optional[str] = None
    presentation_title: Optional[str] = None
    current_slide: Optional[int] = None
    total_slides: Optional[int] = None
    with_notes: bool = False
    s_key_already_sent: bool = False
    activation_state: ActivationState = ActivationState.CLOSED
    # Bumped on every open and reset; timers compare it before acting
    generation: int = 0


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and value >= 1:
        return value
    return None


def parse_scrape(raw: Any) -> Optional[DomScrape]:
    """Turn the scrape script result into a DomScrape, or None if unusable."""
    if not isinstance(raw, dict):
        return None
    title = raw.get("title")
    timer = raw.get("timer")
    scrape = DomScrape(
        current=_positive_int(raw.get("current")),
        total=_positive_int(raw.get("total")),
        title=title.strip() if isinstance(title, str) and title.strip() else None,
        timer=timer if isinstance(timer, str) and timer else None,
    )
    if scrape == DomScrape():
        return None
    return scrape


def resolve_slide_position(tracked: SlidePosition, scraped: Optional[DomScrape]) -> SlidePosition:
    """Scraped values override tracked ones when present; tracked values fill the gaps."""
    if scraped is None:
        return SlidePosition(tracked.current, tracked.total)
    return SlidePosition(
        current=scraped.current if scraped.current is not None else tracked.current,
        total=scraped.total if scraped.total is not None else tracked.total,
    )


class SessionTracker:
    """Owns the single Session of this process."""

    def __init__(self) -> None:
        self.session = Session()

    @property
    def is_open(self) -> bool:
        return self.session.activation_state != ActivationState.CLOSED

    def begin(self, url: str, *, with_notes: bool) -> Session:
        generation = self.session.generation + 1
        self.session = Session(
            presentation_url=url,
            current_slide=1,
            with_notes=with_notes,
            activation_state=ActivationState.LOADING,
            generation=generation,
        )
        return self.session

    def reset(self) -> None:
        self.session = Session(generation=self.session.generation + 1)

    def advance(self) -> int:
        current = self.session.current_slide
        self.session.current_slide = current + 1 if current is not None else 1
        return self.session.current_slide

    def retreat(self) -> int:
        current = self.session.current_slide
        # "previous" on slide 1 stays on slide 1
        self.session.current_slide = current - 1 if current is not None and current > 1 else 1
        return self.session.current_slide

    def jump(self, slide: int) -> int:
        self.session.current_slide = max(1, slide)
        return self.session.current_slide

    def record_scrape(self, scrape: Optional[DomScrape]) -> None:
        """Keep the long-lived parts of a scrape (title, deck size)."""
        if scrape is None:
            return
        if scrape.title:
            self.session.presentation_title = scrape.title
        if scrape.total is not None:
            self.session.total_slides = scrape.total

    def tracked_position(self) -> SlidePosition:
        return SlidePosition(self.session.current_slide, self.session.total_slides)

    def snapshot(
        self,
        *,
        presentation_open: bool,
        notes_open: bool,
        scrape: Optional[DomScrape] = None,
    ) -> Dict[str, Any]:
        """Build the status body for one read."""
        session = self.session
        if not presentation_open:
            position = SlidePosition()
        else:
            position = resolve_slide_position(self.tracked_position(), scrape)

        current, total = position.current, position.total
        status: Dict[str, Any] = {
            "presentationOpen": presentation_open,
            "notesOpen": presentation_open and notes_open,
            "currentSlide": current,
            "totalSlides": total,
            "presentationUrl": session.presentation_url if presentation_open else None,
            "presentationTitle": session.presentation_title if presentation_open else None,
            "slideInfo": None,
            "isFirstSlide": None,
            "isLastSlide": None,
            "nextSlide": None,
            "previousSlide": None,
            "timerElapsed": scrape.timer if (presentation_open and scrape) else None,
            "activationState": session.activation_state.value,
        }
        if current is not None:
            status["isFirstSlide"] = current == 1
            status["previousSlide"] = current - 1 if current > 1 else None
            if total is not None:
                status["isLastSlide"] = current == total
                status["nextSlide"] = current + 1 if current < total else None
                status["slideInfo"] = f"{current} / {total}"
            else:
                status["nextSlide"] = current + 1
                status["slideInfo"] = str(current)
        return status
