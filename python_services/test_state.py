#!/usr/bin/env python3
"""
Tests for session tracking and the tracked-vs-scraped precedence rule.
"""

import random

from presenter.state import (
    ActivationState,
    DomScrape,
    SessionTracker,
    SlidePosition,
    parse_scrape,
    resolve_slide_position,
)


def test_slide_never_drops_below_one():
    tracker = SessionTracker()
    tracker.begin("https://example.com/deck", with_notes=False)
    rng = random.Random(7)
    for _ in range(500):
        if rng.random() < 0.5:
            tracker.advance()
        else:
            tracker.retreat()
        assert tracker.session.current_slide >= 1


def test_retreat_on_first_slide_is_a_no_op():
    tracker = SessionTracker()
    tracker.begin("https://example.com/deck", with_notes=False)
    assert tracker.retreat() == 1
    assert tracker.advance() == 2
    assert tracker.retreat() == 1


def test_begin_and_reset_bump_generation():
    tracker = SessionTracker()
    assert not tracker.is_open
    first = tracker.begin("https://example.com/a", with_notes=True).generation
    tracker.reset()
    assert not tracker.is_open
    second = tracker.begin("https://example.com/b", with_notes=False).generation
    assert first < second
    assert tracker.session.activation_state == ActivationState.LOADING
    assert tracker.session.with_notes is False
    assert tracker.is_open


def test_scraped_values_override_tracked():
    tracked = SlidePosition(current=4, total=None)
    assert resolve_slide_position(tracked, DomScrape(current=6, total=10)) == SlidePosition(6, 10)
    assert resolve_slide_position(tracked, DomScrape(total=10)) == SlidePosition(4, 10)
    assert resolve_slide_position(tracked, None) == SlidePosition(4, None)


def test_parse_scrape_rejects_garbage():
    assert parse_scrape(None) is None
    assert parse_scrape("3 / 10") is None
    assert parse_scrape({}) is None
    assert parse_scrape({"current": 0, "total": "x"}) is None
    assert parse_scrape({"current": True}) is None


def test_parse_scrape_accepts_numbers_and_strings():
    scrape = parse_scrape({"current": 3.0, "total": "12", "title": " Quarterly ", "timer": "0:42"})
    assert scrape == DomScrape(current=3, total=12, title="Quarterly", timer="0:42")


def test_snapshot_when_closed_has_null_slide_fields():
    status = SessionTracker().snapshot(presentation_open=False, notes_open=False)
    assert status["presentationOpen"] is False
    assert status["notesOpen"] is False
    for key in ("currentSlide", "totalSlides", "presentationUrl", "slideInfo", "nextSlide", "previousSlide"):
        assert status[key] is None
    assert status["activationState"] == "closed"


def test_snapshot_derived_fields():
    tracker = SessionTracker()
    tracker.begin("https://example.com/deck", with_notes=True)
    tracker.jump(3)

    status = tracker.snapshot(presentation_open=True, notes_open=True, scrape=DomScrape(total=3, timer="1:05"))
    assert status["slideInfo"] == "3 / 3"
    assert status["isLastSlide"] is True
    assert status["nextSlide"] is None
    assert status["previousSlide"] == 2
    assert status["timerElapsed"] == "1:05"

    status = tracker.snapshot(presentation_open=True, notes_open=False)
    assert status["slideInfo"] == "3"
    assert status["isLastSlide"] is None
    assert status["nextSlide"] == 4


def test_record_scrape_keeps_title_and_total():
    tracker = SessionTracker()
    tracker.begin("https://example.com/deck", with_notes=True)
    tracker.record_scrape(DomScrape(current=5, total=9, title="Deck"))
    assert tracker.session.presentation_title == "Deck"
    assert tracker.session.total_slides == 9
    # The current slide stays optimistic; scrapes only override at read time
    assert tracker.session.current_slide == 1
