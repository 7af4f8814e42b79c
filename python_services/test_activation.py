#!/usr/bin/env python3
"""
Tests for presentation-mode and speaker-notes activation.
"""

import pytest

from presenter.activation import (
    NOTES_FALLBACK_DELAY,
    NOTES_NAVIGATION_SETTLE_DELAY,
    PRESENT_SETTLE_DELAY,
    ActivationProtocol,
    NotesTrigger,
    is_present_mode_url,
    to_present_url,
)
from presenter.input import InputSynthesizer
from presenter.state import ActivationState, Session
from conftest import DISPLAYS

DECK = "https://docs.google.com/presentation/d/abc123"
EDIT_URL = f"{DECK}/edit#slide=id.p"
PRESENT_URL = f"{DECK}/present"


def _protocol(backend, scheduler, *, with_notes=True, url=EDIT_URL):
    session = Session(presentation_url=url, current_slide=1, with_notes=with_notes, generation=1)
    window = backend.create_window(DISPLAYS[0].bounds)
    window.url = url
    protocol = ActivationProtocol(session, window, InputSynthesizer(), scheduler, with_notes=with_notes)
    protocol.attach()
    return session, window, protocol


@pytest.mark.parametrize(
    "url, expected",
    [
        (f"{DECK}/edit#slide=id.p", PRESENT_URL),
        (f"{DECK}/present?slide=id.p", PRESENT_URL),
        (f"{DECK}", PRESENT_URL),
        ("https://example.com/slides", "https://example.com/slides"),
        ("not a url", "not a url"),
    ],
)
def test_to_present_url(url, expected):
    assert to_present_url(url) == expected


def test_present_mode_detection():
    assert is_present_mode_url(PRESENT_URL)
    assert is_present_mode_url(f"{DECK}/localpresent")
    assert is_present_mode_url(f"{DECK}/present/")
    assert not is_present_mode_url(EDIT_URL)
    assert not is_present_mode_url("https://accounts.google.com/signin")
    assert not is_present_mode_url("")


def test_present_chord_sent_after_settle_delay(backend, scheduler):
    session, window, _ = _protocol(backend, scheduler, with_notes=False)
    assert session.activation_state == ActivationState.LOADING

    window.finish_load()
    scheduler.advance(PRESENT_SETTLE_DELAY / 2)
    assert window.keys == []

    scheduler.advance(PRESENT_SETTLE_DELAY / 2)
    assert window.keys == [("F5", ("control", "shift"))]
    assert session.activation_state == ActivationState.PRESENT_TRIGGERED


def test_present_chord_skipped_when_already_presenting(backend, scheduler):
    session, window, _ = _protocol(backend, scheduler, with_notes=False, url=PRESENT_URL)
    window.finish_load()
    scheduler.advance(1)

    assert window.keys == []
    assert session.activation_state == ActivationState.PRESENT_TRIGGERED


def test_later_loads_do_not_restart_activation(backend, scheduler):
    _, window, _ = _protocol(backend, scheduler, with_notes=False)
    window.finish_load()
    scheduler.advance(1)
    window.finish_load()
    scheduler.advance(1)
    assert window.key_names() == ["F5"]


def test_without_notes_the_notes_key_is_never_sent(backend, scheduler):
    _, window, _ = _protocol(backend, scheduler, with_notes=False)
    window.finish_load()
    window.navigate(PRESENT_URL)
    scheduler.advance(5)
    assert "S" not in window.key_names()


def test_notes_from_navigation(backend, scheduler):
    session, window, protocol = _protocol(backend, scheduler, url=PRESENT_URL)
    window.navigate(PRESENT_URL)
    scheduler.advance(NOTES_NAVIGATION_SETTLE_DELAY)

    assert window.key_names() == ["S"]
    assert protocol.notes_source == NotesTrigger.NAVIGATION
    assert session.s_key_already_sent

    window.finish_load()
    scheduler.advance(5)
    assert window.key_names().count("S") == 1
    assert session.activation_state == ActivationState.NOTES_TRIGGERED


def test_notes_from_fallback_when_no_navigation(backend, scheduler):
    session, window, protocol = _protocol(backend, scheduler)
    window.finish_load()
    scheduler.advance(NOTES_FALLBACK_DELAY)

    assert window.key_names() == ["F5", "S"]
    assert protocol.notes_source == NotesTrigger.FALLBACK
    assert session.activation_state == ActivationState.NOTES_TRIGGERED


def test_notes_key_fires_once_when_both_triggers_match(backend, scheduler):
    _, window, protocol = _protocol(backend, scheduler)
    window.finish_load()
    scheduler.advance(0.5)
    # Navigation settles at 0.75, after the fallback at 0.65
    window.navigate(PRESENT_URL)
    scheduler.advance(5)

    assert window.key_names().count("S") == 1
    assert protocol.notes_source == NotesTrigger.FALLBACK


def test_notes_key_fires_once_when_navigation_wins(backend, scheduler):
    _, window, protocol = _protocol(backend, scheduler)
    window.finish_load()
    window.navigate(PRESENT_URL)
    scheduler.advance(5)

    assert window.key_names().count("S") == 1
    assert protocol.notes_source == NotesTrigger.NAVIGATION


def test_unrelated_navigation_does_not_trigger_notes(backend, scheduler):
    _, window, protocol = _protocol(backend, scheduler)
    window.navigate("https://accounts.google.com/signin")
    scheduler.advance(NOTES_FALLBACK_DELAY)
    assert window.key_names() == []

    window.finish_load()
    scheduler.advance(NOTES_FALLBACK_DELAY)
    assert window.key_names().count("S") == 1
    assert protocol.notes_source == NotesTrigger.FALLBACK


def test_cancel_silences_pending_timers(backend, scheduler):
    _, window, protocol = _protocol(backend, scheduler)
    window.finish_load()
    protocol.cancel()
    window.navigate(PRESENT_URL)
    scheduler.advance(5)

    assert window.keys == []
    assert protocol.cancelled
    assert scheduler.pending == 0


def test_destroyed_window_swallows_keys(backend, scheduler):
    session, window, _ = _protocol(backend, scheduler)
    window.finish_load()
    window.destroyed = True
    scheduler.advance(5)
    assert window.keys == []
