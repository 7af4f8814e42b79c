#!/usr/bin/env python3
"""
Tests for the presentation/notes window pair lifecycle.
"""

import pytest

from presenter.windows import CLOSED, NOTES_MAXIMIZE_DELAY, WindowManager
from conftest import DISPLAYS


def _manager(backend, scheduler):
    closed = []
    manager = WindowManager(backend, scheduler)
    manager.on_closed = closed.append
    return manager, closed


def test_open_creates_fullscreen_window_and_loads(backend, scheduler):
    manager, _ = _manager(backend, scheduler)
    window = manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])

    assert window.fullscreen and window.shown
    assert window.loaded == ["https://example.com/present"]
    assert window.bounds() == DISPLAYS[0].bounds
    assert manager.presentation_open and not manager.notes_open


def test_popup_is_bound_as_notes_and_placed_on_notes_display(backend, scheduler):
    manager, _ = _manager(backend, scheduler)
    manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])

    notes = backend.spawn_popup()
    assert manager.notes is notes
    assert notes.bounds() == DISPLAYS[1].bounds.inset(50)
    assert not notes.maximized

    scheduler.advance(NOTES_MAXIMIZE_DELAY)
    assert notes.maximized


def test_only_first_popup_is_bound(backend, scheduler):
    manager, _ = _manager(backend, scheduler)
    manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])
    first = backend.spawn_popup()
    second = backend.spawn_popup()

    assert manager.notes is first
    assert second is not manager.notes
    assert not manager.awaiting_notes


def test_reopen_leaves_exactly_one_pair(backend, scheduler):
    manager, closed = _manager(backend, scheduler)
    old = manager.open("https://example.com/a", DISPLAYS[0], DISPLAYS[1])
    old_notes = backend.spawn_popup()

    new = manager.open("https://example.com/b", DISPLAYS[0], DISPLAYS[1])
    assert old.destroyed and old_notes.destroyed
    assert backend.live_windows() == [new]
    # Our own teardown is not reported as a user close
    assert closed == []
    assert old.listener_count(CLOSED) == 0 and old_notes.listener_count(CLOSED) == 0


def test_user_closing_presentation_closes_notes_and_notifies(backend, scheduler):
    manager, closed = _manager(backend, scheduler)
    window = manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])
    notes = backend.spawn_popup()

    window.user_close()
    assert notes.destroyed
    assert closed == ["window-closed"]
    assert not manager.presentation_open


def test_escape_in_notes_closes_everything(backend, scheduler):
    manager, closed = _manager(backend, scheduler)
    window = manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])
    notes = backend.spawn_popup()

    notes.press_escape()
    assert window.destroyed and notes.destroyed
    assert closed == ["escape"]


def test_closing_notes_keeps_presentation(backend, scheduler):
    manager, closed = _manager(backend, scheduler)
    window = manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])
    notes = backend.spawn_popup()

    notes.user_close()
    assert manager.presentation_open and not manager.notes_open
    assert not window.destroyed
    assert closed == []


def test_notes_closed_before_maximize_is_left_alone(backend, scheduler):
    manager, _ = _manager(backend, scheduler)
    manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])
    notes = backend.spawn_popup()
    manager.close_notes()

    scheduler.advance(NOTES_MAXIMIZE_DELAY)
    assert notes.destroyed and not notes.maximized


def test_close_is_idempotent(backend, scheduler):
    manager, _ = _manager(backend, scheduler)
    assert manager.close() is False
    manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1])
    assert manager.close() is True
    assert manager.close() is False


def test_failed_load_tears_down_new_window(backend, scheduler):
    manager, _ = _manager(backend, scheduler)

    def _boom(window):
        raise RuntimeError("listener setup failed")

    with pytest.raises(RuntimeError):
        manager.open("https://example.com/present", DISPLAYS[0], DISPLAYS[1], prepare=_boom)
    assert backend.live_windows() == []
    assert not manager.awaiting_notes
