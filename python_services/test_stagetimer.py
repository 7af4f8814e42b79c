#!/usr/bin/env python3
"""
Tests for the stagetimer.io status proxy.
"""

import asyncio

import httpx

from presenter.stagetimer import (
    NOT_CONFIGURED,
    StagetimerClient,
    active_messages,
    format_countdown,
    timer_state,
)


def _configured(preferences):
    preferences.set({"stagetimerRoomId": "ROOM1", "stagetimerApiKey": "secret"})


def test_format_countdown():
    assert format_countdown(0) == "0:00"
    assert format_countdown(65_500) == "1:05"
    assert format_countdown(3_723_000) == "1:02:03"
    # Overtime counts down past zero
    assert format_countdown(-1) == "-0:01"
    assert format_countdown(-61_000) == "-1:01"


def test_timer_state_running_paused_and_idle():
    running = timer_state({"running": True, "start": 1000, "finish": 61000, "server_time": 31000})
    assert running["remainingMs"] == 30000
    assert running["elapsedMs"] == 30000
    assert running["displayTime"] == "0:30"

    paused = timer_state({"running": False, "start": 0, "finish": 60000, "pause": 20000})
    assert paused["remainingMs"] == 40000
    assert paused["elapsedMs"] == 20000

    idle = timer_state({"running": False, "start": 0, "finish": 90000})
    assert idle["displayTime"] == "1:30"
    assert idle["elapsedMs"] == 0

    assert timer_state({})["displayTime"] == "0:00"


def test_active_messages_accepts_both_shapes():
    shown = {"text": "Wrap up", "showing": True, "color": "red", "bold": True}
    hidden = {"text": "Later", "showing": False}
    expected = [{"text": "Wrap up", "color": "red", "bold": True, "uppercase": False}]

    assert active_messages({"ok": True, "data": [shown, hidden]}) == expected
    assert active_messages({"ok": True, "data": {"messages": [shown, hidden]}}) == expected
    assert active_messages({"ok": False, "data": [shown]}) == []
    assert active_messages(None) == []


def test_status_not_configured(preferences, stagetimer):
    client = StagetimerClient(preferences, transport=stagetimer.transport)
    assert asyncio.run(client.status()) == {"success": False, "configured": False, "error": NOT_CONFIGURED}
    assert stagetimer.requests == []


def test_status_combines_status_messages_and_timer(preferences, stagetimer):
    _configured(preferences)
    stagetimer.replies["get_status"] = {
        "ok": True,
        "data": {"running": True, "start": 0, "finish": 120000, "server_time": 150000},
    }
    stagetimer.replies["get_all_messages"] = {"ok": True, "data": [{"text": "Q&A next", "showing": True}]}
    stagetimer.replies["get_timer"] = {"ok": True, "data": {"name": "Opening", "speaker": ""}}
    client = StagetimerClient(preferences, transport=stagetimer.transport)

    body = asyncio.run(client.status())
    assert body["success"] is True
    assert body["configured"] is True
    assert body["running"] is True
    assert body["displayTime"] == "-0:30"
    assert body["messages"][0]["text"] == "Q&A next"
    assert body["timerName"] == "Opening"
    # No timer_id in the status: the highlighted timer is requested
    assert "timer_id" not in stagetimer.calls("get_timer")[0].url.params
    assert stagetimer.calls("get_status")[0].url.path == "/v1/get_status"


def test_status_failure_is_reported_not_raised(preferences, stagetimer):
    _configured(preferences)
    stagetimer.replies["get_status"] = httpx.ConnectError("no route to host")
    client = StagetimerClient(preferences, transport=stagetimer.transport)

    body = asyncio.run(client.status())
    assert body["success"] is False
    assert body["configured"] is True
    assert body["error"].startswith("Failed to connect")
    assert stagetimer.calls("get_timer") == []


def test_http_error_from_stagetimer(preferences, stagetimer):
    _configured(preferences)
    stagetimer.replies["get_status"] = httpx.Response(401, json={"ok": False})
    client = StagetimerClient(preferences, transport=stagetimer.transport)

    body = asyncio.run(client.status())
    assert body == {"success": False, "configured": True, "error": "HTTP 401: Unauthorized"}


def test_timer_fetch_failure_still_returns_status(preferences, stagetimer):
    _configured(preferences)
    stagetimer.replies["get_status"] = {"ok": True, "data": {"running": False, "start": 0, "finish": 60000}}
    stagetimer.replies["get_timer"] = httpx.ReadTimeout("slow")
    client = StagetimerClient(preferences, transport=stagetimer.transport)

    body = asyncio.run(client.status())
    assert body["success"] is True
    assert body["displayTime"] == "1:00"
    assert body["timerName"] == ""


def test_save_settings_defaults_visible_and_keeps_other_preferences(preferences):
    preferences.set({"presentation1": "https://example.com/deck"})
    client = StagetimerClient(preferences)
    prefs = client.save_settings(room_id="ROOM1", api_key="secret", visible=None)

    assert prefs.stagetimer_configured
    assert prefs.stagetimer_visible is True
    assert prefs.presentation1 == "https://example.com/deck"

    client.save_settings(api_key="")
    assert client.settings()["apiKey"] == ""
    assert not preferences.load().stagetimer_configured
