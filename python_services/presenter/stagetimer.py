"""Stagetimer.io integration.

Companion pages show the room's live countdown next to the slide state. The
room id and API key live in the preferences store; the timer itself is read
through the public stagetimer.io v1 API on every status request.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Dict, List, Optional

import httpx

from .preferences import Preferences, PreferencesStore

logger = logging.getLogger(__name__)

STAGETIMER_API = "https://api.stagetimer.io/v1"
STATUS_TIMEOUT = 10.0
TIMER_TIMEOUT = 5.0
NOT_CONFIGURED = "Stagetimer not configured. Please set Room ID and API Key in Settings."


def format_countdown(ms: float) -> str:
    """`M:SS` or `H:MM:SS`, negative once the timer runs over."""
    total_seconds = math.floor(ms / 1000)
    sign = "-" if total_seconds < 0 else ""
    seconds = abs(total_seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{sign}{hours}:{minutes:02d}:{seconds:02d}"
    return f"{sign}{minutes}:{seconds:02d}"


def active_messages(payload: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Messages currently shown in the room, from a get_all_messages reply."""
    if not payload or not payload.get("ok"):
        return []
    data = payload.get("data")
    if isinstance(data, dict):
        data = data.get("messages")
    if not isinstance(data, list):
        return []
    return [
        {
            "text": msg.get("text") or "",
            "color": msg.get("color") or "white",
            "bold": bool(msg.get("bold")),
            "uppercase": bool(msg.get("uppercase")),
        }
        for msg in data
        if isinstance(msg, dict) and msg.get("showing") is True
    ]


def timer_state(status: Dict[str, Any], now_ms: Optional[float] = None) -> Dict[str, Any]:
    """Remaining and elapsed time for a get_status payload."""
    now = status.get("server_time") or (now_ms if now_ms is not None else time.time() * 1000)
    running = bool(status.get("running"))
    start, finish, pause = status.get("start"), status.get("finish"), status.get("pause")

    remaining = elapsed = 0
    display = "0:00"
    if start is not None and finish is not None:
        if running:
            remaining = finish - now
            elapsed = now - start
        elif pause:
            elapsed = pause - start
            remaining = (finish - start) - elapsed
        else:
            remaining = finish - start
        display = format_countdown(remaining)

    return {
        "running": running,
        "displayTime": display,
        "remainingMs": remaining,
        "elapsedMs": elapsed,
        "timerId": status.get("timer_id"),
        "start": start,
        "finish": finish,
        "pause": pause,
        "serverTime": status.get("server_time"),
    }


class StagetimerClient:
    """Reads and stores the Stagetimer settings and proxies the live timer status."""

    def __init__(
        self,
        preferences: PreferencesStore,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: str = STAGETIMER_API,
    ) -> None:
        self.preferences = preferences
        self._transport = transport
        self._base_url = base_url

    # Settings ------------------------------------------------------------------

    def settings(self) -> Dict[str, Any]:
        prefs = self.preferences.load()
        return {
            "roomId": prefs.stagetimer_room_id or "",
            "apiKey": prefs.stagetimer_api_key or "",
            "enabled": prefs.stagetimer_enabled,
            "visible": prefs.stagetimer_visible,
        }

    def save_settings(
        self,
        *,
        room_id: Optional[str] = None,
        api_key: Optional[str] = None,
        enabled: Optional[bool] = None,
        visible: Optional[bool] = None,
    ) -> Preferences:
        update: Dict[str, Any] = {"stagetimerVisible": True if visible is None else visible}
        if room_id is not None:
            update["stagetimerRoomId"] = room_id
        if api_key is not None:
            update["stagetimerApiKey"] = api_key
        if enabled is not None:
            update["stagetimerEnabled"] = enabled
        prefs = self.preferences.set(update)
        logger.info(f"[Stagetimer] Settings saved (configured: {prefs.stagetimer_configured})")
        return prefs

    # Live status -----------------------------------------------------------------

    async def status(self) -> Dict[str, Any]:
        prefs = self.preferences.load()
        if not prefs.stagetimer_configured:
            return {"success": False, "configured": False, "error": NOT_CONFIGURED}

        params = {"room_id": prefs.stagetimer_room_id, "api_key": prefs.stagetimer_api_key}
        async with httpx.AsyncClient(
            transport=self._transport, base_url=self._base_url, timeout=httpx.Timeout(STATUS_TIMEOUT)
        ) as client:
            status_data, messages_data = await asyncio.gather(
                self._get(client, "/get_status", params),
                self._get(client, "/get_all_messages", params),
            )
            if not (status_data.get("ok") and isinstance(status_data.get("data"), dict)):
                error = status_data.get("message") or status_data.get("error") or "Failed to get timer status"
                logger.error(f"[Stagetimer] Status fetch failed: {error}")
                return {"success": False, "configured": True, "error": error}

            status = status_data["data"]
            timer_params = dict(params)
            if status.get("timer_id"):
                timer_params["timer_id"] = status["timer_id"]
            # Without a timer_id the room's highlighted timer is returned
            timer_data = await self._get(client, "/get_timer", timer_params, timeout=TIMER_TIMEOUT)

        timer = timer_data.get("data") if timer_data.get("ok") else None
        timer = timer if isinstance(timer, dict) else {}
        body: Dict[str, Any] = {"success": True, "configured": True}
        body.update(timer_state(status))
        body.update(
            {
                "messages": active_messages(messages_data),
                "timerName": timer.get("name") or "",
                "speaker": timer.get("speaker") or "",
            }
        )
        return body

    async def _get(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Dict[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """GET one stagetimer endpoint; failures come back as `{"ok": False, "message": ...}`."""
        try:
            kwargs: Dict[str, Any] = {"params": params}
            if timeout is not None:
                kwargs["timeout"] = timeout
            response = await client.get(path, **kwargs)
        except httpx.TimeoutException:
            logger.warning(f"[Stagetimer] Timeout calling {path}")
            return {"ok": False, "message": "Request timeout"}
        except httpx.HTTPError as e:
            logger.error(f"[Stagetimer] Error calling {path}: {e}")
            return {"ok": False, "message": f"Failed to connect: {e}"}

        if response.status_code != 200:
            logger.error(f"[Stagetimer] {path} answered HTTP {response.status_code}")
            return {"ok": False, "message": f"HTTP {response.status_code}: {response.reason_phrase}"}
        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"[Stagetimer] Could not parse {path} response: {e}")
            return {"ok": False, "message": f"Failed to parse {path} response"}
        if not isinstance(payload, dict):
            return {"ok": False, "message": f"Unexpected {path} response"}
        if not payload.get("ok"):
            logger.debug(f"[Stagetimer] {path} returned an error: {payload.get('message')}")
        return payload
