from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Request

from shared.models import (
    BackupStatusResponse,
    CommandResponse,
    ErrorResponse,
    GoToSlideRequest,
    GoToSlideResponse,
    HealthCheck,
    OpenPresetRequest,
    OpenRequest,
    PresetsUpdate,
    StagetimerSettings,
)

from .controller import parse_preset_slot, parse_slide_number, require_url
from .errors import InvalidCommandError

if TYPE_CHECKING:
    from .server import PresenterServices

logger = logging.getLogger(__name__)

# Never writable over HTTP; edited only from the desktop side
PROTECTED_PREFERENCES = ("controllerIps", "controller_ips")


def _services(request: Request) -> "PresenterServices":
    return request.app.state.presenter


async def _run(
    request: Request,
    fn: Callable[..., Any],
    *args: Any,
    replicate: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> Any:
    """Run a controller call on the GUI thread, then mirror it to backups."""
    services = _services(request)
    result = await services.dispatcher.call(fn, *args, **kwargs)
    if replicate:
        services.replication.forward(replicate, payload)
    return result


def get_router() -> APIRouter:
    router = APIRouter(
        tags=["presenter"],
        responses={code: {"model": ErrorResponse} for code in (400, 403, 404, 500)},
    )

    # ------------------------------------------------------------------
    # Status ------------------------------------------------------------
    # ------------------------------------------------------------------

    @router.get("/status")
    async def status(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.status)

    @router.get("/health", response_model=HealthCheck)
    async def health(request: Request):
        services = _services(request)
        return HealthCheck(service=services.service_name, version=services.version)

    # ------------------------------------------------------------------
    # Session -----------------------------------------------------------
    # ------------------------------------------------------------------

    @router.post("/open", response_model=CommandResponse)
    async def open_presentation(request: Request, req: Optional[OpenRequest] = None):
        url = require_url((req or OpenRequest()).url)
        controller = _services(request).controller
        logger.info(f"[API] Open presentation: {url}")
        return await _run(request, controller.open, url, replicate="/open", payload={"url": url})

    @router.post("/open-with-notes", response_model=CommandResponse)
    async def open_presentation_with_notes(request: Request, req: Optional[OpenRequest] = None):
        url = require_url((req or OpenRequest()).url)
        controller = _services(request).controller
        logger.info(f"[API] Open presentation with notes: {url}")
        return await _run(
            request, controller.open, url, with_notes=True,
            replicate="/open-with-notes", payload={"url": url},
        )

    @router.post("/open-preset", response_model=CommandResponse)
    async def open_preset(request: Request, req: Optional[OpenPresetRequest] = None):
        req = req or OpenPresetRequest()
        slot = parse_preset_slot(req.preset)
        controller = _services(request).controller
        return await _run(
            request, controller.open_preset, slot, with_notes=req.with_notes,
            replicate="/open-preset", payload={"preset": slot, "withNotes": req.with_notes},
        )

    @router.post("/close", response_model=CommandResponse)
    async def close_presentation(request: Request, background: BackgroundTasks):
        services = _services(request)
        # Answer first; teardown runs once the response is sent
        background.add_task(services.dispatcher.call, services.controller.close)
        services.replication.forward("/close", {})
        return {"success": True, "message": "Presentation closed"}

    @router.post("/reload", response_model=CommandResponse)
    async def reload_presentation(request: Request):
        # Local only: reload recovers this machine without touching the backups
        controller = _services(request).controller
        return await _run(request, controller.reload)

    # ------------------------------------------------------------------
    # Navigation --------------------------------------------------------
    # ------------------------------------------------------------------

    @router.post("/next", response_model=CommandResponse)
    async def next_slide(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.next_slide, replicate="/next", payload={})

    @router.post("/previous", response_model=CommandResponse)
    async def previous_slide(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.previous_slide, replicate="/previous", payload={})

    @router.post("/go-to-slide", response_model=GoToSlideResponse)
    async def go_to_slide(request: Request, req: Optional[GoToSlideRequest] = None):
        slide = parse_slide_number((req or GoToSlideRequest()).slide)
        services = _services(request)
        result = await services.dispatcher.call(services.controller.go_to_slide, slide)
        # Backups get the clamped target, not the raw request
        services.replication.forward("/go-to-slide", {"slide": result["toSlide"]})
        return result

    @router.post("/toggle-video", response_model=CommandResponse)
    async def toggle_video(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.toggle_video, replicate="/toggle-video", payload={})

    # ------------------------------------------------------------------
    # Speaker notes -----------------------------------------------------
    # ------------------------------------------------------------------

    @router.get("/notes")
    async def speaker_notes(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.speaker_notes)

    @router.post("/notes/open", response_model=CommandResponse)
    async def open_notes(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.open_notes, replicate="/notes/open", payload={})

    @router.post("/notes/close", response_model=CommandResponse)
    async def close_notes(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.close_notes, replicate="/notes/close", payload={})

    @router.post("/notes/scroll-up", response_model=CommandResponse)
    async def scroll_notes_up(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.scroll_notes, -1, replicate="/notes/scroll-up", payload={})

    @router.post("/notes/scroll-down", response_model=CommandResponse)
    async def scroll_notes_down(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.scroll_notes, 1, replicate="/notes/scroll-down", payload={})

    @router.post("/notes/zoom-in", response_model=CommandResponse)
    async def zoom_notes_in(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.zoom_notes, 1, replicate="/notes/zoom-in", payload={})

    @router.post("/notes/zoom-out", response_model=CommandResponse)
    async def zoom_notes_out(request: Request):
        controller = _services(request).controller
        return await _run(request, controller.zoom_notes, -1, replicate="/notes/zoom-out", payload={})

    # ------------------------------------------------------------------
    # Configuration -----------------------------------------------------
    # ------------------------------------------------------------------

    @router.get("/presets")
    async def get_presets(request: Request):
        return _services(request).preferences.load().presets()

    @router.post("/presets")
    async def save_presets(request: Request, req: PresetsUpdate):
        update = req.model_dump(exclude_none=True)
        prefs = _services(request).preferences.set(update)
        logger.info(f"[API] Presets saved: {sorted(update)}")
        return {"success": True, "message": "Presets saved", "saved": prefs.presets()}

    @router.get("/preferences")
    async def get_preferences(request: Request):
        return _services(request).preferences.get()

    @router.post("/preferences", response_model=CommandResponse)
    async def save_preferences(request: Request, payload: Dict[str, Any] = Body(...)):
        if not isinstance(payload, dict):
            raise InvalidCommandError("Preferences must be a JSON object")
        update = {k: v for k, v in payload.items() if k not in PROTECTED_PREFERENCES}
        dropped = set(payload) - set(update)
        if dropped:
            logger.warning(f"[API] Ignoring protected preferences: {sorted(dropped)}")
        _services(request).preferences.set(update)
        return {"success": True, "message": "Preferences saved"}

    @router.get("/displays")
    async def get_displays(request: Request):
        services = _services(request)
        displays = await services.dispatcher.call(services.controller.displays.list_displays)
        return [display.model_dump() for display in displays]

    @router.get("/backup-status", response_model=BackupStatusResponse)
    async def backup_status(request: Request):
        replication = _services(request).replication
        return BackupStatusResponse(backups=await replication.check_all())

    # ------------------------------------------------------------------
    # Stagetimer --------------------------------------------------------
    # ------------------------------------------------------------------

    @router.get("/stagetimer-settings")
    async def get_stagetimer_settings(request: Request):
        return _services(request).stagetimer.settings()

    @router.post("/stagetimer-settings", response_model=CommandResponse)
    async def save_stagetimer_settings(request: Request, req: StagetimerSettings):
        _services(request).stagetimer.save_settings(
            room_id=req.room_id, api_key=req.api_key, enabled=req.enabled, visible=req.visible
        )
        return {"success": True, "message": "Stagetimer settings saved"}

    @router.get("/stagetimer-status")
    async def stagetimer_status(request: Request):
        return await _services(request).stagetimer.status()

    return router
