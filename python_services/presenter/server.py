"""FastAPI application for the Control API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import debug_settings, set_verbose_logging
from shared.models import ReplicationMode

from .access import is_allowed
from .api import get_router
from .bridge import Dispatcher
from .controller import PresentationController
from .errors import ControlError
from .preferences import Preferences, PreferencesStore
from .replication import ReplicationManager
from .stagetimer import StagetimerClient

logger = logging.getLogger(__name__)

# Route names used by the existing Companion module
LEGACY_ROUTES = {
    "/api/status": "/status",
    "/api/open-presentation": "/open",
    "/api/open-presentation-with-notes": "/open-with-notes",
    "/api/open-preset": "/open-preset",
    "/api/close-presentation": "/close",
    "/api/reload-presentation": "/reload",
    "/api/next-slide": "/next",
    "/api/previous-slide": "/previous",
    "/api/go-to-slide": "/go-to-slide",
    "/api/toggle-video": "/toggle-video",
    "/api/open-speaker-notes": "/notes/open",
    "/api/close-speaker-notes": "/notes/close",
    "/api/scroll-notes-up": "/notes/scroll-up",
    "/api/scroll-notes-down": "/notes/scroll-down",
    "/api/zoom-in-notes": "/notes/zoom-in",
    "/api/zoom-out-notes": "/notes/zoom-out",
    "/api/get-speaker-notes": "/notes",
    "/api/presets": "/presets",
    "/api/preferences": "/preferences",
    "/api/displays": "/displays",
    "/api/backup-status": "/backup-status",
    "/api/health": "/health",
    "/api/stagetimer-settings": "/stagetimer-settings",
    "/api/get-stagetimer-status": "/stagetimer-status",
}


@dataclass
class PresenterServices:
    """Everything the route handlers need, stored on `app.state.presenter`."""

    controller: PresentationController
    preferences: PreferencesStore
    dispatcher: Dispatcher
    replication: ReplicationManager
    stagetimer: StagetimerClient
    service_name: str = "presenter-relay"
    version: str = "0.1.0"


def build_services(
    backend,
    scheduler,
    dispatcher: Dispatcher,
    preferences: PreferencesStore,
    *,
    transport=None,
    stagetimer_transport=None,
    service_name: str = "presenter-relay",
    version: str = "0.1.0",
    build_number: str = "unknown",
) -> PresenterServices:
    """Wire controller, replication and preferences around one window backend."""
    controller = PresentationController(
        backend, scheduler, preferences, version=version, build_number=build_number
    )
    replication = ReplicationManager(preferences, transport=transport)
    return PresenterServices(
        controller=controller,
        preferences=preferences,
        dispatcher=dispatcher,
        replication=replication,
        stagetimer=StagetimerClient(preferences, transport=stagetimer_transport),
        service_name=service_name,
        version=version,
    )


class LegacyRouteMiddleware:
    """Rewrites `/api/...` paths onto the canonical routes before routing."""

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            target = LEGACY_ROUTES.get(scope.get("path", ""))
            if target is not None:
                scope = dict(scope, path=target, raw_path=target.encode())
        await self.app(scope, receive, send)


def _apply_preferences(services: PresenterServices, prefs: Preferences) -> None:
    set_verbose_logging(prefs.verbose_logging)
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # Saved outside the server loop; polling follows at the next startup
        return
    if prefs.mode == ReplicationMode.PRIMARY:
        if not services.replication.polling:
            services.replication.start()
    else:
        services.replication.stop()


def create_app(services: PresenterServices) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 Starting {services.service_name} Control API")
        debug_settings()
        _apply_preferences(services, services.preferences.load())
        yield
        services.replication.stop()
        await services.replication.drain()
        logger.info(f"Shutting down {services.service_name} Control API")

    app = FastAPI(
        title="Presenter Relay Control API",
        description="Drives a full-screen Google Slides presentation and mirrors commands to backups",
        version=services.version,
        lifespan=lifespan,
    )
    app.state.presenter = services
    services.preferences.subscribe(lambda prefs: _apply_preferences(services, prefs))

    @app.middleware("http")
    async def controller_allowlist(request: Request, call_next):
        remote = request.client.host if request.client else None
        allowlist = services.preferences.load().controller_ips
        if not is_allowed(remote, allowlist):
            logger.warning(f"[API] Rejected request from {remote} to {request.url.path}")
            return JSONResponse(status_code=403, content={"error": "Forbidden"})
        return await call_next(request)

    app.add_middleware(LegacyRouteMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(ControlError)
    async def control_error_handler(request: Request, exc: ControlError):
        logger.info(f"[API] {request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"[API] Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    app.include_router(get_router())
    return app
