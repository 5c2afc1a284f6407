"""
FastAPI backend for the Route Animator.

Provides REST API endpoints for:
- Route editing (waypoints, segments, transport modes, route documents)
- Playback control and frame sampling
- Video export of the animated route
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import settings
from api.middleware import get_request_id, setup_middleware
from api.routers import export, playback, route, system
from api.state import AppState, ExportManager
from routeanim import __version__
from routeanim.capture import CaptureError
from routeanim.config import settings as core_settings
from routeanim.route.document import DocumentError
from routeanim.route.routing import RoutingClient
from routeanim.session import Session

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(message)s',  # JSON logs are self-contained
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    state: AppState = application.state.routeanim
    if settings.realtime_playback:
        state.session.start_ticking(core_settings.refresh_hz)
    logger.info(f"Route Animator API {__version__} started")
    try:
        yield
    finally:
        state.exports.shutdown()
        state.session.close()
        logger.info("Route Animator API stopped")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    session: Optional[Session] = None,
    exports: Optional[ExportManager] = None,
    routing: Optional[RoutingClient] = None,
) -> FastAPI:
    """
    Application factory for the Route Animator API.

    Args:
        session: Session to serve (a fresh one by default)
        exports: Export manager (writes to EXPORT_DIR by default)
        routing: Routing oracle client (OSRM from settings by default)

    Returns:
        FastAPI: Configured application instance
    """
    application = FastAPI(
        title="Route Animator API",
        description="""
## Route Animator API

Build multi-leg travel routes, play back an animated traversal of them
and export the animation as video.

### Features
- Waypoint and segment editing with per-segment transport modes
- Road routing through OSRM, great-circle style arcs for flights
- Real-time playback with scrubbing, speed and duration control
- WebM export rendered off-line from an independent copy of the route
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    setup_middleware(application, debug=settings.is_development)

    # CORS middleware - use configured origins only (NO WILDCARDS)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )

    application.state.routeanim = AppState(
        session=session or Session(),
        exports=exports or ExportManager(settings.export_dir, max_jobs=settings.export_history),
        routing=routing or RoutingClient(),
    )

    @application.exception_handler(CaptureError)
    async def capture_error_handler(request: Request, exc: CaptureError):
        logger.warning(f"Export refused on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=409,
            content={"error": "Capture unavailable", "detail": str(exc), "request_id": get_request_id()},
        )

    @application.exception_handler(DocumentError)
    async def document_error_handler(request: Request, exc: DocumentError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid route document", "detail": str(exc), "request_id": get_request_id()},
        )

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    application.include_router(system.router)
    application.include_router(route.router)
    application.include_router(playback.router)
    application.include_router(export.router)

    return application


# Create the application
app = create_app()
