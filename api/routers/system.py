"""
System / health API router.

Handles health checks and the root endpoint.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from api.middleware import get_request_id
from routeanim import __version__
from routeanim.capture.encoder import ffmpeg_available
from routeanim.resilience import CircuitState, get_all_circuit_breaker_status

router = APIRouter(tags=["System"])

logger = logging.getLogger(__name__)


@router.get("/")
async def root():
    """
    API root endpoint.

    Returns basic API information and available endpoint categories.
    """
    return {
        "name": "Route Animator API",
        "version": __version__,
        "status": "operational",
        "docs": "/api/docs",
        "endpoints": {
            "health": "/api/health",
            "route": "/api/route/...",
            "playback": "/api/playback/...",
            "export": "/api/export/...",
        },
    }


@router.get("/api/health")
async def health_check(request: Request):
    """
    Health check endpoint for load balancers.

    Returns:
        - status: healthy, or degraded when ffmpeg is missing or the routing
          circuit breaker is open
        - components: encoder availability, circuit breaker states, playback
    """
    breakers = get_all_circuit_breaker_status()
    encoder_ok = ffmpeg_available()
    routing_ok = all(b["state"] != CircuitState.OPEN.value for b in breakers.values())

    session = request.app.state.routeanim.session
    return {
        "status": "healthy" if encoder_ok and routing_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "components": {
            "encoder": {"ffmpeg": encoder_ok},
            "circuit_breakers": breakers,
            "playback": {
                "status": session.engine.status.value,
                "realtime": session.is_ticking,
            },
        },
        "request_id": get_request_id(),
    }
