"""
Route editing API router.

Wraps the session's Route Model commands. Every edit answers with the
edit status and the resulting route document; edits that cannot be
applied map to 404 (no route / unknown id) or 400 (invalid input).
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from api.schemas import (
    AddWaypointRequest,
    CreateRouteRequest,
    EditResponse,
    PathNodeRequest,
    RefreshRequest,
    ReorderRequest,
    SegmentModeRequest,
    SegmentPathRequest,
    UpdateWaypointRequest,
)
from api.state import get_routing_client, get_session
from routeanim.route.document import RouteDocument, route_from_document, route_to_document
from routeanim.route.model import EditResult, EditStatus
from routeanim.route.routing import RoutingClient, refresh_segments
from routeanim.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/route", tags=["Route"])

_ERROR_CODES = {
    EditStatus.NO_ROUTE: 404,
    EditStatus.NOT_FOUND: 404,
    EditStatus.INVALID: 400,
}


def _route_document(session: Session):
    route = session.model.route
    return route_to_document(route) if route is not None else None


def edit_response(result: EditResult, session: Session) -> EditResponse:
    """Turn an EditResult into a response, raising for failed edits."""
    if not result.applied:
        detail = result.message or result.status.value.replace("_", " ")
        if result.target_id:
            detail = f"{detail}: {result.target_id}"
        raise HTTPException(status_code=_ERROR_CODES[result.status], detail=detail)

    return EditResponse(
        status=result.status.value,
        target_id=result.target_id,
        message=result.message,
        route=_route_document(session),
    )


# =============================================================================
# Route
# =============================================================================

@router.get("")
async def get_route(session: Session = Depends(get_session)):
    """Current route as a route document."""
    document = _route_document(session)
    if document is None:
        raise HTTPException(status_code=404, detail="No route loaded")
    return document


@router.post("", response_model=EditResponse, status_code=201)
async def create_route(request: CreateRouteRequest, session: Session = Depends(get_session)):
    """Replace the current route with a new empty one."""
    return edit_response(session.model.create_route(request.name), session)


@router.delete("", response_model=EditResponse)
async def clear_route(session: Session = Depends(get_session)):
    return edit_response(session.model.clear_route(), session)


@router.post("/import", response_model=EditResponse)
async def import_route(document: RouteDocument, session: Session = Depends(get_session)):
    """
    Load a route document.

    The document is validated before the current route is replaced;
    timestamps are regenerated.
    """
    route = route_from_document(document)
    return edit_response(session.model.load_route(route), session)


@router.get("/export")
async def export_route(session: Session = Depends(get_session)):
    """Current route as a downloadable JSON document."""
    document = _route_document(session)
    if document is None:
        raise HTTPException(status_code=404, detail="No route loaded")
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="route-{document["id"]}.json"'},
    )


# =============================================================================
# Waypoints
# =============================================================================

@router.post("/waypoints", response_model=EditResponse, status_code=201)
async def add_waypoint(request: AddWaypointRequest, session: Session = Depends(get_session)):
    """Append a waypoint; a segment to it is created from the previous one."""
    result = session.model.add_waypoint(request.coordinates, label=request.label)
    return edit_response(result, session)


@router.patch("/waypoints/{waypoint_id}", response_model=EditResponse)
async def update_waypoint(
    waypoint_id: str,
    request: UpdateWaypointRequest,
    session: Session = Depends(get_session),
):
    """Move and/or relabel a waypoint."""
    result = session.model.update_waypoint(
        waypoint_id, coordinates=request.coordinates, label=request.label
    )
    return edit_response(result, session)


@router.delete("/waypoints/{waypoint_id}", response_model=EditResponse)
async def remove_waypoint(waypoint_id: str, session: Session = Depends(get_session)):
    return edit_response(session.model.remove_waypoint(waypoint_id), session)


@router.post("/waypoints/reorder", response_model=EditResponse)
async def reorder_waypoints(request: ReorderRequest, session: Session = Depends(get_session)):
    result = session.model.reorder_waypoints(request.from_index, request.to_index)
    return edit_response(result, session)


# =============================================================================
# Segments
# =============================================================================

@router.put("/segments/{segment_id}/mode", response_model=EditResponse)
async def set_segment_mode(
    segment_id: str,
    request: SegmentModeRequest,
    session: Session = Depends(get_session),
):
    result = session.model.set_segment_transport_mode(segment_id, request.transport_mode)
    return edit_response(result, session)


@router.put("/segments/{segment_id}/path", response_model=EditResponse)
async def set_segment_path(
    segment_id: str,
    request: SegmentPathRequest,
    session: Session = Depends(get_session),
):
    """Replace a segment's geometry; its ends are pinned to the waypoints."""
    result = session.model.set_segment_path(
        segment_id, request.path, distance=request.distance, duration=request.duration
    )
    return edit_response(result, session)


@router.post("/segments/{segment_id}/nodes", response_model=EditResponse)
async def insert_path_node(
    segment_id: str,
    request: PathNodeRequest,
    session: Session = Depends(get_session),
):
    """Insert a shaping node at the closest position along the segment path."""
    result = session.model.insert_path_node(segment_id, request.coordinates)
    return edit_response(result, session)


@router.post("/segments/refresh", response_model=List[EditResponse])
def refresh_route_segments(
    request: RefreshRequest,
    session: Session = Depends(get_session),
    client: RoutingClient = Depends(get_routing_client),
):
    """
    Re-route segments through the routing oracle.

    Runs in the thread pool since lookups block on HTTP. Plane segments
    get an arc; unreachable or failing lookups fall back to a straight line.
    """
    results = refresh_segments(session.model, client, request.segment_ids)
    if len(results) == 1 and results[0].status == EditStatus.NO_ROUTE:
        raise HTTPException(status_code=404, detail="No route loaded")

    document = _route_document(session)
    return [
        EditResponse(
            status=r.status.value,
            target_id=r.target_id,
            message=r.message,
            route=document,
        )
        for r in results
    ]
