"""
Persisted route documents.

A route document is a plain JSON-compatible dict with camelCase keys:

    {
        "id": "k3j9x0a1b",
        "name": "Madrid to Paris",
        "waypoints": [{"id": ..., "coordinates": [lon, lat], "label": ..., "order": 0}, ...],
        "segments": [{"id": ..., "startWaypointId": ..., "endWaypointId": ...,
                      "transportMode": "car", "path": [[lon, lat], ...],
                      "distance": 1270000.0, "duration": 41000.0}, ...],
        "createdAt": "2026-01-01T00:00:00+00:00",
        "updatedAt": "2026-01-01T00:00:00+00:00"
    }

Documents round-trip losslessly except for the timestamps, which are
regenerated when a document is loaded.
"""

import json
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from routeanim.route.model import check_route
from routeanim.route.models import Route, Segment, Waypoint, utc_now
from routeanim.route.transport import DEFAULT_TRANSPORT_MODE, TransportMode

logger = logging.getLogger(__name__)


class DocumentError(ValueError):
    """Raised when a route document cannot be turned into a valid route."""
    pass


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_coordinates(value: Tuple[float, float]) -> Tuple[float, float]:
    if not all(math.isfinite(v) for v in value):
        raise ValueError(f"coordinates must be finite, got {value}")
    return value


class WaypointDocument(_DocumentModel):
    id: str = Field(..., min_length=1)
    coordinates: Tuple[float, float]
    label: Optional[str] = None
    order: int = Field(0, ge=0)

    _finite = field_validator("coordinates")(_check_coordinates)


class SegmentDocument(_DocumentModel):
    id: str = Field(..., min_length=1)
    start_waypoint_id: str
    end_waypoint_id: str
    transport_mode: TransportMode = DEFAULT_TRANSPORT_MODE
    path: List[Tuple[float, float]] = Field(..., min_length=2)
    distance: Optional[float] = Field(None, ge=0, description="Metres")
    duration: Optional[float] = Field(None, ge=0, description="Seconds")

    @field_validator("path")
    @classmethod
    def path_is_finite(cls, value):
        for point in value:
            _check_coordinates(point)
        return value


class RouteDocument(_DocumentModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    waypoints: List[WaypointDocument] = Field(default_factory=list)
    segments: List[SegmentDocument] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def route_to_document(route: Route) -> dict:
    """Serialize a route into a JSON-compatible document."""
    doc = RouteDocument(
        id=route.id,
        name=route.name,
        waypoints=[
            WaypointDocument(id=wp.id, coordinates=wp.coordinates, label=wp.label, order=wp.order)
            for wp in route.waypoints
        ],
        segments=[
            SegmentDocument(
                id=seg.id,
                start_waypoint_id=seg.start_waypoint_id,
                end_waypoint_id=seg.end_waypoint_id,
                transport_mode=seg.transport_mode,
                path=list(seg.path),
                distance=seg.distance,
                duration=seg.duration,
            )
            for seg in route.segments
        ],
        created_at=route.created_at,
        updated_at=route.updated_at,
    )
    return doc.model_dump(mode="json", by_alias=True)


def route_from_document(document: Union[dict, RouteDocument]) -> Route:
    """
    Build a route from a document.

    Raises:
        DocumentError: If the document is malformed or describes a route
            whose segments do not line up with its waypoints
    """
    if isinstance(document, RouteDocument):
        doc = document
    else:
        try:
            doc = RouteDocument.model_validate(document)
        except ValidationError as e:
            raise DocumentError(f"Invalid route document: {e}") from e

    waypoints = sorted(doc.waypoints, key=lambda wp: wp.order)
    now = utc_now()
    route = Route(
        id=doc.id,
        name=doc.name,
        waypoints=tuple(
            Waypoint(
                id=wp.id,
                coordinates=(float(wp.coordinates[0]), float(wp.coordinates[1])),
                order=i,
                label=wp.label,
            )
            for i, wp in enumerate(waypoints)
        ),
        segments=tuple(
            Segment(
                id=seg.id,
                start_waypoint_id=seg.start_waypoint_id,
                end_waypoint_id=seg.end_waypoint_id,
                transport_mode=seg.transport_mode,
                path=tuple((float(lon), float(lat)) for lon, lat in seg.path),
                distance=seg.distance,
                duration=seg.duration,
            )
            for seg in doc.segments
        ),
        created_at=now,
        updated_at=now,
    )

    problem = check_route(route)
    if problem:
        raise DocumentError(f"Inconsistent route document {doc.id}: {problem}")
    return route


def save_route(route: Route, file_path: Union[str, Path]) -> Path:
    """Write a route document as JSON."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(json.dumps(route_to_document(route), indent=2), encoding="utf-8")
    logger.info(f"Saved route {route.id} to {file_path}")
    return file_path


def load_route(file_path: Union[str, Path]) -> Route:
    """
    Read a route document from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        DocumentError: If the content is not a valid route document
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Route document not found: {file_path}")

    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DocumentError(f"{file_path} is not valid JSON: {e}") from e

    route = route_from_document(data)
    logger.info(f"Loaded route {route.id} from {file_path}")
    return route
