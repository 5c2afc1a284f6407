"""Route entities, the Route Model and route geometry lookups."""

from .transport import (
    DEFAULT_TRANSPORT_MODE,
    TRANSPORT_MODES,
    TRANSPORT_STYLES,
    TransportMode,
    TransportStyle,
    get_transport_style,
)
from .models import Route, Segment, Waypoint, generate_id
from .model import EditResult, EditStatus, RouteModel, check_route, rebuild_segments

__all__ = [
    "DEFAULT_TRANSPORT_MODE",
    "TRANSPORT_MODES",
    "TRANSPORT_STYLES",
    "TransportMode",
    "TransportStyle",
    "get_transport_style",
    "Route",
    "Segment",
    "Waypoint",
    "generate_id",
    "EditResult",
    "EditStatus",
    "RouteModel",
    "check_route",
    "rebuild_segments",
]
