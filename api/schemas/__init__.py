"""
Route Animator API Pydantic schemas.

Re-exports all schema classes:
    from api.schemas import AddWaypointRequest, ExportRequest, ...
"""

# Common
from .common import Coordinate, CoordinateModel, EditResponse  # noqa: F401

# Route
from .route import (  # noqa: F401
    CreateRouteRequest,
    AddWaypointRequest,
    UpdateWaypointRequest,
    ReorderRequest,
    SegmentModeRequest,
    SegmentPathRequest,
    PathNodeRequest,
    RefreshRequest,
)

# Playback
from .playback import (  # noqa: F401
    ScrubRequest,
    SpeedRequest,
    DurationRequest,
    AnimationStateResponse,
    FrameResponse,
)

# Export
from .export import ExportRequest, ExportJobResponse  # noqa: F401
