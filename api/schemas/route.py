"""Route editing API schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.common import Coordinate, CoordinateModel, check_coordinate
from routeanim.route.transport import TransportMode


class CreateRouteRequest(BaseModel):
    name: str = Field("Untitled route", max_length=200)


class AddWaypointRequest(CoordinateModel):
    label: Optional[str] = Field(None, max_length=200)


class UpdateWaypointRequest(BaseModel):
    """Either field may be omitted; an empty label clears it."""
    coordinates: Optional[Coordinate] = None
    label: Optional[str] = Field(None, max_length=200)

    @field_validator("coordinates")
    @classmethod
    def coordinates_in_range(cls, value):
        return check_coordinate(value) if value is not None else value


class ReorderRequest(BaseModel):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class SegmentModeRequest(BaseModel):
    transport_mode: TransportMode


class SegmentPathRequest(BaseModel):
    path: List[Coordinate] = Field(..., min_length=2)
    distance: Optional[float] = Field(None, ge=0, description="Metres")
    duration: Optional[float] = Field(None, ge=0, description="Seconds")

    @field_validator("path")
    @classmethod
    def path_in_range(cls, value):
        for point in value:
            check_coordinate(point)
        return value


class PathNodeRequest(CoordinateModel):
    pass


class RefreshRequest(BaseModel):
    segment_ids: Optional[List[str]] = Field(
        None, description="Segments to re-route (all segments when omitted)"
    )
