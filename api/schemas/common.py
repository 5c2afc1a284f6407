"""Common shared schemas used across multiple domains."""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

# GeoJSON order: [longitude, latitude]
Coordinate = Tuple[float, float]


def check_coordinate(value: Coordinate) -> Coordinate:
    lon, lat = value
    if not -180.0 <= lon <= 180.0:
        raise ValueError(f"longitude out of range: {lon}")
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"latitude out of range: {lat}")
    return value


class CoordinateModel(BaseModel):
    coordinates: Coordinate = Field(..., description="[longitude, latitude]")

    _range = field_validator("coordinates")(check_coordinate)


class EditResponse(BaseModel):
    """Outcome of a route edit plus the route it left behind."""
    status: str
    target_id: Optional[str] = None
    message: Optional[str] = None
    route: Optional[Dict[str, Any]] = None
