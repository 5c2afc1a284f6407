"""
Route entities.

Waypoints, segments and routes are immutable; edits build new instances
with ``dataclasses.replace`` so that a reader holding a ``Route`` always
sees one consistent version of it.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from routeanim.geometry import Coordinates
from routeanim.route.transport import DEFAULT_TRANSPORT_MODE, TransportMode

Path = Tuple[Coordinates, ...]


def generate_id() -> str:
    """Short random identifier for waypoints, segments and routes."""
    return uuid.uuid4().hex[:9]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_coordinates(value) -> Coordinates:
    """Coerce a (lon, lat) pair into a tuple of floats."""
    lon, lat = value
    return (float(lon), float(lat))


def as_path(points: Iterable) -> Path:
    return tuple(as_coordinates(p) for p in points)


@dataclass(frozen=True)
class Waypoint:
    """A user-placed point on the route."""
    id: str
    coordinates: Coordinates
    order: int
    label: Optional[str] = None


@dataclass(frozen=True)
class Segment:
    """The travel leg between two consecutive waypoints."""
    id: str
    start_waypoint_id: str
    end_waypoint_id: str
    transport_mode: TransportMode = DEFAULT_TRANSPORT_MODE
    path: Path = ()
    distance: Optional[float] = None  # metres
    duration: Optional[float] = None  # seconds

    def connects(self, start_id: str, end_id: str, either_direction: bool = False) -> bool:
        if self.start_waypoint_id == start_id and self.end_waypoint_id == end_id:
            return True
        return either_direction and self.start_waypoint_id == end_id and self.end_waypoint_id == start_id

    def reversed(self) -> "Segment":
        """Same leg travelled the other way."""
        return replace(
            self,
            start_waypoint_id=self.end_waypoint_id,
            end_waypoint_id=self.start_waypoint_id,
            path=tuple(reversed(self.path)),
        )


@dataclass(frozen=True)
class Route:
    """A named multi-leg route."""
    id: str
    name: str
    waypoints: Tuple[Waypoint, ...] = ()
    segments: Tuple[Segment, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def new(cls, name: str) -> "Route":
        now = utc_now()
        return cls(id=generate_id(), name=name, created_at=now, updated_at=now)

    @property
    def segment_count(self) -> int:
        return len(self.segments)

    def waypoint_index(self, waypoint_id: str) -> int:
        for i, wp in enumerate(self.waypoints):
            if wp.id == waypoint_id:
                return i
        return -1

    def segment_index(self, segment_id: str) -> int:
        for i, seg in enumerate(self.segments):
            if seg.id == segment_id:
                return i
        return -1

    def get_waypoint(self, waypoint_id: str) -> Optional[Waypoint]:
        i = self.waypoint_index(waypoint_id)
        return self.waypoints[i] if i >= 0 else None

    def get_segment(self, segment_id: str) -> Optional[Segment]:
        i = self.segment_index(segment_id)
        return self.segments[i] if i >= 0 else None

    def touch(self, **changes) -> "Route":
        """Copy with the given fields changed and a fresh ``updated_at``."""
        return replace(self, updated_at=utc_now(), **changes)
