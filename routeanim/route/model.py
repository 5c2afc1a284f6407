"""
Route Model.

Owns the active ``Route`` and applies edit commands to it. Each command
builds a complete new route and commits it with a single reference swap,
so either the whole edit lands or nothing changes. Commands never raise
for structural problems; they report an ``EditResult`` instead.

Structural edits (create, load, clear, add/remove/reorder waypoint)
notify structure listeners after commit. The playback engine registers
one to rewind itself.
"""

import math
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence

from routeanim.geometry import Coordinates, insertion_index
from routeanim.route.models import (
    Route,
    Segment,
    Waypoint,
    as_coordinates,
    as_path,
    generate_id,
)
from routeanim.route.transport import DEFAULT_TRANSPORT_MODE, TransportMode

logger = logging.getLogger(__name__)

StructureListener = Callable[[Optional[Route]], None]


class EditStatus(str, Enum):
    """Outcome of a Route Model command."""
    APPLIED = "applied"
    NO_ROUTE = "no_route"
    NOT_FOUND = "not_found"
    INVALID = "invalid"


@dataclass(frozen=True)
class EditResult:
    status: EditStatus
    target_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status is EditStatus.APPLIED


def _finite(coord: Coordinates) -> bool:
    return math.isfinite(coord[0]) and math.isfinite(coord[1])


def _parse_coordinates(value) -> Optional[Coordinates]:
    try:
        coord = as_coordinates(value)
    except (TypeError, ValueError):
        return None
    return coord if _finite(coord) else None


def _inherit_mode(segments: Sequence[Segment], start_id: str, end_id: str) -> TransportMode:
    """
    Transport mode for a synthesized segment between two waypoints.

    Prefers the leg that used to arrive at the start waypoint, then the
    leg that used to leave the end waypoint, then any other leg touching
    either endpoint.
    """
    candidates = (
        lambda s: s.end_waypoint_id == start_id,
        lambda s: s.start_waypoint_id == end_id,
        lambda s: s.start_waypoint_id == start_id,
        lambda s: s.end_waypoint_id == end_id,
    )
    for matches in candidates:
        for seg in segments:
            if matches(seg):
                return seg.transport_mode
    return DEFAULT_TRANSPORT_MODE


def rebuild_segments(
    old_segments: Sequence[Segment],
    waypoints: Sequence[Waypoint],
    either_direction: bool = False,
) -> tuple:
    """
    Segment list for a new waypoint order.

    Existing legs between the same pair of waypoints are reused (in either
    direction when ``either_direction`` is set, flipped to match the new
    order). Missing legs become straight lines.
    """
    segments = []
    for start, end in zip(waypoints, waypoints[1:]):
        existing = next(
            (s for s in old_segments if s.connects(start.id, end.id, either_direction)),
            None,
        )
        if existing is not None:
            if existing.start_waypoint_id != start.id:
                existing = existing.reversed()
            segments.append(existing)
            continue

        segments.append(Segment(
            id=generate_id(),
            start_waypoint_id=start.id,
            end_waypoint_id=end.id,
            transport_mode=_inherit_mode(old_segments, start.id, end.id),
            path=(start.coordinates, end.coordinates),
        ))
    return tuple(segments)


def _reindex(waypoints: Sequence[Waypoint]) -> tuple:
    return tuple(
        wp if wp.order == i else replace(wp, order=i)
        for i, wp in enumerate(waypoints)
    )


def check_route(route: Route) -> Optional[str]:
    """Return a description of the first broken route invariant, or None."""
    expected = max(len(route.waypoints) - 1, 0)
    if len(route.segments) != expected:
        return f"expected {expected} segments, found {len(route.segments)}"

    for i, seg in enumerate(route.segments):
        start, end = route.waypoints[i], route.waypoints[i + 1]
        if not seg.connects(start.id, end.id):
            return f"segment {seg.id} does not connect waypoints {start.id} and {end.id}"
        if len(seg.path) < 2:
            return f"segment {seg.id} has fewer than two path points"
        if seg.path[0] != start.coordinates or seg.path[-1] != end.coordinates:
            return f"segment {seg.id} path does not end at its waypoints"
    return None


class RouteModel:
    """
    Thread-safe owner of the active route.

    All commands take the model lock; pass a shared ``RLock`` to serialize
    route edits together with playback updates.
    """

    def __init__(self, route: Optional[Route] = None, lock: Optional[threading.RLock] = None):
        self._lock = lock if lock is not None else threading.RLock()
        self._route = route
        self._listeners: List[StructureListener] = []

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def route(self) -> Optional[Route]:
        """Current route (an immutable snapshot)."""
        with self._lock:
            return self._route

    @property
    def segment_count(self) -> int:
        with self._lock:
            return len(self._route.segments) if self._route is not None else 0

    @contextmanager
    def update_lock(self):
        """
        Hold the model lock across several commands.

        Usage:
            with model.update_lock():
                model.add_waypoint((-3.70, 40.42))
                model.add_waypoint((2.35, 48.86))
        """
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: StructureListener) -> None:
        with self._lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def remove_listener(self, callback: StructureListener) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _commit(self, route: Optional[Route], structural: bool) -> None:
        self._route = route
        if not structural:
            return

        for listener in list(self._listeners):
            try:
                listener(route)
            except Exception as e:
                logger.error(f"Structure listener {listener!r} failed: {e}")

    # ------------------------------------------------------------------
    # Route lifecycle
    # ------------------------------------------------------------------

    def create_route(self, name: str = "Untitled route") -> EditResult:
        """Start a new empty route, replacing any current one."""
        route = Route.new(name)
        with self._lock:
            self._commit(route, structural=True)
        logger.info(f"Created route '{name}' ({route.id})")
        return EditResult(EditStatus.APPLIED, route.id)

    def load_route(self, route: Route) -> EditResult:
        """Replace the current route with a complete one."""
        problem = check_route(route)
        if problem:
            logger.warning(f"Rejected route {route.id}: {problem}")
            return EditResult(EditStatus.INVALID, route.id, problem)

        route = replace(route, waypoints=_reindex(route.waypoints))
        with self._lock:
            self._commit(route, structural=True)
        logger.info(
            f"Loaded route '{route.name}' with {len(route.waypoints)} waypoints, "
            f"{len(route.segments)} segments"
        )
        return EditResult(EditStatus.APPLIED, route.id)

    def clear_route(self) -> EditResult:
        with self._lock:
            if self._route is None:
                return EditResult(EditStatus.NO_ROUTE)
            route_id = self._route.id
            self._commit(None, structural=True)
        logger.info(f"Cleared route {route_id}")
        return EditResult(EditStatus.APPLIED, route_id)

    # ------------------------------------------------------------------
    # Waypoints
    # ------------------------------------------------------------------

    def add_waypoint(self, coordinates, label: Optional[str] = None) -> EditResult:
        """
        Append a waypoint.

        When the route already has waypoints, a straight default-mode
        segment from the previous last waypoint is appended as well.

        Returns:
            EditResult whose target_id is the new waypoint id
        """
        coord = _parse_coordinates(coordinates)

        with self._lock:
            route = self._route
            if route is None:
                return EditResult(EditStatus.NO_ROUTE)
            if coord is None:
                return EditResult(EditStatus.INVALID, message=f"bad coordinates {coordinates!r}")

            waypoint = Waypoint(
                id=generate_id(),
                coordinates=coord,
                order=len(route.waypoints),
                label=label,
            )

            segments = route.segments
            if route.waypoints:
                previous = route.waypoints[-1]
                segments = segments + (Segment(
                    id=generate_id(),
                    start_waypoint_id=previous.id,
                    end_waypoint_id=waypoint.id,
                    path=(previous.coordinates, coord),
                ),)

            self._commit(
                route.touch(waypoints=route.waypoints + (waypoint,), segments=segments),
                structural=True,
            )

        logger.info(f"Added waypoint {waypoint.id} at {coord}")
        return EditResult(EditStatus.APPLIED, waypoint.id)

    def update_waypoint(self, waypoint_id: str, coordinates=None, label: Optional[str] = None) -> EditResult:
        """
        Move or relabel a waypoint.

        Moving drags the matching ends of the adjacent segment paths along.
        An empty label clears it. Playback is not rewound.
        """
        coord = None
        if coordinates is not None:
            coord = _parse_coordinates(coordinates)
            if coord is None:
                return EditResult(EditStatus.INVALID, waypoint_id, f"bad coordinates {coordinates!r}")

        with self._lock:
            route = self._route
            if route is None:
                return EditResult(EditStatus.NO_ROUTE)
            index = route.waypoint_index(waypoint_id)
            if index < 0:
                return EditResult(EditStatus.NOT_FOUND, waypoint_id)

            waypoint = route.waypoints[index]
            changes = {}
            if coord is not None:
                changes["coordinates"] = coord
            if label is not None:
                changes["label"] = label or None
            waypoint = replace(waypoint, **changes)

            segments = route.segments
            if coord is not None:
                segments = tuple(self._move_endpoint(seg, waypoint_id, coord) for seg in segments)

            waypoints = route.waypoints[:index] + (waypoint,) + route.waypoints[index + 1:]
            self._commit(route.touch(waypoints=waypoints, segments=segments), structural=False)

        return EditResult(EditStatus.APPLIED, waypoint_id)

    @staticmethod
    def _move_endpoint(segment: Segment, waypoint_id: str, coord: Coordinates) -> Segment:
        path = segment.path
        if segment.start_waypoint_id == waypoint_id:
            path = (coord,) + path[1:]
        if segment.end_waypoint_id == waypoint_id:
            path = path[:-1] + (coord,)
        return segment if path is segment.path else replace(segment, path=path)

    def remove_waypoint(self, waypoint_id: str) -> EditResult:
        """
        Remove a waypoint and rebuild every segment.

        Legs between pairs that are still consecutive keep their identity;
        the leg bridging the gap is a new straight segment that inherits a
        transport mode from a neighbouring leg.
        """
        with self._lock:
            route = self._route
            if route is None:
                return EditResult(EditStatus.NO_ROUTE)
            index = route.waypoint_index(waypoint_id)
            if index < 0:
                return EditResult(EditStatus.NOT_FOUND, waypoint_id)

            waypoints = _reindex(route.waypoints[:index] + route.waypoints[index + 1:])
            segments = rebuild_segments(route.segments, waypoints)
            self._commit(route.touch(waypoints=waypoints, segments=segments), structural=True)

        logger.info(f"Removed waypoint {waypoint_id}, {len(segments)} segments remain")
        return EditResult(EditStatus.APPLIED, waypoint_id)

    def reorder_waypoints(self, from_index: int, to_index: int) -> EditResult:
        """
        Move the waypoint at ``from_index`` to ``to_index``.

        Segments are rebuilt; an existing leg is reused for a pair in either
        direction, its path reversed when travelled backwards.
        """
        with self._lock:
            route = self._route
            if route is None:
                return EditResult(EditStatus.NO_ROUTE)

            count = len(route.waypoints)
            if not (0 <= from_index < count and 0 <= to_index < count):
                return EditResult(
                    EditStatus.INVALID,
                    message=f"indices ({from_index}, {to_index}) out of range for {count} waypoints",
                )

            waypoints = list(route.waypoints)
            moved = waypoints.pop(from_index)
            waypoints.insert(to_index, moved)
            waypoints = _reindex(waypoints)

            segments = rebuild_segments(route.segments, waypoints, either_direction=True)
            self._commit(route.touch(waypoints=waypoints, segments=segments), structural=True)

        logger.info(f"Moved waypoint {moved.id} from {from_index} to {to_index}")
        return EditResult(EditStatus.APPLIED, moved.id)

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    def _replace_segment(self, segment_id: str, build: Callable[[Route, Segment], object]) -> EditResult:
        with self._lock:
            route = self._route
            if route is None:
                return EditResult(EditStatus.NO_ROUTE)
            index = route.segment_index(segment_id)
            if index < 0:
                return EditResult(EditStatus.NOT_FOUND, segment_id)

            updated = build(route, route.segments[index])
            if isinstance(updated, EditResult):
                return updated

            segments = route.segments[:index] + (updated,) + route.segments[index + 1:]
            self._commit(route.touch(segments=segments), structural=False)

        return EditResult(EditStatus.APPLIED, segment_id)

    def set_segment_transport_mode(self, segment_id: str, mode) -> EditResult:
        try:
            mode = TransportMode(mode)
        except ValueError:
            return EditResult(EditStatus.INVALID, segment_id, f"unknown transport mode {mode!r}")

        return self._replace_segment(
            segment_id, lambda route, seg: replace(seg, transport_mode=mode)
        )

    def set_segment_path(
        self,
        segment_id: str,
        path,
        distance: Optional[float] = None,
        duration: Optional[float] = None,
    ) -> EditResult:
        """
        Replace a segment's path geometry.

        The path is pinned to the segment's waypoints: where its first or
        last point differs from the waypoint, the waypoint coordinate is
        added in front or at the end.
        """
        try:
            points = as_path(path)
        except (TypeError, ValueError):
            return EditResult(EditStatus.INVALID, segment_id, "path is not a list of coordinates")
        if len(points) < 2 or not all(_finite(p) for p in points):
            return EditResult(EditStatus.INVALID, segment_id, "path needs at least two finite points")

        def build(route: Route, seg: Segment):
            start = route.get_waypoint(seg.start_waypoint_id).coordinates
            end = route.get_waypoint(seg.end_waypoint_id).coordinates
            pinned = points
            if pinned[0] != start:
                pinned = (start,) + pinned
            if pinned[-1] != end:
                pinned = pinned + (end,)
            return replace(seg, path=pinned, distance=distance, duration=duration)

        return self._replace_segment(segment_id, build)

    def insert_path_node(self, segment_id: str, coordinates) -> EditResult:
        """Insert a manual node into a segment path next to its closest edge."""
        coord = _parse_coordinates(coordinates)
        if coord is None:
            return EditResult(EditStatus.INVALID, segment_id, f"bad coordinates {coordinates!r}")

        def build(route: Route, seg: Segment):
            index = insertion_index(seg.path, coord)
            index = min(max(index, 1), len(seg.path) - 1)
            return replace(seg, path=seg.path[:index] + (coord,) + seg.path[index:])

        return self._replace_segment(segment_id, build)
