"""
Geometry kernel for route animation.

Pure functions over polylines of (lon, lat) coordinates: smoothing,
length, interpolation along a path, slicing, nearest-point projection
and flight arcs. Distances are kilometres on a spherical Earth.

None of these functions raise for bad geometry; degenerate input yields
a safe fallback (usually the input itself).
"""

import functools
import math
import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]
Polyline = Sequence[Coordinates]

EARTH_RADIUS_KM = 6371.0088

# Bezier spline parameters
SPLINE_RESOLUTION = 1000
SPLINE_SHARPNESS = 0.85

# Flight arc parameters
ARC_POINTS = 50
ARC_HEIGHT_RATIO = 0.1

FLIGHT_MODE = "plane"


class NearestPoint(NamedTuple):
    """Closest location on a segment to a query point."""
    point: Coordinates
    distance_km: float
    t: float  # fraction along the segment, 0..1


def _as_array(path: Polyline) -> np.ndarray:
    pts = np.asarray(path, dtype=float)
    if pts.size == 0:
        return pts.reshape(0, 2)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected an (n, 2) coordinate array, got shape {pts.shape}")
    return pts


def _to_coords(pts: np.ndarray) -> List[Coordinates]:
    return [(float(x), float(y)) for x, y in pts]


# Raised by numpy on malformed or non-numeric coordinates
GEOMETRY_ERRORS = (ValueError, TypeError, IndexError, ArithmeticError)


def _degrades_to(fallback):
    """Return ``fallback(*args)`` instead of raising on bad geometry."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except GEOMETRY_ERRORS as e:
                logger.warning(f"{func.__name__} failed on bad geometry, using fallback: {e}")
                return fallback(*args, **kwargs)
        return wrapper
    return decorator


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """
    Great circle distance between two (lon, lat) points.

    Args:
        a, b: Points in degrees, GeoJSON order

    Returns:
        Distance in kilometres
    """
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(max(h, 0.0), 1.0)))


def _cumulative(pts: np.ndarray) -> np.ndarray:
    if len(pts) < 2:
        return np.zeros(len(pts))

    lon = np.radians(pts[:, 0])
    lat = np.radians(pts[:, 1])
    dlat = np.diff(lat)
    dlon = np.diff(lon)

    h = np.sin(dlat / 2) ** 2 + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(dlon / 2) ** 2
    edges = 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))
    return np.concatenate(([0.0], np.cumsum(edges)))


@_degrades_to(lambda path: np.zeros(0))
def cumulative_distances(path: Polyline) -> np.ndarray:
    """Running distance (km) from the first point to every vertex."""
    return _cumulative(_as_array(path))


@_degrades_to(lambda path: 0.0)
def path_length(path: Polyline) -> float:
    """
    Total length of a polyline.

    Args:
        path: Sequence of (lon, lat) coordinates

    Returns:
        Length in kilometres (0.0 for fewer than two points)
    """
    cum = _cumulative(_as_array(path))
    if len(cum) < 2:
        return 0.0
    length = float(cum[-1])
    return length if math.isfinite(length) else 0.0


def _point_at(pts: np.ndarray, cum: np.ndarray, distance: float) -> Coordinates:
    total = float(cum[-1])
    if total <= 0:
        return (float(pts[0, 0]), float(pts[0, 1]))

    d = min(max(distance, 0.0), total)

    # side="right" lands past runs of equal distances, skipping zero-length edges
    idx = int(np.searchsorted(cum, d, side="right")) - 1
    idx = min(max(idx, 0), len(pts) - 2)

    edge = cum[idx + 1] - cum[idx]
    if edge <= 0:
        return (float(pts[idx + 1, 0]), float(pts[idx + 1, 1]))

    t = (d - cum[idx]) / edge
    p = pts[idx] + t * (pts[idx + 1] - pts[idx])
    return (float(p[0]), float(p[1]))


@_degrades_to(lambda path, distance: None)
def point_at_distance(path: Polyline, distance: float) -> Optional[Coordinates]:
    """
    Coordinate at a cumulative distance along a polyline.

    Args:
        path: Sequence of (lon, lat) coordinates
        distance: Distance from the start in km, clamped to [0, length]

    Returns:
        Interpolated coordinate, the only point of a one-point path,
        or None for an empty path
    """
    pts = _as_array(path)
    if len(pts) == 0:
        return None
    if len(pts) == 1:
        return (float(pts[0, 0]), float(pts[0, 1]))

    return _point_at(pts, _cumulative(pts), distance)


def nearest_point_on_segment(a: Coordinates, b: Coordinates, p: Coordinates) -> NearestPoint:
    """
    Project a point onto the segment a-b.

    The projection is planar in lon/lat; the reported distance is the
    great circle distance from ``p`` to the projected point.
    """
    ax, ay = a
    bx, by = b
    dx = bx - ax
    dy = by - ay
    len_sq = dx * dx + dy * dy

    if len_sq == 0:
        t = 0.0
    else:
        t = ((p[0] - ax) * dx + (p[1] - ay) * dy) / len_sq
        t = min(max(t, 0.0), 1.0)

    q = (ax + t * dx, ay + t * dy)
    return NearestPoint(point=q, distance_km=haversine_km(p, q), t=t)


def _locate(pts: np.ndarray, p: Coordinates) -> Tuple[int, float, Coordinates]:
    """Nearest location on the polyline as (edge index, fraction, point)."""
    best = None
    for i in range(len(pts) - 1):
        hit = nearest_point_on_segment(tuple(pts[i]), tuple(pts[i + 1]), p)
        if best is None or hit.distance_km < best[3]:
            best = (i, hit.t, hit.point, hit.distance_km)
    return best[0], best[1], best[2]


@_degrades_to(lambda path, p: len(path))
def insertion_index(path: Polyline, p: Coordinates) -> int:
    """
    Index at which a new node near ``p`` belongs in the path.

    The node goes right after the start vertex of the edge closest to ``p``.
    Paths with fewer than two points take the node at the end.
    """
    pts = _as_array(path)
    if len(pts) < 2:
        return len(pts)

    edge, _, _ = _locate(pts, p)
    return edge + 1


@_degrades_to(lambda path, from_point, to_point: list(path))
def slice_path(path: Polyline, from_point: Coordinates, to_point: Coordinates) -> List[Coordinates]:
    """
    Sub-polyline between the projections of two points onto the path.

    The result runs in path order, starts at the projection nearer the
    start of the path and ends at the other one.
    """
    pts = _as_array(path)
    if len(pts) < 2:
        return list(path)

    start = _locate(pts, from_point)
    stop = _locate(pts, to_point)
    if (stop[0], stop[1]) < (start[0], start[1]):
        start, stop = stop, start

    clipped = [start[2]]
    clipped.extend(_to_coords(pts[start[0] + 1:stop[0] + 1]))
    clipped.append(stop[2])
    return [(float(x), float(y)) for x, y in clipped]


def _bezier_spline(pts: np.ndarray) -> np.ndarray:
    """
    Cubic bezier spline through every vertex.

    Control points come from the midpoints of neighbouring edges, pulled
    toward the vertex by the sharpness factor.
    """
    s = SPLINE_SHARPNESS
    centers = (pts[:-1] + pts[1:]) / 2
    inner = pts[1:-1]
    shift = inner - (centers[:-1] + centers[1:]) / 2
    ctrl_in = (1 - s) * inner + s * (centers[:-1] + shift)
    ctrl_out = (1 - s) * inner + s * (centers[1:] + shift)

    # Control points leaving vertex i and entering vertex i + 1
    first_ctrl = np.vstack([pts[:1], ctrl_out])
    second_ctrl = np.vstack([ctrl_in, pts[-1:]])

    n_edges = len(pts) - 1
    u = np.linspace(0.0, 1.0, SPLINE_RESOLUTION, endpoint=False) * n_edges
    edge = np.minimum(np.floor(u).astype(int), n_edges - 1)
    t = (u - edge)[:, None]
    mt = 1 - t

    curve = (
        pts[edge] * mt ** 3
        + first_ctrl[edge] * 3 * t * mt ** 2
        + second_ctrl[edge] * 3 * t ** 2 * mt
        + pts[edge + 1] * t ** 3
    )
    return np.vstack([curve, pts[-1:]])


def smooth(path: Polyline, mode: str) -> List[Coordinates]:
    """
    Smooth a ground path into a bezier spline.

    Args:
        path: Sequence of (lon, lat) coordinates
        mode: Transport mode of the segment ('plane' paths are already arcs)

    Returns:
        Smoothed path with the same first and last points, or the input
        unchanged for paths of two points or fewer, flight paths and
        anything that fails to smooth numerically
    """
    if mode == FLIGHT_MODE or len(path) <= 2:
        return list(path)

    try:
        pts = _as_array(path)
        if not np.all(np.isfinite(pts)):
            logger.warning("Path contains non-finite coordinates, skipping smoothing")
            return list(path)
        curve = _bezier_spline(pts)
    except (ValueError, TypeError, IndexError) as e:
        logger.warning(f"Smoothing failed, using raw path: {e}")
        return list(path)

    if not np.all(np.isfinite(curve)):
        return list(path)

    smoothed = _to_coords(curve)
    smoothed[0] = (float(pts[0, 0]), float(pts[0, 1]))
    return smoothed


def arc_path(start: Coordinates, end: Coordinates, num_points: int = ARC_POINTS) -> List[Coordinates]:
    """
    Curved flight path between two points.

    Both axes are interpolated linearly and the latitude is lifted by a
    sine bump whose height is a tenth of the start-end separation
    (measured in degrees). Not a great circle.

    Args:
        start: Departure (lon, lat)
        end: Arrival (lon, lat)
        num_points: Number of intervals; the path has num_points + 1 points

    Returns:
        List of (lon, lat) coordinates starting at ``start`` and ending at ``end``
    """
    num_points = max(int(num_points), 1)
    t = np.linspace(0.0, 1.0, num_points + 1)

    dlon = end[0] - start[0]
    dlat = end[1] - start[1]
    height = math.hypot(dlon, dlat) * ARC_HEIGHT_RATIO

    lon = start[0] + dlon * t
    lat = start[1] + dlat * t + height * np.sin(np.pi * t)

    arc = _to_coords(np.column_stack([lon, lat]))
    arc[0] = (float(start[0]), float(start[1]))
    arc[-1] = (float(end[0]), float(end[1]))
    return arc
