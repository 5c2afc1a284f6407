"""Geometry kernel: polyline measurement, smoothing and flight arcs."""

from .kernel import (
    Coordinates,
    NearestPoint,
    arc_path,
    cumulative_distances,
    haversine_km,
    insertion_index,
    nearest_point_on_segment,
    path_length,
    point_at_distance,
    slice_path,
    smooth,
)

__all__ = [
    "Coordinates",
    "NearestPoint",
    "arc_path",
    "cumulative_distances",
    "haversine_km",
    "insertion_index",
    "nearest_point_on_segment",
    "path_length",
    "point_at_distance",
    "slice_path",
    "smooth",
]
