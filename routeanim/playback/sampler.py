"""
Frame Sampler.

Turns a route and a playback state into what should be drawn: the
marker position and the trail travelled so far. Pure and side-effect
free, so it is safe to call while playing, while scrubbing, and from
the capture loop.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from routeanim.geometry import Coordinates, path_length, point_at_distance, slice_path, smooth
from routeanim.playback.engine import AnimationState
from routeanim.route.models import Route, Segment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """Renderable state for one playback moment."""
    marker_position: Coordinates
    current_segment_index: int
    drawn_path: Tuple[Coordinates, ...]
    progress: float


@lru_cache(maxsize=256)
def _smoothed(path: Tuple[Coordinates, ...], mode: str) -> Tuple[Coordinates, ...]:
    return tuple(smooth(path, mode))


def smoothed_path(segment: Segment) -> Tuple[Coordinates, ...]:
    """Display geometry of a segment (memoised)."""
    return _smoothed(segment.path, str(segment.transport_mode.value))


def sample_frame(route: Optional[Route], state: AnimationState) -> Optional[Frame]:
    """
    Sample the frame for a playback state.

    Args:
        route: Route being played (may be None)
        state: Playback state snapshot

    Returns:
        Frame, or None when there is no route, no current segment, or the
        current segment path has fewer than two points
    """
    if route is None or not route.segments:
        return None

    index = state.current_segment_index
    if not 0 <= index < len(route.segments):
        logger.debug(f"Segment index {index} out of range for {len(route.segments)} segments")
        return None

    segment = route.segments[index]
    if len(segment.path) < 2:
        return None

    current = smoothed_path(segment)
    target = path_length(current) * state.segment_progress
    marker = point_at_distance(current, target)
    if marker is None:
        return None

    drawn = []
    for completed in route.segments[:index]:
        drawn.extend(smoothed_path(completed))
    drawn.extend(slice_path(current, current[0], marker))

    return Frame(
        marker_position=marker,
        current_segment_index=index,
        drawn_path=tuple(drawn),
        progress=state.current_progress,
    )
