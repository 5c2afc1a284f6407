"""
Off-screen rendering surface.

Draws a route and the current playback frame onto a Pillow image in
Web Mercator, fitted to the route bounds with a fixed pixel padding.
The capture loop copies the image with ``bitmap()``.
"""

import math
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw

from routeanim.geometry import Coordinates
from routeanim.playback.sampler import Frame, smoothed_path
from routeanim.route.models import Route
from routeanim.route.transport import get_transport_style

logger = logging.getLogger(__name__)

FIT_BOUNDS_PADDING = 100  # pixels at 1920x1080
MAX_MERCATOR_LAT = 85.0

BACKGROUND = (241, 245, 249)
TRAIL_COLOR = (15, 23, 42)
MARKER_COLOR = (239, 68, 68)
WAYPOINT_COLOR = (255, 255, 255)

DASH_LENGTH = 14
GAP_LENGTH = 10


def mercator(coords: np.ndarray) -> np.ndarray:
    """Project (lon, lat) degrees to Web Mercator (x, y) in radians, y pointing north."""
    coords = np.asarray(coords, dtype=float).reshape(-1, 2)
    lon = np.radians(coords[:, 0])
    lat = np.radians(np.clip(coords[:, 1], -MAX_MERCATOR_LAT, MAX_MERCATOR_LAT))
    return np.column_stack([lon, np.log(np.tan(np.pi / 4 + lat / 2))])


def _faded(rgb: Tuple[int, int, int], amount: float = 0.55) -> Tuple[int, int, int]:
    return tuple(int(c + (255 - c) * amount) for c in rgb)


def _draw_dashed(draw: ImageDraw.ImageDraw, points: Sequence[Tuple[float, float]], fill, width: int) -> None:
    """Draw a polyline as alternating dashes and gaps measured along its length."""
    pts = np.asarray(points, dtype=float)
    if len(pts) < 2:
        return

    edges = np.hypot(*np.diff(pts, axis=0).T)
    cum = np.concatenate(([0.0], np.cumsum(edges)))
    total = cum[-1]
    if total <= 0:
        return

    period = DASH_LENGTH + GAP_LENGTH
    start = 0.0
    while start < total:
        stop = min(start + DASH_LENGTH, total)
        inside = (cum > start) & (cum < stop)
        dash = [tuple(np.interp(start, cum, pts[:, k]) for k in range(2))]
        dash.extend(tuple(p) for p in pts[inside])
        dash.append(tuple(np.interp(stop, cum, pts[:, k]) for k in range(2)))
        draw.line(dash, fill=fill, width=width, joint="curve")
        start += period


class RouteSurface:
    """
    Pillow drawing surface for route frames.

    Args:
        width, height: Surface size in pixels
        padding: Pixel margin kept around the route bounds
    """

    def __init__(self, width: int = 1920, height: int = 1080, padding: Optional[int] = None):
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        scale = min(width / 1920, height / 1080)
        self.padding = padding if padding is not None else int(round(FIT_BOUNDS_PADDING * scale))
        self._line_scale = max(scale, 0.25)

        self._image = Image.new("RGB", (width, height), BACKGROUND)
        self._base: Optional[Image.Image] = None
        self._fitted_to: Optional[Tuple[str, object]] = None
        self._origin = np.zeros(2)
        self._scale = 1.0
        self._offset = np.array([width / 2, height / 2])

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def fit(self, route: Route) -> None:
        """Fit the projection to every point the route can draw."""
        points: List[Coordinates] = [wp.coordinates for wp in route.waypoints]
        for segment in route.segments:
            points.extend(smoothed_path(segment))

        self._fitted_to = (route.id, route.updated_at)
        if not points:
            self._origin = np.zeros(2)
            self._scale = 1.0
            self._offset = np.array([self.width / 2, self.height / 2])
            return

        projected = mercator(np.asarray(points))
        lo = projected.min(axis=0)
        hi = projected.max(axis=0)
        span = hi - lo

        usable_w = max(self.width - 2 * self.padding, 1)
        usable_h = max(self.height - 2 * self.padding, 1)
        scales = [usable_w / span[0] if span[0] > 0 else math.inf,
                  usable_h / span[1] if span[1] > 0 else math.inf]
        scale = min(scales)
        if not math.isfinite(scale):
            # single point; show roughly a city-sized area
            scale = min(usable_w, usable_h) / 0.01

        self._origin = (lo + hi) / 2
        self._scale = scale
        self._offset = np.array([self.width / 2, self.height / 2])

    def project(self, coords) -> np.ndarray:
        """Pixel positions (x right, y down) for (lon, lat) coordinates."""
        xy = (mercator(coords) - self._origin) * self._scale
        xy[:, 1] = -xy[:, 1]
        return xy + self._offset

    def _pixels(self, coords) -> List[Tuple[float, float]]:
        return [(float(x), float(y)) for x, y in self.project(coords)]

    def render(self, route: Optional[Route], frame: Optional[Frame]) -> None:
        """Redraw the surface for a route and the current frame."""
        if route is None:
            self._image = Image.new("RGB", (self.width, self.height), BACKGROUND)
            return

        if self._fitted_to != (route.id, route.updated_at) or self._base is None:
            self.fit(route)
            self._base = Image.new("RGB", (self.width, self.height), BACKGROUND)
            self._draw_route(ImageDraw.Draw(self._base), route)

        image = self._base.copy()
        if frame is not None:
            self._draw_frame(ImageDraw.Draw(image), route, frame)
        self._image = image

    def _width(self, pixels: int) -> int:
        return max(int(round(pixels * self._line_scale)), 1)

    def _draw_route(self, draw: ImageDraw.ImageDraw, route: Route) -> None:
        for segment in route.segments:
            path = smoothed_path(segment)
            if len(path) < 2:
                continue
            style = get_transport_style(segment.transport_mode)
            pixels = self._pixels(path)
            color = _faded(style.rgb)
            width = self._width(style.line_width)
            if style.dashed:
                _draw_dashed(draw, pixels, color, width)
            else:
                draw.line(pixels, fill=color, width=width, joint="curve")

        radius = self._width(6)
        for x, y in self._pixels([wp.coordinates for wp in route.waypoints]):
            draw.ellipse((x - radius, y - radius, x + radius, y + radius),
                         fill=WAYPOINT_COLOR, outline=TRAIL_COLOR, width=self._width(2))

    def _draw_frame(self, draw: ImageDraw.ImageDraw, route: Route, frame: Frame) -> None:
        segment = route.segments[frame.current_segment_index]
        style = get_transport_style(segment.transport_mode)

        if len(frame.drawn_path) >= 2:
            draw.line(self._pixels(frame.drawn_path), fill=style.rgb,
                      width=self._width(style.line_width + 2), joint="curve")

        (x, y), = self._pixels([frame.marker_position])
        radius = self._width(10)
        draw.ellipse((x - radius, y - radius, x + radius, y + radius),
                     fill=MARKER_COLOR, outline="white", width=self._width(3))

    def bitmap(self) -> Image.Image:
        """Copy of the current surface contents."""
        return self._image.copy()
