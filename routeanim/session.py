"""
Route animation session.

A ``Session`` owns one Route Model and one Playback Engine that share a
re-entrant lock, and wires them together: every structural route edit
rewinds playback. Consumers (API handlers, the CLI, the capture
orchestrator) receive a session explicitly; there is no global one.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Optional, Tuple

from routeanim.playback.engine import AnimationState, PlaybackEngine
from routeanim.playback.sampler import Frame, sample_frame
from routeanim.playback.ticker import Clock, ThreadTickSource
from routeanim.route.model import RouteModel
from routeanim.route.models import Route

logger = logging.getLogger(__name__)


class Session:
    """
    Route Model + Playback Engine pair.

    Usage:
        session = Session()
        session.model.create_route("Road trip")
        session.model.add_waypoint((-3.70, 40.42))
        session.model.add_waypoint((2.35, 48.86))
        session.engine.scrub(0.5)
        frame = session.frame()
    """

    def __init__(
        self,
        route: Optional[Route] = None,
        duration: Optional[float] = None,
        speed: Optional[float] = None,
    ):
        self._lock = threading.RLock()
        self.model = RouteModel(route, lock=self._lock)
        self.engine = PlaybackEngine(
            lambda: self.model.segment_count,
            duration=duration,
            speed=speed,
            lock=self._lock,
        )
        self.model.add_listener(self._on_structure_change)
        self._ticker: Optional[ThreadTickSource] = None

    def _on_structure_change(self, route: Optional[Route]) -> None:
        self.engine.reset()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @contextmanager
    def update_lock(self):
        """Hold the session lock across several route and playback commands."""
        with self._lock:
            yield self

    def snapshot(self) -> Tuple[Optional[Route], AnimationState]:
        """Route and playback state taken together under the lock."""
        with self._lock:
            return self.model.route, self.engine.snapshot()

    def frame(self) -> Optional[Frame]:
        """Frame for the current playback position."""
        route, state = self.snapshot()
        return sample_frame(route, state)

    # ------------------------------------------------------------------
    # Real-time ticking
    # ------------------------------------------------------------------

    @property
    def is_ticking(self) -> bool:
        return self._ticker is not None and self._ticker.is_running

    def start_ticking(self, rate_hz: Optional[float] = None, clock: Optional[Clock] = None) -> None:
        """Advance playback from a background thread in wall time."""
        if self.is_ticking:
            return
        self._ticker = ThreadTickSource(self.engine.tick, rate_hz=rate_hz, clock=clock)
        self._ticker.start()
        logger.info("Session tick source started")

    def stop_ticking(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
            logger.info("Session tick source stopped")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def capture_copy(self) -> "Session":
        """
        Independent session over the current route.

        Used for exports so that capture can reset and drive its own
        playback without touching interactive playback here.
        """
        route, state = self.snapshot()
        return Session(route=route, duration=state.duration, speed=state.speed)

    def close(self) -> None:
        self.stop_ticking()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
