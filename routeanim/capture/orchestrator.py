"""
Capture Orchestrator.

Plays a route from the start while sampling the rendering surface into
an encoder. Two periodic tasks share one cooperative scheduler:

- refresh (60 Hz): ticks the playback engine with measured elapsed time,
  samples the frame and redraws the surface;
- capture (1/fps): copies the surface, scales it to the export preset
  and feeds it to the encoder.

Capture ends when playback gets within 1% of the end (or completes a
pass), after a short grace interval for trailing frames. A hard timeout
and user cancellation end it early with a truncated artifact.

On a ``ManualClock`` the same protocol renders offline as fast as the
CPU allows; on a ``SystemClock`` it runs in real time.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from routeanim.capture.encoder import Encoder, EncoderError, QualityPreset, get_preset
from routeanim.capture.surface import RouteSurface
from routeanim.config import settings
from routeanim.playback.engine import AnimationState, PlaybackEngine
from routeanim.playback.sampler import sample_frame
from routeanim.playback.ticker import Clock, PeriodicScheduler, SystemClock
from routeanim.route.model import RouteModel

logger = logging.getLogger(__name__)

COMPLETION_THRESHOLD = 0.99
EXPORT_FORMATS = ("webm",)


class CaptureError(Exception):
    """Capture could not start or the encoder failed mid-way."""
    pass


class CaptureStopReason(str, Enum):
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CaptureConfig:
    """Export settings for one capture run."""
    fps: int = 30
    quality: str = "high"
    format: str = "webm"
    timeout_s: float = 300.0
    grace_s: float = 0.5
    refresh_hz: float = 60.0

    def __post_init__(self):
        if self.fps <= 0:
            raise ValueError(f"fps must be positive, got {self.fps}")
        if self.format not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format '{self.format}'")
        if self.refresh_hz <= 0 or self.timeout_s <= 0 or self.grace_s < 0:
            raise ValueError("refresh_hz and timeout_s must be positive, grace_s non-negative")
        get_preset(self.quality)

    @property
    def preset(self) -> QualityPreset:
        return get_preset(self.quality)

    @classmethod
    def from_settings(cls, **overrides) -> "CaptureConfig":
        values = dict(
            fps=settings.export_fps,
            quality=settings.export_quality,
            timeout_s=settings.capture_timeout_s,
            grace_s=settings.capture_grace_s,
            refresh_hz=settings.refresh_hz,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True)
class CaptureStatus:
    is_exporting: bool = False
    progress: float = 0.0
    frames: int = 0


@dataclass(frozen=True)
class CaptureResult:
    artifact: Optional[Path]
    frames: int
    truncated: bool
    reason: CaptureStopReason
    elapsed_s: float


class CaptureOrchestrator:
    """
    Drives one capture run over a Route Model and Playback Engine.

    Args:
        model: Route Model holding the route to capture
        engine: Playback Engine bound to ``model`` (it is reset and played)
        surface: Rendering surface to draw on and copy from
        encoder: Encoder receiving the frames
        config: Export settings (defaults from environment)
        clock: Time source for the scheduler (wall time by default)
        on_progress: Called with a CaptureStatus after every captured frame
    """

    def __init__(
        self,
        model: RouteModel,
        engine: PlaybackEngine,
        surface: Optional[RouteSurface],
        encoder: Optional[Encoder],
        config: Optional[CaptureConfig] = None,
        clock: Optional[Clock] = None,
        on_progress: Optional[Callable[[CaptureStatus], None]] = None,
    ):
        self.model = model
        self.engine = engine
        self.surface = surface
        self.encoder = encoder
        self.config = config or CaptureConfig.from_settings()
        self.clock = clock or SystemClock()
        self.on_progress = on_progress

        self._lock = threading.Lock()
        self._status = CaptureStatus()
        self._scheduler: Optional[PeriodicScheduler] = None
        self._reason: Optional[CaptureStopReason] = None
        self._finishing = False
        self._final_state: Optional[AnimationState] = None
        self._last_tick = 0.0
        self._completions_at_start = 0
        self._prepared = False

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> CaptureStatus:
        with self._lock:
            return self._status

    @property
    def is_exporting(self) -> bool:
        return self.status().is_exporting

    def _update_status(self, **changes) -> CaptureStatus:
        with self._lock:
            self._status = replace(self._status, **changes)
            return self._status

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop capturing now; frames so far are kept. Safe to call repeatedly."""
        with self._lock:
            scheduler = self._scheduler
            if scheduler is None or self._reason is not None:
                return
            self._reason = CaptureStopReason.CANCELLED
        logger.info("Capture cancelled")
        scheduler.stop()

    def prepare(self) -> None:
        """
        Check the route, surface and encoder, and start the encoder.

        Called by ``run()`` when needed; call it directly to surface setup
        failures before handing ``run()`` to another thread.

        Raises:
            CaptureError: If capture cannot start
        """
        route = self.model.route
        if route is None or not route.segments:
            raise CaptureError("Route has no segments to capture")
        if self.surface is None:
            raise CaptureError("No rendering surface available")
        if self.encoder is None:
            raise CaptureError("No encoder available")

        with self._lock:
            if self._scheduler is not None:
                raise CaptureError("Capture already running")
            self._scheduler = PeriodicScheduler(self.clock)
            self._reason = None

        try:
            self.encoder.start()
        except (EncoderError, OSError) as e:
            with self._lock:
                self._scheduler = None
            raise CaptureError(f"Encoder failed to start: {e}") from e
        self._prepared = True

    def run(self) -> CaptureResult:
        """
        Capture the route from start to end, blocking until done.

        Returns:
            CaptureResult describing the artifact

        Raises:
            CaptureError: If capture cannot start (no segments, no surface,
                encoder unavailable) or the encoder fails
        """
        if not self._prepared:
            self.prepare()
        self._prepared = False
        scheduler = self._scheduler
        config = self.config

        self._finishing = False
        self._final_state = None
        started = self.clock.now()

        error: Optional[Exception] = None
        artifact = None
        try:
            # the encoder is already running; everything from here on is undone below
            self._update_status(is_exporting=True, progress=0.0, frames=0)

            self.engine.stop()
            self._completions_at_start = self.engine.completions
            self.engine.play()

            self._last_tick = started
            self._redraw(self.engine.snapshot())

            scheduler.every(1.0 / config.refresh_hz, self._refresh, "refresh")
            scheduler.every(1.0 / config.fps, self._capture, "capture")
            scheduler.call_later(config.timeout_s, self._on_timeout, "timeout")
            logger.info(
                f"Capture started: {config.fps} fps, {config.quality} "
                f"({config.preset.width}x{config.preset.height})"
            )

            scheduler.run()
        except EncoderError as e:
            error = e
        finally:
            self.engine.stop()
            try:
                artifact = self.encoder.stop()
            except EncoderError as e:
                error = error or e
            with self._lock:
                self._scheduler = None
                self._status = replace(self._status, is_exporting=False)

        if error is not None:
            logger.error(f"Capture failed: {error}")
            raise CaptureError(f"Encoding failed: {error}") from error

        reason = self._reason or CaptureStopReason.COMPLETED
        if reason is CaptureStopReason.COMPLETED:
            self._update_status(progress=1.0)
        status = self.status()
        result = CaptureResult(
            artifact=artifact,
            frames=status.frames,
            truncated=reason is not CaptureStopReason.COMPLETED,
            reason=reason,
            elapsed_s=self.clock.now() - started,
        )
        logger.info(f"Capture {reason.value}: {result.frames} frames in {result.elapsed_s:.1f}s")
        return result

    # ------------------------------------------------------------------
    # Scheduled tasks
    # ------------------------------------------------------------------

    def _redraw(self, state: AnimationState) -> None:
        route = self.model.route
        self.surface.render(route, sample_frame(route, state))

    def _end_state(self, state: AnimationState) -> AnimationState:
        count = self.model.segment_count
        return replace(
            state,
            current_progress=1.0,
            current_segment_index=max(count - 1, 0),
            segment_progress=1.0,
        )

    def _refresh(self, now: float) -> None:
        delta_ms = (now - self._last_tick) * 1000.0
        self._last_tick = now

        if self._final_state is not None:
            return

        self.engine.tick(delta_ms)
        state = self.engine.snapshot()
        if self.engine.completions > self._completions_at_start:
            # playback rewound; hold the last frame of the route
            state = self._final_state = self._end_state(state)

        self._redraw(state)

        if not self._finishing and state.current_progress >= COMPLETION_THRESHOLD:
            self._finishing = True
            logger.debug(f"Playback at {state.current_progress:.3f}, finishing in {self.config.grace_s}s")
            self._scheduler.call_later(self.config.grace_s, self._on_finished, "finish")

    def _capture(self, now: float) -> None:
        image = self.surface.bitmap()
        size = self.config.preset.size
        if image.size != size:
            image = image.resize(size)
        self.encoder.feed(image)

        if self._final_state is not None:
            progress = 1.0
        else:
            progress = self.engine.snapshot().current_progress
        status = self._update_status(progress=progress, frames=self._status.frames + 1)

        if self.on_progress:
            try:
                self.on_progress(status)
            except Exception as e:
                logger.warning(f"Progress callback error: {e}")

    def _on_finished(self, now: float) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = CaptureStopReason.COMPLETED
        self._scheduler.stop()

    def _on_timeout(self, now: float) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = CaptureStopReason.TIMEOUT
        logger.warning(f"Capture hit the {self.config.timeout_s:.0f}s timeout, stopping")
        self._scheduler.stop()
