"""
Application state for the Route Animator API.

The FastAPI app owns one ``Session`` (route model + playback engine) and
one ``ExportManager``; both live on ``app.state`` and reach handlers
through dependencies, never through module globals.
"""
import threading
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from fastapi import Request

from routeanim.capture import (
    CaptureConfig,
    CaptureOrchestrator,
    CaptureResult,
    CaptureStatus,
    FFmpegEncoder,
    RouteSurface,
)
from routeanim.capture.encoder import Encoder
from routeanim.playback.ticker import Clock, SystemClock
from routeanim.route.models import generate_id
from routeanim.route.routing import RoutingClient
from routeanim.session import Session

logger = logging.getLogger(__name__)

EncoderFactory = Callable[[Path, CaptureConfig], Encoder]


def ffmpeg_encoder_factory(output_path: Path, config: CaptureConfig) -> Encoder:
    return FFmpegEncoder.from_preset(output_path, config.preset, config.fps)


@dataclass
class ExportJob:
    """One background export run."""
    id: str
    config: CaptureConfig
    output_path: Path
    orchestrator: CaptureOrchestrator
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    result: Optional[CaptureResult] = None
    error: Optional[str] = None
    _thread: Optional[threading.Thread] = field(default=None, repr=False)

    @property
    def state(self) -> str:
        if self.error is not None:
            return "failed"
        if self.result is None:
            return "running"
        return self.result.reason.value

    @property
    def finished(self) -> bool:
        return self.result is not None or self.error is not None

    @property
    def status(self) -> CaptureStatus:
        return self.orchestrator.status()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


class ExportManager:
    """
    Runs exports in background threads on copies of the session.

    Args:
        output_dir: Directory the artifacts are written to
        encoder_factory: Builds the encoder for a job (ffmpeg by default)
        clock_factory: Builds the capture clock for a job (wall time by default)
        max_jobs: Jobs remembered; the oldest finished ones are forgotten first
    """

    def __init__(
        self,
        output_dir,
        encoder_factory: Optional[EncoderFactory] = None,
        clock_factory: Optional[Callable[[], Clock]] = None,
        max_jobs: int = 20,
    ):
        self.output_dir = Path(output_dir)
        self.encoder_factory = encoder_factory or ffmpeg_encoder_factory
        self.clock_factory = clock_factory or SystemClock
        self.max_jobs = max_jobs
        self._jobs: Dict[str, ExportJob] = {}
        self._lock = threading.Lock()

    def start(self, session: Session, config: CaptureConfig) -> ExportJob:
        """
        Start exporting the session's route.

        Raises:
            CaptureError: If the capture cannot be set up
        """
        job_id = generate_id()
        output_path = self.output_dir / f"route-animation-{job_id}.{config.format}"
        copy = session.capture_copy()
        preset = config.preset

        orchestrator = CaptureOrchestrator(
            copy.model,
            copy.engine,
            RouteSurface(preset.width, preset.height),
            self.encoder_factory(output_path, config),
            config=config,
            clock=self.clock_factory(),
        )
        orchestrator.prepare()

        job = ExportJob(id=job_id, config=config, output_path=output_path, orchestrator=orchestrator)
        job._thread = threading.Thread(target=self._run, args=(job,), name=f"export-{job_id}", daemon=True)
        with self._lock:
            self._jobs[job_id] = job
            self._prune()
        job._thread.start()
        logger.info(f"Export {job_id} started -> {output_path}")
        return job

    def _prune(self) -> None:
        # insertion order is creation order; running jobs are never dropped
        excess = len(self._jobs) - self.max_jobs
        for old_id in [i for i, j in self._jobs.items() if j.finished][:max(excess, 0)]:
            del self._jobs[old_id]
            logger.debug(f"Export {old_id} dropped from history")

    def _run(self, job: ExportJob) -> None:
        try:
            job.result = job.orchestrator.run()
        except Exception as e:
            job.error = str(e)
            logger.error(f"Export {job.id} failed: {e}")

    def get(self, job_id: str) -> Optional[ExportJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def jobs(self) -> List[ExportJob]:
        with self._lock:
            return list(self._jobs.values())

    def cancel(self, job_id: str) -> Optional[ExportJob]:
        job = self.get(job_id)
        if job is not None:
            job.orchestrator.cancel()
        return job

    def shutdown(self) -> None:
        """Cancel running exports and wait briefly for them to finalize."""
        for job in self.jobs():
            job.orchestrator.cancel()
            job.join(timeout=5.0)


@dataclass
class AppState:
    """Everything the API handlers share."""
    session: Session
    exports: ExportManager
    routing: RoutingClient


def get_app_state(request: Request) -> AppState:
    return request.app.state.routeanim


def get_session(request: Request) -> Session:
    """FastAPI dependency returning the application's session."""
    return request.app.state.routeanim.session


def get_exports(request: Request) -> ExportManager:
    return request.app.state.routeanim.exports


def get_routing_client(request: Request) -> RoutingClient:
    return request.app.state.routeanim.routing
