"""
Shared pytest fixtures for Route Animator tests.

Environment defaults are set before any routeanim/api import so module
level settings pick them up: playback is not ticked in the background
and nothing reaches the public OSRM server.
"""

import os
from pathlib import Path
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

# ---------------------------------------------------------------------------
# Section 1: Environment setup (before ANY routeanim/api imports)
# ---------------------------------------------------------------------------
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("REALTIME_PLAYBACK", "false")
os.environ.setdefault("ROUTEANIM_ROUTING_ENABLED", "false")

from routeanim.capture import CaptureConfig, EncoderError  # noqa: E402
from routeanim.playback.ticker import ManualClock  # noqa: E402
from routeanim.route.transport import TransportMode  # noqa: E402
from routeanim.session import Session  # noqa: E402

MADRID = (-3.70, 40.42)
PARIS = (2.35, 48.86)
BERLIN = (13.40, 52.52)


# ---------------------------------------------------------------------------
# Section 2: Encoder fake
# ---------------------------------------------------------------------------

class FakeEncoder:
    """Records frames instead of spawning ffmpeg."""

    def __init__(self, output_path="out.webm", size=(854, 480), fail_on_start=False, fail_on_feed_after=None):
        self.output_path = Path(output_path)
        self.size = size
        self.on_complete = None
        self.fail_on_start = fail_on_start
        self.fail_on_feed_after = fail_on_feed_after
        self.started = False
        self.stopped = False
        self.frames = 0
        self.frame_sizes: List[tuple] = []

    def start(self) -> None:
        if self.fail_on_start:
            raise EncoderError("ffmpeg executable 'ffmpeg' not found")
        self.started = True

    def feed(self, image) -> None:
        if self.fail_on_feed_after is not None and self.frames >= self.fail_on_feed_after:
            raise EncoderError("Broken pipe")
        self.frames += 1
        self.frame_sizes.append(image.size)

    def stop(self) -> Optional[Path]:
        self.stopped = True
        if self.on_complete:
            self.on_complete(self.output_path)
        return self.output_path


@pytest.fixture
def fake_encoder(tmp_path):
    return FakeEncoder(tmp_path / "capture.webm")


@pytest.fixture
def make_encoder(tmp_path):
    """Factory for FakeEncoders with failure knobs."""
    def factory(**kwargs):
        return FakeEncoder(tmp_path / "capture.webm", **kwargs)
    return factory


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def low_config():
    """Small frames, default capture cadence."""
    return CaptureConfig(fps=30, quality="low", timeout_s=300.0, grace_s=0.5, refresh_hz=60.0)


# ---------------------------------------------------------------------------
# Section 3: Session fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def session():
    """Session with an empty route."""
    s = Session(duration=10.0, speed=1.0)
    s.model.create_route("Test route")
    yield s
    s.close()


@pytest.fixture
def madrid_paris(session):
    """One car segment from Madrid to Paris."""
    session.model.add_waypoint(MADRID, label="Madrid")
    session.model.add_waypoint(PARIS, label="Paris")
    return session


@pytest.fixture
def three_stop(session):
    """Madrid -> Paris (train) -> Berlin (plane)."""
    model = session.model
    model.add_waypoint(MADRID, label="Madrid")
    model.add_waypoint(PARIS, label="Paris")
    model.add_waypoint(BERLIN, label="Berlin")
    first, second = model.route.segments
    model.set_segment_transport_mode(first.id, TransportMode.TRAIN)
    model.set_segment_transport_mode(second.id, TransportMode.PLANE)
    return session


# ---------------------------------------------------------------------------
# Section 4: API client
# ---------------------------------------------------------------------------

@pytest.fixture
def api_session():
    s = Session(duration=5.0)
    yield s
    s.close()


@pytest.fixture
def exports(tmp_path):
    from api.state import ExportManager

    return ExportManager(
        tmp_path / "exports",
        encoder_factory=lambda path, config: FakeEncoder(path, config.preset.size),
        clock_factory=ManualClock,
    )


@pytest.fixture
def client(api_session, exports):
    """TestClient over an app with a fake encoder and a virtual capture clock."""
    from api.main import create_app
    from routeanim.route.routing import RoutingClient

    app = create_app(session=api_session, exports=exports, routing=RoutingClient(enabled=False))
    with TestClient(app) as test_client:
        yield test_client
