"""
Tests for the Session wiring between Route Model and Playback Engine.
"""

import time

from routeanim.playback import PlaybackStatus
from routeanim.route.transport import TransportMode
from routeanim.session import Session

BERLIN = (13.40, 52.52)


class TestStructureResets:

    def test_adding_waypoint_rewinds(self, madrid_paris):
        engine = madrid_paris.engine
        engine.play()
        engine.scrub(0.6)

        madrid_paris.model.add_waypoint(BERLIN)

        assert engine.status == PlaybackStatus.STOPPED
        assert engine.state.current_progress == 0.0

    def test_removing_waypoint_rewinds(self, three_stop):
        three_stop.engine.scrub(0.5)
        wp = three_stop.model.route.waypoints[1]
        three_stop.model.remove_waypoint(wp.id)
        assert three_stop.engine.state.current_progress == 0.0
        assert three_stop.model.segment_count == 1

    def test_mode_change_keeps_position(self, madrid_paris):
        madrid_paris.engine.scrub(0.3)
        seg = madrid_paris.model.route.segments[0]
        madrid_paris.model.set_segment_transport_mode(seg.id, TransportMode.PLANE)
        assert madrid_paris.engine.state.current_progress == 0.3

    def test_rejected_edit_keeps_position(self, madrid_paris):
        madrid_paris.engine.scrub(0.3)
        madrid_paris.model.remove_waypoint("missing")
        assert madrid_paris.engine.state.current_progress == 0.3


class TestSnapshots:

    def test_frame(self, madrid_paris):
        madrid_paris.engine.scrub(0.5)
        frame = madrid_paris.frame()
        assert frame is not None
        assert frame.progress == 0.5

    def test_frame_without_route(self):
        with Session() as s:
            assert s.frame() is None

    def test_snapshot_pairs_route_and_state(self, madrid_paris):
        route, state = madrid_paris.snapshot()
        assert route is madrid_paris.model.route
        assert state == madrid_paris.engine.state

    def test_capture_copy_is_independent(self, madrid_paris):
        madrid_paris.engine.set_speed(2.0)
        madrid_paris.engine.scrub(0.7)

        with madrid_paris.capture_copy() as copy:
            assert copy.model.route is madrid_paris.model.route
            assert copy.engine.state.speed == 2.0
            assert copy.engine.state.duration == 10.0
            assert copy.engine.state.current_progress == 0.0

            copy.model.add_waypoint(BERLIN)
            copy.engine.play()

        assert madrid_paris.model.segment_count == 1
        assert madrid_paris.engine.state.current_progress == 0.7
        assert madrid_paris.engine.status == PlaybackStatus.STOPPED

    def test_update_lock_is_shared(self, session):
        assert session.model.lock is session.lock
        with session.update_lock() as s:
            assert s is session


class TestTicking:

    def test_ticking_advances_playback(self, madrid_paris):
        madrid_paris.engine.play()
        madrid_paris.start_ticking(rate_hz=200)
        try:
            assert madrid_paris.is_ticking
            deadline = time.monotonic() + 5.0
            while madrid_paris.engine.state.current_progress == 0.0 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert madrid_paris.engine.state.current_progress > 0.0
        finally:
            madrid_paris.stop_ticking()
        assert not madrid_paris.is_ticking

    def test_close_stops_ticking(self):
        s = Session()
        s.start_ticking(rate_hz=100)
        s.close()
        assert not s.is_ticking
