"""
Tests for the Route Model.

Covers:
- Route lifecycle (create, load, clear)
- Waypoint commands and the segment-count invariant
- Segment rebuilding on remove/reorder (reuse, reversal, mode inheritance)
- Segment commands (transport mode, path pinning, node insertion)
- Edit outcomes for missing routes and unknown ids
- Structure listeners
"""

import random
from dataclasses import replace

import pytest

from routeanim.route import (
    EditStatus,
    Route,
    RouteModel,
    Segment,
    TransportMode,
    Waypoint,
    check_route,
)

MADRID = (-3.70, 40.42)
PARIS = (2.35, 48.86)
BERLIN = (13.40, 52.52)
ROME = (12.50, 41.90)


@pytest.fixture
def model():
    m = RouteModel()
    m.create_route("Europe")
    return m


def _add(model, *coords):
    return [model.add_waypoint(c).target_id for c in coords]


def _assert_consistent(route):
    assert len(route.segments) == max(len(route.waypoints) - 1, 0)
    assert [wp.order for wp in route.waypoints] == list(range(len(route.waypoints)))
    assert check_route(route) is None


# ---------------------------------------------------------------------------
# Route lifecycle
# ---------------------------------------------------------------------------

class TestRouteLifecycle:

    def test_create_route(self):
        m = RouteModel()
        assert m.route is None
        result = m.create_route("Trip")
        assert result.applied
        assert m.route.name == "Trip"
        assert m.route.id == result.target_id
        assert m.route.waypoints == ()
        assert m.segment_count == 0

    def test_clear_route(self, model):
        assert model.clear_route().applied
        assert model.route is None
        assert model.clear_route().status == EditStatus.NO_ROUTE

    def test_load_route_reindexes_orders(self, model):
        _add(model, MADRID, PARIS)
        route = model.route
        shuffled = replace(route, waypoints=tuple(replace(wp, order=wp.order + 10) for wp in route.waypoints))

        other = RouteModel()
        assert other.load_route(shuffled).applied
        assert [wp.order for wp in other.route.waypoints] == [0, 1]

    def test_load_route_rejects_inconsistent_route(self):
        broken = Route(
            id="r1",
            name="Broken",
            waypoints=(Waypoint("a", MADRID, 0), Waypoint("b", PARIS, 1)),
            segments=(),
        )
        m = RouteModel()
        result = m.load_route(broken)
        assert result.status == EditStatus.INVALID
        assert "segments" in result.message
        assert m.route is None

    def test_load_route_rejects_unpinned_path(self):
        route = Route(
            id="r1",
            name="Unpinned",
            waypoints=(Waypoint("a", MADRID, 0), Waypoint("b", PARIS, 1)),
            segments=(Segment("s", "a", "b", path=(MADRID, BERLIN)),),
        )
        assert RouteModel().load_route(route).status == EditStatus.INVALID


# ---------------------------------------------------------------------------
# Waypoints
# ---------------------------------------------------------------------------

class TestWaypoints:

    def test_first_waypoint_has_no_segment(self, model):
        result = model.add_waypoint(MADRID, label="Madrid")
        assert result.applied
        wp = model.route.waypoints[0]
        assert wp.id == result.target_id
        assert wp.label == "Madrid"
        assert wp.order == 0
        assert model.segment_count == 0

    def test_second_waypoint_adds_straight_car_segment(self, model):
        a, b = _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        assert seg.start_waypoint_id == a
        assert seg.end_waypoint_id == b
        assert seg.transport_mode == TransportMode.CAR
        assert seg.path == (MADRID, PARIS)

    def test_add_waypoint_without_route(self):
        assert RouteModel().add_waypoint(MADRID).status == EditStatus.NO_ROUTE

    def test_add_waypoint_bad_coordinates(self, model):
        assert model.add_waypoint((float("nan"), 1.0)).status == EditStatus.INVALID
        assert model.add_waypoint("somewhere").status == EditStatus.INVALID
        assert model.route.waypoints == ()

    def test_update_waypoint_moves_segment_ends(self, model):
        a, b, c = _add(model, MADRID, PARIS, BERLIN)
        moved = (2.0, 49.0)
        assert model.update_waypoint(b, coordinates=moved).applied

        route = model.route
        assert route.get_waypoint(b).coordinates == moved
        assert route.segments[0].path[-1] == moved
        assert route.segments[1].path[0] == moved
        _assert_consistent(route)

    def test_update_waypoint_label(self, model):
        (a,) = _add(model, MADRID)
        model.update_waypoint(a, label="Start")
        assert model.route.get_waypoint(a).label == "Start"
        model.update_waypoint(a, label="")
        assert model.route.get_waypoint(a).label is None

    def test_update_unknown_waypoint(self, model):
        assert model.update_waypoint("nope", coordinates=PARIS).status == EditStatus.NOT_FOUND

    def test_remove_last_waypoint(self, model):
        a, b = _add(model, MADRID, PARIS)
        assert model.remove_waypoint(b).applied
        assert [wp.id for wp in model.route.waypoints] == [a]
        assert model.segment_count == 0

    def test_remove_unknown_waypoint_changes_nothing(self, model):
        _add(model, MADRID, PARIS)
        before = model.route
        result = model.remove_waypoint("nope")
        assert result.status == EditStatus.NOT_FOUND
        assert result.target_id == "nope"
        assert model.route is before

    def test_remove_without_route(self):
        assert RouteModel().remove_waypoint("x").status == EditStatus.NO_ROUTE

    def test_segment_count_invariant_under_random_edits(self, model):
        rng = random.Random(7)
        for _ in range(200):
            route = model.route
            action = rng.choice(["add", "add", "remove", "reorder"])
            if action == "add" or not route.waypoints:
                model.add_waypoint((rng.uniform(-10, 20), rng.uniform(35, 55)))
            elif action == "remove":
                model.remove_waypoint(rng.choice(route.waypoints).id)
            else:
                n = len(route.waypoints)
                model.reorder_waypoints(rng.randrange(n), rng.randrange(n))
            _assert_consistent(model.route)


# ---------------------------------------------------------------------------
# Segment rebuilding
# ---------------------------------------------------------------------------

class TestSegmentRebuild:

    def test_remove_middle_waypoint_bridges_gap(self, model):
        a, b, c = _add(model, MADRID, PARIS, BERLIN)
        first = model.route.segments[0]
        model.set_segment_transport_mode(first.id, TransportMode.TRAIN)

        model.remove_waypoint(b)
        route = model.route
        assert len(route.segments) == 1
        seg = route.segments[0]
        assert (seg.start_waypoint_id, seg.end_waypoint_id) == (a, c)
        assert seg.transport_mode == TransportMode.TRAIN
        assert seg.path == (MADRID, BERLIN)
        assert seg.id != first.id

    def test_remove_middle_waypoint_prefers_leg_leaving_start(self, model):
        a, b, c = _add(model, MADRID, PARIS, BERLIN)
        second = model.route.segments[1]
        model.set_segment_transport_mode(second.id, TransportMode.PLANE)

        model.remove_waypoint(b)
        # the old leg leaving the start waypoint wins over the plane leg
        assert model.route.segments[0].transport_mode == TransportMode.CAR

    def test_remove_first_waypoint_keeps_surviving_leg(self, model):
        a, b, c = _add(model, MADRID, PARIS, BERLIN)
        survivor = model.route.segments[1]
        model.remove_waypoint(a)
        assert model.route.segments == (survivor,)

    def test_remove_keeps_untouched_legs(self, model):
        a, b, c, d = _add(model, MADRID, PARIS, BERLIN, ROME)
        first = model.route.segments[0]
        model.remove_waypoint(d)
        assert model.route.segments[0] is first

    def test_reorder_reuses_reversed_leg(self, model):
        a, b = _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        model.set_segment_path(seg.id, [MADRID, (0.0, 45.0), PARIS])
        model.set_segment_transport_mode(seg.id, TransportMode.MOTORCYCLE)

        result = model.reorder_waypoints(1, 0)
        assert result.applied
        assert result.target_id == b

        route = model.route
        assert [wp.id for wp in route.waypoints] == [b, a]
        flipped = route.segments[0]
        assert flipped.id == seg.id
        assert (flipped.start_waypoint_id, flipped.end_waypoint_id) == (b, a)
        assert flipped.path == (PARIS, (0.0, 45.0), MADRID)
        assert flipped.transport_mode == TransportMode.MOTORCYCLE
        _assert_consistent(route)

    def test_reorder_synthesizes_missing_legs(self, model):
        a, b, c = _add(model, MADRID, PARIS, BERLIN)
        model.reorder_waypoints(0, 2)
        route = model.route
        assert [wp.id for wp in route.waypoints] == [b, c, a]
        # b->c existed, c->a is new and straight
        assert route.segments[1].path == (BERLIN, MADRID)
        _assert_consistent(route)

    def test_reorder_out_of_range(self, model):
        _add(model, MADRID, PARIS)
        before = model.route
        assert model.reorder_waypoints(0, 5).status == EditStatus.INVALID
        assert model.reorder_waypoints(-1, 0).status == EditStatus.INVALID
        assert model.route is before

    def test_reorder_same_index_is_applied(self, model):
        a, b = _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        assert model.reorder_waypoints(1, 1).applied
        assert model.route.segments == (seg,)


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------

class TestSegments:

    def test_set_transport_mode(self, model):
        _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        created = model.route.created_at
        assert model.set_segment_transport_mode(seg.id, "plane").applied
        assert model.route.segments[0].transport_mode == TransportMode.PLANE
        assert model.route.created_at == created
        assert model.route.updated_at >= created

    def test_set_unknown_transport_mode(self, model):
        _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        assert model.set_segment_transport_mode(seg.id, "boat").status == EditStatus.INVALID

    def test_set_mode_unknown_segment(self, model):
        assert model.set_segment_transport_mode("nope", "car").status == EditStatus.NOT_FOUND

    def test_set_segment_path_records_distance(self, model):
        _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        path = [MADRID, (-1.0, 43.0), PARIS]
        assert model.set_segment_path(seg.id, path, distance=1270000.0, duration=41000.0).applied
        updated = model.route.segments[0]
        assert updated.path == tuple(path)
        assert updated.distance == 1270000.0
        assert updated.duration == 41000.0

    def test_set_segment_path_pins_ends_to_waypoints(self, model):
        _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        model.set_segment_path(seg.id, [(-3.69, 40.41), (2.34, 48.85)])
        path = model.route.segments[0].path
        assert path[0] == MADRID
        assert path[-1] == PARIS
        assert len(path) == 4
        _assert_consistent(model.route)

    def test_set_segment_path_rejects_short_or_bad_paths(self, model):
        _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        assert model.set_segment_path(seg.id, [MADRID]).status == EditStatus.INVALID
        assert model.set_segment_path(seg.id, [MADRID, (float("inf"), 0.0)]).status == EditStatus.INVALID
        assert model.set_segment_path(seg.id, 42).status == EditStatus.INVALID
        assert model.route.segments[0].path == (MADRID, PARIS)

    def test_insert_path_node(self, model):
        _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        node = (0.0, 44.0)
        assert model.insert_path_node(seg.id, node).applied
        assert model.route.segments[0].path == (MADRID, node, PARIS)

    def test_insert_path_node_picks_closest_edge(self, model):
        _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        model.set_segment_path(seg.id, [MADRID, (-1.0, 43.0), (1.0, 46.0), PARIS])
        model.insert_path_node(seg.id, (0.1, 44.4))
        assert model.route.segments[0].path[2] == (0.1, 44.4)

    def test_segment_edits_without_route(self):
        m = RouteModel()
        assert m.set_segment_path("s", [MADRID, PARIS]).status == EditStatus.NO_ROUTE
        assert m.insert_path_node("s", MADRID).status == EditStatus.NO_ROUTE


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------

class TestListeners:

    def test_structural_edits_notify(self, model):
        calls = []
        model.add_listener(calls.append)
        a, b = _add(model, MADRID, PARIS)
        model.reorder_waypoints(0, 1)
        model.remove_waypoint(a)
        model.clear_route()
        assert len(calls) == 5
        assert calls[-1] is None

    def test_non_structural_edits_do_not_notify(self, model):
        a, b = _add(model, MADRID, PARIS)
        seg = model.route.segments[0]
        calls = []
        model.add_listener(calls.append)
        model.update_waypoint(a, coordinates=(-3.0, 40.0))
        model.set_segment_transport_mode(seg.id, TransportMode.TRAIN)
        model.set_segment_path(seg.id, [(-3.0, 40.0), PARIS])
        model.insert_path_node(seg.id, (0.0, 45.0))
        assert calls == []

    def test_failed_edits_do_not_notify(self, model):
        calls = []
        model.add_listener(calls.append)
        model.remove_waypoint("nope")
        model.reorder_waypoints(3, 4)
        assert calls == []

    def test_failing_listener_does_not_break_edit(self, model):
        def broken(route):
            raise RuntimeError("boom")

        model.add_listener(broken)
        assert model.add_waypoint(MADRID).applied
        assert len(model.route.waypoints) == 1

    def test_remove_listener(self, model):
        calls = []
        model.add_listener(calls.append)
        model.remove_listener(calls.append)
        model.add_waypoint(MADRID)
        assert calls == []
