"""
Tests for route documents (JSON save / load).
"""

import json

import pytest

from routeanim.route.document import (
    DocumentError,
    load_route,
    route_from_document,
    route_to_document,
    save_route,
)
from routeanim.route.transport import TransportMode


def _strip_times(route):
    return (route.id, route.name, route.waypoints, route.segments)


class TestDocumentFormat:

    def test_camel_case_keys(self, three_stop):
        doc = route_to_document(three_stop.model.route)
        assert set(doc) == {"id", "name", "waypoints", "segments", "createdAt", "updatedAt"}

        segment = doc["segments"][0]
        assert segment["startWaypointId"] == doc["waypoints"][0]["id"]
        assert segment["endWaypointId"] == doc["waypoints"][1]["id"]
        assert segment["transportMode"] == "train"
        assert doc["segments"][1]["transportMode"] == "plane"
        assert segment["path"][0] == list(doc["waypoints"][0]["coordinates"])

    def test_document_is_json_serializable(self, three_stop):
        doc = route_to_document(three_stop.model.route)
        assert json.loads(json.dumps(doc)) == doc

    def test_labels_and_order(self, three_stop):
        doc = route_to_document(three_stop.model.route)
        assert [wp["label"] for wp in doc["waypoints"]] == ["Madrid", "Paris", "Berlin"]
        assert [wp["order"] for wp in doc["waypoints"]] == [0, 1, 2]


class TestRoundTrip:

    def test_round_trip_preserves_route(self, three_stop):
        model = three_stop.model
        seg = model.route.segments[0]
        model.set_segment_path(seg.id, [(-3.70, 40.42), (0.0, 44.5), (2.35, 48.86)], 1_200_000.0, 40_000.0)
        original = model.route

        restored = route_from_document(route_to_document(original))

        assert _strip_times(restored) == _strip_times(original)
        assert restored.segments[0].distance == 1_200_000.0
        assert restored.segments[0].transport_mode == TransportMode.TRAIN

    def test_timestamps_are_regenerated(self, madrid_paris):
        doc = route_to_document(madrid_paris.model.route)
        doc["createdAt"] = "2001-01-01T00:00:00+00:00"
        restored = route_from_document(doc)
        assert restored.created_at.year != 2001

    def test_waypoints_sorted_by_order(self, madrid_paris):
        doc = route_to_document(madrid_paris.model.route)
        doc["waypoints"].reverse()
        restored = route_from_document(doc)
        assert [wp.label for wp in restored.waypoints] == ["Madrid", "Paris"]

    def test_empty_route(self, session):
        restored = route_from_document(route_to_document(session.model.route))
        assert restored.waypoints == ()
        assert restored.segments == ()

    def test_missing_transport_mode_defaults_to_car(self, madrid_paris):
        doc = route_to_document(madrid_paris.model.route)
        del doc["segments"][0]["transportMode"]
        assert route_from_document(doc).segments[0].transport_mode == TransportMode.CAR


class TestInvalidDocuments:

    def test_not_a_route(self):
        with pytest.raises(DocumentError):
            route_from_document({"name": "no id"})

    def test_unknown_transport_mode(self, madrid_paris):
        doc = route_to_document(madrid_paris.model.route)
        doc["segments"][0]["transportMode"] = "teleport"
        with pytest.raises(DocumentError):
            route_from_document(doc)

    def test_short_path(self, madrid_paris):
        doc = route_to_document(madrid_paris.model.route)
        doc["segments"][0]["path"] = [[-3.70, 40.42]]
        with pytest.raises(DocumentError):
            route_from_document(doc)

    def test_missing_segment(self, three_stop):
        doc = route_to_document(three_stop.model.route)
        doc["segments"].pop()
        with pytest.raises(DocumentError, match="expected 2 segments"):
            route_from_document(doc)

    def test_path_detached_from_waypoints(self, madrid_paris):
        doc = route_to_document(madrid_paris.model.route)
        doc["segments"][0]["path"][0] = [0.0, 0.0]
        with pytest.raises(DocumentError, match="does not end at its waypoints"):
            route_from_document(doc)

    def test_segment_between_wrong_waypoints(self, three_stop):
        doc = route_to_document(three_stop.model.route)
        doc["segments"][0]["endWaypointId"] = doc["waypoints"][2]["id"]
        with pytest.raises(DocumentError):
            route_from_document(doc)


class TestFiles:

    def test_save_and_load(self, three_stop, tmp_path):
        original = three_stop.model.route
        path = save_route(original, tmp_path / "routes" / "trip.json")

        assert path.exists()
        assert json.loads(path.read_text())["id"] == original.id

        restored = load_route(path)
        assert _strip_times(restored) == _strip_times(original)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_route(tmp_path / "missing.json")

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(DocumentError):
            load_route(path)
