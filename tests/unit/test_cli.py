"""
Tests for the command-line tool.
"""

import argparse
import json
from unittest.mock import patch

import pytest

from api.cli import parse_point, print_arc, render
from routeanim.route.document import save_route


class TestArguments:

    def test_parse_point(self):
        assert parse_point("-3.70,40.42") == (-3.70, 40.42)

    @pytest.mark.parametrize("value", ["3.7", "a,b", "1,2,3"])
    def test_parse_point_rejects(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_point(value)


class TestArc:

    def test_prints_geojson(self, capsys):
        print_arc((-3.70, 40.42), (2.35, 48.86), 10)
        data = json.loads(capsys.readouterr().out)
        assert data["type"] == "LineString"
        assert len(data["coordinates"]) == 11
        assert data["coordinates"][0] == [-3.70, 40.42]


class TestRender:

    def test_missing_document(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            render(str(tmp_path / "missing.json"))
        assert exc.value.code == 1

    def test_renders_with_encoder(self, madrid_paris, make_encoder, tmp_path, capsys):
        document = save_route(madrid_paris.model.route, tmp_path / "trip.json")
        encoder = make_encoder()

        with patch("api.cli.FFmpegEncoder.from_preset", return_value=encoder) as from_preset:
            render(str(document), output=str(tmp_path / "trip.webm"), quality="low", duration=5)

        assert from_preset.call_args.args[0] == str(tmp_path / "trip.webm")
        assert encoder.stopped
        assert encoder.frames > 100
        out = capsys.readouterr().out
        assert "Stopped: completed" in out
        assert f"Frames: {encoder.frames}" in out

    def test_encoder_failure_exits(self, madrid_paris, make_encoder, tmp_path):
        document = save_route(madrid_paris.model.route, tmp_path / "trip.json")

        with patch("api.cli.FFmpegEncoder.from_preset", return_value=make_encoder(fail_on_start=True)):
            with pytest.raises(SystemExit) as exc:
                render(str(document), quality="low")
        assert exc.value.code == 1
