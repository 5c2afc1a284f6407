"""
Tests for the ffmpeg encoder wrapper.

ffmpeg itself is never launched: subprocess.Popen and the PATH lookup
are patched.
"""

import io
import subprocess
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from routeanim.capture import QUALITY_PRESETS, EncoderError, FFmpegEncoder, get_preset


def _fake_process(returncode=0):
    process = MagicMock()
    process.stdin = io.BytesIO()
    process.stdin.close = MagicMock()
    process.wait.return_value = returncode
    return process


def _popen(process, stderr=b""):
    """Popen stand-in that writes ``stderr`` to the log file ffmpeg was given."""
    def launch(cmd, **kwargs):
        kwargs["stderr"].write(stderr)
        return process
    return launch


@pytest.fixture
def encoder(tmp_path):
    return FFmpegEncoder.from_preset(tmp_path / "out" / "route.webm", get_preset("low"), fps=30, binary="ffmpeg")


class TestPresets:

    def test_presets(self):
        assert QUALITY_PRESETS["low"].size == (854, 480)
        assert QUALITY_PRESETS["medium"].size == (1280, 720)
        assert QUALITY_PRESETS["high"].size == (1920, 1080)
        assert QUALITY_PRESETS["high"].bitrate == 5_000_000

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            get_preset("ultra")


class TestCommand:

    def test_command_line(self, encoder):
        cmd = encoder.build_command()
        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-s") + 1] == "854x480"
        assert cmd[cmd.index("-r") + 1] == "30"
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-b:v") + 1] == "1000000"
        assert cmd[cmd.index("-i") + 1] == "-"
        assert cmd[-1].endswith("route.webm")


class TestLifecycle:

    def test_missing_binary(self, encoder):
        with patch("routeanim.capture.encoder.shutil.which", return_value=None):
            with pytest.raises(EncoderError, match="not found"):
                encoder.start()
        assert not encoder.is_running

    def test_popen_failure(self, encoder):
        with patch("routeanim.capture.encoder.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("routeanim.capture.encoder.subprocess.Popen", side_effect=OSError("denied")):
            with pytest.raises(EncoderError, match="denied"):
                encoder.start()

    def test_feed_before_start(self, encoder):
        with pytest.raises(EncoderError):
            encoder.feed(Image.new("RGB", (854, 480)))

    def test_stop_before_start(self, encoder):
        assert encoder.stop() is None

    def test_stream_frames(self, encoder):
        process = _fake_process()
        done = []
        encoder.on_complete = done.append

        with patch("routeanim.capture.encoder.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("routeanim.capture.encoder.subprocess.Popen", return_value=process) as popen:
            encoder.start()
            assert encoder.is_running
            assert popen.call_args.kwargs["stdin"] == subprocess.PIPE

            encoder.feed(Image.new("RGB", (854, 480), (255, 0, 0)))
            # wrong size and mode are converted
            encoder.feed(Image.new("RGBA", (100, 50)))
            written = process.stdin.getvalue()

            artifact = encoder.stop()

        assert len(written) == 2 * 854 * 480 * 3
        assert written[:3] == b"\xff\x00\x00"
        assert encoder.frames == 2
        assert artifact == encoder.output_path
        assert done == [encoder.output_path]
        assert not encoder.is_running
        assert encoder.output_path.parent.exists()

    def test_stderr_goes_to_a_file(self, encoder):
        with patch("routeanim.capture.encoder.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("routeanim.capture.encoder.subprocess.Popen", return_value=_fake_process()) as popen:
            encoder.start()
            log = popen.call_args.kwargs["stderr"]
            assert log is not subprocess.PIPE
            assert hasattr(log, "seek")
            encoder.stop()
        assert log.closed

    def test_nonzero_exit(self, encoder):
        process = _fake_process(returncode=1)
        launch = _popen(process, stderr=b"Unknown encoder 'libvpx-vp9'")
        with patch("routeanim.capture.encoder.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("routeanim.capture.encoder.subprocess.Popen", side_effect=launch):
            encoder.start()
            with pytest.raises(EncoderError, match="libvpx-vp9"):
                encoder.stop()

    def test_hung_ffmpeg_is_killed_and_reaped(self, encoder):
        process = _fake_process()
        process.wait.side_effect = [subprocess.TimeoutExpired("ffmpeg", 60), -9]
        with patch("routeanim.capture.encoder.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("routeanim.capture.encoder.subprocess.Popen", return_value=process):
            encoder.start()
            with pytest.raises(EncoderError, match="did not finish"):
                encoder.stop()

        process.kill.assert_called_once()
        assert process.wait.call_count == 2
        assert not encoder.is_running

    def test_broken_pipe(self, encoder):
        process = _fake_process()
        process.stdin = MagicMock()
        process.stdin.write.side_effect = BrokenPipeError("closed")
        with patch("routeanim.capture.encoder.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("routeanim.capture.encoder.subprocess.Popen", return_value=process):
            encoder.start()
            with pytest.raises(EncoderError):
                encoder.feed(Image.new("RGB", (854, 480)))

    def test_double_start(self, encoder):
        with patch("routeanim.capture.encoder.shutil.which", return_value="/usr/bin/ffmpeg"), \
                patch("routeanim.capture.encoder.subprocess.Popen", return_value=_fake_process()):
            encoder.start()
            with pytest.raises(EncoderError):
                encoder.start()
