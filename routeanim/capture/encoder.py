"""
Video encoders.

An encoder takes PIL images one at a time and produces a single media
file when stopped. ``FFmpegEncoder`` streams raw RGB frames into an
``ffmpeg`` subprocess that writes VP9 in a WebM container.
"""

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from PIL import Image

from routeanim.config import settings

logger = logging.getLogger(__name__)


class EncoderError(Exception):
    """Encoder could not start, accept a frame or finish the file."""
    pass


@dataclass(frozen=True)
class QualityPreset:
    name: str
    width: int
    height: int
    bitrate: int  # bits per second

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


QUALITY_PRESETS: Dict[str, QualityPreset] = {
    "low": QualityPreset("low", 854, 480, 1_000_000),
    "medium": QualityPreset("medium", 1280, 720, 2_500_000),
    "high": QualityPreset("high", 1920, 1080, 5_000_000),
}


def get_preset(quality: str) -> QualityPreset:
    try:
        return QUALITY_PRESETS[quality]
    except KeyError:
        raise ValueError(
            f"Unknown export quality '{quality}', expected one of {sorted(QUALITY_PRESETS)}"
        ) from None


def ffmpeg_available(binary: Optional[str] = None) -> bool:
    """Whether the ffmpeg executable can be found on PATH."""
    return shutil.which(binary or settings.ffmpeg_binary) is not None


class Encoder(Protocol):
    """What the capture orchestrator needs from an encoder."""

    size: Tuple[int, int]
    on_complete: Optional[Callable[[Path], None]]

    def start(self) -> None:
        ...

    def feed(self, image: Image.Image) -> None:
        ...

    def stop(self) -> Optional[Path]:
        ...


class FFmpegEncoder:
    """
    Streaming WebM/VP9 encoder backed by an ffmpeg subprocess.

    Args:
        output_path: Where the .webm file is written
        width, height: Output resolution; frames of another size are resized
        fps: Frame rate of the stream
        bitrate: Target video bitrate in bits per second
        binary: ffmpeg executable (defaults to ROUTEANIM_FFMPEG_BINARY)
        on_complete: Called with the artifact path after a successful stop
    """

    def __init__(
        self,
        output_path,
        width: int,
        height: int,
        fps: int,
        bitrate: int,
        binary: Optional[str] = None,
        on_complete: Optional[Callable[[Path], None]] = None,
    ):
        self.output_path = Path(output_path)
        self.size = (width, height)
        self.fps = fps
        self.bitrate = bitrate
        self.binary = binary or settings.ffmpeg_binary
        self.on_complete = on_complete
        self.frames = 0
        self._process: Optional[subprocess.Popen] = None
        self._log = None

    @classmethod
    def from_preset(cls, output_path, preset: QualityPreset, fps: int, **kwargs) -> "FFmpegEncoder":
        return cls(output_path, preset.width, preset.height, fps, preset.bitrate, **kwargs)

    @property
    def is_running(self) -> bool:
        return self._process is not None

    def build_command(self) -> List[str]:
        width, height = self.size
        return [
            self.binary, "-y",
            "-loglevel", "error",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{width}x{height}",
            "-r", str(self.fps),
            "-i", "-",
            "-c:v", "libvpx-vp9",
            "-b:v", str(self.bitrate),
            "-deadline", "realtime",
            "-cpu-used", "8",
            "-pix_fmt", "yuv420p",
            "-f", "webm",
            str(self.output_path),
        ]

    def start(self) -> None:
        """Launch ffmpeg. Raises EncoderError if it is missing or fails to start."""
        if self._process is not None:
            raise EncoderError("Encoder already started")
        if not ffmpeg_available(self.binary):
            raise EncoderError(f"ffmpeg executable '{self.binary}' not found")

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command()
        logger.debug(f"Starting encoder: {' '.join(cmd)}")
        # ffmpeg blocks once an unread stderr pipe fills, so it logs to a file
        self._log = tempfile.TemporaryFile()
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=self._log,
            )
        except OSError as e:
            self._read_log()
            raise EncoderError(f"Could not start ffmpeg: {e}") from e
        self.frames = 0

    def _read_log(self) -> str:
        log, self._log = self._log, None
        if log is None:
            return ""
        with log:
            log.seek(0)
            return log.read().decode(errors="replace")

    def feed(self, image: Image.Image) -> None:
        """Write one frame to the stream."""
        if self._process is None:
            raise EncoderError("Encoder is not running")

        if image.mode != "RGB":
            image = image.convert("RGB")
        if image.size != self.size:
            image = image.resize(self.size, Image.BILINEAR)

        try:
            self._process.stdin.write(image.tobytes())
        except (BrokenPipeError, OSError) as e:
            raise EncoderError(f"ffmpeg stopped accepting frames: {e}") from e
        self.frames += 1

    def stop(self) -> Optional[Path]:
        """
        Close the stream and wait for ffmpeg to finish the file.

        Returns:
            Path of the finished artifact, or None if the encoder never ran
        """
        process, self._process = self._process, None
        if process is None:
            return None

        try:
            process.stdin.close()
        except OSError as e:
            logger.warning(f"Closing ffmpeg stdin failed: {e}")
        try:
            returncode = process.wait(timeout=60)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            self._read_log()
            raise EncoderError("ffmpeg did not finish within 60 s")

        stderr = self._read_log()
        if returncode != 0:
            raise EncoderError(f"ffmpeg exited with {returncode}: {stderr.strip()[-500:]}")

        logger.info(f"Encoded {self.frames} frames to {self.output_path}")
        if self.on_complete:
            self.on_complete(self.output_path)
        return self.output_path
