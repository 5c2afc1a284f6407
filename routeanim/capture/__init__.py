"""Video capture: rendering surface, encoders and the capture orchestrator."""

from .encoder import (
    QUALITY_PRESETS,
    Encoder,
    EncoderError,
    FFmpegEncoder,
    QualityPreset,
    ffmpeg_available,
    get_preset,
)
from .surface import RouteSurface
from .orchestrator import (
    CaptureConfig,
    CaptureError,
    CaptureOrchestrator,
    CaptureResult,
    CaptureStatus,
    CaptureStopReason,
)

__all__ = [
    "QUALITY_PRESETS",
    "Encoder",
    "EncoderError",
    "FFmpegEncoder",
    "QualityPreset",
    "ffmpeg_available",
    "get_preset",
    "RouteSurface",
    "CaptureConfig",
    "CaptureError",
    "CaptureOrchestrator",
    "CaptureResult",
    "CaptureStatus",
    "CaptureStopReason",
]
