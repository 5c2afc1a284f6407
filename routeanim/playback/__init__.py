"""Playback: state machine, tick sources and frame sampling."""

from .engine import AnimationState, PlaybackEngine, PlaybackStatus, segment_position
from .ticker import (
    Clock,
    ManualClock,
    PeriodicScheduler,
    PeriodicTask,
    SystemClock,
    ThreadTickSource,
)
from .sampler import Frame, sample_frame, smoothed_path

__all__ = [
    "AnimationState",
    "PlaybackEngine",
    "PlaybackStatus",
    "segment_position",
    "Clock",
    "ManualClock",
    "PeriodicScheduler",
    "PeriodicTask",
    "SystemClock",
    "ThreadTickSource",
    "Frame",
    "sample_frame",
    "smoothed_path",
]
