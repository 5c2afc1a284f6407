"""Playback API schemas."""

from typing import List

from pydantic import BaseModel, Field

from api.schemas.common import Coordinate


class ScrubRequest(BaseModel):
    progress: float = Field(..., ge=0.0, le=1.0)


class SpeedRequest(BaseModel):
    speed: float = Field(..., gt=0.0, le=10.0)


class DurationRequest(BaseModel):
    """Durations outside the supported range are clamped, not rejected."""
    seconds: float = Field(..., gt=0.0)


class AnimationStateResponse(BaseModel):
    status: str
    is_playing: bool
    is_paused: bool
    current_progress: float
    current_segment_index: int
    segment_progress: float
    speed: float
    duration: float
    completions: int = 0


class FrameResponse(BaseModel):
    marker_position: Coordinate
    current_segment_index: int
    drawn_path: List[Coordinate]
    progress: float
