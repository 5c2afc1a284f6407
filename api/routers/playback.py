"""
Playback API router.

Controls the session's Playback Engine. When real-time playback is on,
a background tick source advances the engine between requests; clients
poll ``/api/playback/frame`` to draw the marker and trail.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from api.schemas import (
    AnimationStateResponse,
    DurationRequest,
    FrameResponse,
    ScrubRequest,
    SpeedRequest,
)
from api.state import get_session
from routeanim.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/playback", tags=["Playback"])


def state_response(session: Session) -> AnimationStateResponse:
    engine = session.engine
    state = engine.snapshot()
    return AnimationStateResponse(
        status=state.status.value,
        is_playing=state.is_playing,
        is_paused=state.is_paused,
        current_progress=state.current_progress,
        current_segment_index=state.current_segment_index,
        segment_progress=state.segment_progress,
        speed=state.speed,
        duration=state.duration,
        completions=engine.completions,
    )


@router.get("", response_model=AnimationStateResponse)
async def get_state(session: Session = Depends(get_session)):
    return state_response(session)


@router.post("/play", response_model=AnimationStateResponse)
async def play(session: Session = Depends(get_session)):
    """Start or resume playback. Progress only advances once the route has segments."""
    session.engine.play()
    return state_response(session)


@router.post("/pause", response_model=AnimationStateResponse)
async def pause(session: Session = Depends(get_session)):
    session.engine.pause()
    return state_response(session)


@router.post("/stop", response_model=AnimationStateResponse)
async def stop(session: Session = Depends(get_session)):
    """Stop and rewind to the start."""
    session.engine.stop()
    return state_response(session)


@router.post("/scrub", response_model=AnimationStateResponse)
async def scrub(request: ScrubRequest, session: Session = Depends(get_session)):
    session.engine.scrub(request.progress)
    return state_response(session)


@router.put("/speed", response_model=AnimationStateResponse)
async def set_speed(request: SpeedRequest, session: Session = Depends(get_session)):
    session.engine.set_speed(request.speed)
    return state_response(session)


@router.put("/duration", response_model=AnimationStateResponse)
async def set_duration(request: DurationRequest, session: Session = Depends(get_session)):
    """Set the animation length; values are clamped to 5-30 seconds."""
    session.engine.set_duration(request.seconds)
    return state_response(session)


@router.get("/frame", response_model=FrameResponse, responses={204: {"description": "Nothing to draw"}})
async def get_frame(session: Session = Depends(get_session)):
    """
    Frame for the current playback position.

    Returns 204 when there is nothing to draw (no route, no segments or a
    degenerate segment path).
    """
    frame = session.frame()
    if frame is None:
        return Response(status_code=204)
    return FrameResponse(
        marker_position=frame.marker_position,
        current_segment_index=frame.current_segment_index,
        drawn_path=list(frame.drawn_path),
        progress=frame.progress,
    )
