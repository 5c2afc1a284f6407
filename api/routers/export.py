"""
Video export API router.

An export captures the current route on an independent copy of the
session, in a background thread, so interactive playback is not
disturbed. Clients poll the job for progress and download the artifact
once it has finished.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from api.schemas import ExportJobResponse, ExportRequest
from api.state import ExportJob, ExportManager, get_exports, get_session
from routeanim.capture import CaptureConfig
from routeanim.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["Export"])


def job_response(job: ExportJob) -> ExportJobResponse:
    status = job.status
    result = job.result
    download_url = None
    if result is not None and result.artifact is not None:
        download_url = f"/api/export/{job.id}/download"

    return ExportJobResponse(
        id=job.id,
        state=job.state,
        is_exporting=status.is_exporting,
        progress=status.progress,
        frames=status.frames,
        fps=job.config.fps,
        quality=job.config.quality,
        truncated=result.truncated if result is not None else None,
        error=job.error,
        download_url=download_url,
        created_at=job.created_at,
    )


def _get_job(exports: ExportManager, job_id: str) -> ExportJob:
    job = exports.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Export job not found: {job_id}")
    return job


@router.post("", response_model=ExportJobResponse, status_code=202)
async def start_export(
    request: ExportRequest,
    session: Session = Depends(get_session),
    exports: ExportManager = Depends(get_exports),
):
    """
    Start exporting the current route to video.

    Responds 409 when there is nothing to capture or the encoder cannot
    be started.
    """
    config = CaptureConfig.from_settings(
        fps=request.fps, quality=request.quality, format=request.format
    )
    job = exports.start(session, config)
    return job_response(job)


@router.get("", response_model=List[ExportJobResponse])
async def list_exports(exports: ExportManager = Depends(get_exports)):
    return [job_response(job) for job in exports.jobs()]


@router.get("/{job_id}", response_model=ExportJobResponse)
async def get_export(job_id: str, exports: ExportManager = Depends(get_exports)):
    return job_response(_get_job(exports, job_id))


@router.post("/{job_id}/cancel", response_model=ExportJobResponse)
async def cancel_export(job_id: str, exports: ExportManager = Depends(get_exports)):
    """Stop an export early; frames captured so far are still encoded."""
    _get_job(exports, job_id)
    return job_response(exports.cancel(job_id))


@router.get("/{job_id}/download")
async def download_export(job_id: str, exports: ExportManager = Depends(get_exports)):
    job = _get_job(exports, job_id)
    result = job.result
    if result is None or result.artifact is None:
        raise HTTPException(status_code=409, detail=f"Export {job_id} has no artifact yet")
    if not result.artifact.exists():
        raise HTTPException(status_code=410, detail=f"Artifact for export {job_id} is gone")

    return FileResponse(
        result.artifact,
        media_type=f"video/{job.config.format}",
        filename=result.artifact.name,
    )
