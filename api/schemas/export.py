"""Video export API schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ExportRequest(BaseModel):
    fps: int = Field(30, ge=1, le=60)
    quality: Literal["low", "medium", "high"] = "high"
    format: Literal["webm"] = "webm"


class ExportJobResponse(BaseModel):
    id: str
    state: str = Field(..., description="running, completed, timeout, cancelled or failed")
    is_exporting: bool
    progress: float
    frames: int
    fps: int
    quality: str
    truncated: Optional[bool] = None
    error: Optional[str] = None
    download_url: Optional[str] = None
    created_at: datetime
