"""Video task data models for the image-to-video service."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class VideoTaskStatus(str, Enum):
    """Remote job states reported by the video service."""
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoTaskStatus.SUCCESS, VideoTaskStatus.FAILED)


class VideoOptions(BaseModel):
    """Submission options; unset fields fall back to settings."""
    model: Optional[str] = Field(None, description="Video model identifier")
    prompt: Optional[str] = Field(None, description="Animation instruction")
    duration: Optional[int] = Field(None, gt=0, le=16, description="Clip length in seconds")
    resolution: Optional[str] = Field(None, description="Resolution label, e.g. 1080p")


class VideoTask(BaseModel):
    """Handle for a submitted image-to-video job."""
    task_id: str = Field(..., description="Opaque remote task identifier")
    status: VideoTaskStatus = Field(VideoTaskStatus.QUEUED)
    video_url: Optional[str] = Field(None, description="Playable video URL on success")
    attempts: int = Field(0, ge=0, description="Status polls performed")
