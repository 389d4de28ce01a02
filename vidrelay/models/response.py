from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FormatDescriptor(BaseModel):
    """One selectable quality/codec option"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    format_id: str
    resolution: str
    filesize: Optional[int] = None
    note: Optional[str] = None
    ext: Optional[str] = None
    has_audio: Optional[bool] = Field(default=None, alias="hasAudio")
    has_video: Optional[bool] = Field(default=None, alias="hasVideo")


class VideoMetadata(BaseModel):
    """Normalized detect result"""
    title: str
    thumbnail: str
    duration: Optional[int] = Field(default=None, ge=0)
    platform: str
    formats: List[FormatDescriptor] = []


class DetectResponse(BaseModel):
    success: bool = True
    data: VideoMetadata


class DownloadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    download_url: str = Field(..., alias="downloadUrl")
    filename: str
    size: int
