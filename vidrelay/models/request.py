from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class DetectRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048, description="Video URL")

    @field_validator("url")
    @classmethod
    def strip_url(cls, v):
        """Platform matching happens in the resolver; only trim here"""
        v = v.strip()
        if not v:
            raise ValueError("URL must not be empty")
        return v


class DownloadRequest(DetectRequest):
    model_config = ConfigDict(populate_by_name=True)

    format_id: Optional[str] = Field(
        None,
        alias="formatId",
        max_length=200,
        description="Format identifier returned by detect (defaults to best)",
    )

    @field_validator("format_id")
    @classmethod
    def normalize_format_id(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None
