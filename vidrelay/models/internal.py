from pydantic import BaseModel


class DownloadResult(BaseModel):
    """A file materialized in storage, awaiting its single delivery"""
    filename: str
    filepath: str
    size_bytes: int
