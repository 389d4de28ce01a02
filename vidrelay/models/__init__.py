from .internal import DownloadResult
from .request import DetectRequest, DownloadRequest
from .response import DetectResponse, DownloadResponse, FormatDescriptor, VideoMetadata

__all__ = [
    "DetectRequest",
    "DetectResponse",
    "DownloadRequest",
    "DownloadResponse",
    "DownloadResult",
    "FormatDescriptor",
    "VideoMetadata",
]
