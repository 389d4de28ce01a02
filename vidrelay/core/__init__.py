from .errors import (
    DownloadFailed,
    ExtractionFailed,
    FileMissing,
    Forbidden,
    InternalError,
    InvalidFormat,
    NotFound,
    UnsupportedUrl,
    ValidationError,
    VidRelayError,
)

__all__ = [
    "DownloadFailed",
    "ExtractionFailed",
    "FileMissing",
    "Forbidden",
    "InternalError",
    "InvalidFormat",
    "NotFound",
    "UnsupportedUrl",
    "ValidationError",
    "VidRelayError",
]
