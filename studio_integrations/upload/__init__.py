"""Large media uploads."""
from .resumable import (
    ResumableUploadClient,
    SourceMedia,
    UploadError,
    UploadNetworkError,
    UploadPhase,
    UploadResult,
    VideoMetadata,
)

__all__ = [
    "ResumableUploadClient",
    "SourceMedia",
    "UploadError",
    "UploadNetworkError",
    "UploadPhase",
    "UploadResult",
    "VideoMetadata",
]
