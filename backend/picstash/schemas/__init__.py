"""
Pydantic schemas for API request/response validation.
"""
from picstash.schemas.auth import Credentials, MessageResponse, TokenResponse
from picstash.schemas.image import (
    UploadRequest,
    UploadResponse,
    ImageItem,
    ImageUrlResponse,
    ViewTokenRequest,
    ViewTokenResponse,
    DeleteRequest,
    DeleteResponse,
)
from picstash.schemas.thumbnail import ThumbnailJob, ThumbnailResult

__all__ = [
    "Credentials",
    "MessageResponse",
    "TokenResponse",
    "UploadRequest",
    "UploadResponse",
    "ImageItem",
    "ImageUrlResponse",
    "ViewTokenRequest",
    "ViewTokenResponse",
    "DeleteRequest",
    "DeleteResponse",
    "ThumbnailJob",
    "ThumbnailResult",
]
