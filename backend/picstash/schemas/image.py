"""
Pydantic schemas for image endpoints.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime


class UploadRequest(BaseModel):
    """JSON upload body; the file travels base64-encoded."""
    filename: Optional[str] = Field(None, description="Original filename")
    file: Optional[str] = Field(None, description="Base64 file content")
    content: Optional[str] = Field(None, description="Alias of file")
    content_type: Optional[str] = Field(None, description="MIME type, guessed from filename if omitted")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "filename": "cat.png",
                "file": "iVBORw0KGgo...",
                "content_type": "image/png"
            }
        }
    )


class UploadResponse(BaseModel):
    message: str
    key: str
    thumbnail_queued: bool


class ImageItem(BaseModel):
    """Listing entry; field names match the S3 listing shape."""
    Key: str
    Size: Optional[int] = None
    LastModified: Optional[datetime] = None
    ThumbnailKey: Optional[str] = None


class ImageUrlResponse(BaseModel):
    url: str
    expires_in: int


class ViewTokenRequest(BaseModel):
    key: str = Field(..., min_length=1)


class ViewTokenResponse(BaseModel):
    token: str
    url: str
    expires_in: int


class DeleteRequest(BaseModel):
    """Delete by key or by a previously issued URL."""
    key: Optional[str] = None
    url: Optional[str] = None


class DeleteResponse(BaseModel):
    message: str
    deleted: List[str]
