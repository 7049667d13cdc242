"""
Pydantic schemas for the thumbnail pipeline.
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ThumbnailJob(BaseModel):
    """
    Queue message referencing one stored original.

    Serialized as the task kwargs: {"bucket": ..., "key": ...} plus the
    optional owner and upload time.
    """
    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)
    user: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    def to_message(self) -> dict:
        """JSON-safe message body."""
        return self.model_dump(mode="json", exclude_none=True)


class ThumbnailResult(BaseModel):
    """Outcome of processing one job."""
    key: str
    status: str  # created, skipped, missing, failed, error
    thumbnail_key: Optional[str] = None
    error: Optional[str] = None
