"""
Upload handling.

Flow:
1. Validate size and content type against the upload policy
2. Generate a unique key under the caller's prefix
3. Store the original
4. Best-effort enqueue of the thumbnail job

The job is published only after the original is stored, so a job never
references a missing object. Queue failures do not undo the upload: the
original is kept and the caller still gets a success, the failure is logged.
"""
import logging
import mimetypes
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from picstash.config import Settings
from picstash.errors import ValidationError
from picstash.schemas.thumbnail import ThumbnailJob
from picstash.services.thumbnail_queue import ThumbnailQueue
from picstash.storage.keys import build_object_key
from picstash.storage.s3_client import S3Client
from picstash.utils.logging import log_upload_stored
from picstash.utils.metrics import uploads_total, upload_bytes_total

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    bucket: str
    key: str
    content_type: str
    size_bytes: int
    thumbnail_queued: bool


class UploadService:
    """Stores originals and schedules their thumbnails."""

    def __init__(self, storage: S3Client, queue: ThumbnailQueue, config: Settings):
        self.storage = storage
        self.queue = queue
        self.config = config

    def resolve_content_type(self, filename: str, content_type: Optional[str]) -> str:
        """
        Normalize the declared content type, guessing from the filename when
        the client sent none or a generic one.
        """
        declared = (content_type or "").split(";")[0].strip().lower()
        if declared and declared != "application/octet-stream":
            return declared
        guessed, _ = mimetypes.guess_type(filename or "")
        return (guessed or "application/octet-stream").lower()

    def validate(self, filename: str, content: bytes, content_type: str) -> None:
        """
        Apply the upload policy.

        Raises:
            ValidationError: Empty or oversized payload, disallowed content type
        """
        if not filename:
            raise ValidationError("filename required")
        if not content:
            raise ValidationError("No file uploaded")
        if len(content) > self.config.max_upload_bytes:
            raise ValidationError(
                f"File too large ({len(content)} bytes, max {self.config.max_upload_bytes})"
            )
        if content_type not in self.config.allowed_content_types:
            raise ValidationError(f"Unsupported content type '{content_type}'")

    def upload(
        self,
        owner: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Store an original for the owner and enqueue its thumbnail.

        Raises:
            ValidationError: Policy violation, nothing stored
            DependencyError: The original could not be stored, nothing enqueued
        """
        start_time = time.time()
        content_type = self.resolve_content_type(filename, content_type)

        try:
            self.validate(filename, content, content_type)
        except ValidationError:
            uploads_total.labels(result="rejected").inc()
            raise

        key = build_object_key(owner, filename)

        try:
            self.storage.put_object(key, content, content_type)
        except Exception:
            uploads_total.labels(result="failed").inc()
            raise

        uploads_total.labels(result="stored").inc()
        upload_bytes_total.inc(len(content))
        log_upload_stored(
            logger,
            key=key,
            user_id=owner,
            size_bytes=len(content),
            duration_ms=(time.time() - start_time) * 1000,
            content_type=content_type,
        )

        job = ThumbnailJob(
            bucket=self.storage.bucket,
            key=key,
            user=owner,
            uploaded_at=datetime.now(timezone.utc),
        )
        queued = self.queue.enqueue(job)

        return UploadResult(
            bucket=self.storage.bucket,
            key=key,
            content_type=content_type,
            size_bytes=len(content),
            thumbnail_queued=queued,
        )
