"""
Thumbnail generation.

ThumbnailGenerator turns image bytes into a fixed-size re-encoded image.
ThumbnailWorker applies it to one queued job: fetch the original, render,
store under the derived key.

Processing is idempotent. The derived key is a pure function of the
original key and rendering is deterministic, so a redelivered job overwrites
the same object with the same bytes.
"""
import io
import logging
import struct
import time
from typing import Iterable, List, Optional
from urllib.parse import quote

from PIL import Image, ImageOps, UnidentifiedImageError

from picstash.config import Settings, settings
from picstash.errors import DependencyError, NotFoundError, TransformError
from picstash.schemas.thumbnail import ThumbnailJob, ThumbnailResult
from picstash.storage.keys import derive_thumbnail_key, is_thumbnail_key
from picstash.storage.s3_client import S3Client, get_s3_client
from picstash.utils.logging import (
    log_thumbnail_job_started,
    log_thumbnail_job_completed,
    log_thumbnail_job_skipped,
    log_thumbnail_job_failed,
)
from picstash.utils.metrics import thumbnail_jobs_total, thumbnail_job_duration_seconds

logger = logging.getLogger(__name__)

FIT = "fit"
EXACT = "exact"

# Formats that cannot carry an alpha channel
_OPAQUE_FORMATS = {"JPEG", "BMP"}


class ThumbnailGenerator:
    """
    Renders thumbnails with Pillow.

    Modes:
        fit:   scale into the box, keeping the aspect ratio
        exact: scale and centre-crop to exactly the box
    """

    def __init__(
        self,
        width: int = 150,
        height: int = 150,
        mode: str = FIT,
        image_format: str = "JPEG",
        quality: int = 85,
    ):
        if mode not in (FIT, EXACT):
            raise ValueError(f"Unknown thumbnail mode: {mode}")
        self.size = (width, height)
        self.mode = mode
        self.image_format = image_format.upper()
        self.quality = quality

    @classmethod
    def from_settings(cls, config: Settings) -> "ThumbnailGenerator":
        return cls(
            width=config.thumbnail_width,
            height=config.thumbnail_height,
            mode=config.thumbnail_mode,
            image_format=config.thumbnail_format,
            quality=config.thumbnail_quality,
        )

    @property
    def content_type(self) -> str:
        """MIME type of the rendered thumbnails."""
        Image.init()
        return Image.MIME.get(self.image_format, "application/octet-stream")

    def generate(self, image_data: bytes) -> bytes:
        """
        Render a thumbnail.

        Animated images use their first frame. EXIF orientation is applied
        before resizing.

        Raises:
            TransformError: If the data is not a decodable image
        """
        try:
            with Image.open(io.BytesIO(image_data)) as image:
                image = ImageOps.exif_transpose(image)
                # Palette, CMYK and high bit-depth modes resample poorly
                if image.mode not in ("RGB", "RGBA", "L", "LA"):
                    image = image.convert("RGBA")

                if self.mode == EXACT:
                    resized = ImageOps.fit(image, self.size, method=Image.Resampling.LANCZOS)
                else:
                    # Never upscales
                    resized = image.copy()
                    resized.thumbnail(self.size, Image.Resampling.LANCZOS)

                resized = self._normalize_mode(resized)

                buffer = io.BytesIO()
                save_options = {"format": self.image_format}
                if self.image_format in ("JPEG", "WEBP"):
                    save_options["quality"] = self.quality
                resized.save(buffer, **save_options)
                return buffer.getvalue()

        except Image.DecompressionBombError as e:
            raise TransformError(f"Image too large to process: {e}") from e
        # Some decoder plugins report malformed data as parser or arithmetic errors
        except (UnidentifiedImageError, OSError, ValueError, EOFError,
                SyntaxError, struct.error, ZeroDivisionError) as e:
            raise TransformError(f"Unsupported or corrupt image: {e}") from e

    def _normalize_mode(self, image: Image.Image) -> Image.Image:
        if self.image_format not in _OPAQUE_FORMATS or image.mode in ("RGB", "L"):
            return image

        # Flatten transparency onto white
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background


class ThumbnailWorker:
    """
    Processes thumbnail jobs.

    Outcomes of process():
        created: thumbnail written (or overwritten) at the derived key
        skipped: the job referenced a thumbnail, nothing to do
        missing: the original is gone, dropped without requeue
        failed:  the original is not a usable image, dropped without requeue

    DependencyError from the object store propagates, so the queue layer
    can redeliver the job within its retry budget.
    """

    def __init__(
        self,
        storage: S3Client,
        generator: ThumbnailGenerator,
        marker: Optional[str] = None,
    ):
        self.storage = storage
        self.generator = generator
        self.marker = marker or settings.thumbnail_marker

    def process(self, job: ThumbnailJob, job_id: Optional[str] = None) -> ThumbnailResult:
        start_time = time.time()

        if is_thumbnail_key(job.key, self.marker):
            log_thumbnail_job_skipped(logger, key=job.key, reason="already a thumbnail", job_id=job_id)
            return self._finish(job, "skipped", start_time)

        log_thumbnail_job_started(logger, key=job.key, job_id=job_id, bucket=job.bucket)

        try:
            original = self.storage.get_object(job.key, bucket=job.bucket)
        except NotFoundError:
            log_thumbnail_job_skipped(logger, key=job.key, reason="original missing", job_id=job_id)
            return self._finish(job, "missing", start_time)

        try:
            thumbnail = self.generator.generate(original.body)
        except TransformError as e:
            log_thumbnail_job_failed(
                logger,
                key=job.key,
                error=e.message,
                duration_ms=(time.time() - start_time) * 1000,
                job_id=job_id,
                include_traceback=False,
            )
            return self._finish(job, "failed", start_time, error=e.message)

        thumbnail_key = derive_thumbnail_key(job.key, self.marker)
        self.storage.put_object(
            thumbnail_key,
            thumbnail,
            content_type=self.generator.content_type,
            bucket=job.bucket,
            metadata={"original-key": quote(job.key)},
        )

        duration = time.time() - start_time
        log_thumbnail_job_completed(
            logger,
            key=job.key,
            thumbnail_key=thumbnail_key,
            duration_ms=duration * 1000,
            job_id=job_id,
            size_bytes=len(thumbnail),
        )
        return self._finish(job, "created", start_time, thumbnail_key=thumbnail_key)

    def process_batch(self, jobs: Iterable[ThumbnailJob]) -> List[ThumbnailResult]:
        """
        Process several jobs, isolating failures.

        A job that raises is recorded with status "error" and the remaining
        jobs still run.
        """
        results = []
        for job in jobs:
            start_time = time.time()
            try:
                results.append(self.process(job))
            except DependencyError as e:
                log_thumbnail_job_failed(logger, key=job.key, error=e.message)
                results.append(self._finish(job, "error", start_time, error=e.message))
            except Exception as e:
                log_thumbnail_job_failed(logger, key=job.key, error=str(e))
                results.append(self._finish(job, "error", start_time, error=str(e)))
        return results

    def _finish(
        self,
        job: ThumbnailJob,
        status: str,
        start_time: float,
        thumbnail_key: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ThumbnailResult:
        thumbnail_jobs_total.labels(status=status).inc()
        thumbnail_job_duration_seconds.labels(status=status).observe(time.time() - start_time)
        return ThumbnailResult(key=job.key, status=status, thumbnail_key=thumbnail_key, error=error)


def get_thumbnail_worker() -> ThumbnailWorker:
    """Build a worker wired to the shared storage client and settings."""
    return ThumbnailWorker(
        storage=get_s3_client(),
        generator=ThumbnailGenerator.from_settings(settings),
        marker=settings.thumbnail_marker,
    )
