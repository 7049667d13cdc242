"""
Celery task for generating thumbnails.
Consumes {"bucket", "key"} jobs published by the upload path.

Delivery is at-least-once and jobs may be replayed; processing is idempotent
so replays simply overwrite the same derived object. Storage outages are
retried with backoff up to thumbnail_max_retries, after which Celery marks
the task failed and it is not redelivered.
"""
import logging

from picstash.config import settings
from picstash.errors import DependencyError
from picstash.schemas.thumbnail import ThumbnailJob
from picstash.services.thumbnail_service import get_thumbnail_worker
from picstash.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="generate_thumbnail",
    bind=True,
    acks_late=True,
    autoretry_for=(DependencyError,),
    retry_backoff=True,
    retry_backoff_max=60,
    max_retries=settings.thumbnail_max_retries,
)
def generate_thumbnail_task(self, bucket: str, key: str, user: str = None, uploaded_at: str = None):
    """
    Generate the thumbnail for one stored original.

    Flow:
    1. Fetch the original from the object store
    2. Render a fixed-size thumbnail
    3. Store it under the derived key

    Missing originals and undecodable images are logged and dropped; only
    storage failures are retried.

    Returns:
        Dict with the job outcome (status, key, thumbnail_key)
    """
    job = ThumbnailJob(bucket=bucket, key=key, user=user, uploaded_at=uploaded_at)
    result = get_thumbnail_worker().process(job, job_id=self.request.id)
    return result.model_dump()
