"""
Producer side of the thumbnail queue.

The queue location is resolved lazily and held by the ThumbnailQueue
instance; nothing is cached at module level. When resolution fails the
upload path degrades to "skip enqueue" and tries again on the next upload.
"""
import logging
from typing import Optional

from kombu import Connection
from kombu.exceptions import KombuError

from picstash.config import Settings
from picstash.schemas.thumbnail import ThumbnailJob
from picstash.utils.logging import log_thumbnail_enqueued, log_thumbnail_enqueue_failed
from picstash.utils.metrics import thumbnail_enqueue_total

logger = logging.getLogger(__name__)

TASK_NAME = "generate_thumbnail"


def resolve_queue_url(config: Settings) -> Optional[str]:
    """
    Resolve where thumbnail jobs should be published.

    An explicit THUMBNAIL_QUEUE_URL wins. Otherwise the broker is probed once
    within the queue timeout. Never raises.

    Returns:
        Broker URL to publish to, or None if the queue is unreachable
    """
    if config.thumbnail_queue_url:
        return config.thumbnail_queue_url

    try:
        with Connection(config.redis_url, connect_timeout=config.queue_timeout) as conn:
            conn.ensure_connection(max_retries=1, interval_start=0, timeout=config.queue_timeout)
    except (KombuError, OSError) as e:
        logger.warning(f"Thumbnail queue not reachable: {e}")
        return None

    logger.info(f"Thumbnail queue resolved: {config.thumbnail_queue_name}")
    return config.redis_url


class ThumbnailQueue:
    """
    Publishes thumbnail jobs, best effort.

    enqueue() never raises: an unresolved queue, a broker error or a timeout
    all return False after logging, and the caller's upload still succeeds.
    """

    def __init__(self, config: Settings, celery=None, resolver=resolve_queue_url):
        self._config = config
        self._celery = celery
        self._resolver = resolver
        self._queue_url: Optional[str] = None

    @property
    def queue_url(self) -> Optional[str]:
        """Resolved queue URL, resolving on demand if not yet known."""
        if self._queue_url is None:
            self._queue_url = self._resolver(self._config)
        return self._queue_url

    def _app(self):
        if self._celery is None:
            from picstash.workers.celery_app import celery_app
            self._celery = celery_app
        return self._celery

    def enqueue(self, job: ThumbnailJob) -> bool:
        """
        Publish one job.

        Returns:
            True if the broker accepted the message, False otherwise
        """
        if self.queue_url is None:
            thumbnail_enqueue_total.labels(result="unresolved").inc()
            log_thumbnail_enqueue_failed(logger, key=job.key, error="queue not resolved")
            return False

        app = self._app()
        try:
            with app.connection_for_write(self.queue_url) as conn:
                result = app.send_task(
                    TASK_NAME,
                    kwargs=job.to_message(),
                    queue=self._config.thumbnail_queue_name,
                    connection=conn,
                    retry=False,
                )
        except Exception as e:
            # Any publish failure, including timeouts, is an enqueue failure.
            # Forget the resolved URL so the next upload probes again.
            self._queue_url = None
            thumbnail_enqueue_total.labels(result="failed").inc()
            log_thumbnail_enqueue_failed(logger, key=job.key, error=str(e))
            return False

        thumbnail_enqueue_total.labels(result="queued").inc()
        log_thumbnail_enqueued(logger, key=job.key, job_id=getattr(result, "id", None))
        return True
