"""
Celery application configuration.
Sets up Celery with Redis broker and result backend.

The thumbnail queue is at-least-once: tasks are acknowledged only after they
finish, so a worker crash redelivers the job to another worker.
"""
import logging
from celery import Celery
from celery.signals import task_prerun, task_postrun, task_failure, worker_init
from picstash.config import settings
from picstash.utils.metrics import thumbnail_jobs_processing
from picstash.utils.logging import configure_logging
from picstash.workers.metrics_server import start_metrics_server

logger = logging.getLogger(__name__)

celery_app = Celery(
    "picstash",
    broker=settings.thumbnail_queue_url or settings.redis_url,
    backend=settings.redis_url,
    include=[
        "picstash.tasks.generate_thumbnail",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue=settings.thumbnail_queue_name,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_ignore_result=True,
    task_time_limit=5 * 60,  # 5 minutes
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=200,  # Pillow buffers can fragment memory
    broker_connection_timeout=settings.queue_timeout,
    broker_transport_options={
        "socket_timeout": settings.queue_timeout,
        "socket_connect_timeout": settings.queue_timeout,
    },
)


@worker_init.connect
def worker_init_handler(sender=None, **kwargs):
    """Configure logging and expose metrics once per worker."""
    configure_logging('picstash-worker', settings.log_level)
    try:
        start_metrics_server(port=settings.metrics_port)
    except OSError as e:
        logger.warning(f"Failed to start metrics server: {e}")


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, **kwds):
    """Track task start."""
    thumbnail_jobs_processing.inc()


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, **kwds):
    """Track task completion."""
    thumbnail_jobs_processing.dec()


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, **kwds):
    """Log jobs that exhausted their retries; the broker will not redeliver them."""
    logger.error(
        f"Task {task_id} failed permanently: {exception}",
        extra={"event": "thumbnail_job_dead_lettered", "job_id": task_id}
    )
