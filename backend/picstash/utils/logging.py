"""
Structured JSON logging for the API, the worker and operator scripts.

Every record carries timestamp, level, logger name, service and message.
The event helpers below add an `event` name and, where they apply, the
owner (`user_id`), the object `key`, the queue `job_id` and `duration_ms`.

    from picstash.utils.logging import configure_logging, log_upload_stored

    configure_logging('picstash-api', 'INFO')
    log_upload_stored(logger, key='alice@example.com/...', user_id='alice@example.com')
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger

LOG_FORMAT = '%(timestamp)s %(levelname)s %(name)s %(service)s %(message)s'


class ServiceFilter(logging.Filter):
    """Stamps each record with the name of the emitting process."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record):
        record.service = self.service_name
        return True


class StructuredLogger:
    """Installs the JSON handler on the root logger, once per process."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO", stream=None):
        """
        Args:
            service_name: picstash-api, picstash-worker or picstash-reconcile
            log_level: DEBUG, INFO, WARNING or ERROR
            stream: Output stream, stdout by default
        """
        if cls._configured:
            return

        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT, timestamp=True, json_ensure_ascii=False))
        handler.addFilter(ServiceFilter(service_name))

        root = logging.getLogger()
        for existing in list(root.handlers):
            root.removeHandler(existing)
        root.addHandler(handler)
        root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        cls._service_name = service_name
        cls._configured = True


def _build_log_extra(
    event: str,
    user_id: Optional[str] = None,
    key: Optional[str] = None,
    job_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        user_id: Optional owner identity
        key: Optional object key
        job_id: Optional queue job ID
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if user_id:
        extra["user_id"] = user_id
    if key:
        extra["key"] = key
    if job_id:
        extra["job_id"] = job_id
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# User events

def log_user_registered(logger: logging.Logger, user_id: str, **kwargs):
    """Log a successful registration."""
    extra = _build_log_extra(event="user_registered", user_id=user_id, **kwargs)
    logger.info(f"User registered: {user_id}", extra=extra)


def log_access_denied(
    logger: logging.Logger,
    user_id: Optional[str],
    key: str,
    operation: str,
    **kwargs
):
    """
    Log a rejected access to an object outside the caller's prefix.

    Args:
        logger: Logger instance
        user_id: Caller identity (None for anonymous view requests)
        key: Requested object key
        operation: list, url, view or delete
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="access_denied",
        user_id=user_id,
        key=key,
        operation=operation,
        **kwargs
    )
    logger.warning(f"Access denied: {operation} {key}", extra=extra)


# Upload events

def log_upload_stored(
    logger: logging.Logger,
    key: str,
    user_id: str,
    size_bytes: Optional[int] = None,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log an original stored in the object store.

    Args:
        logger: Logger instance
        key: Object key (required)
        user_id: Owner identity (required)
        size_bytes: Optional payload size
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_stored",
        user_id=user_id,
        key=key,
        duration_ms=duration_ms,
        **kwargs
    )
    if size_bytes is not None:
        extra["size_bytes"] = size_bytes

    logger.info(f"Upload stored: {key}", extra=extra)


def log_thumbnail_enqueued(logger: logging.Logger, key: str, job_id: Optional[str] = None, **kwargs):
    """Log a thumbnail job handed to the queue."""
    extra = _build_log_extra(event="thumbnail_enqueued", key=key, job_id=job_id, **kwargs)
    logger.info(f"Thumbnail job enqueued: {key}", extra=extra)


def log_thumbnail_enqueue_failed(
    logger: logging.Logger,
    key: str,
    error: str,
    **kwargs
):
    """
    Log a thumbnail job that could not be enqueued.

    The upload itself still succeeded; the original stays without a
    thumbnail until it is replayed.
    """
    extra = _build_log_extra(
        event="thumbnail_enqueue_failed",
        key=key,
        error=str(error),
        **kwargs
    )
    logger.error(f"Thumbnail enqueue failed: {key} - {error}", extra=extra)


# Thumbnail job events

def log_thumbnail_job_started(
    logger: logging.Logger,
    key: str,
    job_id: Optional[str] = None,
    **kwargs
):
    """Log thumbnail job start."""
    extra = _build_log_extra(event="thumbnail_job_started", key=key, job_id=job_id, **kwargs)
    logger.info(f"Thumbnail job started: {key}", extra=extra)


def log_thumbnail_job_completed(
    logger: logging.Logger,
    key: str,
    thumbnail_key: str,
    duration_ms: float,
    job_id: Optional[str] = None,
    **kwargs
):
    """
    Log thumbnail job completion.

    Args:
        logger: Logger instance
        key: Original key (required)
        thumbnail_key: Derived key written (required)
        duration_ms: Duration in milliseconds (required)
        job_id: Optional queue job ID
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="thumbnail_job_completed",
        key=key,
        job_id=job_id,
        duration_ms=duration_ms,
        thumbnail_key=thumbnail_key,
        **kwargs
    )
    logger.info(f"Thumbnail job completed: {key} -> {thumbnail_key}", extra=extra)


def log_thumbnail_job_skipped(
    logger: logging.Logger,
    key: str,
    reason: str,
    job_id: Optional[str] = None,
    **kwargs
):
    """Log a job that was dropped without producing a thumbnail."""
    extra = _build_log_extra(
        event="thumbnail_job_skipped",
        key=key,
        job_id=job_id,
        reason=reason,
        **kwargs
    )
    logger.warning(f"Thumbnail job skipped: {key} ({reason})", extra=extra)


def log_thumbnail_job_failed(
    logger: logging.Logger,
    key: str,
    error: str,
    duration_ms: Optional[float] = None,
    job_id: Optional[str] = None,
    include_traceback: bool = True,
    **kwargs
):
    """
    Log thumbnail job failure event.

    Args:
        logger: Logger instance
        key: Original key (required)
        error: Error message (required)
        duration_ms: Optional duration in milliseconds
        job_id: Optional queue job ID
        include_traceback: Whether to include stack trace
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="thumbnail_job_failed",
        key=key,
        job_id=job_id,
        duration_ms=duration_ms,
        error=str(error),
        **kwargs
    )
    message = f"Thumbnail job failed: {key} - {error}"

    if include_traceback:
        exc_info = sys.exc_info()
        if exc_info[0] is not None:
            logger.error(message, extra=extra, exc_info=exc_info)
            return
    logger.error(message, extra=extra)


def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
