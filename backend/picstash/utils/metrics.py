"""
Prometheus metrics definitions for FastAPI and Celery workers.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram, Gauge

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Upload metrics
uploads_total = Counter(
    'uploads_total',
    'Total upload attempts',
    ['result']  # stored, rejected, failed
)

upload_bytes_total = Counter(
    'upload_bytes_total',
    'Total bytes stored as originals'
)

thumbnail_enqueue_total = Counter(
    'thumbnail_enqueue_total',
    'Thumbnail job enqueue attempts',
    ['result']  # queued, unresolved, failed
)

# Access gateway metrics
access_denied_total = Counter(
    'access_denied_total',
    'Requests rejected by prefix ownership checks',
    ['operation']
)

signed_urls_issued_total = Counter(
    'signed_urls_issued_total',
    'Signed URLs and view tokens issued',
    ['kind']  # url, view_token
)

# Thumbnail job metrics
thumbnail_jobs_processing = Gauge(
    'thumbnail_jobs_processing',
    'Number of thumbnail jobs currently processing'
)

thumbnail_jobs_total = Counter(
    'thumbnail_jobs_total',
    'Thumbnail jobs by outcome',
    ['status']  # created, skipped, missing, failed, error
)

thumbnail_job_duration_seconds = Histogram(
    'thumbnail_job_duration_seconds',
    'Thumbnail job execution duration in seconds',
    ['status'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)
