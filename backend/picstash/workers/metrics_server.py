"""
Side HTTP server exposing a thumbnail worker's metrics to Prometheus.

Started from the Celery worker_init signal, so each worker process binds
the configured port at most once. The API process never starts it and
serves /metrics through FastAPI instead.
"""
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

logger = logging.getLogger(__name__)

METRICS_PATHS = ("/metrics", "/metrics/")


class WorkerMetricsHandler(BaseHTTPRequestHandler):
    """Serves the default registry on /metrics, 404 elsewhere."""

    def do_GET(self):
        if self.path.split("?", 1)[0] not in METRICS_PATHS:
            self.send_error(404)
            return

        payload = generate_latest(REGISTRY)
        self.send_response(200)
        self.send_header("Content-Type", CONTENT_TYPE_LATEST)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        """Suppress default access logging."""
        return


def start_metrics_server(port: int = 9090, host: str = "0.0.0.0") -> ThreadingHTTPServer:
    """
    Serve metrics from a daemon thread.

    Raises:
        OSError: If the port is already bound, e.g. by a sibling worker
    """
    server = ThreadingHTTPServer((host, port), WorkerMetricsHandler)
    threading.Thread(target=server.serve_forever, name="metrics-server", daemon=True).start()
    logger.info(f"Worker metrics server listening on {host}:{port}", extra={"event": "metrics_server_started"})
    return server
