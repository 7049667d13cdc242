"""
FastAPI application entry point.
Sets up the API with lifespan events for database initialization and maps
the error taxonomy to HTTP responses.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from picstash.config import settings
from picstash.database import init_db
from picstash.api.router import api_router
from picstash.errors import PicstashError
from picstash.middleware.metrics_middleware import MetricsMiddleware
from picstash.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    - Startup: configure logging, create the users table
    """
    configure_logging('picstash-api', settings.log_level)
    await init_db()
    yield


app = FastAPI(
    title="picstash API",
    description="Image hosting with per-user storage and asynchronous thumbnails",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware (must be after CORS to track all requests)
app.add_middleware(MetricsMiddleware)

app.include_router(api_router)


@app.exception_handler(PicstashError)
async def picstash_error_handler(request: Request, exc: PicstashError):
    """
    Validation, auth and not-found errors are returned verbatim;
    dependency failures are logged and answered with an opaque message.
    """
    if not exc.public:
        logger.error(
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}",
            extra={"event": "dependency_failure", "error": exc.message},
            exc_info=exc
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "picstash API",
        "version": "0.1.0",
        "environment": settings.environment
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
