"""
Health check endpoint.
Verifies database, queue broker and object storage connectivity.
"""
import asyncio

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import redis

from picstash.api.deps import get_storage
from picstash.database import get_db
from picstash.config import settings
from picstash.storage.s3_client import S3Client

router = APIRouter()


def _ping_broker() -> None:
    client = redis.from_url(
        settings.redis_url,
        socket_connect_timeout=settings.queue_timeout,
        socket_timeout=settings.queue_timeout,
    )
    client.ping()


@router.get("")
async def health_check(
    db: AsyncSession = Depends(get_db),
    storage: S3Client = Depends(get_storage)
):
    """
    Health check endpoint.
    Returns status of database, broker and storage connections.

    The broker being down degrades uploads (no thumbnails) but does not make
    the API unhealthy; database and storage do.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "broker": "unknown",
        "storage": "unknown"
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except SQLAlchemyError as e:
        health_status["database"] = f"error: {e.__class__.__name__}"
        health_status["status"] = "unhealthy"

    try:
        await asyncio.to_thread(_ping_broker)
        health_status["broker"] = "connected"
    except (redis.RedisError, OSError) as e:
        health_status["broker"] = f"error: {e.__class__.__name__}"
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    if await asyncio.to_thread(storage.ping):
        health_status["storage"] = "connected"
    else:
        health_status["storage"] = "error"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
