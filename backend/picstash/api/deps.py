"""
Service dependencies for the routes.

Services are built from explicit configuration at construction time; tests
replace get_storage and get_thumbnail_queue through dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends

from picstash.config import settings
from picstash.services.image_service import ImageService
from picstash.services.thumbnail_queue import ThumbnailQueue
from picstash.services.upload_service import UploadService
from picstash.storage.s3_client import S3Client, get_s3_client


def get_storage() -> S3Client:
    return get_s3_client()


@lru_cache
def get_thumbnail_queue() -> ThumbnailQueue:
    return ThumbnailQueue(settings)


def get_upload_service(
    storage: S3Client = Depends(get_storage),
    queue: ThumbnailQueue = Depends(get_thumbnail_queue),
) -> UploadService:
    return UploadService(storage=storage, queue=queue, config=settings)


def get_image_service(storage: S3Client = Depends(get_storage)) -> ImageService:
    return ImageService(storage=storage, config=settings)
