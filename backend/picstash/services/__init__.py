"""
Business logic services.
"""
from picstash.services.image_service import ImageService
from picstash.services.thumbnail_queue import ThumbnailQueue
from picstash.services.thumbnail_service import ThumbnailGenerator, ThumbnailWorker
from picstash.services.upload_service import UploadService
from picstash.services.user_service import UserService

__all__ = [
    "ImageService",
    "ThumbnailQueue",
    "ThumbnailGenerator",
    "ThumbnailWorker",
    "UploadService",
    "UserService",
]
