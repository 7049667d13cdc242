"""
Storage module for S3-compatible object storage.

Originals and thumbnails live in one private bucket, partitioned by owner
prefix. Reads from outside the service go through presigned URLs.
"""
from picstash.storage.s3_client import get_s3_client, S3Client
from picstash.storage.keys import build_object_key, derive_thumbnail_key, owns_key

__all__ = ["get_s3_client", "S3Client", "build_object_key", "derive_thumbnail_key", "owns_key"]
