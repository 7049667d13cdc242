"""
S3-compatible storage client.

Uses boto3 with the S3 API, so it works against LocalStack, MinIO,
Cloudflare R2 or AWS alike. The bucket stays private: reads from outside the
service only happen through presigned URLs.

Every call has bounded connect/read timeouts and at most one immediate
retry. Missing objects raise NotFoundError; any other client, connection or
timeout failure raises DependencyError.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from picstash.config import settings
from picstash.errors import DependencyError, NotFoundError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# S3 batch delete supports max 1000 objects per call
BATCH_SIZE = 1000


@dataclass
class StoredObject:
    """An object read fully into memory."""
    bucket: str
    key: str
    content_type: str
    body: bytes


@dataclass
class ObjectStream:
    """An object opened for streaming; the caller must close it."""
    key: str
    content_type: str
    content_length: Optional[int]
    body: Any  # botocore StreamingBody

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        """Yield the body in bounded chunks, closing it when done or abandoned."""
        try:
            for chunk in self.body.iter_chunks(chunk_size=chunk_size):
                if chunk:
                    yield chunk
        finally:
            self.close()

    def close(self):
        self.body.close()


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


class S3Client:
    """
    S3-compatible client for the image bucket.

    Fails gracefully at construction if not configured; operations then
    raise DependencyError.
    """

    def __init__(self, client=None, bucket: Optional[str] = None):
        """
        Initialize the client with boto3.

        Args:
            client: Pre-built boto3 S3 client (tests, custom sessions)
            bucket: Bucket name (default from settings)
        """
        self._bucket = bucket or settings.s3_bucket
        self._client = client
        self._configured = client is not None

        if self._client is not None:
            return

        if not all([
            settings.s3_endpoint,
            settings.s3_access_key,
            settings.s3_secret_key
        ]):
            logger.warning(
                "S3 storage not configured. "
                "Set S3_ENDPOINT, S3_ACCESS_KEY, and S3_SECRET_KEY."
            )
            return

        try:
            self._client = boto3.client(
                's3',
                endpoint_url=settings.s3_endpoint,
                aws_access_key_id=settings.s3_access_key,
                aws_secret_access_key=settings.s3_secret_key,
                region_name=settings.s3_region,
                config=Config(
                    signature_version='s3v4',
                    s3={'addressing_style': 'path'},
                    connect_timeout=settings.s3_connect_timeout,
                    read_timeout=settings.s3_read_timeout,
                    retries={'max_attempts': 2, 'mode': 'standard'},
                )
            )
            self._configured = True
            logger.info(f"S3 client initialized for bucket: {self._bucket}")

        except NoCredentialsError:
            logger.error("S3 credentials not found or invalid")
        except (BotoCoreError, ValueError) as e:
            logger.error(f"Failed to initialize S3 client: {e}")

    @property
    def is_configured(self) -> bool:
        """Check if the client is properly configured."""
        return self._configured and self._client is not None

    @property
    def bucket(self) -> str:
        """Get configured bucket name."""
        return self._bucket

    def _require_client(self):
        if not self.is_configured:
            raise DependencyError("Object storage not configured")
        return self._client

    def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        bucket: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Store an object, overwriting any object at the same key.

        Raises:
            DependencyError: If the store rejects or cannot be reached
        """
        client = self._require_client()
        try:
            client.put_object(
                Bucket=bucket or self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                Metadata=metadata or {},
            )
            logger.debug(f"Stored {key} ({len(body)} bytes)")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to store {key}: {e}")
            raise DependencyError(f"Failed to store object {key}") from e

    def get_object(self, key: str, bucket: Optional[str] = None) -> StoredObject:
        """
        Read a whole object into memory.

        Raises:
            NotFoundError: If the key does not exist
            DependencyError: On any other storage failure
        """
        stream = self.open_object(key, bucket=bucket)
        try:
            body = stream.body.read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to read {key}: {e}")
            raise DependencyError(f"Failed to read object {key}") from e
        finally:
            stream.close()
        return StoredObject(
            bucket=bucket or self.bucket,
            key=key,
            content_type=stream.content_type,
            body=body,
        )

    def open_object(self, key: str, bucket: Optional[str] = None) -> ObjectStream:
        """
        Open an object for streaming.

        Raises:
            NotFoundError: If the key does not exist
            DependencyError: On any other storage failure
        """
        client = self._require_client()
        try:
            response = client.get_object(Bucket=bucket or self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise NotFoundError(f"Object not found: {key}") from e
            logger.error(f"Failed to open {key}: {e}")
            raise DependencyError(f"Failed to open object {key}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to open {key}: {e}")
            raise DependencyError(f"Failed to open object {key}") from e

        return ObjectStream(
            key=key,
            content_type=response.get('ContentType') or 'application/octet-stream',
            content_length=response.get('ContentLength'),
            body=response['Body'],
        )

    def list_objects(self, prefix: str) -> List[Dict[str, Any]]:
        """
        List all objects under a prefix, following pagination.

        An empty prefix is refused: it would list the whole bucket.

        Returns:
            List of S3 object summaries (Key, Size, LastModified, ...)
        """
        if not prefix:
            raise ValueError("Refusing to list objects without a prefix")

        client = self._require_client()
        objects: List[Dict[str, Any]] = []
        continuation_token = None

        while True:
            kwargs = {'Bucket': self.bucket, 'Prefix': prefix, 'MaxKeys': 1000}
            if continuation_token:
                kwargs['ContinuationToken'] = continuation_token

            try:
                response = client.list_objects_v2(**kwargs)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Failed to list objects under {prefix}: {e}")
                raise DependencyError("Failed to list objects") from e

            objects.extend(response.get('Contents', []))

            if not response.get('IsTruncated'):
                break
            continuation_token = response.get('NextContinuationToken')

        return objects

    def list_owner_prefixes(self) -> List[str]:
        """
        List the top-level prefixes in the bucket, one per owner.

        Returns:
            Prefixes including the trailing "/"
        """
        client = self._require_client()
        prefixes: List[str] = []
        try:
            paginator = client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Delimiter='/'):
                prefixes.extend(entry['Prefix'] for entry in page.get('CommonPrefixes', []))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list owner prefixes: {e}")
            raise DependencyError("Failed to list objects") from e
        return prefixes

    def object_exists(self, key: str) -> bool:
        """
        Check if an object exists in the bucket.

        Raises:
            DependencyError: If the existence cannot be determined
        """
        client = self._require_client()
        try:
            client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            logger.error(f"Error checking object existence: {e}")
            raise DependencyError(f"Failed to check object {key}") from e
        except BotoCoreError as e:
            logger.error(f"Error checking object existence: {e}")
            raise DependencyError(f"Failed to check object {key}") from e

    def generate_presigned_read_url(self, key: str, expiration: Optional[int] = None) -> str:
        """
        Generate a presigned GET URL for reading an object.

        The URL expires after the given time (default from settings) and is
        validated by the object store, not by this service.

        Raises:
            DependencyError: If the URL cannot be signed
        """
        client = self._require_client()
        if expiration is None:
            expiration = settings.s3_presign_expiration

        try:
            url = client.generate_presigned_url(
                ClientMethod='get_object',
                Params={
                    'Bucket': self.bucket,
                    'Key': key,
                },
                ExpiresIn=expiration
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned read URL: {e}")
            raise DependencyError("Failed to sign URL") from e

        logger.debug(f"Generated presigned read URL for {key} (expires in {expiration}s)")
        return url

    def delete_object(self, key: str) -> None:
        """
        Delete an object from the bucket.

        Idempotent: deleting a missing key succeeds.

        Raises:
            DependencyError: If the store rejects or cannot be reached
        """
        client = self._require_client()
        try:
            client.delete_object(Bucket=self.bucket, Key=key)
            logger.debug(f"Deleted object {key}")
        except ClientError as e:
            if _is_not_found(e):
                logger.debug(f"Object {key} not found (already deleted)")
                return
            logger.error(f"Failed to delete object {key}: {e}")
            raise DependencyError(f"Failed to delete object {key}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to delete object {key}: {e}")
            raise DependencyError(f"Failed to delete object {key}") from e

    def delete_objects_batch(self, keys: List[str]) -> tuple[int, int]:
        """
        Delete multiple objects from the bucket in batch.

        Returns:
            Tuple of (successful_count, failed_count)
        """
        client = self._require_client()
        if not keys:
            return (0, 0)

        successful = 0
        failed = 0

        for i in range(0, len(keys), BATCH_SIZE):
            batch = keys[i:i + BATCH_SIZE]
            try:
                response = client.delete_objects(
                    Bucket=self.bucket,
                    Delete={
                        'Objects': [{'Key': key} for key in batch],
                        'Quiet': True  # Only return errors, not successes
                    }
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Batch delete failed: {e}")
                failed += len(batch)
                continue

            errors = response.get('Errors', [])
            for error in errors[:5]:
                logger.warning(
                    f"Failed to delete {error.get('Key')}: "
                    f"{error.get('Code')} - {error.get('Message')}"
                )
            failed += len(errors)
            successful += len(batch) - len(errors)

        logger.info(f"Batch delete complete: {successful} deleted, {failed} failed out of {len(keys)} total")
        return (successful, failed)

    def ping(self) -> bool:
        """Check that the bucket is reachable."""
        if not self.is_configured:
            return False
        try:
            self._client.head_bucket(Bucket=self.bucket)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Storage health check failed: {e}")
            return False


# Singleton instance
_s3_client: Optional[S3Client] = None


def get_s3_client() -> S3Client:
    """
    Get the singleton S3 client instance.

    Returns:
        S3Client instance (may or may not be configured)
    """
    global _s3_client
    if _s3_client is None:
        _s3_client = S3Client()
    return _s3_client
