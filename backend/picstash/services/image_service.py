"""
Image catalog, access gateway and deletion.

Every operation checks prefix ownership before touching storage: a key
outside the caller's prefix is rejected with AuthorizationError and no
URL, stream or deletion is ever produced for it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from picstash.auth.tokens import create_view_token, verify_view_token
from picstash.config import Settings
from picstash.errors import AuthorizationError, NotFoundError, ValidationError
from picstash.storage.keys import (
    derive_thumbnail_key,
    is_thumbnail_key,
    key_from_url,
    owner_prefix,
    owns_key,
)
from picstash.storage.s3_client import ObjectStream, S3Client
from picstash.utils.logging import log_access_denied
from picstash.utils.metrics import access_denied_total, signed_urls_issued_total

logger = logging.getLogger(__name__)


@dataclass
class ImageEntry:
    key: str
    size: Optional[int]
    last_modified: Optional[datetime]
    thumbnail_key: Optional[str] = None


@dataclass
class SignedUrl:
    url: str
    expires_in: int


@dataclass
class ViewToken:
    token: str
    key: str
    expires_in: int


class ImageService:
    """Per-user access to stored images."""

    def __init__(self, storage: S3Client, config: Settings):
        self.storage = storage
        self.config = config
        self.marker = config.thumbnail_marker

    def _authorize(self, owner: Optional[str], key: str, operation: str) -> None:
        if not owner or not owns_key(owner, key):
            access_denied_total.labels(operation=operation).inc()
            log_access_denied(logger, user_id=owner, key=key, operation=operation)
            raise AuthorizationError("Access denied: object does not belong to you")

    def _require_exists(self, key: str) -> None:
        if not self.storage.object_exists(key):
            raise NotFoundError("Image not found")

    # Catalog listing

    def list_images(self, owner: str) -> List[ImageEntry]:
        """
        List the owner's originals, each with its thumbnail key when one exists.

        Only the owner's own prefix is listed and every returned key is
        re-checked, so nothing outside it can leak.
        """
        prefix = owner_prefix(owner) + "/"
        objects = self.storage.list_objects(prefix)

        originals: Dict[str, ImageEntry] = {}
        thumbnails = set()
        for obj in objects:
            key = obj.get("Key")
            if not owns_key(owner, key):
                logger.warning(f"Skipping key outside prefix in listing: {key}")
                continue
            if is_thumbnail_key(key, self.marker):
                thumbnails.add(key)
                continue
            originals[key] = ImageEntry(
                key=key,
                size=obj.get("Size"),
                last_modified=obj.get("LastModified"),
            )

        for key, entry in originals.items():
            thumbnail_key = derive_thumbnail_key(key, self.marker)
            if thumbnail_key in thumbnails:
                entry.thumbnail_key = thumbnail_key

        return sorted(
            originals.values(),
            key=lambda entry: (entry.last_modified is not None, entry.last_modified, entry.key),
            reverse=True,
        )

    # Access gateway

    def signed_url(self, owner: str, key: str) -> SignedUrl:
        """
        Issue a time-limited read URL for one of the owner's objects.

        The expiry is fixed and enforced by the object store.

        Raises:
            AuthorizationError: Key outside the owner's prefix
            NotFoundError: No such object
        """
        self._authorize(owner, key, "url")
        self._require_exists(key)

        expires_in = self.config.s3_presign_expiration
        url = self.storage.generate_presigned_read_url(key, expiration=expires_in)
        signed_urls_issued_total.labels(kind="url").inc()
        return SignedUrl(url=url, expires_in=expires_in)

    def issue_view_token(self, owner: str, key: str) -> ViewToken:
        """
        Issue a short-lived view token bound to one object.

        Raises:
            AuthorizationError: Key outside the owner's prefix
            NotFoundError: No such object
        """
        self._authorize(owner, key, "view_token")
        self._require_exists(key)

        expires_in = self.config.view_token_ttl
        token = create_view_token(owner, key, ttl=expires_in)
        signed_urls_issued_total.labels(kind="view_token").inc()
        return ViewToken(token=token, key=key, expires_in=expires_in)

    def open_view(self, token: str, key: str) -> ObjectStream:
        """
        Open an object for inline viewing with a view token instead of a session.

        The token must be valid and unexpired, must have been issued for
        exactly this key, and the key must sit under the token owner's prefix.

        Raises:
            AuthError: Missing, invalid or expired token
            AuthorizationError: Token issued for another key or owner
            NotFoundError: No such object
        """
        claims = verify_view_token(token)
        if claims["key"] != key:
            access_denied_total.labels(operation="view").inc()
            log_access_denied(logger, user_id=claims.get("sub"), key=key, operation="view")
            raise AuthorizationError("Token not valid for this image")
        self._authorize(claims["sub"], key, "view")
        return self.storage.open_object(key)

    # Delete

    def delete_image(self, owner: str, key: Optional[str] = None, url: Optional[str] = None) -> List[str]:
        """
        Delete an image by key or by URL.

        Deleting an original also removes its thumbnail; deleting a
        thumbnail key removes only the thumbnail.

        Returns:
            Keys removed

        Raises:
            ValidationError: Neither key nor url supplied
            AuthorizationError: Key outside the owner's prefix, storage untouched
            NotFoundError: No such object
        """
        if not key and url:
            key = key_from_url(url, self.storage.bucket)
        if not key:
            raise ValidationError("Image key or url required")

        self._authorize(owner, key, "delete")
        self._require_exists(key)

        self.storage.delete_object(key)
        deleted = [key]

        if not is_thumbnail_key(key, self.marker):
            thumbnail_key = derive_thumbnail_key(key, self.marker)
            if self.storage.object_exists(thumbnail_key):
                self.storage.delete_object(thumbnail_key)
                deleted.append(thumbnail_key)

        logger.info(
            f"Deleted {len(deleted)} object(s) for {owner}",
            extra={"event": "image_deleted", "user_id": owner, "key": key, "deleted": deleted}
        )
        return deleted
