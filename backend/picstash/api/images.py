"""
Image endpoints: upload, list, signed URLs, inline view and delete.

All endpoints except /view require a bearer session token. /view accepts a
short-lived view token in the query string instead, for embedding images
where no session storage is available.

Object keys appear in paths as `{key:path}` so the "/" between owner prefix
and filename survives routing.
"""
import asyncio
import base64
import binascii
import logging
from typing import List, Optional, Tuple
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from picstash.api.deps import get_image_service, get_upload_service
from picstash.auth.dependencies import get_current_user
from picstash.config import settings
from picstash.errors import AuthError, ValidationError
from picstash.models.user import User
from picstash.schemas.image import (
    DeleteRequest,
    DeleteResponse,
    ImageItem,
    ImageUrlResponse,
    UploadRequest,
    UploadResponse,
    ViewTokenRequest,
    ViewTokenResponse,
)
from picstash.services.image_service import ImageService
from picstash.services.upload_service import UploadService

logger = logging.getLogger(__name__)

router = APIRouter()

MULTIPART_FIELDS = ("image", "file")


def _decode_base64(data: str) -> bytes:
    # Accept data URLs as sent by FileReader.readAsDataURL
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    # MIME encoders wrap lines
    data = "".join(data.split())

    # Reject before decoding anything that cannot fit the size limit
    if len(data) * 3 // 4 > settings.max_upload_bytes + 3:
        raise ValidationError(f"File too large (max {settings.max_upload_bytes} bytes)")

    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("file is not valid base64")


async def _read_upload(request: Request) -> Tuple[str, bytes, Optional[str]]:
    """
    Extract (filename, content, content_type) from a multipart or JSON upload.

    Raises:
        ValidationError: Missing file or filename, malformed body
    """
    content_type_header = request.headers.get("content-type", "")

    if content_type_header.startswith("multipart/form-data"):
        form = await request.form()
        upload = next((form.get(field) for field in MULTIPART_FIELDS if form.get(field) is not None), None)
        if upload is None or isinstance(upload, str):
            raise ValidationError("No file uploaded")
        # One byte over the limit is enough for the policy check to reject it
        content = await upload.read(settings.max_upload_bytes + 1)
        filename = form.get("filename") or upload.filename
        return filename, content, upload.content_type

    try:
        body = UploadRequest.model_validate(await request.json())
    except ValueError:
        raise ValidationError("Invalid upload body")

    data = body.file or body.content
    if not body.filename or not data:
        raise ValidationError("filename + file (base64) required")

    return body.filename, _decode_base64(data), body.content_type


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    request: Request,
    current_user: User = Depends(get_current_user),
    service: UploadService = Depends(get_upload_service)
):
    """
    Upload an image.

    Accepts multipart/form-data with an `image` (or `file`) field, or JSON
    `{filename, file}` with base64 content.

    The original is stored under the caller's prefix and a thumbnail job is
    queued best effort: a queue outage still returns 201, with
    `thumbnail_queued: false`.
    """
    filename, content, content_type = await _read_upload(request)

    result = await asyncio.to_thread(
        service.upload,
        current_user.email,
        filename,
        content,
        content_type,
    )

    return UploadResponse(
        message="File uploaded",
        key=result.key,
        thumbnail_queued=result.thumbnail_queued
    )


@router.get("/images", response_model=List[ImageItem])
async def list_images(
    current_user: User = Depends(get_current_user),
    service: ImageService = Depends(get_image_service)
):
    """
    List the caller's images, newest first.
    Thumbnails are reported on their original's entry, not as separate items.
    """
    entries = await asyncio.to_thread(service.list_images, current_user.email)
    return [
        ImageItem(
            Key=entry.key,
            Size=entry.size,
            LastModified=entry.last_modified,
            ThumbnailKey=entry.thumbnail_key
        )
        for entry in entries
    ]


@router.get("/image-url/{key:path}", response_model=ImageUrlResponse)
async def get_image_url(
    key: str,
    current_user: User = Depends(get_current_user),
    service: ImageService = Depends(get_image_service)
):
    """
    Get a signed read URL for one of the caller's images (original or thumbnail).
    Returns 403 for keys outside the caller's prefix and 404 for missing images.
    """
    signed = await asyncio.to_thread(service.signed_url, current_user.email, key)
    return ImageUrlResponse(url=signed.url, expires_in=signed.expires_in)


@router.post("/view-token", response_model=ViewTokenResponse)
async def create_view_token(
    request: ViewTokenRequest,
    current_user: User = Depends(get_current_user),
    service: ImageService = Depends(get_image_service)
):
    """
    Issue a short-lived view token for inline embedding of one image.
    The returned URL works without a session until the token expires.
    """
    view = await asyncio.to_thread(service.issue_view_token, current_user.email, request.key)
    return ViewTokenResponse(
        token=view.token,
        url=f"/view/{quote(view.key, safe='/@')}?token={view.token}",
        expires_in=view.expires_in
    )


@router.get("/view/{key:path}")
async def view_image(
    key: str,
    token: Optional[str] = Query(None),
    service: ImageService = Depends(get_image_service)
):
    """
    Stream an image using a view token.

    The body is copied from storage in fixed-size chunks with the stored
    content type; the storage stream is closed when the response ends or
    the client goes away.
    """
    if not token:
        raise AuthError("Missing token")

    stream = await asyncio.to_thread(service.open_view, token, key)

    headers = {"Cache-Control": "private, max-age=60"}
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)

    return StreamingResponse(
        stream.iter_chunks(settings.view_chunk_size),
        media_type=stream.content_type,
        headers=headers,
        background=BackgroundTask(stream.close)
    )


@router.delete("/delete", response_model=DeleteResponse)
async def delete_image(
    request: DeleteRequest = Body(...),
    current_user: User = Depends(get_current_user),
    service: ImageService = Depends(get_image_service)
):
    """
    Delete an image given its key or a URL previously issued for it.
    The image's thumbnail is deleted with it.
    """
    deleted = await asyncio.to_thread(
        service.delete_image,
        current_user.email,
        request.key,
        request.url,
    )
    return DeleteResponse(message="Image deleted", deleted=deleted)


@router.delete("/delete/{key:path}", response_model=DeleteResponse)
async def delete_image_by_key(
    key: str,
    current_user: User = Depends(get_current_user),
    service: ImageService = Depends(get_image_service)
):
    """
    Delete an image by key.
    The image's thumbnail is deleted with it.
    """
    deleted = await asyncio.to_thread(service.delete_image, current_user.email, key)
    return DeleteResponse(message="Image deleted", deleted=deleted)
