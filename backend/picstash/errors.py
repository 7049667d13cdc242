"""
Error taxonomy shared by the API and the thumbnail worker.

Every error carries the HTTP status it maps to. Validation and authorization
messages are safe to show to the caller; dependency errors are not, the API
replaces their message with an opaque one after logging it.
"""
from typing import Any, Dict, Optional


class PicstashError(Exception):
    """Base class for all picstash errors."""

    status_code = 500
    public = True

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PicstashError):
    """Malformed input or upload policy violation."""

    status_code = 400


class AuthError(PicstashError):
    """Missing, invalid or expired credential."""

    status_code = 401


class AuthorizationError(PicstashError):
    """Valid credential, but the object belongs to someone else."""

    status_code = 403


class NotFoundError(PicstashError):
    """Missing object or user."""

    status_code = 404


class DependencyError(PicstashError):
    """Object store or queue unavailable."""

    status_code = 500
    public = False


class TransformError(PicstashError):
    """
    Unsupported or corrupt image.

    Only raised inside the thumbnail worker and swallowed per job, never
    returned to the uploading user.
    """

    status_code = 422
    public = False
