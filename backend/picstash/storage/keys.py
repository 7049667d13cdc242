"""
Object key scheme.

Pattern: {owner_prefix}/{unique_token}_{safe_filename}
Thumbnail: {owner_prefix}/{marker}{unique_token}_{safe_filename}

The owner prefix is derived only from the authenticated identity and can
never contain "/", so the first path segment of a key identifies its owner.
Filenames are reduced to a single safe segment before they are appended.
"""
import re
import secrets
import string
import time
import unicodedata
from typing import Optional
from urllib.parse import unquote, urlparse

from picstash.config import settings

# Characters kept as-is in the owner prefix; every other UTF-8 byte becomes =XX.
# "%" is never emitted, so a prefix survives one round of URL decoding unchanged.
_PREFIX_SAFE = frozenset(string.ascii_letters + string.digits + "@.+~-_")
_PREFIX_ESCAPE = "="

MAX_FILENAME_LENGTH = 128
DEFAULT_FILENAME = "upload"

_WHITESPACE = re.compile(r"\s+")


def owner_prefix(owner: str) -> str:
    """
    Build the key prefix for an owner identity.

    `alice@example.com` stays readable; "/" and other separators are encoded
    (`o'brien@example.com` -> `o=27brien@example.com`) so the prefix is always
    exactly one path segment.
    """
    if not owner or not owner.strip():
        raise ValueError("Owner identity is required to build a key prefix")
    return "".join(
        ch if ch in _PREFIX_SAFE
        else "".join(f"{_PREFIX_ESCAPE}{byte:02X}" for byte in ch.encode("utf-8"))
        for ch in owner.strip()
    )


def sanitize_filename(filename: Optional[str]) -> str:
    """
    Reduce a client-supplied filename to one safe key segment.

    - keeps only the final path component ("../../bob/x.png" -> "x.png")
    - whitespace runs become "_"
    - control characters are dropped
    - leading dots are stripped (no "..", no hidden names)
    - long names are truncated, keeping the extension
    """
    if not filename:
        return DEFAULT_FILENAME

    name = re.split(r"[/\\]", filename)[-1]
    name = "".join(ch for ch in name if unicodedata.category(ch)[0] != "C")
    name = _WHITESPACE.sub("_", name.strip())
    name = name.lstrip(".")

    if len(name) > MAX_FILENAME_LENGTH:
        stem, dot, ext = name.rpartition(".")
        if dot and 0 < len(ext) <= 10:
            name = stem[:MAX_FILENAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            name = name[:MAX_FILENAME_LENGTH]

    return name or DEFAULT_FILENAME


def unique_token() -> str:
    """Millisecond timestamp plus random hex, unique per upload event."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def build_object_key(owner: str, filename: Optional[str], token: Optional[str] = None) -> str:
    """
    Generate a unique object key for an upload.

    Args:
        owner: Authenticated identity (email)
        filename: Client-supplied filename, sanitized here
        token: Unique token, generated when omitted

    Returns:
        Object key string
    """
    return f"{owner_prefix(owner)}/{token or unique_token()}_{sanitize_filename(filename)}"


def is_thumbnail_key(key: str, marker: Optional[str] = None) -> bool:
    """True when the final segment of the key carries the thumbnail marker."""
    marker = marker or settings.thumbnail_marker
    return key.rsplit("/", 1)[-1].startswith(marker)


def derive_thumbnail_key(key: str, marker: Optional[str] = None) -> str:
    """
    Compute the thumbnail key for an original.

    Inserts the marker before the final segment. Pure and idempotent:
    a key that is already a thumbnail key is returned unchanged.
    """
    marker = marker or settings.thumbnail_marker
    if is_thumbnail_key(key, marker):
        return key
    head, sep, tail = key.rpartition("/")
    return f"{head}{sep}{marker}{tail}"


def original_key_for(thumbnail_key: str, marker: Optional[str] = None) -> str:
    """Inverse of derive_thumbnail_key."""
    marker = marker or settings.thumbnail_marker
    if not is_thumbnail_key(thumbnail_key, marker):
        return thumbnail_key
    head, sep, tail = thumbnail_key.rpartition("/")
    return f"{head}{sep}{tail[len(marker):]}"


def owns_key(owner: str, key: Optional[str]) -> bool:
    """
    Check that a key sits strictly under the owner's prefix.

    Rejects the bare prefix, empty or dot segments, and backslashes, so a
    crafted key cannot climb out of the prefix on stores that normalize paths.
    """
    if not key or "\\" in key:
        return False
    try:
        prefix = owner_prefix(owner)
    except ValueError:
        return False
    if not key.startswith(prefix + "/"):
        return False
    segments = key[len(prefix) + 1:].split("/")
    return all(segment not in ("", ".", "..") for segment in segments)


def key_from_url(url: str, bucket: Optional[str] = None) -> str:
    """
    Extract the object key from a storage URL.

    Handles path-style (http://host/bucket/key) and virtual-hosted-style
    (http://bucket.host/key) URLs, ignoring any presign query string. A value
    without a scheme is treated as a key already.
    """
    bucket = bucket or settings.s3_bucket
    parsed = urlparse(url)
    if not parsed.scheme:
        return unquote(url)

    path = parsed.path.lstrip("/")
    if path.startswith(bucket + "/") and not (parsed.hostname or "").startswith(bucket + "."):
        path = path[len(bucket) + 1:]
    return unquote(path)
