"""
Tests for the S3 storage client.
Uses a real boto3 client with dummy credentials and botocore's Stubber, so
no request leaves the process.
"""
import io
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import boto3
import pytest
from botocore.config import Config
from botocore.response import StreamingBody
from botocore.stub import Stubber

from picstash.errors import DependencyError, NotFoundError
from picstash.storage.s3_client import S3Client

from conftest import ALICE

BUCKET = "userimages"
KEY = f"{ALICE}/1700000000000-deadbeef_cat.png"


@pytest.fixture
def boto_client():
    return boto3.client(
        "s3",
        endpoint_url="http://localhost:4566",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        region_name="us-east-1",
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


@pytest.fixture
def stubber(boto_client):
    with Stubber(boto_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def s3(boto_client) -> S3Client:
    return S3Client(client=boto_client, bucket=BUCKET)


def _body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


class TestPresignedUrls:
    """Tests for presigned read URLs."""

    def test_presigned_url_expiry(self, s3: S3Client):
        url = s3.generate_presigned_read_url(KEY, expiration=3600)
        query = parse_qs(urlparse(url).query)

        assert query["X-Amz-Expires"] == ["3600"]
        assert "X-Amz-Signature" in query
        assert urlparse(url).path.startswith(f"/{BUCKET}/")

    def test_presigned_url_default_expiry(self, s3: S3Client):
        url = s3.generate_presigned_read_url(KEY)
        assert parse_qs(urlparse(url).query)["X-Amz-Expires"] == ["3600"]


class TestObjects:
    """Tests for object reads and writes."""

    def test_put_object(self, s3: S3Client, stubber: Stubber):
        stubber.add_response(
            "put_object",
            {},
            {"Bucket": BUCKET, "Key": KEY, "Body": b"data", "ContentType": "image/png", "Metadata": {}},
        )
        s3.put_object(KEY, b"data", "image/png")

    def test_put_object_failure(self, s3: S3Client, stubber: Stubber):
        stubber.add_client_error("put_object", service_error_code="InternalError", http_status_code=500)

        with pytest.raises(DependencyError):
            s3.put_object(KEY, b"data", "image/png")

    def test_get_object(self, s3: S3Client, stubber: Stubber):
        stubber.add_response(
            "get_object",
            {"Body": _body(b"png-bytes"), "ContentType": "image/png", "ContentLength": 9},
            {"Bucket": BUCKET, "Key": KEY},
        )

        obj = s3.get_object(KEY)

        assert obj.body == b"png-bytes"
        assert obj.content_type == "image/png"
        assert obj.bucket == BUCKET

    def test_get_missing_object(self, s3: S3Client, stubber: Stubber):
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

        with pytest.raises(NotFoundError):
            s3.get_object(KEY)

    def test_open_object_streams_chunks(self, s3: S3Client, stubber: Stubber):
        stubber.add_response(
            "get_object",
            {"Body": _body(b"0123456789"), "ContentType": "image/jpeg", "ContentLength": 10},
            {"Bucket": BUCKET, "Key": KEY},
        )

        stream = s3.open_object(KEY)

        assert stream.content_length == 10
        assert list(stream.iter_chunks(4)) == [b"0123", b"4567", b"89"]

    def test_object_exists(self, s3: S3Client, stubber: Stubber):
        stubber.add_response("head_object", {}, {"Bucket": BUCKET, "Key": KEY})
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        assert s3.object_exists(KEY) is True
        assert s3.object_exists(KEY) is False

    def test_object_exists_failure(self, s3: S3Client, stubber: Stubber):
        stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(DependencyError):
            s3.object_exists(KEY)

    def test_delete_is_idempotent(self, s3: S3Client, stubber: Stubber):
        stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": KEY})
        stubber.add_client_error("delete_object", service_error_code="NoSuchKey", http_status_code=404)

        s3.delete_object(KEY)
        s3.delete_object(KEY)


class TestListing:
    """Tests for listing."""

    def test_list_follows_pagination(self, s3: S3Client, stubber: Stubber):
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        prefix = f"{ALICE}/"
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [{"Key": f"{prefix}1-a_x.png", "Size": 1, "LastModified": modified}],
                "IsTruncated": True,
                "NextContinuationToken": "next",
            },
            {"Bucket": BUCKET, "Prefix": prefix, "MaxKeys": 1000},
        )
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [{"Key": f"{prefix}2-b_y.png", "Size": 2, "LastModified": modified}],
                "IsTruncated": False,
            },
            {"Bucket": BUCKET, "Prefix": prefix, "MaxKeys": 1000, "ContinuationToken": "next"},
        )

        keys = [obj["Key"] for obj in s3.list_objects(prefix)]

        assert keys == [f"{prefix}1-a_x.png", f"{prefix}2-b_y.png"]

    def test_list_refuses_empty_prefix(self, s3: S3Client):
        with pytest.raises(ValueError):
            s3.list_objects("")

    def test_list_owner_prefixes(self, s3: S3Client, stubber: Stubber):
        stubber.add_response(
            "list_objects_v2",
            {"CommonPrefixes": [{"Prefix": f"{ALICE}/"}, {"Prefix": "bob@example.com/"}], "IsTruncated": False},
            {"Bucket": BUCKET, "Delimiter": "/"},
        )

        assert s3.list_owner_prefixes() == [f"{ALICE}/", "bob@example.com/"]


class TestUnconfigured:
    """Tests for a client without credentials."""

    def test_operations_raise_dependency_error(self, monkeypatch):
        from picstash.config import settings

        monkeypatch.setattr(settings, "s3_access_key", None)
        s3 = S3Client()

        assert s3.is_configured is False
        assert s3.ping() is False
        with pytest.raises(DependencyError):
            s3.put_object(KEY, b"data", "image/png")
