"""
Test configuration and fixtures.
Uses in-memory SQLite for the users table and an in-memory object store,
so the suite runs without PostgreSQL, Redis or S3.
"""
import io
import os
from datetime import datetime, timedelta, timezone

# Set test environment before any imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["S3_ENDPOINT"] = "http://localhost:4566"
os.environ["S3_ACCESS_KEY"] = "test"
os.environ["S3_SECRET_KEY"] = "test"
os.environ["S3_BUCKET"] = "userimages"

import pytest
from typing import AsyncGenerator, Dict, List, Optional
from unittest.mock import patch

from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from picstash.auth.passwords import hash_password
from picstash.auth.tokens import create_session_token
from picstash.errors import NotFoundError
from picstash.models.base import Base
from picstash.models.user import User
from picstash.schemas.thumbnail import ThumbnailJob
from picstash.storage.s3_client import ObjectStream, StoredObject


TEST_DATABASE_URL = "sqlite+aiosqlite://"

ALICE = "alice@example.com"
BOB = "bob@example.com"
PASSWORD = "correct-horse"


class FakeBody:
    """Stand-in for botocore's StreamingBody."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)
        self.closed = False

    def read(self, amt=None):
        return self._buffer.read() if amt is None else self._buffer.read(amt)

    def iter_chunks(self, chunk_size=1024):
        while True:
            chunk = self._buffer.read(chunk_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        self.closed = True


class FakeObjectStore:
    """
    In-memory object store with the S3Client interface.

    Objects get strictly increasing LastModified values so listing order is
    deterministic.
    """

    def __init__(self, bucket: str = "userimages"):
        self._bucket = bucket
        self.objects: Dict[str, dict] = {}
        self.opened: List[FakeBody] = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    @property
    def is_configured(self) -> bool:
        return True

    @property
    def bucket(self) -> str:
        return self._bucket

    def put_object(self, key, body, content_type, bucket=None, metadata=None):
        self._clock += timedelta(seconds=1)
        self.objects[key] = {
            "body": bytes(body),
            "content_type": content_type,
            "metadata": metadata or {},
            "last_modified": self._clock,
        }

    def get_object(self, key, bucket=None):
        if key not in self.objects:
            raise NotFoundError(f"Object not found: {key}")
        obj = self.objects[key]
        return StoredObject(
            bucket=bucket or self.bucket,
            key=key,
            content_type=obj["content_type"],
            body=obj["body"],
        )

    def open_object(self, key, bucket=None):
        if key not in self.objects:
            raise NotFoundError(f"Object not found: {key}")
        obj = self.objects[key]
        body = FakeBody(obj["body"])
        self.opened.append(body)
        return ObjectStream(
            key=key,
            content_type=obj["content_type"],
            content_length=len(obj["body"]),
            body=body,
        )

    def list_objects(self, prefix):
        if not prefix:
            raise ValueError("Refusing to list objects without a prefix")
        return [
            {"Key": key, "Size": len(obj["body"]), "LastModified": obj["last_modified"]}
            for key, obj in sorted(self.objects.items())
            if key.startswith(prefix)
        ]

    def list_owner_prefixes(self):
        return sorted({key.split("/", 1)[0] + "/" for key in self.objects if "/" in key})

    def object_exists(self, key):
        return key in self.objects

    def generate_presigned_read_url(self, key, expiration=None):
        return f"http://localhost:4566/{self.bucket}/{key}?X-Amz-Expires={expiration}&X-Amz-Signature=fake"

    def delete_object(self, key):
        self.objects.pop(key, None)

    def delete_objects_batch(self, keys):
        for key in keys:
            self.objects.pop(key, None)
        return (len(keys), 0)

    def ping(self):
        return True


class FakeQueue:
    """ThumbnailQueue replacement that records published jobs."""

    def __init__(self, available: bool = True):
        self.available = available
        self.jobs: List[ThumbnailJob] = []

    def enqueue(self, job: ThumbnailJob) -> bool:
        if not self.available:
            return False
        self.jobs.append(job)
        return True


def make_image_bytes(
    size=(400, 200),
    color=(200, 30, 30),
    image_format: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    """Render a solid-colour test image."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with session_maker() as session:
        yield session

    await engine.dispose()


async def _create_user(db_session: AsyncSession, email: str) -> User:
    user = User(email=email, password_hash=hash_password(PASSWORD))
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
async def alice(db_session: AsyncSession) -> User:
    """Create a test user."""
    return await _create_user(db_session, ALICE)


@pytest.fixture(scope="function")
async def bob(db_session: AsyncSession) -> User:
    """Create a second test user."""
    return await _create_user(db_session, BOB)


def auth_headers(email: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(email)}"}


@pytest.fixture
def alice_headers(alice: User) -> Dict[str, str]:
    return auth_headers(alice.email)


@pytest.fixture
def bob_headers(bob: User) -> Dict[str, str]:
    return auth_headers(bob.email)


def get_test_app(db_session: AsyncSession, store: FakeObjectStore, queue: Optional[FakeQueue]) -> FastAPI:
    """Create a test FastAPI app with overridden dependencies."""
    from picstash.main import app
    from picstash.database import get_db
    from picstash.api.deps import get_storage, get_thumbnail_queue

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: store
    app.dependency_overrides[get_thumbnail_queue] = lambda: queue

    return app


@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    store: FakeObjectStore,
    queue: FakeQueue,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = get_test_app(db_session, store, queue)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture
def mock_broker_ping():
    """Keep the health check away from a real Redis."""
    with patch("picstash.api.health._ping_broker") as mock:
        mock.return_value = None
        yield mock
