# portal/testing/conftest.py
# Shared fixtures: test settings, in-memory database, token service, fake blob store
# Environment is set before any portal module reads settings
# RELEVANT FILES: factories.py, ../config.py, ../database.py

import os

os.environ.setdefault("JWT_SECRET", "test-signing-secret-0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ..auth import TokenService  # noqa: E402
from ..config import Settings  # noqa: E402
from ..exceptions import StorageError  # noqa: E402
from ..models import Base  # noqa: E402


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        jwt_secret="test-signing-secret-0123456789abcdef",
        database_url="sqlite+aiosqlite://",
        retry_delay=0,
        max_retry_delay=0,
    )


@pytest.fixture
def tokens(settings):
    return TokenService(settings)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class FakeBlobStore:
    """In-memory stand-in for BlobStore with switchable failures"""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.signed: List[tuple] = []
        self.fail_remove = False
        self.fail_upload = False

    async def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        if self.fail_upload:
            raise StorageError("Storage upload failed")
        self.blobs[key] = data

    async def signed_download_url(self, key: str, download_name: str) -> str:
        self.signed.append((key, download_name))
        return f"https://storage.test/signed/{key}?download={download_name}&token=abc"

    async def remove(self, key: str) -> None:
        if self.fail_remove:
            raise StorageError("Storage remove failed")
        self.blobs.pop(key, None)


@pytest.fixture
def blob_store():
    return FakeBlobStore()
