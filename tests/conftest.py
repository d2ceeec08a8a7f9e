"""
Pytest configuration and fixtures for the image registry tests.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vmregistry.auth.client import AuthClient
from vmregistry.auth.dependencies import get_auth_client
from vmregistry.config import Settings
from vmregistry.db.base import Base
from vmregistry.db.session import build_engine, get_db
from vmregistry.dependencies import get_store_configs
from vmregistry.main import app
from vmregistry.services.registry import ImageRegistry


@pytest.fixture
def test_settings() -> Settings:
    """Settings with authorization bypassed."""
    return Settings(DEV_MODE=True, DEV_USER_ID="test-user-001")


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """
    File-backed SQLite engine.

    A file (rather than :memory:) lets several sessions share the database,
    which the concurrency tests need.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def registry(db_session) -> ImageRegistry:
    """Registry with a configured images counter and no authorization."""
    registry = ImageRegistry(db_session)
    await registry.configure_counters()
    await db_session.commit()
    return registry


@pytest.fixture
def store_configs(tmp_path) -> dict[str, dict[str, Any]]:
    """Only the filesystem and HTTP stores are configured."""
    return {
        "file": {"directory": str(tmp_path / "images")},
        "http": {"timeout": 5.0},
    }


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, store_configs, test_settings) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    async with session_factory() as session:
        await ImageRegistry(session).configure_counters()
        await session.commit()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store_configs] = lambda: store_configs
    app.dependency_overrides[get_auth_client] = lambda: AuthClient(settings=test_settings)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def sample_image_data() -> dict[str, Any]:
    """Sample image metadata."""
    return {
        "name": "Ubuntu 12.04 Server",
        "architecture": "x86_64",
        "access": "public",
        "type": "amazon",
        "format": "iso",
    }


@pytest.fixture
def sample_meta_headers() -> dict[str, str]:
    """Sample image metadata as request headers."""
    return {
        "x-image-meta-name": "Ubuntu 12.04 Server",
        "x-image-meta-architecture": "x86_64",
        "x-image-meta-access": "public",
        "x-image-meta-format": "iso",
    }


@pytest.fixture
def sample_file_content() -> bytes:
    """Sample image file content."""
    return b"fake iso image content " * 100
