"""
Shared fixtures: in-memory SQLite database per test and an httpx client
bound to the app with get_db / get_session_factory pointed at it.
"""

import os
import pytest
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from adperf.database import Base
import adperf.models  # noqa: F401


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings_env(tmp_path):
    """Development settings with auth disabled and uploads stored under tmp_path."""
    from adperf.config import get_settings
    env = {
        "ENVIRONMENT": "development",
        "API_KEY": "",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "IMPORT_IN_BACKGROUND": "true",
    }
    with patch.dict(os.environ, env, clear=False):
        get_settings.cache_clear()
        yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory, settings_env):
    from adperf.main import app
    from adperf.database import get_db, get_session_factory

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def count_rows():
    async def _count(session, model) -> int:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()
    return _count
