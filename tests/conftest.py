"""Pytest fixtures for FuelFlow service and API tests.

Every test gets a fresh in-memory SQLite database. Services are exercised
directly against ``db_session``; API tests go through ``async_client``, which
commits per request exactly like ``get_db`` does in production.
"""

import os
from collections.abc import AsyncGenerator

# Push in-process; tests never reach a Redis server
os.environ.setdefault("REALTIME_FANOUT", "local")

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import src.models  # noqa: F401  registers every table on Base.metadata
from src.app import app
from src.database.base import Base
from src.database.session import get_db
from src.middleware.rate_limit import limiter
from src.modules.dispatch.router import get_dispatch_service
from src.modules.dispatch.service import DispatchService
from src.modules.realtime.distributor import distributor
from tests.helpers import RecordingTimer


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory bound to a private in-memory database."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    await distributor.wait_idle()
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def offer_timer() -> RecordingTimer:
    return RecordingTimer()


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    offer_timer: RecordingTimer,
) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the FastAPI app and the test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_get_dispatch_service(db: AsyncSession = Depends(get_db)) -> DispatchService:
        return DispatchService(db, timer=offer_timer)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatch_service] = override_get_dispatch_service

    limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
