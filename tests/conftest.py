import os

os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "test"
os.environ["CHANGE_FEED_ENABLED"] = "false"
os.environ["STATUS_POLLER_ENABLED"] = "false"
os.environ["MIDTRANS_SERVER_KEY"] = "SB-Mid-server-test-key"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["INTERNAL_CRON_SECRET"] = "test-cron-secret"
os.environ.pop("DATABASE_URL", None)

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db import Base as AsyncBase
from app.models import counters, donor, queue, session, settings  # noqa: F401
from factories import FakeGateway, RecordingFeed


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    db_path = tmp_path / "mabar_tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(AsyncBase.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def async_session_maker(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
def feed():
    return RecordingFeed()


@pytest.fixture
def gateway():
    return FakeGateway()
