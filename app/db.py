"""
Async Database Configuration
"""
import logging
import os
import time
from urllib.parse import urlparse, parse_qs, urlunparse
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from dotenv import load_dotenv

from config import SLOW_DB_QUERY_THRESHOLD_MS

load_dotenv()

logger = logging.getLogger(__name__)

# Get DATABASE_URL from environment
DATABASE_URL = os.getenv("DATABASE_URL")
TESTING = os.getenv("TESTING", "false").lower() == "true"

if not DATABASE_URL:
    if not TESTING:
        raise ValueError("DATABASE_URL environment variable is not set")
    DATABASE_URL = "sqlite+aiosqlite:///:memory:"

connect_args = {}
engine_kwargs = {}

if DATABASE_URL.startswith("sqlite"):
    if "+aiosqlite" not in DATABASE_URL:
        DATABASE_URL = DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
else:
    # asyncpg doesn't support psycopg2-style query parameters
    parsed = urlparse(DATABASE_URL)
    query_params = parse_qs(parsed.query)

    # Extract sslmode before removing all query params
    sslmode = query_params.pop('sslmode', [None])[0]
    DATABASE_URL = urlunparse(parsed._replace(query=''))

    if sslmode:
        if sslmode in ['require', 'prefer', 'allow', 'verify-ca', 'verify-full']:
            connect_args['ssl'] = True
        elif sslmode == 'disable':
            connect_args['ssl'] = False

    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
    elif DATABASE_URL.startswith("postgresql://"):
        DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine_kwargs = dict(
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=300,
    )

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
    **engine_kwargs,
)


@event.listens_for(engine.sync_engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(engine.sync_engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    started = conn.info.get("query_start_time")
    if not started:
        return
    elapsed_ms = (time.perf_counter() - started.pop()) * 1000
    if elapsed_ms > SLOW_DB_QUERY_THRESHOLD_MS:
        logger.warning(
            "SLOW_QUERY | time=%.1fms | statement=%s", elapsed_ms, statement[:200]
        )


# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base
Base = declarative_base()


async def get_async_db():
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
