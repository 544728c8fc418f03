"""Unit test conftest for setting up test environment."""

import os

# Set environment variables before importing any syncweave modules so that
# Settings and the module-level engine pick them up during collection
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOCAL_DEVELOPMENT", "true")
# One shared in-memory SQLite connection: keep activity fan-out sequential
os.environ.setdefault("SYNC_MAX_CONCURRENCY", "1")
os.environ.setdefault("DOCUMENT_INDEX_URL", "http://index.test")
os.environ.setdefault("CONNECTION_SERVICE_URL", "http://connections.test")

from contextlib import asynccontextmanager  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from syncweave import schemas  # noqa: E402
from syncweave.core.mirror_store import MirrorStore  # noqa: E402
from syncweave.core.shared_models import ConnectorProvider  # noqa: E402
from syncweave.db.init_db import init_db  # noqa: E402


@pytest.fixture
async def store():
    """MirrorStore over a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    session_maker = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

    @asynccontextmanager
    async def session_factory():
        async with session_maker() as db:
            yield db

    yield MirrorStore(session_factory=session_factory)
    await engine.dispose()


@pytest.fixture
async def slack_connector(store):
    """A Slack connector registered in the store."""
    return await store.create_connector(
        schemas.ConnectorCreate(
            provider=ConnectorProvider.SLACK,
            connection_id="conn-slack",
            workspace_id="ws-1",
            data_source_id="ds-slack",
        )
    )


@pytest.fixture
async def drive_connector(store):
    """A Google Drive connector registered in the store."""
    return await store.create_connector(
        schemas.ConnectorCreate(
            provider=ConnectorProvider.GOOGLE_DRIVE,
            connection_id="conn-drive",
            workspace_id="ws-1",
            data_source_id="ds-drive",
        )
    )
