"""
Pytest configuration and fixtures for backend tests.

Every test gets its own SQLite database file, so the parallel reads of
the detail view and the dispatcher's own sessions see the same rows as
the test session. Provided fixtures:
- engine / session_factory / session for direct service calls
- recording mail and push transports and a dispatcher wired to them
- an ASGI client with the session, session factory and dispatcher overridden
"""

import os
from collections.abc import AsyncGenerator

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./tracker-unused.db")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

from tracker.api.deps import get_dispatcher  # noqa: E402
from tracker.db.session import get_session, get_session_factory  # noqa: E402
from tracker.main import app  # noqa: E402
from tracker.services.notifications import NotificationDispatcher  # noqa: E402
from tracker.testing import RecordingMailTransport, RecordingPushTransport  # noqa: E402


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Create a per-test SQLite engine with all tables in place."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}", echo=False, future=True)
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as test_session:
        yield test_session


@pytest.fixture
def mail_transport() -> RecordingMailTransport:
    return RecordingMailTransport()


@pytest.fixture
def push_transport() -> RecordingPushTransport:
    return RecordingPushTransport()


@pytest.fixture
def dispatcher(session_factory, mail_transport, push_transport) -> NotificationDispatcher:
    return NotificationDispatcher(
        session_factory,
        mail=mail_transport,
        push=push_transport,
        channel_timeout=1.0,
        app_url="http://tracker.test",
    )


@pytest.fixture
async def client(
    session: AsyncSession,
    session_factory: sessionmaker,
    dispatcher: NotificationDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client bound to the FastAPI app.

    Background notification tasks run before the response is handed back,
    so tests can assert on the recording transports right after a request.
    """

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
