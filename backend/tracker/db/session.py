import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core.config import settings
from tracker.db import base  # noqa: F401  # ensure models are imported for metadata

BACKEND_DIR = Path(__file__).resolve().parents[2]

# Process-wide pool; sessions check a connection out per operation.
engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True, pool_pre_ping=True)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> sessionmaker:
    """Factory for work that needs sessions of its own (parallel reads, dispatch)."""
    return AsyncSessionLocal


def _get_alembic_config() -> Config:
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    config.attributes["url_configured"] = True
    config.attributes["configure_logger"] = False
    return config


async def run_migrations() -> None:
    # env.py drives its own event loop, so run it off the server loop
    await asyncio.to_thread(command.upgrade, _get_alembic_config(), "head")
