"""Alembic environment for the tracker schema."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from logging.config import fileConfig
from pathlib import Path
import re
import sys

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from tracker.core.config import settings  # noqa: E402
from tracker.db import base  # noqa: F401,E402  # ensure models are imported

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)

# run_migrations() passes the URL in already; the CLI reads it from settings
if not config.attributes.get("url_configured"):
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

target_metadata = SQLModel.metadata

_REVISION_FILE = re.compile(r"^\d{8}_(\d{4})_")


def _next_revision_id() -> str:
    versions_dir = Path(__file__).parent / "versions"
    sequence = 0
    for path in versions_dir.glob("*.py"):
        match = _REVISION_FILE.match(path.stem)
        if match:
            sequence = max(sequence, int(match.group(1)))
    return f"{datetime.now(timezone.utc):%Y%m%d}_{sequence + 1:04d}"


def _process_revision_directives(context, revision, directives):
    """Name new revisions YYYYMMDD_NNNN with a global sequence number."""
    if directives:
        directives[0].rev_id = _next_revision_id()


def _configure(**kwargs) -> None:
    url = config.get_main_option("sqlalchemy.url") or ""
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        process_revision_directives=_process_revision_directives,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection, transaction_per_migration=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
