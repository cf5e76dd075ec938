from collections.abc import Sequence
from datetime import datetime, timezone
from typing import List

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.models.device_token import DeviceToken


def _insert_for(session: AsyncSession):
    # Production runs on Postgres; the SQLite branch serves the per-test
    # databases. Both dialects expose the same on_conflict_do_update API.
    dialect = session.bind.dialect.name if session.bind is not None else "postgresql"
    return sqlite_insert if dialect == "sqlite" else pg_insert


async def register_device_token(
    session: AsyncSession,
    *,
    user_id: int,
    token: str,
) -> DeviceToken:
    """Register a push token, or move it to ``user_id`` if already known.

    Uses an upsert on the unique token so that concurrent registrations of
    the same device cannot race between SELECT and INSERT. Registering the
    same token twice is a no-op apart from the owner and ``updated_at``.
    """
    now = datetime.now(timezone.utc)
    insert = _insert_for(session)
    stmt = (
        insert(DeviceToken)
        .values(
            user_id=user_id,
            token=token,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_update(
            index_elements=["token"],
            set_=dict(
                user_id=user_id,
                updated_at=now,
            ),
        )
    )
    await session.exec(stmt)
    await session.commit()
    result = await session.exec(select(DeviceToken).where(DeviceToken.token == token))
    device = result.one()
    await session.refresh(device)
    return device


async def get_tokens_for_user(
    session: AsyncSession,
    *,
    user_id: int,
) -> List[str]:
    """Get all push tokens for a user. Empty when the user has no devices."""
    stmt = (
        select(DeviceToken.token)
        .where(DeviceToken.user_id == user_id)
        .order_by(DeviceToken.created_at.desc())
    )
    result = await session.exec(stmt)
    return list(result.all())


async def prune_token(
    session: AsyncSession,
    *,
    token: str,
) -> bool:
    """Permanently remove a token the push service reported as invalid.

    Returns True if a token was deleted, False otherwise.
    """
    stmt = delete(DeviceToken).where(DeviceToken.token == token)
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount > 0  # type: ignore


async def unregister_device_token(
    session: AsyncSession,
    *,
    user_id: int,
    token: str,
) -> bool:
    """Remove one of the user's own tokens (logout on a device)."""
    stmt = delete(DeviceToken).where(
        DeviceToken.token == token,
        DeviceToken.user_id == user_id,
    )
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount > 0  # type: ignore


async def mark_tokens_used(
    session: AsyncSession,
    *,
    tokens: Sequence[str],
) -> None:
    """Track successful delivery by updating last_used_at timestamps."""
    if not tokens:
        return
    stmt = (
        update(DeviceToken)
        .where(DeviceToken.token.in_(tuple(tokens)))
        .values(last_used_at=datetime.now(timezone.utc))
    )
    await session.exec(stmt)
    await session.commit()
