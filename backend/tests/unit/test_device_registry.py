"""
Service tests for the device token registry.
"""

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.models.device_token import DeviceToken
from tracker.services import push_tokens
from tracker.testing import create_device_token, create_user

TOKEN = "fcm-registration-token-0001-abcdefghijklmnop"


async def _rows(session: AsyncSession) -> list[DeviceToken]:
    result = await session.exec(select(DeviceToken))
    return list(result.all())


@pytest.mark.unit
@pytest.mark.service
async def test_register_is_idempotent(session: AsyncSession):
    user = await create_user(session)

    first = await push_tokens.register_device_token(session, user_id=user.id, token=TOKEN)
    second = await push_tokens.register_device_token(session, user_id=user.id, token=TOKEN)

    assert first.id == second.id
    assert len(await _rows(session)) == 1
    assert await push_tokens.get_tokens_for_user(session, user_id=user.id) == [TOKEN]


@pytest.mark.unit
@pytest.mark.service
async def test_register_moves_token_to_latest_user(session: AsyncSession):
    alice = await create_user(session)
    bob = await create_user(session)

    await push_tokens.register_device_token(session, user_id=alice.id, token=TOKEN)
    device = await push_tokens.register_device_token(session, user_id=bob.id, token=TOKEN)

    assert device.user_id == bob.id
    assert len(await _rows(session)) == 1
    assert await push_tokens.get_tokens_for_user(session, user_id=alice.id) == []
    assert await push_tokens.get_tokens_for_user(session, user_id=bob.id) == [TOKEN]


@pytest.mark.unit
@pytest.mark.service
async def test_user_without_devices_gets_empty_list(session: AsyncSession):
    user = await create_user(session)
    assert await push_tokens.get_tokens_for_user(session, user_id=user.id) == []


@pytest.mark.unit
@pytest.mark.service
async def test_prune_token(session: AsyncSession):
    user = await create_user(session)
    device = await create_device_token(session, user)

    assert await push_tokens.prune_token(session, token=device.token) is True
    assert await push_tokens.prune_token(session, token=device.token) is False
    assert await push_tokens.get_tokens_for_user(session, user_id=user.id) == []


@pytest.mark.unit
@pytest.mark.service
async def test_unregister_only_removes_own_tokens(session: AsyncSession):
    owner = await create_user(session)
    other = await create_user(session)
    device = await create_device_token(session, owner)

    assert await push_tokens.unregister_device_token(session, user_id=other.id, token=device.token) is False
    assert await push_tokens.unregister_device_token(session, user_id=owner.id, token=device.token) is True
    assert await _rows(session) == []


@pytest.mark.unit
@pytest.mark.service
async def test_mark_tokens_used_stamps_delivery(session: AsyncSession):
    user = await create_user(session)
    used = await create_device_token(session, user)
    idle = await create_device_token(session, user)

    await push_tokens.mark_tokens_used(session, tokens=[used.token])

    await session.refresh(used)
    await session.refresh(idle)
    assert used.last_used_at is not None
    assert idle.last_used_at is None
