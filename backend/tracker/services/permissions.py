"""Capability resolution for the authenticated caller.

A ``Subject`` is rebuilt from the ``user_permissions`` join on every
request and handed explicitly to every service call that scopes data.
Nothing here is cached between requests, so a permission change is
visible on the very next request.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core import capabilities
from tracker.core.exceptions import InvalidInputError, NotFoundError
from tracker.models.task import Task
from tracker.models.user import Permission, User, UserPermission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subject:
    id: int
    department_id: int | None = None
    permissions: frozenset[str] = frozenset()

    def has(self, capability: str) -> bool:
        return capability in self.permissions

    def has_any(self, *required: str) -> bool:
        return any(capability in self.permissions for capability in required)


def normalize_permissions(names: Iterable[str | None] | None) -> frozenset[str]:
    """Collapse an aggregate read into a clean set.

    An outer join or array aggregate over zero assignment rows can yield
    ``[None]``; that must become the empty set, never ``{None}``.
    """
    if not names:
        return frozenset()
    return frozenset(name for name in names if name)


async def get_permission_names(session: AsyncSession, user_id: int) -> frozenset[str]:
    stmt = (
        select(Permission.name)
        .join(UserPermission, UserPermission.permission_id == Permission.id)
        .where(UserPermission.user_id == user_id)
    )
    result = await session.exec(stmt)
    return normalize_permissions(result.all())


async def get_permission_ids(session: AsyncSession, user_id: int) -> list[int]:
    stmt = (
        select(UserPermission.permission_id)
        .where(UserPermission.user_id == user_id)
        .order_by(UserPermission.permission_id)
    )
    result = await session.exec(stmt)
    return list(result.all())


async def list_permissions(session: AsyncSession) -> list[Permission]:
    result = await session.exec(select(Permission).order_by(Permission.name))
    return list(result.all())


async def resolve_subject(session: AsyncSession, user_id: int) -> Subject:
    """Build the caller's ``Subject``.

    Raises :class:`NotFoundError` when the user was deleted while a session
    token was still outstanding.
    """
    result = await session.exec(select(User).where(User.id == user_id))
    user = result.one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    permissions = await get_permission_names(session, user.id)
    return Subject(id=user.id, department_id=user.department_id, permissions=permissions)


async def update_user_permissions(
    session: AsyncSession,
    *,
    user_id: int,
    permission_ids: Sequence[int],
) -> frozenset[str]:
    """Replace a user's whole permission assignment in one transaction.

    Concurrent readers observe either the previous set or the new one.
    Returns the resulting permission names.
    """
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    unique_ids = list(dict.fromkeys(permission_ids))
    if unique_ids:
        result = await session.exec(select(Permission.id).where(Permission.id.in_(tuple(unique_ids))))
        known = set(result.all())
        missing = [permission_id for permission_id in unique_ids if permission_id not in known]
        if missing:
            raise InvalidInputError(f"Unknown permission id(s): {', '.join(str(pid) for pid in missing)}")

    try:
        await session.exec(delete(UserPermission).where(UserPermission.user_id == user_id))
        session.add_all(
            [UserPermission(user_id=user_id, permission_id=permission_id) for permission_id in unique_ids]
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("Replaced permissions for user %s (%d assigned)", user_id, len(unique_ids))
    return await get_permission_names(session, user_id)


def can_edit_task(subject: Subject, task: Task) -> bool:
    """Editors hold EDIT_ANY_TASK within the task's department, or update their own task."""
    if subject.has(capabilities.EDIT_ANY_TASK) and task.department_id == subject.department_id:
        return True
    if subject.has(capabilities.UPDATE_OWN_TASK_STATUS) and task.assignee_id == subject.id:
        return True
    return False
