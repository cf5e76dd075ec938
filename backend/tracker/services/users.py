"""Administrative user management: listing, creation, edits and deletion.

Deleting a user removes what only matters to that user (permission
grants, device tokens, in-app notifications). Work records that other
people rely on are never removed or rewritten, so a user who still has
tasks, comments, attachments or time entries cannot be deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, List, Optional

from sqlalchemy import func, or_
from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core.exceptions import InvalidInputError, NotFoundError
from tracker.models.department import Department
from tracker.models.device_token import DeviceToken
from tracker.models.notification import Notification
from tracker.models.task import Attachment, Comment, Task, TimeEntry
from tracker.models.user import User, UserPermission

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "email", "job_title", "department_id")


class DeletionBlocker(InvalidInputError):
    """Raised when a user still owns records that must be kept."""

    def __init__(self, blockers: List[str]):
        self.blockers = blockers
        super().__init__("User cannot be deleted: " + ", ".join(blockers))


async def list_users(session: AsyncSession) -> List[User]:
    result = await session.exec(select(User).order_by(User.name.asc(), User.id.asc()))
    return list(result.all())


async def get_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _ensure_email_available(session: AsyncSession, email: str, *, exclude_id: Optional[int] = None) -> None:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    result = await session.exec(stmt)
    if result.first() is not None:
        raise InvalidInputError("Email already registered")


async def _ensure_department_exists(session: AsyncSession, department_id: int) -> None:
    if await session.get(Department, department_id) is None:
        raise InvalidInputError("Department not found")


async def create_user(
    session: AsyncSession,
    *,
    name: str,
    email: Optional[str] = None,
    job_title: Optional[str] = None,
    department_id: Optional[int] = None,
) -> User:
    if email:
        await _ensure_email_available(session, email)
    if department_id is not None:
        await _ensure_department_exists(session, department_id)
    user = User(name=name, email=email or None, job_title=job_title, department_id=department_id)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("User %s created", user.id)
    return user


async def update_user(session: AsyncSession, user_id: int, changes: Mapping[str, Any]) -> User:
    """Apply the non-empty fields of ``changes``. At least one is required."""
    updates = {name: value for name, value in changes.items() if name in UPDATABLE_FIELDS and value is not None}
    if not updates:
        raise InvalidInputError("No fields to update provided")

    user = await get_user(session, user_id)
    if "email" in updates:
        await _ensure_email_available(session, updates["email"], exclude_id=user.id)
    if "department_id" in updates:
        await _ensure_department_exists(session, updates["department_id"])

    for name, value in updates.items():
        setattr(user, name, value)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def _count(session: AsyncSession, stmt) -> int:
    result = await session.exec(stmt)
    return result.one()


async def deletion_blockers(session: AsyncSession, user_id: int) -> List[str]:
    checks = (
        (
            "tasks",
            select(func.count(Task.id)).where(or_(Task.assignee_id == user_id, Task.assigner_id == user_id)),
        ),
        ("comments", select(func.count(Comment.id)).where(Comment.user_id == user_id)),
        ("attachments", select(func.count(Attachment.id)).where(Attachment.user_id == user_id)),
        (
            "time entries",
            select(func.count(TimeEntry.id)).where(
                or_(TimeEntry.user_id == user_id, TimeEntry.approved_by_id == user_id)
            ),
        ),
    )
    blockers = []
    for label, stmt in checks:
        count = await _count(session, stmt)
        if count:
            blockers.append(f"{label} ({count})")
    return blockers


async def delete_user(session: AsyncSession, user_id: int, *, acting_user_id: int) -> None:
    if user_id == acting_user_id:
        raise InvalidInputError("You cannot delete your own account")
    user = await get_user(session, user_id)
    blockers = await deletion_blockers(session, user.id)
    if blockers:
        raise DeletionBlocker(blockers)

    await session.exec(delete(UserPermission).where(UserPermission.user_id == user.id))
    await session.exec(delete(DeviceToken).where(DeviceToken.user_id == user.id))
    await session.exec(delete(Notification).where(Notification.user_id == user.id))
    await session.delete(user)
    await session.commit()
    logger.info("User %s deleted", user_id)
