from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import sessionmaker
from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core import capabilities
from tracker.core.config import settings
from tracker.core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from tracker.models.task import Attachment, Comment, Task, TaskPriority, TaskStatus, TimeEntry
from tracker.models.user import User
from tracker.services.permissions import Subject, can_edit_task
from tracker.services.visibility import can_view_task

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "status", "priority", "due_date")


@dataclass
class TaskDetail:
    task: Task
    progress: int
    comments: list[Comment] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    subtasks: list[Task] = field(default_factory=list)
    time_entries: list[TimeEntry] = field(default_factory=list)


def compute_progress(status: TaskStatus | str, subtask_statuses: Sequence[TaskStatus | str]) -> int:
    """Completion percentage of a task.

    With subtasks: share of completed direct subtasks, rounded half up.
    Without: 100 when the task itself is completed, otherwise 0.
    """
    total = len(subtask_statuses)
    if total:
        completed = sum(1 for value in subtask_statuses if value == TaskStatus.completed)
        return (200 * completed + total) // (2 * total)
    return 100 if status == TaskStatus.completed else 0


def task_link(task_id: int) -> str:
    return f"{settings.APP_URL.rstrip('/')}/tasks/{task_id}"


async def _read_all(session_factory: sessionmaker, statement) -> list[Any]:
    async with session_factory() as session:
        result = await session.exec(statement)
        return list(result.all())


async def assemble_task_detail(
    session_factory: sessionmaker,
    task_id: int,
    subject: Subject,
) -> TaskDetail:
    """Load a task with its comments, attachments, subtasks and time entries.

    The five reads touch disjoint rows and run in parallel, each on its
    own pooled connection. Time entries are limited to the caller's own
    unless they hold VIEW_REPORTS.
    """
    time_entries_stmt = select(TimeEntry).where(TimeEntry.task_id == task_id)
    if not subject.has(capabilities.VIEW_REPORTS):
        time_entries_stmt = time_entries_stmt.where(TimeEntry.user_id == subject.id)
    time_entries_stmt = time_entries_stmt.order_by(TimeEntry.entry_date.desc(), TimeEntry.id.desc())

    task_rows, comments, attachments, subtasks, time_entries = await asyncio.gather(
        _read_all(session_factory, select(Task).where(Task.id == task_id)),
        _read_all(
            session_factory,
            select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at.asc(), Comment.id.asc()),
        ),
        _read_all(
            session_factory,
            select(Attachment)
            .where(Attachment.task_id == task_id)
            .order_by(Attachment.uploaded_at.desc(), Attachment.id.desc()),
        ),
        _read_all(
            session_factory,
            select(Task).where(Task.parent_task_id == task_id).order_by(Task.created_at.asc(), Task.id.asc()),
        ),
        _read_all(session_factory, time_entries_stmt),
    )
    if not task_rows:
        raise NotFoundError("Task not found")
    task = task_rows[0]

    parent = None
    if task.parent_task_id is not None:
        parents = await _read_all(session_factory, select(Task).where(Task.id == task.parent_task_id))
        parent = parents[0] if parents else None
    if not can_view_task(subject, task, parent=parent, subtasks=subtasks):
        raise ForbiddenError("Not authorized to view this task")

    return TaskDetail(
        task=task,
        progress=compute_progress(task.status, [subtask.status for subtask in subtasks]),
        comments=comments,
        attachments=attachments,
        subtasks=subtasks,
        time_entries=time_entries,
    )


async def get_task(session: AsyncSession, task_id: int) -> Task:
    task = await session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    return task


async def get_visible_task(session: AsyncSession, subject: Subject, task_id: int) -> Task:
    task = await get_task(session, task_id)
    if subject.has(capabilities.VIEW_ANY_TASK):
        return task
    parent = await session.get(Task, task.parent_task_id) if task.parent_task_id is not None else None
    result = await session.exec(select(Task).where(Task.parent_task_id == task.id))
    if not can_view_task(subject, task, parent=parent, subtasks=result.all()):
        raise ForbiddenError("Not authorized to access this task")
    return task


async def _ensure_user_exists(session: AsyncSession, user_id: int, label: str) -> None:
    if await session.get(User, user_id) is None:
        raise NotFoundError(f"{label} not found")


async def create_task(
    session: AsyncSession,
    subject: Subject,
    *,
    title: str,
    assignee_id: int,
    department_id: Optional[int],
    description: Optional[str] = None,
    priority: TaskPriority | str = TaskPriority.medium,
    due_date: Optional[datetime] = None,
) -> Task:
    await _ensure_user_exists(session, assignee_id, "Assignee")
    task = Task(
        title=title,
        description=description,
        priority=priority,
        due_date=due_date,
        assigner_id=subject.id,
        assignee_id=assignee_id,
        department_id=department_id,
    )
    session.add(task)
    await session.commit()
    await session.refresh(task)
    logger.info("Task %s created by user %s for user %s", task.id, subject.id, assignee_id)
    return task


async def update_task(
    session: AsyncSession,
    subject: Subject,
    task_id: int,
    changes: Mapping[str, Any],
) -> Task:
    task = await get_task(session, task_id)
    if not can_edit_task(subject, task):
        raise ForbiddenError("You are not authorized to update this task")

    for name, value in changes.items():
        if name not in EDITABLE_FIELDS or value is None:
            continue
        setattr(task, name, value)
    task.updated_at = datetime.now(timezone.utc)
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def delete_task(session: AsyncSession, task_id: int) -> None:
    """Delete a task together with its subtasks and everything hanging off them."""
    task = await get_task(session, task_id)
    result = await session.exec(select(Task.id).where(Task.parent_task_id == task.id))
    task_ids = (task.id, *result.all())

    await session.exec(delete(Comment).where(Comment.task_id.in_(task_ids)))
    await session.exec(delete(Attachment).where(Attachment.task_id.in_(task_ids)))
    await session.exec(delete(TimeEntry).where(TimeEntry.task_id.in_(task_ids)))
    await session.exec(delete(Task).where(Task.parent_task_id == task.id))
    await session.exec(delete(Task).where(Task.id == task.id))
    await session.commit()
    logger.info("Task %s deleted (%d subtasks)", task_id, len(task_ids) - 1)


async def create_subtask(
    session: AsyncSession,
    subject: Subject,
    parent_id: int,
    *,
    title: str,
    assignee_id: int,
    description: Optional[str] = None,
) -> Task:
    parent = await get_visible_task(session, subject, parent_id)
    if parent.parent_task_id is not None:
        raise InvalidInputError("Subtasks cannot have subtasks of their own")
    await _ensure_user_exists(session, assignee_id, "Assignee")

    subtask = Task(
        title=title,
        description=description,
        assigner_id=subject.id,
        assignee_id=assignee_id,
        department_id=parent.department_id,
        parent_task_id=parent.id,
    )
    session.add(subtask)
    await session.commit()
    await session.refresh(subtask)
    return subtask


async def list_comments(session: AsyncSession, task_id: int) -> list[Comment]:
    stmt = select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at.asc(), Comment.id.asc())
    result = await session.exec(stmt)
    return list(result.all())


async def add_comment(
    session: AsyncSession,
    subject: Subject,
    task_id: int,
    message: str,
) -> Comment:
    normalized = (message or "").strip()
    if not normalized:
        raise InvalidInputError("Comment message cannot be empty")
    task = await get_visible_task(session, subject, task_id)
    comment = Comment(task_id=task.id, user_id=subject.id, message=normalized)
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    return comment


def notification_recipients_for_comment(task: Task, commenter_id: int) -> list[int]:
    """Everyone involved in the task except whoever wrote the comment."""
    recipients = dict.fromkeys((task.assignee_id, task.assigner_id))
    recipients.pop(commenter_id, None)
    return list(recipients)


async def log_time(
    session: AsyncSession,
    subject: Subject,
    task_id: int,
    *,
    duration_minutes: int,
    notes: Optional[str] = None,
) -> TimeEntry:
    if duration_minutes is None or duration_minutes <= 0:
        raise InvalidInputError("Duration in minutes is required and must be positive")
    task = await get_visible_task(session, subject, task_id)
    entry = TimeEntry(task_id=task.id, user_id=subject.id, duration_minutes=duration_minutes, notes=notes)
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    return entry
