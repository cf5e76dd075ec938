"""
Service tests for task detail assembly and progress.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core import capabilities
from tracker.core.exceptions import ForbiddenError, NotFoundError
from tracker.models.task import TaskStatus
from tracker.services.permissions import Subject, resolve_subject
from tracker.services.tasks import assemble_task_detail
from tracker.testing import (
    create_comment,
    create_department,
    create_subtask,
    create_task,
    create_time_entry,
    create_user,
    grant_permissions,
)


async def _setup(session: AsyncSession):
    department = await create_department(session)
    manager = await create_user(session, department_id=department.id)
    worker = await create_user(session, department_id=department.id)
    task = await create_task(session, manager, worker)
    return manager, worker, task


@pytest.mark.unit
@pytest.mark.service
async def test_time_entries_limited_to_own_without_view_reports(session_factory, session: AsyncSession):
    manager, worker, task = await _setup(session)
    mine = await create_time_entry(session, task, worker, duration_minutes=45)
    await create_time_entry(session, task, manager, duration_minutes=15)

    subject = await resolve_subject(session, worker.id)
    detail = await assemble_task_detail(session_factory, task.id, subject)

    assert [entry.id for entry in detail.time_entries] == [mine.id]


@pytest.mark.unit
@pytest.mark.service
async def test_view_reports_sees_every_time_entry(session_factory, session: AsyncSession):
    manager, worker, task = await _setup(session)
    first = await create_time_entry(session, task, worker)
    second = await create_time_entry(session, task, manager)
    await grant_permissions(session, manager, capabilities.VIEW_REPORTS)

    subject = await resolve_subject(session, manager.id)
    detail = await assemble_task_detail(session_factory, task.id, subject)

    # Same entry date, so newest id first
    assert [entry.id for entry in detail.time_entries] == [second.id, first.id]


@pytest.mark.unit
@pytest.mark.service
async def test_detail_collects_related_rows_in_order(session_factory, session: AsyncSession):
    manager, worker, task = await _setup(session)
    now = datetime.now(timezone.utc)
    older = await create_comment(session, task, worker, message="first", created_at=now - timedelta(minutes=5))
    newer = await create_comment(session, task, manager, message="second", created_at=now)
    sub_a = await create_subtask(session, task, worker, status=TaskStatus.completed, created_at=now - timedelta(minutes=2))
    sub_b = await create_subtask(session, task, worker, created_at=now - timedelta(minutes=1))
    sub_c = await create_subtask(session, task, manager, created_at=now)

    detail = await assemble_task_detail(session_factory, task.id, await resolve_subject(session, worker.id))

    assert detail.task.id == task.id
    assert [comment.id for comment in detail.comments] == [older.id, newer.id]
    assert [subtask.id for subtask in detail.subtasks] == [sub_a.id, sub_b.id, sub_c.id]
    assert detail.attachments == []
    assert detail.progress == 33


@pytest.mark.unit
@pytest.mark.service
async def test_progress_without_subtasks_follows_status(session_factory, session: AsyncSession):
    manager, worker, task = await _setup(session)
    done = await create_task(session, manager, worker, status=TaskStatus.completed)
    subject = await resolve_subject(session, worker.id)

    assert (await assemble_task_detail(session_factory, task.id, subject)).progress == 0
    assert (await assemble_task_detail(session_factory, done.id, subject)).progress == 100


@pytest.mark.unit
@pytest.mark.service
async def test_missing_task(session_factory):
    with pytest.raises(NotFoundError):
        await assemble_task_detail(session_factory, 4242, Subject(id=1))


@pytest.mark.unit
@pytest.mark.service
async def test_uninvolved_subject_is_forbidden(session_factory, session: AsyncSession):
    _, _, task = await _setup(session)
    outsider = await create_user(session)

    with pytest.raises(ForbiddenError):
        await assemble_task_detail(session_factory, task.id, await resolve_subject(session, outsider.id))


@pytest.mark.unit
@pytest.mark.service
async def test_view_any_task_opens_every_detail(session_factory, session: AsyncSession):
    _, _, task = await _setup(session)
    auditor = await create_user(session)
    await grant_permissions(session, auditor, capabilities.VIEW_ANY_TASK)

    detail = await assemble_task_detail(session_factory, task.id, await resolve_subject(session, auditor.id))

    assert detail.task.id == task.id


@pytest.mark.unit
@pytest.mark.service
async def test_involvement_spans_parent_and_subtasks(session_factory, session: AsyncSession):
    manager, worker, task = await _setup(session)
    helper = await create_user(session)
    subtask = await create_subtask(session, task, helper)

    # The parent's assignee can open the subtask
    detail = await assemble_task_detail(session_factory, subtask.id, await resolve_subject(session, worker.id))
    assert detail.task.id == subtask.id

    # A subtask assignee can open the parent
    detail = await assemble_task_detail(session_factory, task.id, await resolve_subject(session, helper.id))
    assert [sub.id for sub in detail.subtasks] == [subtask.id]
