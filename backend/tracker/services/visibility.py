"""Row-level visibility for task listings.

``build_task_filter`` turns a caller's capabilities plus the listing
parameters into an ordered list of predicates. Each predicate carries its
own bound parameter, and the final parameterized ``SELECT`` is rendered
once by :meth:`TaskFilter.statement`.

Status and priority values are passed through untouched: rejecting an
unknown enum value is left to the database column type.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement, Select, and_, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core import capabilities
from tracker.models.task import Task
from tracker.services.permissions import Subject


@dataclass
class TaskQuery:
    status: str | None = None
    priority: str | None = None
    search: str | None = None
    # "Items related to this user" (assignee or assigner), on top of visibility
    related_user_id: int | None = None


@dataclass
class TaskFilter:
    predicates: list[ColumnElement[bool]] = field(default_factory=list)
    subject_scoped: bool = False

    def where(self, clause: ColumnElement[bool]) -> "TaskFilter":
        self.predicates.append(clause)
        return self

    def apply(self, statement: Select) -> Select:
        if self.predicates:
            statement = statement.where(and_(*self.predicates))
        # Newest first; ties are left in whatever order the database returns
        return statement.order_by(Task.created_at.desc())

    def statement(self) -> Select:
        return self.apply(select(Task))

    def params(self) -> dict[str, Any]:
        """Bound parameter values of the rendered statement, by name."""
        return dict(self.statement().compile().params)


def _involves(user_id: int) -> ColumnElement[bool]:
    return or_(Task.assignee_id == user_id, Task.assigner_id == user_id)


def build_task_filter(subject: Subject, query: TaskQuery | None = None) -> TaskFilter:
    query = query or TaskQuery()
    task_filter = TaskFilter()

    # Subtasks are only reachable through their parent's detail view
    task_filter.where(Task.parent_task_id.is_(None))

    if not subject.has(capabilities.VIEW_ANY_TASK):
        # Assigners keep sight of what they delegated
        task_filter.where(_involves(subject.id))
        task_filter.subject_scoped = True

    if query.related_user_id is not None:
        task_filter.where(_involves(query.related_user_id))
    if query.status:
        task_filter.where(Task.status == query.status)
    if query.priority:
        task_filter.where(Task.priority == query.priority)
    search = (query.search or "").strip()
    if search:
        task_filter.where(Task.title.icontains(search, autoescape=True))

    return task_filter


def can_view_task(
    subject: Subject,
    task: Task,
    *,
    parent: Task | None = None,
    subtasks: Iterable[Task] = (),
) -> bool:
    """Single-row counterpart of :func:`build_task_filter` for detail reads.

    Involvement in the parent carries down to its subtasks, and being
    assigned a subtask grants sight of the parent it belongs to.
    """
    if subject.has(capabilities.VIEW_ANY_TASK):
        return True
    if subject.id in (task.assignee_id, task.assigner_id):
        return True
    if parent is not None and subject.id in (parent.assignee_id, parent.assigner_id):
        return True
    return any(subtask.assignee_id == subject.id for subtask in subtasks)


async def list_visible_tasks(
    session: AsyncSession,
    subject: Subject,
    query: TaskQuery | None = None,
) -> list[Task]:
    result = await session.exec(build_task_filter(subject, query).statement())
    return list(result.all())
