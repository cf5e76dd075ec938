from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Date, DateTime, Text
from sqlmodel import Enum as SQLEnum, Field, SQLModel


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class TaskStatus(str, Enum):
    pending = "Pending"
    in_progress = "In Progress"
    completed = "Completed"
    on_hold = "On Hold"


class TaskPriority(str, Enum):
    low = "Low"
    medium = "Medium"
    high = "High"
    urgent = "Urgent"


class ApprovalStatus(str, Enum):
    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(nullable=False)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    status: TaskStatus = Field(
        default=TaskStatus.pending,
        sa_column=Column(
            SQLEnum(TaskStatus, name="task_status", values_callable=_enum_values),
            nullable=False,
        ),
    )
    priority: TaskPriority = Field(
        default=TaskPriority.medium,
        sa_column=Column(
            SQLEnum(TaskPriority, name="task_priority", values_callable=_enum_values),
            nullable=False,
        ),
    )
    due_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    assigner_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    assignee_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    department_id: Optional[int] = Field(default=None, foreign_key="departments.id", nullable=True, index=True)
    # Top-level tasks have no parent; subtasks point at a top-level task
    parent_task_id: Optional[int] = Field(default=None, foreign_key="tasks.id", nullable=True, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Comment(SQLModel, table=True):
    __tablename__ = "comments"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False)
    message: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Attachment(SQLModel, table=True):
    __tablename__ = "attachments"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False)
    file_name: str = Field(nullable=False)
    file_path: str = Field(nullable=False)
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class TimeEntry(SQLModel, table=True):
    __tablename__ = "time_entries"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    duration_minutes: int = Field(nullable=False)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    entry_date: date = Field(
        default_factory=lambda: datetime.now(timezone.utc).date(),
        sa_column=Column(Date, nullable=False),
    )
    approval_status: ApprovalStatus = Field(
        default=ApprovalStatus.pending,
        sa_column=Column(
            SQLEnum(ApprovalStatus, name="approval_status", values_callable=_enum_values),
            nullable=False,
        ),
    )
    approved_by_id: Optional[int] = Field(default=None, foreign_key="users.id", nullable=True)
