from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tracker.models.task import ApprovalStatus, TaskPriority, TaskStatus


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.medium
    due_date: Optional[datetime] = None
    assignee_id: int = Field(gt=0)
    department_id: Optional[int] = Field(default=None, gt=0)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None


class SubtaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    assignee_id: int = Field(gt=0)


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    assigner_id: int
    assignee_id: int
    department_id: Optional[int] = None
    parent_task_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class CommentCreate(BaseModel):
    message: str

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Comment message cannot be empty")
        return normalized


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    user_id: int
    message: str
    created_at: datetime


class AttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    user_id: int
    file_name: str
    file_path: str
    uploaded_at: datetime


class TimeEntryCreate(BaseModel):
    duration_minutes: int = Field(gt=0)
    notes: Optional[str] = None


class TimeEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    user_id: int
    duration_minutes: int
    notes: Optional[str] = None
    entry_date: date
    approval_status: ApprovalStatus
    approved_by_id: Optional[int] = None


class TimeEntryReview(BaseModel):
    status: str


class TaskDetailRead(TaskRead):
    progress: int
    comments: List[CommentRead] = Field(default_factory=list)
    attachments: List[AttachmentRead] = Field(default_factory=list)
    subtasks: List[TaskRead] = Field(default_factory=list)
    time_entries: List[TimeEntryRead] = Field(default_factory=list)
