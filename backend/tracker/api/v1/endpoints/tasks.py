from typing import Annotated, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.exc import DBAPIError

from tracker.api.deps import (
    CurrentSubject,
    DispatcherDep,
    SessionDep,
    SessionFactoryDep,
    require_capabilities,
)
from tracker.core import capabilities
from tracker.core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from tracker.schemas.task import (
    CommentCreate,
    CommentRead,
    SubtaskCreate,
    TaskCreate,
    TaskDetailRead,
    TaskRead,
    TaskUpdate,
    TimeEntryCreate,
    TimeEntryRead,
)
from tracker.services import tasks as tasks_service
from tracker.services.permissions import Subject
from tracker.services.visibility import TaskQuery, list_visible_tasks

router = APIRouter()

TaskCreator = Annotated[Subject, Depends(require_capabilities(capabilities.CREATE_TASK))]
TaskDeleter = Annotated[Subject, Depends(require_capabilities(capabilities.DELETE_ANY_TASK))]
Commenter = Annotated[Subject, Depends(require_capabilities(capabilities.ADD_COMMENT))]
SubtaskCreator = Annotated[Subject, Depends(require_capabilities(capabilities.CREATE_SUBTASK))]
TimeLogger = Annotated[Subject, Depends(require_capabilities(capabilities.LOG_TIME_OWN))]


@router.get("/", response_model=List[TaskRead])
async def list_tasks(
    session: SessionDep,
    subject: CurrentSubject,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    priority: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    related_user: Optional[int] = Query(default=None),
) -> List[TaskRead]:
    query = TaskQuery(status=status_filter, priority=priority, search=search, related_user_id=related_user)
    try:
        return await list_visible_tasks(session, subject, query)
    except DBAPIError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid task filter") from exc


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    session: SessionDep,
    subject: TaskCreator,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> TaskRead:
    try:
        task = await tasks_service.create_task(
            session,
            subject,
            title=task_in.title,
            assignee_id=task_in.assignee_id,
            department_id=task_in.department_id if task_in.department_id is not None else subject.department_id,
            description=task_in.description,
            priority=task_in.priority,
            due_date=task_in.due_date,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    if task.assignee_id != subject.id:
        background_tasks.add_task(
            dispatcher.dispatch,
            task.assignee_id,
            "New task assigned",
            f'You have been assigned a new task: "{task.title}"',
            tasks_service.task_link(task.id),
        )
    return task


@router.get("/{task_id}", response_model=TaskDetailRead)
async def read_task(
    task_id: int,
    session_factory: SessionFactoryDep,
    subject: CurrentSubject,
) -> TaskDetailRead:
    try:
        detail = await tasks_service.assemble_task_detail(session_factory, task_id, subject)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return TaskDetailRead.model_validate(
        {
            **TaskRead.model_validate(detail.task).model_dump(),
            "progress": detail.progress,
            "comments": detail.comments,
            "attachments": detail.attachments,
            "subtasks": detail.subtasks,
            "time_entries": detail.time_entries,
        },
        from_attributes=True,
    )


@router.put("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: int,
    task_in: TaskUpdate,
    session: SessionDep,
    subject: CurrentSubject,
) -> TaskRead:
    try:
        return await tasks_service.update_task(
            session,
            subject,
            task_id,
            task_in.model_dump(exclude_unset=True),
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    session: SessionDep,
    _subject: TaskDeleter,
) -> None:
    try:
        await tasks_service.delete_task(session, task_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/{task_id}/comments", response_model=List[CommentRead])
async def list_task_comments(
    task_id: int,
    session: SessionDep,
    subject: CurrentSubject,
) -> List[CommentRead]:
    try:
        await tasks_service.get_visible_task(session, subject, task_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return await tasks_service.list_comments(session, task_id)


@router.post("/{task_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def add_task_comment(
    task_id: int,
    comment_in: CommentCreate,
    session: SessionDep,
    subject: Commenter,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> CommentRead:
    try:
        comment = await tasks_service.add_comment(session, subject, task_id, comment_in.message)
        task = await tasks_service.get_task(session, task_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    recipients = tasks_service.notification_recipients_for_comment(task, subject.id)
    if recipients:
        background_tasks.add_task(
            dispatcher.dispatch_many,
            recipients,
            "New comment",
            f'New comment on "{task.title}": {comment.message}',
            tasks_service.task_link(task.id),
        )
    return comment


@router.post("/{task_id}/subtasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_subtask(
    task_id: int,
    subtask_in: SubtaskCreate,
    session: SessionDep,
    subject: SubtaskCreator,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> TaskRead:
    try:
        subtask = await tasks_service.create_subtask(
            session,
            subject,
            task_id,
            title=subtask_in.title,
            assignee_id=subtask_in.assignee_id,
            description=subtask_in.description,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if subtask.assignee_id != subject.id:
        background_tasks.add_task(
            dispatcher.dispatch,
            subtask.assignee_id,
            "New subtask assigned",
            f'You have been assigned a new subtask: "{subtask.title}"',
            tasks_service.task_link(task_id),
        )
    return subtask


@router.post("/{task_id}/time-entries", response_model=TimeEntryRead, status_code=status.HTTP_201_CREATED)
async def log_time_for_task(
    task_id: int,
    entry_in: TimeEntryCreate,
    session: SessionDep,
    subject: TimeLogger,
) -> TimeEntryRead:
    try:
        return await tasks_service.log_time(
            session,
            subject,
            task_id,
            duration_minutes=entry_in.duration_minutes,
            notes=entry_in.notes,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
