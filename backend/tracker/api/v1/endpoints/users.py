from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status

from tracker.api.deps import CurrentSubject, SessionDep, require_capabilities
from tracker.core import capabilities
from tracker.core.exceptions import InvalidInputError, NotFoundError
from tracker.schemas.push import DeviceRegisterRequest, DeviceResponse, DeviceUnregisterRequest
from tracker.schemas.task import TaskRead
from tracker.schemas.user import (
    PermissionAssignment,
    PermissionAssignmentRead,
    PermissionRead,
    SubjectRead,
    UserCreate,
    UserRead,
    UserUpdate,
)
from tracker.services import permissions as permissions_service
from tracker.services import push_tokens
from tracker.services import users as users_service
from tracker.services.permissions import Subject
from tracker.services.visibility import TaskQuery, list_visible_tasks

router = APIRouter()

UserManager = Annotated[Subject, Depends(require_capabilities(capabilities.MANAGE_USERS))]
ReportViewer = Annotated[Subject, Depends(require_capabilities(capabilities.VIEW_REPORTS))]


@router.get("/me", response_model=SubjectRead)
async def read_me(subject: CurrentSubject) -> SubjectRead:
    return SubjectRead(
        id=subject.id,
        department_id=subject.department_id,
        permissions=sorted(subject.permissions),
    )


@router.get("/", response_model=List[UserRead])
async def list_users(session: SessionDep, _manager: UserManager) -> List[UserRead]:
    return await users_service.list_users(session)


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_in: UserCreate,
    session: SessionDep,
    _manager: UserManager,
) -> UserRead:
    try:
        return await users_service.create_user(
            session,
            name=user_in.name,
            email=user_in.email,
            job_title=user_in.job_title,
            department_id=user_in.department_id,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/permissions", response_model=List[PermissionRead])
async def list_permissions(session: SessionDep, _manager: UserManager) -> List[PermissionRead]:
    return await permissions_service.list_permissions(session)


@router.get("/{user_id}/permissions", response_model=PermissionAssignmentRead)
async def read_user_permissions(
    user_id: int,
    session: SessionDep,
    _manager: UserManager,
) -> PermissionAssignmentRead:
    try:
        subject = await permissions_service.resolve_subject(session, user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    permission_ids = await permissions_service.get_permission_ids(session, user_id)
    return PermissionAssignmentRead(permission_ids=permission_ids, permissions=sorted(subject.permissions))


@router.put("/{user_id}/permissions", response_model=PermissionAssignmentRead)
async def update_user_permissions(
    user_id: int,
    assignment: PermissionAssignment,
    session: SessionDep,
    _manager: UserManager,
) -> PermissionAssignmentRead:
    try:
        names = await permissions_service.update_user_permissions(
            session,
            user_id=user_id,
            permission_ids=assignment.permission_ids,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    permission_ids = await permissions_service.get_permission_ids(session, user_id)
    return PermissionAssignmentRead(permission_ids=permission_ids, permissions=sorted(names))


@router.post("/devices", response_model=DeviceResponse)
async def register_device(
    request: DeviceRegisterRequest,
    session: SessionDep,
    subject: CurrentSubject,
) -> DeviceResponse:
    """Register a push token for the current user.

    A token already held by another account moves to the caller.
    """
    await push_tokens.register_device_token(session, user_id=subject.id, token=request.token)
    return DeviceResponse(status="registered")


@router.delete("/devices", response_model=DeviceResponse)
async def unregister_device(
    request: DeviceUnregisterRequest,
    session: SessionDep,
    subject: CurrentSubject,
) -> DeviceResponse:
    removed = await push_tokens.unregister_device_token(session, user_id=subject.id, token=request.token)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device token not found")
    return DeviceResponse(status="unregistered")


@router.get("/{user_id}/related-tasks", response_model=List[TaskRead])
async def list_related_tasks(
    user_id: int,
    session: SessionDep,
    subject: ReportViewer,
) -> List[TaskRead]:
    """Top-level tasks the user assigned or was assigned, within the caller's own visibility."""
    try:
        await users_service.get_user(session, user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return await list_visible_tasks(session, subject, TaskQuery(related_user_id=user_id))


# Dynamic user routes come last so that /me, /permissions and /devices match first
@router.get("/{user_id}", response_model=UserRead)
async def read_user(user_id: int, session: SessionDep, _manager: UserManager) -> UserRead:
    try:
        return await users_service.get_user(session, user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.put("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: int,
    user_in: UserUpdate,
    session: SessionDep,
    _manager: UserManager,
) -> UserRead:
    try:
        return await users_service.update_user(session, user_id, user_in.model_dump(exclude_unset=True))
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    session: SessionDep,
    manager: UserManager,
) -> None:
    try:
        await users_service.delete_user(session, user_id, acting_user_id=manager.id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
