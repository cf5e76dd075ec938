from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status

from tracker.api.deps import SessionDep, require_capabilities
from tracker.core import capabilities
from tracker.core.exceptions import InvalidInputError
from tracker.schemas.department import DepartmentCreate, DepartmentRead
from tracker.services import departments as departments_service
from tracker.services.permissions import Subject

router = APIRouter()

DepartmentManager = Annotated[Subject, Depends(require_capabilities(capabilities.MANAGE_USERS))]


@router.get("/", response_model=List[DepartmentRead])
async def list_departments(session: SessionDep, _manager: DepartmentManager) -> List[DepartmentRead]:
    return await departments_service.list_departments(session)


@router.post("/", response_model=DepartmentRead, status_code=status.HTTP_201_CREATED)
async def create_department(
    department_in: DepartmentCreate,
    session: SessionDep,
    _manager: DepartmentManager,
) -> DepartmentRead:
    try:
        return await departments_service.create_department(
            session,
            name=department_in.name,
            description=department_in.description,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
