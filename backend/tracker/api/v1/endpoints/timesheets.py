from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status

from tracker.api.deps import SessionDep, require_capabilities
from tracker.core import capabilities
from tracker.core.exceptions import InvalidInputError, NotFoundError
from tracker.schemas.task import TimeEntryRead, TimeEntryReview
from tracker.services import timesheets as timesheets_service
from tracker.services.permissions import Subject

router = APIRouter()

Approver = Annotated[Subject, Depends(require_capabilities(capabilities.APPROVE_TIME))]


@router.get("/pending", response_model=List[TimeEntryRead])
async def list_pending_entries(session: SessionDep, subject: Approver) -> List[TimeEntryRead]:
    return await timesheets_service.list_pending_entries(session, subject)


@router.put("/entry/{entry_id}", response_model=TimeEntryRead)
async def review_time_entry(
    entry_id: int,
    review: TimeEntryReview,
    session: SessionDep,
    subject: Approver,
) -> TimeEntryRead:
    try:
        return await timesheets_service.review_time_entry(session, subject, entry_id, review.status)
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
