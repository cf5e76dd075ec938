from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core.exceptions import InvalidInputError, NotFoundError
from tracker.models.task import ApprovalStatus, TimeEntry
from tracker.models.user import User
from tracker.services.permissions import Subject

REVIEW_OUTCOMES = (ApprovalStatus.approved, ApprovalStatus.rejected)


async def list_pending_entries(session: AsyncSession, subject: Subject) -> list[TimeEntry]:
    """Pending time entries logged by members of the reviewer's department."""
    if subject.department_id is None:
        return []
    stmt = (
        select(TimeEntry)
        .join(User, User.id == TimeEntry.user_id)
        .where(
            User.department_id == subject.department_id,
            TimeEntry.approval_status == ApprovalStatus.pending,
        )
        .order_by(TimeEntry.entry_date.asc(), TimeEntry.id.asc())
    )
    result = await session.exec(stmt)
    return list(result.all())


async def review_time_entry(
    session: AsyncSession,
    subject: Subject,
    entry_id: int,
    status: str,
) -> TimeEntry:
    if status not in REVIEW_OUTCOMES:
        raise InvalidInputError('A valid status ("Approved" or "Rejected") is required')
    entry = await session.get(TimeEntry, entry_id)
    if entry is None:
        raise NotFoundError("Time entry not found")
    entry.approval_status = ApprovalStatus(status)
    entry.approved_by_id = subject.id
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    return entry
