from fastapi import APIRouter, HTTPException, Query

from tracker.api.deps import CurrentSubject, SessionDep
from tracker.schemas.notification import (
    NotificationCountResponse,
    NotificationListResponse,
    NotificationRead,
)
from tracker.services import user_notifications as notifications_service

router = APIRouter()


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    session: SessionDep,
    subject: CurrentSubject,
    limit: int = Query(default=20, ge=1, le=100),
) -> NotificationListResponse:
    notifications, unread_count = await notifications_service.list_notifications(
        session,
        user_id=subject.id,
        limit=limit,
    )
    return NotificationListResponse(notifications=notifications, unread_count=unread_count)


@router.get("/unread-count", response_model=NotificationCountResponse)
async def unread_notifications_count(
    session: SessionDep,
    subject: CurrentSubject,
) -> NotificationCountResponse:
    count = await notifications_service.unread_count(session, user_id=subject.id)
    return NotificationCountResponse(unread_count=count)


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: int,
    session: SessionDep,
    subject: CurrentSubject,
) -> NotificationRead:
    notification = await notifications_service.mark_notification_read(
        session,
        user_id=subject.id,
        notification_id=notification_id,
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.post("/read-all", response_model=NotificationCountResponse)
async def mark_all_notifications_read(
    session: SessionDep,
    subject: CurrentSubject,
) -> NotificationCountResponse:
    await notifications_service.mark_all_notifications_read(session, user_id=subject.id)
    count = await notifications_service.unread_count(session, user_id=subject.id)
    return NotificationCountResponse(unread_count=count)
