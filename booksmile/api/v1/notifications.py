from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.security import Actor
from ...api.deps import get_actor, get_staff_user
from ...models.notification import NotificationType
from ...services.notification_service import NotificationService
from ...schemas.notification import (
    NotificationCreate, NotificationUpdate, MarkAsRead,
    NotificationResponse, UnreadCount, UpdatedCount
)
from ...schemas.common import ApiResponse, Page, paginate

router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.post(
    "",
    response_model=ApiResponse[NotificationResponse],
    status_code=201,
    dependencies=[Depends(get_staff_user)]
)
async def create_notification(data: NotificationCreate, db: Session = Depends(get_db)):
    notification = NotificationService(db).create_notification(data)
    return ApiResponse(
        data=NotificationResponse.model_validate(notification),
        message="Notification created successfully"
    )

@router.get(
    "",
    response_model=ApiResponse[Page[NotificationResponse]],
    dependencies=[Depends(get_staff_user)]
)
async def list_notifications(
    user_id: Optional[int] = None,
    is_read: Optional[bool] = None,
    type: Optional[NotificationType] = None,
    appointment_id: Optional[int] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db)
):
    """All notifications, filtered (staff only)."""
    notifications, total = NotificationService(db).list_notifications(
        user_id=user_id,
        is_read=is_read,
        type=type,
        appointment_id=appointment_id,
        limit=limit,
        offset=offset
    )
    items = [NotificationResponse.model_validate(n) for n in notifications]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get("/me", response_model=ApiResponse[Page[NotificationResponse]])
async def list_my_notifications(
    is_read: Optional[bool] = None,
    type: Optional[NotificationType] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    notifications, total = NotificationService(db).list_notifications(
        user_id=actor.user_id,
        is_read=is_read,
        type=type,
        limit=limit,
        offset=offset
    )
    items = [NotificationResponse.model_validate(n) for n in notifications]
    return ApiResponse(data=paginate(items, total, limit, offset))

@router.get("/me/unread-count", response_model=ApiResponse[UnreadCount])
async def get_unread_count(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    count = NotificationService(db).unread_count(actor.user_id)
    return ApiResponse(data=UnreadCount(unread_count=count))

@router.patch("/mark-read", response_model=ApiResponse[UpdatedCount])
async def mark_as_read(
    data: MarkAsRead,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    updated = NotificationService(db).mark_as_read(data.notification_ids, actor)
    return ApiResponse(
        data=UpdatedCount(updated_count=updated),
        message=f"{updated} notifications marked as read"
    )

@router.patch("/me/mark-all-read", response_model=ApiResponse[UpdatedCount])
async def mark_all_as_read(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    updated = NotificationService(db).mark_all_as_read(actor.user_id)
    return ApiResponse(
        data=UpdatedCount(updated_count=updated),
        message="All notifications marked as read"
    )

@router.get("/{notification_id}", response_model=ApiResponse[NotificationResponse])
async def get_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    notification = NotificationService(db).get_notification(notification_id, actor)
    return ApiResponse(data=NotificationResponse.model_validate(notification))

@router.put("/{notification_id}", response_model=ApiResponse[NotificationResponse])
async def update_notification(
    notification_id: int,
    data: NotificationUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Only the read state of a notification can change."""
    notification = NotificationService(db).set_read_state(notification_id, data.is_read, actor)
    return ApiResponse(data=NotificationResponse.model_validate(notification))
