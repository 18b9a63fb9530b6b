from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.notification import NotificationType


class NotificationCreate(BaseModel):
    user_id: int
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    type: NotificationType = NotificationType.INFO
    appointment_id: Optional[int] = None


class NotificationUpdate(BaseModel):
    """Notifications are immutable apart from their read state."""

    is_read: bool


class MarkAsRead(BaseModel):
    notification_ids: List[int] = Field(..., min_length=1)


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: NotificationType
    is_read: bool
    appointment_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    unread_count: int


class UpdatedCount(BaseModel):
    updated_count: int
