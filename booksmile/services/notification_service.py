from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
import logging

from ..core.config import settings
from ..core.exceptions import NotFoundError
from ..core.security import Actor, AuthorizationError
from ..core.time_range import clinic_tz
from ..models.appointment import Appointment, AppointmentStatus
from ..models.notification import Notification, NotificationType
from ..models.user import User
from ..schemas.notification import NotificationCreate

logger = logging.getLogger(__name__)

# (title, message template, type) per appointment event
APPOINTMENT_EVENTS = {
    "requested": (
        "Appointment requested",
        "An appointment on {date} at {time} is pending confirmation.",
        NotificationType.INFO,
    ),
    AppointmentStatus.CONFIRMED: (
        "Appointment confirmed",
        "The appointment on {date} at {time} has been confirmed.",
        NotificationType.SUCCESS,
    ),
    AppointmentStatus.CANCELLED: (
        "Appointment cancelled",
        "The appointment on {date} at {time} has been cancelled.",
        NotificationType.WARNING,
    ),
    "rescheduled": (
        "Appointment rescheduled",
        "The appointment has been moved to {date} at {time}.",
        NotificationType.INFO,
    ),
    "reassigned": (
        "Dentist assigned",
        "{dentist} has been assigned to the appointment on {date} at {time}.",
        NotificationType.INFO,
    ),
}

class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def dispatch(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        appointment_id: Optional[int] = None,
        commit: bool = True,
    ) -> int:
        """Persist a notification and return its id.

        With ``commit=False`` the row joins the caller's transaction, so it is
        stored if and only if the caller's state change is.
        """
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=NotificationType(type),
            is_read=False,
            appointment_id=appointment_id,
        )
        self.db.add(notification)

        if commit:
            self.db.commit()
            self.db.refresh(notification)
        else:
            self.db.flush()

        return notification.id

    def notify_appointment_event(self, appointment: Appointment, event) -> List[int]:
        """Queue notifications for both parties of an appointment in the current transaction."""
        title, template, notification_type = APPOINTMENT_EVENTS[event]
        local_start = appointment.time_range.start.astimezone(clinic_tz())
        dentist_user = appointment.dentist.user if appointment.dentist else None
        message = template.format(
            date=local_start.strftime("%B %d, %Y"),
            time=local_start.strftime("%I:%M %p"),
            dentist=(dentist_user.name if dentist_user and dentist_user.name else "A dentist"),
        )

        recipients = [appointment.patient_id]
        dentist_user_id = appointment.dentist.user_id if appointment.dentist else None
        if dentist_user_id and dentist_user_id not in recipients:
            recipients.append(dentist_user_id)

        ids = [
            self.dispatch(
                user_id,
                title,
                message,
                type=notification_type,
                appointment_id=appointment.id,
                commit=False,
            )
            for user_id in recipients
        ]
        logger.info(f"Queued {len(ids)} '{title}' notifications for appointment {appointment.id}")
        return ids

    def create_notification(self, data: NotificationCreate) -> Notification:
        """Create a notification on behalf of clinic staff."""
        if not self.db.get(User, data.user_id):
            raise NotFoundError("User not found", f"No user found with id {data.user_id}")

        if data.appointment_id is not None and not self.db.get(Appointment, data.appointment_id):
            raise NotFoundError("Appointment not found", f"No appointment found with id {data.appointment_id}")

        notification_id = self.dispatch(
            data.user_id,
            data.title,
            data.message,
            type=data.type,
            appointment_id=data.appointment_id,
        )
        return self.db.get(Notification, notification_id)

    def get_notification(self, notification_id: int, actor: Actor) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if not notification:
            raise NotFoundError("Notification not found", f"No notification found with id {notification_id}")

        if notification.user_id != actor.user_id and not actor.role.is_staff:
            raise AuthorizationError("You can only access your own notifications")

        return notification

    def list_notifications(
        self,
        user_id: Optional[int] = None,
        is_read: Optional[bool] = None,
        type: Optional[NotificationType] = None,
        appointment_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Notification], int]:
        query = self.db.query(Notification)

        if user_id is not None:
            query = query.filter(Notification.user_id == user_id)
        if is_read is not None:
            query = query.filter(Notification.is_read == is_read)
        if type is not None:
            query = query.filter(Notification.type == NotificationType(type))
        if appointment_id is not None:
            query = query.filter(Notification.appointment_id == appointment_id)

        total = query.count()
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        items = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def unread_count(self, user_id: int) -> int:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).count()

    def set_read_state(self, notification_id: int, is_read: bool, actor: Actor) -> Notification:
        notification = self.get_notification(notification_id, actor)
        notification.is_read = is_read
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_as_read(self, notification_ids: List[int], actor: Actor) -> int:
        """Mark the caller's notifications in ``notification_ids`` as read."""
        updated = self.db.query(Notification).filter(
            Notification.id.in_(notification_ids),
            Notification.user_id == actor.user_id,
            Notification.is_read == False  # noqa: E712
        ).update({"is_read": True}, synchronize_session=False)
        self.db.commit()
        return updated

    def mark_all_as_read(self, user_id: int) -> int:
        updated = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).update({"is_read": True}, synchronize_session=False)
        self.db.commit()
        return updated
