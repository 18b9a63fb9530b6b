from sqlalchemy.orm import Session
from datetime import date
from typing import List, Optional, Set, Tuple
import logging

from ..core.config import settings
from ..core.exceptions import InvalidTransitionError, NotFoundError, TransitionNotPermittedError
from ..core.security import Actor, AuthorizationError, UserRole
from ..models.appointment import Appointment, AppointmentStatus
from ..models.dentist import Dentist
from ..schemas.appointment import AppointmentDetailsUpdate
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

# Relationship-based capacities an actor can hold on a single appointment
OWNING_PATIENT = "owning_patient"
ASSIGNED_DENTIST = "assigned_dentist"

_CONFIRMERS = frozenset({ASSIGNED_DENTIST, UserRole.SECRETARY, UserRole.ADMIN, UserRole.SUPER_ADMIN})
_CANCELLERS = _CONFIRMERS | {OWNING_PATIENT}

# (from, to) -> capacities allowed to perform it; anything missing is not a transition
TRANSITIONS = {
    (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED): _CONFIRMERS,
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED): _CANCELLERS,
    (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED): _CANCELLERS,
}

def capacities(appointment: Appointment, actor: Actor) -> Set:
    """Everything ``actor`` counts as with respect to ``appointment``."""
    held = {actor.role}
    if actor.role == UserRole.PATIENT and appointment.patient_id == actor.user_id:
        held.add(OWNING_PATIENT)
    if actor.role == UserRole.DENTIST and appointment.dentist and appointment.dentist.user_id == actor.user_id:
        held.add(ASSIGNED_DENTIST)
    return held

class AppointmentService:
    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def get_appointment(self, appointment_id: int, actor: Optional[Actor] = None) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found", f"No appointment found with id {appointment_id}")

        if actor is not None and not actor.role.is_staff:
            if not capacities(appointment, actor) & {OWNING_PATIENT, ASSIGNED_DENTIST}:
                raise AuthorizationError("You can only access your own appointments")

        return appointment

    def list_appointments(
        self,
        actor: Actor,
        patient_id: Optional[int] = None,
        dentist_id: Optional[int] = None,
        status: Optional[AppointmentStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Appointment], int]:
        query = self.db.query(Appointment)

        # Patients see their own bookings, dentists their own calendar
        if actor.role == UserRole.PATIENT:
            patient_id = actor.user_id
        elif actor.role == UserRole.DENTIST:
            own = self.db.query(Dentist).filter(Dentist.user_id == actor.user_id).first()
            if not own:
                return [], 0
            dentist_id = own.id

        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if dentist_id is not None:
            query = query.filter(Appointment.dentist_id == dentist_id)
        if status is not None:
            query = query.filter(Appointment.status == AppointmentStatus(status))
        if date_from is not None:
            query = query.filter(Appointment.appointment_date >= date_from)
        if date_to is not None:
            query = query.filter(Appointment.appointment_date <= date_to)

        total = query.count()
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        items = query.order_by(Appointment.start_time).offset(offset).limit(limit).all()
        return items, total

    def update_details(self, appointment_id: int, data: AppointmentDetailsUpdate, actor: Actor) -> Appointment:
        """Edit notes, treatment options or the dental form of a live appointment."""
        appointment = self.get_appointment(appointment_id, actor)
        if not appointment.is_active:
            raise InvalidTransitionError(
                "Appointment is cancelled",
                "Details of a cancelled appointment cannot be changed",
            )

        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "treatment_options" and value is None:
                value = []
            setattr(appointment, field, value)

        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment_id} details updated by user {actor.user_id}")
        return appointment

    def confirm(self, appointment_id: int, actor: Actor) -> Appointment:
        return self.transition(appointment_id, AppointmentStatus.CONFIRMED, actor)

    def cancel(self, appointment_id: int, actor: Actor, reason: Optional[str] = None) -> Appointment:
        return self.transition(appointment_id, AppointmentStatus.CANCELLED, actor, reason=reason)

    def transition(
        self,
        appointment_id: int,
        target: AppointmentStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Move an appointment to ``target`` on behalf of ``actor``.

        The status change and its notifications are committed together.
        Raises InvalidTransitionError for edges outside the state machine and
        TransitionNotPermittedError when the actor lacks the capability.
        """
        target = AppointmentStatus(target)
        appointment = (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .with_for_update()
            .first()
        )
        if not appointment:
            raise NotFoundError("Appointment not found", f"No appointment found with id {appointment_id}")

        current = AppointmentStatus(appointment.status)
        allowed = TRANSITIONS.get((current, target))
        if allowed is None:
            self.db.rollback()
            raise InvalidTransitionError(
                "Invalid status transition",
                f"Cannot change appointment {appointment_id} from '{current.value}' to '{target.value}'",
            )

        if not capacities(appointment, actor) & allowed:
            self.db.rollback()
            raise TransitionNotPermittedError(
                "Status change not permitted",
                f"Role '{actor.role.value}' may not move appointment {appointment_id} "
                f"from '{current.value}' to '{target.value}'",
            )

        appointment.status = target
        if target == AppointmentStatus.CANCELLED:
            appointment.cancelled_reason = reason

        self.notifications.notify_appointment_event(appointment, target)
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(
            f"Appointment {appointment_id} {current.value} -> {target.value} by user {actor.user_id} ({actor.role.value})"
        )
        return appointment
