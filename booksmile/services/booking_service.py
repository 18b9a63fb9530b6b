"""
Conflict resolution for appointment requests.

A request is accepted only when it fits entirely inside one of the dentist's
effective availability windows and does not overlap another pending or
confirmed appointment on the same day. The overlap check and the insert run
under a per-(dentist, date) lock, and the partial unique index on
``appointments`` rejects anything that still slips through at commit time.
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
import logging

from ..core.config import settings
from ..core.database import get_redis
from ..core.exceptions import (
    InvalidRequestError, InvalidTransitionError, NotFoundError,
    OutsideAvailabilityError, SlotConflictError, TransitionNotPermittedError
)
from ..core.locks import booking_lock
from ..core.security import Actor, AuthorizationError, UserRole
from ..core.time_range import TimeRange
from ..models.appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES
from ..models.clinic_branch import ClinicBranch
from ..models.user import User
from ..schemas.appointment import AppointmentCreate, AppointmentReschedule
from .availability_service import AvailabilityService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

def requested_range(day: date, start_time: time, end_time: Optional[time] = None) -> TimeRange:
    """Build the requested slot; a missing end defaults to the standard appointment length."""
    if end_time is None:
        end_time = (
            datetime.combine(day, start_time)
            + timedelta(minutes=settings.DEFAULT_APPOINTMENT_MINUTES)
        ).time()
    return TimeRange.from_local(day, start_time, end_time)

class BookingService:
    def __init__(self, db: Session, redis_client=None):
        self.db = db
        self.redis = redis_client if redis_client is not None else get_redis()
        self.availability = AvailabilityService(db, self.redis)
        self.notifications = NotificationService(db)

    def book(self, data: AppointmentCreate, actor: Actor) -> Appointment:
        """Book from an API payload, resolving the patient from the caller."""
        return self.request_booking(
            dentist_id=data.dentist_id,
            day=data.appointment_date,
            start_time=data.start_time,
            end_time=data.end_time,
            patient_id=data.patient_id,
            actor=actor,
            notes=data.notes,
            treatment_options=data.treatment_options,
            clinic_branch_id=data.clinic_branch_id,
            detailed_notes=data.detailed_notes,
        )

    def request_booking(
        self,
        dentist_id: int,
        day: date,
        start_time: time,
        end_time: Optional[time],
        patient_id: Optional[int],
        actor: Actor,
        notes: Optional[str] = None,
        treatment_options: Optional[List[str]] = None,
        clinic_branch_id: Optional[int] = None,
        detailed_notes: Optional[Dict[str, Any]] = None,
    ) -> Appointment:
        """Validate and persist a pending appointment.

        Raises InvalidRangeError, OutsideAvailabilityError or SlotConflictError.
        """
        requested = requested_range(day, start_time, end_time)
        dentist = self.availability.get_dentist(dentist_id)
        patient_id = self._resolve_patient(patient_id, actor)
        self._check_can_book_for(dentist, actor)
        self._check_branch(clinic_branch_id)

        self._check_within_availability(dentist_id, day, requested)

        with booking_lock(self.redis, dentist_id, day):
            self._check_conflicts(dentist_id, day, requested)

            appointment = Appointment(
                patient_id=patient_id,
                dentist_id=dentist_id,
                scheduled_by=actor.user_id,
                clinic_branch_id=clinic_branch_id,
                appointment_date=day,
                start_time=requested.storage_start,
                end_time=requested.storage_end,
                status=AppointmentStatus.PENDING,
                notes=notes,
                treatment_options=list(treatment_options or []),
                detailed_notes=detailed_notes,
            )
            self.db.add(appointment)
            self._commit_slot(appointment, "requested", requested)

        logger.info(
            f"Appointment {appointment.id} booked for patient {patient_id} with dentist {dentist_id} "
            f"on {day.isoformat()} {requested}"
        )
        return appointment

    def reschedule(self, appointment_id: int, data: AppointmentReschedule, actor: Actor) -> Appointment:
        """Move an appointment to a new slot, keeping its status."""
        appointment = self._get_active(appointment_id, "Cancelled appointments cannot be rescheduled")

        if not self._is_party(appointment, actor):
            raise TransitionNotPermittedError(
                "Reschedule not permitted",
                f"Role '{actor.role.value}' may not reschedule this appointment",
            )

        requested = requested_range(data.appointment_date, data.start_time, data.end_time)
        day = data.appointment_date
        self._check_within_availability(appointment.dentist_id, day, requested)

        with booking_lock(self.redis, appointment.dentist_id, day):
            self._check_conflicts(appointment.dentist_id, day, requested, exclude_id=appointment.id)

            appointment.appointment_date = day
            appointment.start_time = requested.storage_start
            appointment.end_time = requested.storage_end
            if data.notes is not None:
                appointment.notes = data.notes
            self._commit_slot(appointment, "rescheduled", requested)

        logger.info(f"Appointment {appointment.id} rescheduled to {day.isoformat()} {requested}")
        return appointment

    def assign_dentist(self, appointment_id: int, dentist_id: int, actor: Actor) -> Appointment:
        """Hand an appointment to another dentist at the same time (staff only).

        The new dentist must be available for the whole slot and free of
        overlapping bookings; the status is left unchanged.
        """
        if not actor.role.is_staff:
            raise AuthorizationError("Only clinic staff can assign dentists")

        appointment = self._get_active(appointment_id, "Cancelled appointments cannot be reassigned")
        if appointment.dentist_id == dentist_id:
            raise InvalidRequestError(
                "Dentist already assigned",
                f"Dentist {dentist_id} is already assigned to appointment {appointment_id}",
            )

        dentist = self.availability.get_dentist(dentist_id)
        requested = appointment.time_range
        day = appointment.appointment_date
        self._check_within_availability(dentist_id, day, requested)

        with booking_lock(self.redis, dentist_id, day):
            self._check_conflicts(dentist_id, day, requested)

            previous = appointment.dentist_id
            appointment.dentist = dentist
            self._commit_slot(appointment, "reassigned", requested)

        logger.info(f"Appointment {appointment.id} reassigned from dentist {previous} to {dentist_id}")
        return appointment

    def list_available_slots(
        self,
        dentist_id: int,
        day: date,
        duration_minutes: Optional[int] = None,
    ) -> List[TimeRange]:
        """Free start times on ``day`` stepping by the slot increment."""
        duration = timedelta(minutes=duration_minutes or settings.DEFAULT_APPOINTMENT_MINUTES)
        step = timedelta(minutes=settings.SLOT_INCREMENT_MINUTES)

        windows = self.availability.get_effective_availability(dentist_id, day)
        booked = [a.time_range for a in self._active_appointments(dentist_id, day)]

        slots = []
        for window in windows:
            cursor = window.start
            while cursor + duration <= window.end:
                candidate = TimeRange(cursor, cursor + duration)
                if not any(candidate.overlaps(taken) for taken in booked):
                    slots.append(candidate)
                cursor += step
        return slots

    # Helpers

    def _commit_slot(self, appointment: Appointment, event: str, requested: TimeRange) -> None:
        """Flush the slot, queue notifications and commit; the unique index decides races."""
        try:
            self.db.flush()
            self.notifications.notify_appointment_event(appointment, event)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(
                f"Slot {requested} for dentist {appointment.dentist_id} taken at commit time"
            )
            raise SlotConflictError(
                "Time slot is no longer available",
                f"The slot {requested} on {requested.local_date().isoformat()} was just booked",
            ) from exc
        self.db.refresh(appointment)

    def _get_active(self, appointment_id: int, cancelled_message: str) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found", f"No appointment found with id {appointment_id}")
        if not appointment.is_active:
            raise InvalidTransitionError("Appointment is cancelled", cancelled_message)
        return appointment

    def _active_appointments(
        self, dentist_id: int, day: date, exclude_id: Optional[int] = None
    ) -> List[Appointment]:
        query = self.db.query(Appointment).filter(
            Appointment.dentist_id == dentist_id,
            Appointment.appointment_date == day,
            Appointment.status.in_(ACTIVE_STATUSES)
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time).all()

    def _check_within_availability(self, dentist_id: int, day: date, requested: TimeRange) -> None:
        windows = self.availability.get_effective_availability(dentist_id, day)
        if not any(window.contains(requested) for window in windows):
            available = ", ".join(str(window) for window in windows) or "none"
            raise OutsideAvailabilityError(
                "Dentist is not available at the requested time",
                f"Requested {requested} on {day.isoformat()}; available: {available}",
            )

    def _check_conflicts(
        self, dentist_id: int, day: date, requested: TimeRange, exclude_id: Optional[int] = None
    ) -> None:
        for existing in self._active_appointments(dentist_id, day, exclude_id=exclude_id):
            if existing.time_range.overlaps(requested):
                logger.warning(
                    f"Slot conflict for dentist {dentist_id} on {day.isoformat()}: "
                    f"{requested} overlaps appointment {existing.id}"
                )
                raise SlotConflictError(
                    "Time slot is no longer available",
                    f"The slot {requested} overlaps an existing appointment ({existing.time_range})",
                )

    def _resolve_patient(self, patient_id: Optional[int], actor: Actor) -> int:
        if actor.role == UserRole.PATIENT:
            if patient_id is not None and patient_id != actor.user_id:
                raise AuthorizationError("Patients can only book appointments for themselves")
            return actor.user_id

        if patient_id is None:
            raise InvalidRequestError(
                "Patient is required",
                "patient_id is required when booking on behalf of a patient",
            )

        patient = self.db.get(User, patient_id)
        if not patient or not patient.is_active:
            raise NotFoundError("Patient not found", f"No active user found with id {patient_id}")
        return patient.id

    def _check_can_book_for(self, dentist, actor: Actor) -> None:
        if actor.role == UserRole.DENTIST and dentist.user_id != actor.user_id:
            raise AuthorizationError("Dentists can only book into their own calendar")

    def _check_branch(self, clinic_branch_id: Optional[int]) -> None:
        if clinic_branch_id is not None and not self.db.get(ClinicBranch, clinic_branch_id):
            raise NotFoundError("Clinic branch not found", f"No clinic branch with id {clinic_branch_id}")

    def _is_party(self, appointment: Appointment, actor: Actor) -> bool:
        if actor.role.is_staff:
            return True
        if actor.role == UserRole.PATIENT:
            return appointment.patient_id == actor.user_id
        if actor.role == UserRole.DENTIST:
            return appointment.dentist.user_id == actor.user_id
        return False
