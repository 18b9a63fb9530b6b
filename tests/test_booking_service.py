import threading
import pytest
from datetime import date, datetime, time

from booksmile.core.config import settings
from booksmile.core.database import SessionLocal, redis_client
from booksmile.core.exceptions import (
    InvalidRangeError, InvalidRequestError, InvalidTransitionError, NotFoundError,
    OutsideAvailabilityError, SlotConflictError
)
from booksmile.core.locks import booking_lock_name
from booksmile.core.security import AuthorizationError
from booksmile.models import Appointment, AppointmentStatus, AvailabilityRule, Leave, Notification
from booksmile.schemas.appointment import AppointmentCreate, AppointmentReschedule
from booksmile.schemas.availability import SpecificAvailabilityCreate
from booksmile.services.appointment_service import AppointmentService
from booksmile.services.availability_service import AvailabilityService
from booksmile.services.booking_service import BookingService
from tests.conftest import actor

MONDAY = date(2025, 8, 25)

def book(db, dentist, patient, start, end, day=MONDAY):
    return BookingService(db).request_booking(
        dentist_id=dentist.id,
        day=day,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end) if end else None,
        patient_id=None,
        actor=actor(patient),
    )

class TestRequestBooking:

    def test_booking_inside_weekly_hours_is_pending(self, db, dentist, monday_hours, patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")

        assert appointment.id is not None
        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.patient_id == patient.id
        assert appointment.scheduled_by == patient.id
        assert appointment.appointment_date == MONDAY
        # 09:00 in Manila is 01:00 UTC
        assert appointment.start_time == datetime(2025, 8, 25, 1, 0)
        assert appointment.end_time == datetime(2025, 8, 25, 1, 30)

    def test_overlapping_second_booking_conflicts(self, db, dentist, monday_hours, patient, other_patient):
        book(db, dentist, patient, "09:00", "09:30")

        with pytest.raises(SlotConflictError) as exc_info:
            book(db, dentist, other_patient, "09:15", "09:45")
        assert exc_info.value.kind == "slot_conflict"

        assert db.query(Appointment).count() == 1

    def test_back_to_back_bookings_do_not_conflict(self, db, dentist, monday_hours, patient, other_patient):
        book(db, dentist, patient, "09:00", "09:30")
        second = book(db, dentist, other_patient, "09:30", "10:00")

        assert second.status == AppointmentStatus.PENDING

    def test_end_defaults_to_standard_length(self, db, dentist, monday_hours, patient):
        appointment = book(db, dentist, patient, "10:00", None)

        assert appointment.time_range.duration.total_seconds() == 30 * 60

    def test_leave_makes_the_day_unavailable(self, db, dentist, monday_hours, patient):
        db.add(Leave(dentist_id=dentist.id, start_date=MONDAY, end_date=MONDAY))
        db.commit()

        with pytest.raises(OutsideAvailabilityError) as exc_info:
            book(db, dentist, patient, "09:00", "09:30")
        assert exc_info.value.kind == "outside_availability"

    @pytest.mark.parametrize("start,end", [("08:30", "09:30"), ("16:45", "17:15"), ("17:00", "17:30")])
    def test_request_must_fit_inside_one_window(self, db, dentist, monday_hours, patient, start, end):
        with pytest.raises(OutsideAvailabilityError):
            book(db, dentist, patient, start, end)

    def test_request_spanning_a_break_is_rejected(self, db, dentist, dentist_user, patient):
        AvailabilityService(db).add_override(SpecificAvailabilityCreate(
            dentist_id=dentist.id, date=MONDAY, start_time=time(9, 0), end_time=time(12, 0)
        ), actor(dentist_user))
        AvailabilityService(db).add_override(SpecificAvailabilityCreate(
            dentist_id=dentist.id, date=MONDAY, start_time=time(13, 0), end_time=time(17, 0)
        ), actor(dentist_user))

        with pytest.raises(OutsideAvailabilityError):
            book(db, dentist, patient, "11:45", "13:15")

    def test_inverted_range_is_invalid(self, db, dentist, monday_hours, patient):
        with pytest.raises(InvalidRangeError):
            book(db, dentist, patient, "10:00", "09:00")

    def test_cancelled_booking_frees_the_slot(self, db, dentist, monday_hours, patient, other_patient):
        first = book(db, dentist, patient, "09:00", "09:30")
        AppointmentService(db).cancel(first.id, actor(patient))

        second = book(db, dentist, other_patient, "09:00", "09:30")

        assert second.status == AppointmentStatus.PENDING
        assert db.query(Appointment).count() == 2

    def test_booking_notifies_patient_and_dentist(self, db, dentist, dentist_user, monday_hours, patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")

        recipients = sorted(
            n.user_id for n in db.query(Notification).filter(Notification.appointment_id == appointment.id)
        )
        assert recipients == sorted([patient.id, dentist_user.id])

    def test_patient_cannot_book_for_someone_else(self, db, dentist, monday_hours, patient, other_patient):
        with pytest.raises(AuthorizationError):
            BookingService(db).request_booking(
                dentist_id=dentist.id,
                day=MONDAY,
                start_time=time(9, 0),
                end_time=time(9, 30),
                patient_id=other_patient.id,
                actor=actor(patient),
            )

    def test_secretary_books_on_behalf_of_patient(self, db, dentist, monday_hours, patient, secretary):
        appointment = BookingService(db).book(AppointmentCreate(
            dentist_id=dentist.id,
            patient_id=patient.id,
            appointment_date=MONDAY,
            start_time=time(11, 0),
            notes="  Cleaning  ",
            treatment_options=["cleaning", " "],
        ), actor(secretary))

        assert appointment.patient_id == patient.id
        assert appointment.scheduled_by == secretary.id
        assert appointment.notes == "Cleaning"
        assert appointment.treatment_options == ["cleaning"]

    def test_dental_form_is_stored_with_booking(self, db, dentist, monday_hours, patient):
        form = {"symptoms": ["sensitivity"], "last_visit": "2024-12", "allergies": None}
        appointment = BookingService(db).book(AppointmentCreate(
            dentist_id=dentist.id,
            appointment_date=MONDAY,
            start_time=time(11, 0),
            detailed_notes=form,
        ), actor(patient))

        db.expire_all()
        assert db.get(Appointment, appointment.id).detailed_notes == form

    def test_staff_booking_requires_patient(self, db, dentist, monday_hours, secretary):
        with pytest.raises(InvalidRequestError) as exc_info:
            BookingService(db).request_booking(
                dentist_id=dentist.id,
                day=MONDAY,
                start_time=time(9, 0),
                end_time=time(9, 30),
                patient_id=None,
                actor=actor(secretary),
            )
        assert exc_info.value.status_code == 400
        assert exc_info.value.kind == "invalid_request"

    def test_unknown_dentist(self, db, patient):
        with pytest.raises(NotFoundError):
            BookingService(db).request_booking(
                dentist_id=404,
                day=MONDAY,
                start_time=time(9, 0),
                end_time=time(9, 30),
                patient_id=None,
                actor=actor(patient),
            )

class TestConcurrentBooking:

    def test_identical_concurrent_requests_yield_one_booking(self, db, dentist, monday_hours, patient):
        attempts = 8
        dentist_id = dentist.id
        patient_actor = actor(patient)
        barrier = threading.Barrier(attempts)
        results = []
        results_guard = threading.Lock()

        def attempt():
            session = SessionLocal()
            try:
                barrier.wait()
                try:
                    BookingService(session).request_booking(
                        dentist_id=dentist_id,
                        day=MONDAY,
                        start_time=time(9, 0),
                        end_time=time(9, 30),
                        patient_id=None,
                        actor=patient_actor,
                    )
                    outcome = "booked"
                except SlotConflictError:
                    outcome = "conflict"
                with results_guard:
                    results.append(outcome)
            finally:
                session.close()

        threads = [threading.Thread(target=attempt) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("booked") == 1
        assert results.count("conflict") == attempts - 1
        assert db.query(Appointment).filter(
            Appointment.status == AppointmentStatus.PENDING
        ).count() == 1

    def test_lock_timeout_reports_slot_conflict(self, db, dentist, monday_hours, patient, monkeypatch):
        monkeypatch.setattr(settings, "BOOKING_LOCK_TIMEOUT_SECONDS", 0.05)
        held = redis_client.lock(booking_lock_name(dentist.id, MONDAY))
        assert held.acquire()
        try:
            with pytest.raises(SlotConflictError) as exc_info:
                book(db, dentist, patient, "09:00", "09:30")
            assert exc_info.value.message == "Schedule busy"
        finally:
            held.release()

class TestReschedule:

    def test_reschedule_moves_slot_and_keeps_confirmation(self, db, dentist, dentist_user, monday_hours, patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")
        AppointmentService(db).confirm(appointment.id, actor(dentist_user))

        moved = BookingService(db).reschedule(
            appointment.id,
            AppointmentReschedule(appointment_date=MONDAY, start_time=time(14, 0), end_time=time(14, 30)),
            actor(patient),
        )

        assert moved.status == AppointmentStatus.CONFIRMED
        assert moved.time_range.local_start() == time(14, 0)
        # The old slot is free again
        assert book(db, dentist, patient, "09:00", "09:30").status == AppointmentStatus.PENDING

    def test_reschedule_onto_overlapping_own_slot_is_allowed(self, db, dentist, monday_hours, patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")

        moved = BookingService(db).reschedule(
            appointment.id,
            AppointmentReschedule(appointment_date=MONDAY, start_time=time(9, 15), end_time=time(9, 45)),
            actor(patient),
        )

        assert moved.time_range.local_start() == time(9, 15)

    def test_reschedule_into_taken_slot_conflicts(self, db, dentist, monday_hours, patient, other_patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")
        book(db, dentist, other_patient, "10:00", "10:30")

        with pytest.raises(SlotConflictError):
            BookingService(db).reschedule(
                appointment.id,
                AppointmentReschedule(appointment_date=MONDAY, start_time=time(10, 15)),
                actor(patient),
            )

    def test_cancelled_appointment_cannot_be_rescheduled(self, db, dentist, monday_hours, patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")
        AppointmentService(db).cancel(appointment.id, actor(patient))

        with pytest.raises(InvalidTransitionError):
            BookingService(db).reschedule(
                appointment.id,
                AppointmentReschedule(appointment_date=MONDAY, start_time=time(11, 0)),
                actor(patient),
            )

    def test_patient_reschedule_keeps_confirmed_status(self, db, dentist, dentist_user, monday_hours, patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")
        AppointmentService(db).confirm(appointment.id, actor(dentist_user))

        moved = BookingService(db).reschedule(
            appointment.id,
            AppointmentReschedule(appointment_date=MONDAY, start_time=time(9, 0), end_time=time(9, 30)),
            actor(patient),
        )

        assert moved.status == AppointmentStatus.CONFIRMED
        titles = [n.title for n in db.query(Notification).filter(Notification.appointment_id == appointment.id)]
        assert "Appointment rescheduled" in titles

    def test_unrelated_patient_cannot_reschedule(self, db, dentist, monday_hours, patient, other_patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")

        with pytest.raises(InvalidTransitionError):
            BookingService(db).reschedule(
                appointment.id,
                AppointmentReschedule(appointment_date=MONDAY, start_time=time(11, 0)),
                actor(other_patient),
            )

@pytest.fixture
def other_monday_hours(db, other_dentist):
    rule = AvailabilityRule(
        dentist_id=other_dentist.id,
        day_of_week=0,
        start_time=time(9, 0),
        end_time=time(12, 0),
    )
    db.add(rule)
    db.commit()
    return rule

class TestAssignDentist:

    def test_staff_reassigns_to_free_dentist(
        self, db, dentist, other_dentist, monday_hours, other_monday_hours, patient, secretary
    ):
        appointment = book(db, dentist, patient, "09:00", "09:30")
        AppointmentService(db).confirm(appointment.id, actor(secretary))

        moved = BookingService(db).assign_dentist(appointment.id, other_dentist.id, actor(secretary))

        assert moved.dentist_id == other_dentist.id
        assert moved.status == AppointmentStatus.CONFIRMED
        assert moved.time_range.local_start() == time(9, 0)
        notified = {
            n.user_id for n in db.query(Notification).filter(Notification.title == "Dentist assigned")
        }
        assert notified == {patient.id, other_dentist.user_id}
        # The original dentist's slot is free again
        assert book(db, dentist, patient, "09:00", "09:30").status == AppointmentStatus.PENDING

    def test_reassign_into_busy_dentist_conflicts(
        self, db, dentist, other_dentist, monday_hours, other_monday_hours, patient, other_patient, secretary
    ):
        appointment = book(db, dentist, patient, "09:00", "09:30")
        book(db, other_dentist, other_patient, "09:15", "09:45")

        with pytest.raises(SlotConflictError):
            BookingService(db).assign_dentist(appointment.id, other_dentist.id, actor(secretary))

        db.refresh(appointment)
        assert appointment.dentist_id == dentist.id

    def test_reassign_outside_new_dentists_hours(
        self, db, dentist, other_dentist, monday_hours, other_monday_hours, patient, secretary
    ):
        appointment = book(db, dentist, patient, "14:00", "14:30")

        with pytest.raises(OutsideAvailabilityError):
            BookingService(db).assign_dentist(appointment.id, other_dentist.id, actor(secretary))

    def test_same_dentist_is_rejected(self, db, dentist, monday_hours, patient, secretary):
        appointment = book(db, dentist, patient, "09:00", "09:30")

        with pytest.raises(InvalidRequestError):
            BookingService(db).assign_dentist(appointment.id, dentist.id, actor(secretary))

    def test_only_staff_can_reassign(self, db, dentist, dentist_user, other_dentist, monday_hours, patient):
        appointment = book(db, dentist, patient, "09:00", "09:30")

        for caller in (patient, dentist_user):
            with pytest.raises(AuthorizationError):
                BookingService(db).assign_dentist(appointment.id, other_dentist.id, actor(caller))

    def test_cancelled_appointment_cannot_be_reassigned(
        self, db, dentist, other_dentist, monday_hours, other_monday_hours, patient, secretary
    ):
        appointment = book(db, dentist, patient, "09:00", "09:30")
        AppointmentService(db).cancel(appointment.id, actor(patient))

        with pytest.raises(InvalidTransitionError) as exc_info:
            BookingService(db).assign_dentist(appointment.id, other_dentist.id, actor(secretary))
        assert exc_info.value.message == "Appointment is cancelled"

    def test_unknown_dentist(self, db, dentist, monday_hours, patient, secretary):
        appointment = book(db, dentist, patient, "09:00", "09:30")

        with pytest.raises(NotFoundError):
            BookingService(db).assign_dentist(appointment.id, 404, actor(secretary))

class TestAvailableSlots:

    def test_slots_skip_booked_time(self, db, dentist, dentist_user, patient):
        AvailabilityService(db).add_override(SpecificAvailabilityCreate(
            dentist_id=dentist.id, date=MONDAY, start_time=time(9, 0), end_time=time(10, 30)
        ), actor(dentist_user))
        book(db, dentist, patient, "09:30", "10:00")

        slots = BookingService(db).list_available_slots(dentist.id, MONDAY, duration_minutes=30)

        assert [str(slot) for slot in slots] == ["09:00-09:30", "10:00-10:30"]

    def test_no_slots_on_leave(self, db, dentist, monday_hours):
        db.add(Leave(dentist_id=dentist.id, start_date=MONDAY, end_date=MONDAY))
        db.commit()

        assert BookingService(db).list_available_slots(dentist.id, MONDAY) == []
