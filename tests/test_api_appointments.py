import inspect
import pytest
from datetime import date, time

from booksmile.main import app
from booksmile.models import AvailabilityRule, Leave
from tests.conftest import auth_headers

MONDAY = "2025-08-25"

def booking(dentist_id: int, start: str = "09:00", end: str = "09:30", **extra) -> dict:
    payload = {
        "dentist_id": dentist_id,
        "appointment_date": MONDAY,
        "start_time": start,
        "end_time": end,
    }
    payload.update(extra)
    return payload

@pytest.fixture
def booked(client, dentist, monday_hours, patient):
    response = client.post(
        "/api/v1/appointments",
        json=booking(dentist.id, notes="First visit"),
        headers=auth_headers(patient)
    )
    assert response.status_code == 201
    return response.json()["data"]

class TestBookingApi:

    def test_book_appointment(self, client, booked, patient, dentist):
        assert booked["status"] == "pending"
        assert booked["patient_id"] == patient.id
        assert booked["dentist_id"] == dentist.id
        assert booked["appointment_date"] == MONDAY
        assert booked["start_time"].startswith("2025-08-25T01:00:00")
        assert booked["notes"] == "First visit"
        assert booked["treatment_options"] == []

    def test_overlapping_booking_returns_slot_conflict(self, client, booked, dentist, other_patient):
        response = client.post(
            "/api/v1/appointments",
            json=booking(dentist.id, "09:15", "09:45"),
            headers=auth_headers(other_patient)
        )

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["kind"] == "slot_conflict"
        assert body["error"] == "Time slot is no longer available"

    def test_booking_on_leave_is_outside_availability(self, client, db, dentist, monday_hours, patient):
        db.add(Leave(dentist_id=dentist.id, start_date=date(2025, 8, 25), end_date=date(2025, 8, 25)))
        db.commit()

        response = client.post(
            "/api/v1/appointments",
            json=booking(dentist.id),
            headers=auth_headers(patient)
        )

        assert response.status_code == 409
        assert response.json()["kind"] == "outside_availability"

    def test_inverted_times_are_invalid_range(self, client, dentist, monday_hours, patient):
        response = client.post(
            "/api/v1/appointments",
            json=booking(dentist.id, "10:00", "09:00"),
            headers=auth_headers(patient)
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_range"

    def test_overlong_notes_fail_validation(self, client, dentist, monday_hours, patient):
        response = client.post(
            "/api/v1/appointments",
            json=booking(dentist.id, notes="x" * 1001),
            headers=auth_headers(patient)
        )

        assert response.status_code == 422

    def test_booking_requires_authentication(self, client, dentist, monday_hours):
        response = client.post("/api/v1/appointments", json=booking(dentist.id))

        assert response.status_code in (401, 403)

    def test_unknown_appointment_is_not_found(self, client, patient, test_db):
        response = client.get("/api/v1/appointments/999", headers=auth_headers(patient))

        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

class TestStatusApi:

    def test_dentist_confirms(self, client, booked, dentist_user):
        response = client.post(
            f"/api/v1/appointments/{booked['id']}/confirm",
            headers=auth_headers(dentist_user)
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "confirmed"

    def test_patient_confirm_is_forbidden(self, client, booked, patient):
        response = client.post(
            f"/api/v1/appointments/{booked['id']}/confirm",
            headers=auth_headers(patient)
        )

        assert response.status_code == 403
        assert response.json()["kind"] == "transition_not_permitted"

    def test_cancel_twice_is_invalid_transition(self, client, booked, patient):
        url = f"/api/v1/appointments/{booked['id']}/cancel"

        first = client.post(url, json={"reason": "Schedule clash"}, headers=auth_headers(patient))
        assert first.status_code == 200
        assert first.json()["data"]["status"] == "cancelled"
        assert first.json()["data"]["cancelled_reason"] == "Schedule clash"

        second = client.post(url, headers=auth_headers(patient))
        assert second.status_code == 409
        assert second.json()["kind"] == "invalid_transition"

    def test_reschedule(self, client, booked, patient):
        response = client.put(
            f"/api/v1/appointments/{booked['id']}",
            json={"appointment_date": MONDAY, "start_time": "15:00", "end_time": "15:45"},
            headers=auth_headers(patient)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "pending"
        assert data["start_time"].startswith("2025-08-25T07:00:00")

    def test_reschedule_keeps_confirmation(self, client, booked, patient, dentist_user):
        client.post(f"/api/v1/appointments/{booked['id']}/confirm", headers=auth_headers(dentist_user))

        response = client.put(
            f"/api/v1/appointments/{booked['id']}",
            json={"appointment_date": MONDAY, "start_time": "09:00", "end_time": "09:30"},
            headers=auth_headers(patient)
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "confirmed"

class TestListingApi:

    def test_patient_sees_only_own_appointments(self, client, booked, dentist, other_patient, patient):
        client.post(
            "/api/v1/appointments",
            json=booking(dentist.id, "10:00", "10:30"),
            headers=auth_headers(other_patient)
        )

        mine = client.get("/api/v1/appointments", headers=auth_headers(patient)).json()["data"]
        assert mine["pagination"]["total"] == 1
        assert mine["items"][0]["id"] == booked["id"]

    def test_secretary_filters_by_status(self, client, booked, secretary):
        response = client.get(
            "/api/v1/appointments",
            params={"status": "pending", "date_from": MONDAY, "date_to": MONDAY, "limit": 1},
            headers=auth_headers(secretary)
        )

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["pagination"] == {"total": 1, "limit": 1, "offset": 0, "has_more": False}

    def test_available_slots(self, client, booked, dentist, patient):
        response = client.get(
            "/api/v1/appointments/slots",
            params={"dentist_id": dentist.id, "date": MONDAY, "duration_minutes": 60},
            headers=auth_headers(patient)
        )

        assert response.status_code == 200
        slots = response.json()["data"]
        starts = [slot["start_time"] for slot in slots]
        # 09:00-09:30 is taken, so the first free hour starts at 09:30
        assert starts[0] == "09:30:00"
        assert starts[-1] == "16:00:00"
        assert "09:15:00" not in starts

class TestDetailsApi:

    def test_patient_updates_dental_form(self, client, booked, patient):
        response = client.patch(
            f"/api/v1/appointments/{booked['id']}/details",
            json={"detailed_notes": {"symptoms": ["bleeding gums"]}, "treatment_options": ["cleaning"]},
            headers=auth_headers(patient)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["detailed_notes"] == {"symptoms": ["bleeding gums"]}
        assert data["treatment_options"] == ["cleaning"]
        # Fields left out of the request are untouched
        assert data["notes"] == "First visit"
        assert data["status"] == "pending"

    def test_dental_form_accepted_at_booking(self, client, dentist, monday_hours, patient):
        response = client.post(
            "/api/v1/appointments",
            json=booking(dentist.id, detailed_notes={"pain_level": 3}),
            headers=auth_headers(patient)
        )

        assert response.status_code == 201
        assert response.json()["data"]["detailed_notes"] == {"pain_level": 3}

    def test_unrelated_patient_cannot_edit_details(self, client, booked, other_patient):
        response = client.patch(
            f"/api/v1/appointments/{booked['id']}/details",
            json={"notes": "Not mine"},
            headers=auth_headers(other_patient)
        )

        assert response.status_code == 403
        assert response.json()["kind"] == "forbidden"

    def test_cancelled_appointment_details_are_frozen(self, client, booked, patient):
        client.post(f"/api/v1/appointments/{booked['id']}/cancel", headers=auth_headers(patient))

        response = client.patch(
            f"/api/v1/appointments/{booked['id']}/details",
            json={"notes": "Too late"},
            headers=auth_headers(patient)
        )

        assert response.status_code == 409
        assert response.json()["kind"] == "invalid_transition"

@pytest.fixture
def other_monday_hours(db, other_dentist):
    rule = AvailabilityRule(
        dentist_id=other_dentist.id, day_of_week=0, start_time=time(9, 0), end_time=time(17, 0)
    )
    db.add(rule)
    db.commit()
    return rule

class TestAssignDentistApi:

    def test_secretary_assigns_another_dentist(self, client, booked, other_dentist, other_monday_hours, secretary):
        response = client.patch(
            f"/api/v1/appointments/{booked['id']}/dentist",
            json={"dentist_id": other_dentist.id},
            headers=auth_headers(secretary)
        )

        assert response.status_code == 200
        assert response.json()["data"]["dentist_id"] == other_dentist.id
        assert response.json()["message"] == "Dentist assigned"

    def test_assigning_into_taken_slot_conflicts(
        self, client, booked, other_dentist, other_monday_hours, other_patient, secretary
    ):
        taken = client.post(
            "/api/v1/appointments",
            json=booking(other_dentist.id),
            headers=auth_headers(other_patient)
        )
        assert taken.status_code == 201

        response = client.patch(
            f"/api/v1/appointments/{booked['id']}/dentist",
            json={"dentist_id": other_dentist.id},
            headers=auth_headers(secretary)
        )

        assert response.status_code == 409
        assert response.json()["kind"] == "slot_conflict"

    def test_patient_cannot_assign(self, client, booked, other_dentist, other_monday_hours, patient):
        response = client.patch(
            f"/api/v1/appointments/{booked['id']}/dentist",
            json={"dentist_id": other_dentist.id},
            headers=auth_headers(patient)
        )

        assert response.status_code == 403
        assert response.json()["success"] is False

class TestErrorEnvelope:

    def test_booking_for_another_patient_is_forbidden(self, client, dentist, monday_hours, patient, other_patient):
        response = client.post(
            "/api/v1/appointments",
            json=booking(dentist.id, patient_id=other_patient.id),
            headers=auth_headers(patient)
        )

        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["kind"] == "forbidden"
        assert body["error"] == "Patients can only book appointments for themselves"

    def test_staff_booking_without_patient(self, client, dentist, monday_hours, secretary):
        response = client.post(
            "/api/v1/appointments",
            json=booking(dentist.id),
            headers=auth_headers(secretary)
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_request"

    def test_validation_failure(self, client, dentist, patient):
        response = client.post(
            "/api/v1/appointments",
            json={"dentist_id": dentist.id, "appointment_date": "not-a-date", "start_time": "09:00"},
            headers=auth_headers(patient)
        )

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["kind"] == "validation_error"
        assert body["message"].startswith("appointment_date:")
        assert body["errors"]

    def test_missing_credentials(self, client, test_db):
        response = client.get("/api/v1/appointments")

        assert response.status_code in (401, 403)
        assert response.json()["success"] is False

class TestLockingRoutes:

    LOCKING_ROUTES = {
        ("POST", "/api/v1/appointments"),
        ("PUT", "/api/v1/appointments/{appointment_id}"),
        ("POST", "/api/v1/appointments/{appointment_id}/confirm"),
        ("POST", "/api/v1/appointments/{appointment_id}/cancel"),
        ("PATCH", "/api/v1/appointments/{appointment_id}/dentist"),
        ("POST", "/api/v1/availability/dentist-availability"),
        ("PUT", "/api/v1/availability/dentist-availability/{rule_id}"),
        ("DELETE", "/api/v1/availability/dentist-availability/{rule_id}"),
        ("POST", "/api/v1/availability/specific-availability"),
        ("PUT", "/api/v1/availability/specific-availability/{override_id}"),
        ("DELETE", "/api/v1/availability/specific-availability/{override_id}"),
        ("POST", "/api/v1/availability/leaves"),
        ("PUT", "/api/v1/availability/leaves/{leave_id}"),
        ("DELETE", "/api/v1/availability/leaves/{leave_id}"),
    }

    def test_lock_taking_routes_run_in_threadpool(self):
        found = set()
        for route in app.routes:
            for method in getattr(route, "methods", None) or ():
                key = (method, route.path)
                if key in self.LOCKING_ROUTES:
                    found.add(key)
                    assert not inspect.iscoroutinefunction(route.endpoint), key

        assert found == self.LOCKING_ROUTES
