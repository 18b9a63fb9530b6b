import pytest

from tests.conftest import auth_headers

MONDAY = "2025-08-25"

@pytest.fixture
def monday_rule(client, dentist, dentist_user):
    response = client.post(
        "/api/v1/availability/dentist-availability",
        json={
            "dentist_id": dentist.id,
            "day_of_week": "Monday",
            "start_time": "09:00",
            "end_time": "17:00",
            "break_start_time": "12:00",
            "break_end_time": "13:00",
        },
        headers=auth_headers(dentist_user)
    )
    assert response.status_code == 201
    return response.json()["data"]

class TestAvailabilityApi:

    def test_create_rule_accepts_day_name(self, monday_rule, dentist):
        assert monday_rule["day_of_week"] == 0
        assert monday_rule["dentist_id"] == dentist.id
        assert monday_rule["break_start_time"] == "12:00:00"

    def test_day_numbering_starts_on_monday(self, client, dentist, dentist_user):
        response = client.post(
            "/api/v1/availability/dentist-availability",
            json={"dentist_id": dentist.id, "day_of_week": "Sunday", "start_time": "09:00", "end_time": "12:00"},
            headers=auth_headers(dentist_user)
        )

        assert response.status_code == 201
        assert response.json()["data"]["day_of_week"] == 6

    def test_overlapping_rule_is_conflict(self, client, monday_rule, dentist, dentist_user):
        response = client.post(
            "/api/v1/availability/dentist-availability",
            json={"dentist_id": dentist.id, "day_of_week": 0, "start_time": "16:00", "end_time": "18:00"},
            headers=auth_headers(dentist_user)
        )

        assert response.status_code == 409
        assert response.json()["kind"] == "overlap"

    def test_invalid_day_name_fails_validation(self, client, dentist, dentist_user):
        response = client.post(
            "/api/v1/availability/dentist-availability",
            json={"dentist_id": dentist.id, "day_of_week": "Funday", "start_time": "09:00", "end_time": "10:00"},
            headers=auth_headers(dentist_user)
        )

        assert response.status_code == 422

    def test_patient_cannot_edit_schedule(self, client, dentist, patient):
        response = client.post(
            "/api/v1/availability/dentist-availability",
            json={"dentist_id": dentist.id, "day_of_week": 1, "start_time": "09:00", "end_time": "10:00"},
            headers=auth_headers(patient)
        )

        assert response.status_code == 403

    def test_effective_availability_applies_break(self, client, monday_rule, dentist, patient):
        response = client.get(
            "/api/v1/availability/effective",
            params={"dentist_id": dentist.id, "date": MONDAY},
            headers=auth_headers(patient)
        )

        assert response.status_code == 200
        windows = response.json()["data"]["windows"]
        assert [(w["start_time"], w["end_time"]) for w in windows] == [
            ("09:00:00", "12:00:00"),
            ("13:00:00", "17:00:00"),
        ]

    def test_override_then_leave(self, client, monday_rule, dentist, dentist_user):
        headers = auth_headers(dentist_user)
        override = client.post(
            "/api/v1/availability/specific-availability",
            json={"dentist_id": dentist.id, "date": MONDAY, "start_time": "14:00", "end_time": "18:00"},
            headers=headers
        )
        assert override.status_code == 201

        effective = client.get(
            "/api/v1/availability/effective",
            params={"dentist_id": dentist.id, "date": MONDAY},
            headers=headers
        ).json()["data"]["windows"]
        assert [w["start_time"] for w in effective] == ["14:00:00"]

        leave = client.post(
            "/api/v1/availability/leaves",
            json={"dentist_id": dentist.id, "start_date": MONDAY, "end_date": MONDAY, "reason": "Seminar"},
            headers=headers
        )
        assert leave.status_code == 201

        effective = client.get(
            "/api/v1/availability/effective",
            params={"dentist_id": dentist.id, "date": MONDAY},
            headers=headers
        ).json()["data"]["windows"]
        assert effective == []

    def test_rule_crud(self, client, monday_rule, dentist_user, admin):
        url = f"/api/v1/availability/dentist-availability/{monday_rule['id']}"

        updated = client.put(url, json={"end_time": "18:00"}, headers=auth_headers(dentist_user))
        assert updated.status_code == 200
        assert updated.json()["data"]["end_time"] == "18:00:00"

        listed = client.get(
            "/api/v1/availability/dentist-availability",
            params={"day_of_week": 0},
            headers=auth_headers(dentist_user)
        ).json()["data"]
        assert listed["pagination"]["total"] == 1

        deleted = client.delete(url, headers=auth_headers(admin))
        assert deleted.status_code == 200
        assert deleted.json()["success"] is True

        missing = client.get(url, headers=auth_headers(admin))
        assert missing.status_code == 404
        assert missing.json()["kind"] == "not_found"

    def test_overlapping_leave_is_conflict(self, client, dentist, dentist_user):
        headers = auth_headers(dentist_user)
        client.post(
            "/api/v1/availability/leaves",
            json={"dentist_id": dentist.id, "start_date": "2025-08-25", "end_date": "2025-08-29"},
            headers=headers
        )

        response = client.post(
            "/api/v1/availability/leaves",
            json={"dentist_id": dentist.id, "start_date": "2025-08-28", "end_date": "2025-09-01"},
            headers=headers
        )

        assert response.status_code == 409
        assert response.json()["kind"] == "overlap"

class TestDentistLookupApi:

    def test_dentist_by_user_id(self, client, dentist, dentist_user, patient):
        response = client.get(
            f"/api/v1/availability/dentist/{dentist_user.id}",
            headers=auth_headers(patient)
        )

        assert response.status_code == 200
        assert response.json()["data"]["id"] == dentist.id

    def test_non_dentist_user_is_not_found(self, client, patient):
        response = client.get(
            f"/api/v1/availability/dentist/{patient.id}",
            headers=auth_headers(patient)
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Dentist not found"
