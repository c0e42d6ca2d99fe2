"""Integration tests for the HTTP API."""
import pytest
from fastapi.testclient import TestClient

from agenda.api.dependencies import get_api_key_manager, get_clock, get_db
from agenda.api_server import app
from agenda.config import Settings, get_settings

PATIENT = {
    "firstName": "Juan",
    "lastName": "Gómez",
    "nationalId": "30.123.456",
    "phone": "011 4444-1111",
    "email": "juan@example.com",
    "birthDate": "1985-03-02",
}

CONFIGURATION = {
    "firstName": "Ana",
    "lastName": "Pérez",
    "specialty": "Cardiology",
    "phone": "011 5555-0000",
    "email": "ana@example.com",
    "licenseNumber": "MN-12345",
    "workingDays": [1, 2, 3, 4, 5],
    "openingTime": "08:00",
    "closingTime": "18:00",
    "defaultDuration": 30,
    "consultationPrice": 15000,
}


def make_client(database, clock, require_api_key=False):
    app.dependency_overrides[get_db] = lambda: database
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_settings] = lambda: Settings(require_api_key=require_api_key)
    return TestClient(app)


@pytest.fixture
def client(database, clock):
    yield make_client(database, clock)
    app.dependency_overrides.clear()


@pytest.fixture
def setup_clinic(client):
    response = client.put("/api/v1/configuration", json=CONFIGURATION)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def patient_id(client):
    response = client.post("/api/v1/patients", json=PATIENT)
    assert response.status_code == 201
    return response.json()["id"]


def book(client, patient_id, time="09:00", date="2024-01-08", **extra):
    return client.post("/api/v1/appointments", json={
        "patientId": patient_id,
        "date": date,
        "time": time,
        **extra,
    })


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestRequestId:
    def test_generated_when_missing(self, client):
        response = client.get("/health")
        assert response.headers["X-Request-ID"].startswith("req-")

    def test_echoed_when_supplied(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-frontdesk01"})
        assert response.headers["X-Request-ID"] == "req-frontdesk01"


class TestConfiguration:
    def test_setup_required_before_first_save(self, client):
        response = client.get("/api/v1/configuration")
        assert response.status_code == 409
        assert response.json()["code"] == "SETUP_REQUIRED"

    def test_save_and_read(self, client, setup_clinic):
        assert setup_clinic["workingDays"] == [1, 2, 3, 4, 5]
        assert setup_clinic["openingTime"] == "08:00"

        response = client.get("/api/v1/configuration")
        assert response.json()["specialty"] == "Cardiology"

    def test_invalid_hours(self, client):
        response = client.put("/api/v1/configuration", json={**CONFIGURATION, "openingTime": "19:00"})
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_missing_practitioner_name(self, client):
        response = client.put("/api/v1/configuration", json={**CONFIGURATION, "firstName": ""})
        assert response.status_code == 422
        assert "First name is required" in response.json()["errors"]

    def test_update_hours_and_price(self, client, setup_clinic):
        response = client.patch("/api/v1/configuration/hours", json={
            "workingDays": [1, 3],
            "openingTime": "09:00",
            "closingTime": "13:00",
            "defaultDuration": 20,
        })
        assert response.status_code == 200
        assert response.json()["workingDays"] == [1, 3]

        response = client.patch("/api/v1/configuration/price", json={"consultationPrice": 18000})
        assert response.json()["consultationPrice"] == 18000

    def test_non_working_dates(self, client, setup_clinic):
        response = client.post("/api/v1/configuration/non-working-dates", json={"dates": ["2024-01-08"]})
        assert response.json()["nonWorkingDates"] == ["2024-01-08"]

        response = client.post("/api/v1/configuration/non-working-dates", json={
            "start": "2024-01-09",
            "end": "2024-01-10",
        })
        assert response.json()["nonWorkingDates"] == ["2024-01-08", "2024-01-09", "2024-01-10"]

        response = client.delete(
            "/api/v1/configuration/non-working-dates",
            params={"dates": ["2024-01-08", "2024-01-09"]},
        )
        assert response.json()["nonWorkingDates"] == ["2024-01-10"]

    def test_past_holiday_rejected(self, client, setup_clinic):
        response = client.post("/api/v1/configuration/non-working-dates", json={"dates": ["2023-12-25"]})
        assert response.status_code == 422

    def test_slot_grid(self, client, setup_clinic):
        response = client.get("/api/v1/configuration/slots", params={"duration": 60})
        slots = response.json()["slots"]
        assert slots[0] == "08:00"
        assert len(slots) == 10


class TestPatients:
    def test_create_and_get(self, client, patient_id):
        response = client.get(f"/api/v1/patients/{patient_id}")
        assert response.status_code == 200
        assert response.json()["nationalId"] == "30123456"

    def test_duplicate_is_rejected(self, client, patient_id):
        response = client.post("/api/v1/patients", json=PATIENT)
        assert response.status_code == 422
        assert "A patient with this national ID already exists" in response.json()["errors"]

    def test_missing_field(self, client):
        body = {key: value for key, value in PATIENT.items() if key != "email"}
        response = client.post("/api/v1/patients", json=body)
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_search_and_update(self, client, patient_id):
        assert len(client.get("/api/v1/patients", params={"search": "gómez"}).json()) == 1
        assert client.get("/api/v1/patients", params={"search": "nobody"}).json() == []

        response = client.patch(f"/api/v1/patients/{patient_id}", json={"insurancePlan": "OSDE 210"})
        assert response.json()["insurancePlan"] == "OSDE 210"

    def test_not_found(self, client):
        response = client.get("/api/v1/patients/999")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_delete_guard(self, client, setup_clinic, patient_id):
        appointment_id = book(client, patient_id).json()["id"]

        response = client.delete(f"/api/v1/patients/{patient_id}")
        assert response.status_code == 409
        assert response.json()["code"] == "PATIENT_HAS_APPOINTMENTS"

        assert client.delete(f"/api/v1/appointments/{appointment_id}").status_code == 204
        assert client.delete(f"/api/v1/patients/{patient_id}").status_code == 204

    def test_history(self, client, setup_clinic, patient_id):
        book(client, patient_id)
        response = client.get(f"/api/v1/patients/{patient_id}/history")
        body = response.json()
        assert body["total"] == 1
        assert body["patient"]["id"] == patient_id
        assert body["noShow"] == 0


class TestAppointments:
    def test_booking_uses_configuration_defaults(self, client, setup_clinic, patient_id):
        response = book(client, patient_id)
        assert response.status_code == 201
        body = response.json()
        assert body["duration"] == 30
        assert body["price"] == 15000
        assert body["status"] == "scheduled"
        assert body["time"] == "09:00"

    def test_saturday_rejected(self, client, setup_clinic, patient_id):
        response = book(client, patient_id, date="2024-01-06")
        assert response.status_code == 422
        assert response.json()["code"] == "NON_WORKING_DAY"

    def test_conflict_and_touching(self, client, setup_clinic, patient_id):
        first = book(client, patient_id).json()

        conflict = book(client, patient_id, time="09:15")
        assert conflict.status_code == 409
        assert conflict.json()["code"] == "SLOT_CONFLICT"
        assert f"Conflicts with appointment {first['id']}" in conflict.json()["errors"]

        assert book(client, patient_id, time="09:30").status_code == 201

    def test_invalid_duration(self, client, setup_clinic, patient_id):
        assert book(client, patient_id, duration=0).status_code == 422
        assert book(client, patient_id, duration=200).status_code == 422

    def test_status_flow(self, client, setup_clinic, patient_id):
        appointment_id = book(client, patient_id).json()["id"]
        url = f"/api/v1/appointments/{appointment_id}/status"

        assert client.post(url, json={"status": "confirmed"}).json()["status"] == "confirmed"
        assert client.post(url, json={"status": "completed"}).json()["status"] == "completed"

        response = client.post(url, json={"status": "confirmed"})
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_unknown_status_value(self, client, setup_clinic, patient_id):
        appointment_id = book(client, patient_id).json()["id"]
        response = client.post(f"/api/v1/appointments/{appointment_id}/status", json={"status": "lost"})
        assert response.status_code == 422

    def test_notes(self, client, setup_clinic, patient_id):
        appointment_id = book(client, patient_id).json()["id"]
        response = client.post(f"/api/v1/appointments/{appointment_id}/notes", json={
            "notes": "Stable",
            "followUp": "Control in 6 months",
        })
        assert response.json()["followUp"] == "Control in 6 months"

    def test_reschedule(self, client, setup_clinic, patient_id):
        appointment_id = book(client, patient_id).json()["id"]
        response = client.post(f"/api/v1/appointments/{appointment_id}/reschedule", json={
            "date": "2024-01-09",
            "time": "11:00",
        })
        assert response.status_code == 200
        assert response.json()["date"] == "2024-01-09"

    def test_update_and_list(self, client, setup_clinic, patient_id):
        appointment_id = book(client, patient_id).json()["id"]
        response = client.patch(f"/api/v1/appointments/{appointment_id}", json={"notes": "Fasting"})
        assert response.json()["notes"] == "Fasting"

        assert len(client.get("/api/v1/appointments", params={"date": "2024-01-08"}).json()) == 1
        assert len(client.get("/api/v1/appointments", params={"patientId": patient_id}).json()) == 1
        listed = client.get("/api/v1/appointments", params={"start": "2024-01-01", "end": "2024-01-31"}).json()
        assert [a["id"] for a in listed] == [appointment_id]

    def test_delete_missing(self, client):
        assert client.delete("/api/v1/appointments/404").status_code == 404


class TestAvailability:
    def test_check(self, client, setup_clinic, patient_id):
        book(client, patient_id)

        free = client.get("/api/v1/availability", params={"date": "2024-01-08", "time": "09:30"}).json()
        taken = client.get("/api/v1/availability", params={"date": "2024-01-08", "time": "09:15"}).json()

        assert free["ok"] is True
        assert taken["ok"] is False
        assert taken["reason"] == "conflict"
        assert len(taken["conflictingIds"]) == 1

    def test_slots(self, client, setup_clinic, patient_id):
        book(client, patient_id)
        response = client.get("/api/v1/availability/slots", params={
            "date": "2024-01-08",
            "preference": "morning",
        })
        slots = response.json()["slots"]
        assert "09:00" not in slots
        assert "09:30" in slots
        assert all(slot < "12:00" for slot in slots)


class TestStatistics:
    def test_dashboard(self, client, setup_clinic, patient_id):
        book(client, patient_id)
        body = client.get("/api/v1/statistics/dashboard").json()

        assert body["totalPatients"] == 1
        assert len(body["upcoming"]) == 1
        assert body["noShowRate"] == 0
        assert set(body["countsByStatus"]) == {"scheduled", "confirmed", "completed", "cancelled", "no_show"}

    def test_reports(self, client, setup_clinic, patient_id):
        book(client, patient_id)

        monthly = client.get("/api/v1/statistics/monthly", params={"year": 2024}).json()
        assert monthly[0]["count"] == 1

        weekly = client.get("/api/v1/statistics/weekly", params={"date": "2024-01-08"}).json()
        assert weekly[0]["label"] == "2024-01-08"

        top = client.get("/api/v1/statistics/top-patients").json()
        assert top[0]["appointmentCount"] == 1

        daily = client.get("/api/v1/statistics/daily", params={"start": "2024-01-01", "end": "2024-01-31"}).json()
        client_side = client.get("/api/v1/statistics/daily", params={
            "start": "2024-01-01",
            "end": "2024-01-31",
            "source": "client",
        }).json()
        assert daily == client_side
        assert daily[0]["counts"]["scheduled"] == 1

    def test_status_counts(self, client, setup_clinic, patient_id):
        book(client, patient_id)
        counts = client.get("/api/v1/statistics/status-counts").json()
        assert counts["scheduled"] == 1
        assert sum(counts.values()) == 1


class TestAPIKeys:
    @pytest.fixture
    def secured_client(self, database, clock):
        yield make_client(database, clock, require_api_key=True)
        app.dependency_overrides.clear()

    def test_mutation_requires_key(self, secured_client):
        response = secured_client.post("/api/v1/patients", json=PATIENT)
        assert response.status_code == 401

    def test_reads_do_not_require_key(self, secured_client):
        assert secured_client.get("/api/v1/patients").status_code == 200

    def test_valid_key(self, secured_client, database):
        manager = get_api_key_manager(database)
        api_key = manager.generate_api_key("front-desk")

        response = secured_client.post("/api/v1/patients", json=PATIENT, headers={"X-API-Key": api_key})
        assert response.status_code == 201

    def test_invalid_key(self, secured_client):
        response = secured_client.post("/api/v1/patients", json=PATIENT, headers={"X-API-Key": "ak_bogus"})
        assert response.status_code == 401
