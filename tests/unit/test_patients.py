"""Unit tests for the patient service."""
from datetime import date

import pytest

from agenda.errors import NotFoundError, PatientHasAppointmentsError, ValidationError
from agenda.state import AppointmentStatus

MONDAY = date(2024, 1, 8)


class TestCreate:
    def test_create_assigns_id(self, patient):
        assert patient.id is not None
        assert patient.full_name == "Juan Gómez"

    def test_national_id_is_stored_as_digits(self, patient_service, make_patient):
        stored = patient_service.create(make_patient(national_id="30.123.457", email="other@example.com"))
        assert stored.national_id == "30123457"

    def test_duplicate_national_id(self, patient_service, patient, make_patient):
        with pytest.raises(ValidationError) as exc_info:
            patient_service.create(make_patient(national_id="30.123.456", email="new@example.com"))
        assert "A patient with this national ID already exists" in exc_info.value.errors

    def test_duplicate_email_ignores_case(self, patient_service, patient, make_patient):
        with pytest.raises(ValidationError) as exc_info:
            patient_service.create(make_patient(national_id="1234567", email="JUAN@example.com"))
        assert "A patient with this email already exists" in exc_info.value.errors

    def test_collects_every_error(self, patient_service, make_patient):
        with pytest.raises(ValidationError) as exc_info:
            patient_service.create(make_patient(
                first_name="",
                national_id="123",
                phone="call me",
                email="not-an-email",
                birth_date=date(2030, 1, 1),
            ))

        errors = exc_info.value.errors
        assert "First name is required" in errors
        assert "National ID must have 7 or 8 digits" in errors
        assert "Phone format is not valid" in errors
        assert "Email format is not valid" in errors
        assert "Birth date cannot be in the future" in errors
        assert patient_service.count() == 0

    def test_age_limit(self, patient_service, make_patient):
        with pytest.raises(ValidationError) as exc_info:
            patient_service.create(make_patient(birth_date=date(1900, 1, 1)))
        assert "Age cannot be greater than 120 years" in exc_info.value.errors


class TestUpdate:
    def test_partial_update(self, patient_service, patient):
        updated = patient_service.update(patient.id, {"phone": "011 4444-2222", "insurance_plan": "OSDE 210"})

        assert updated.phone == "011 4444-2222"
        assert updated.insurance_plan == "OSDE 210"
        assert updated.email == patient.email

    def test_keeping_own_email_is_allowed(self, patient_service, patient):
        assert patient_service.update(patient.id, {"email": patient.email}).email == patient.email

    def test_email_of_other_patient_is_rejected(self, patient_service, patient, other_patient):
        with pytest.raises(ValidationError):
            patient_service.update(other_patient.id, {"email": patient.email})

    def test_unknown_field(self, patient_service, patient):
        with pytest.raises(ValidationError):
            patient_service.update(patient.id, {"id": 99})

    def test_missing_patient(self, patient_service):
        with pytest.raises(NotFoundError):
            patient_service.update(1234, {"phone": "011 4444-2222"})


class TestSearch:
    def test_matches_name_fragment_case_insensitively(self, patient_service, patient, other_patient):
        assert [p.id for p in patient_service.search("góm")] == [patient.id]
        assert [p.id for p in patient_service.search("maría")] == [other_patient.id]

    def test_matches_national_id(self, patient_service, patient, other_patient):
        assert [p.id for p in patient_service.search("28999")] == [other_patient.id]

    def test_blank_term_lists_everyone(self, patient_service, patient, other_patient):
        assert len(patient_service.search("  ")) == 2


class TestDelete:
    def test_blocked_while_appointments_exist(
        self, patient_service, appointment_service, configured, patient, make_appointment
    ):
        booked = appointment_service.create(make_appointment(patient.id, MONDAY, "09:00"))

        with pytest.raises(PatientHasAppointmentsError) as exc_info:
            patient_service.delete(patient.id)
        assert exc_info.value.appointment_count == 1
        assert patient_service.get(patient.id) is not None

        appointment_service.delete(booked.id)
        patient_service.delete(patient.id)

        with pytest.raises(NotFoundError):
            patient_service.get(patient.id)

    def test_cancelled_appointments_still_block(
        self, patient_service, appointment_service, configured, patient, make_appointment
    ):
        booked = appointment_service.create(make_appointment(patient.id, MONDAY, "09:00"))
        appointment_service.change_status(booked.id, AppointmentStatus.CANCELLED)

        with pytest.raises(PatientHasAppointmentsError):
            patient_service.delete(patient.id)

    def test_missing_patient(self, patient_service):
        with pytest.raises(NotFoundError):
            patient_service.delete(77)


class TestHistory:
    def test_history_summary(self, patient_service, appointment_service, configured, patient, make_appointment):
        first = appointment_service.create(make_appointment(patient.id, MONDAY, "09:00", price=10000))
        second = appointment_service.create(make_appointment(patient.id, date(2024, 1, 9), "09:00"))
        appointment_service.change_status(first.id, AppointmentStatus.CONFIRMED)
        appointment_service.change_status(first.id, AppointmentStatus.COMPLETED)
        appointment_service.change_status(second.id, AppointmentStatus.CANCELLED)

        history = patient_service.history(patient.id)

        assert history.total == 2
        assert history.completed == 1
        assert history.cancelled == 1
        assert history.total_billed == 10000
        assert [a.id for a in history.appointments] == [second.id, first.id]
        assert history.upcoming == 2
        assert history.past == 0

    def test_has_upcoming_appointments(
        self, patient_service, appointment_service, configured, patient, make_appointment
    ):
        assert patient_service.has_upcoming_appointments(patient.id) is False
        appointment_service.create(make_appointment(patient.id, MONDAY, "09:00"))
        assert patient_service.has_upcoming_appointments(patient.id) is True
