"""Shared test fixtures."""
from datetime import date

import pytest

from agenda.appointments import AppointmentService
from agenda.clock import FixedClock
from agenda.configuration import ConfigurationService, default_configuration
from agenda.database import Database
from agenda.models import Appointment, Patient
from agenda.patients import PatientService
from agenda.state import AppointmentStatus, ConsultationType
from agenda.statistics import StatisticsService

# Friday 2024-01-05; the following Saturday/Monday are the reference days.
TODAY = date(2024, 1, 5)
SATURDAY = date(2024, 1, 6)
MONDAY = date(2024, 1, 8)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock.on(TODAY, hour=8)


@pytest.fixture
def database():
    """Fresh in-memory database with all tables."""
    db = Database("sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def configuration_service(database, clock) -> ConfigurationService:
    return ConfigurationService(database, clock=clock)


@pytest.fixture
def patient_service(database, clock) -> PatientService:
    return PatientService(database, clock=clock)


@pytest.fixture
def appointment_service(database, clock) -> AppointmentService:
    return AppointmentService(database, clock=clock)


@pytest.fixture
def statistics_service(database, clock) -> StatisticsService:
    return StatisticsService(database, clock=clock)


def build_configuration(**overrides):
    """Monday-Friday, 08:00-18:00, 30 minute appointments."""
    values = dict(
        first_name="Ana",
        last_name="Pérez",
        specialty="Cardiology",
        phone="011 5555-0000",
        email="ana@example.com",
        license_number="MN-12345",
        consultation_price=15000.0,
    )
    values.update(overrides)
    return default_configuration(**values)


def build_patient(**overrides) -> Patient:
    values = dict(
        first_name="Juan",
        last_name="Gómez",
        national_id="30123456",
        phone="011 4444-1111",
        email="juan@example.com",
        birth_date=date(1985, 3, 2),
    )
    values.update(overrides)
    return Patient(**values)


def build_appointment(patient_id: int, day: date = MONDAY, start: str = "09:00", **overrides) -> Appointment:
    values = dict(
        patient_id=patient_id,
        date=day,
        time=start,
        duration=30,
        consultation_type=ConsultationType.FIRST_VISIT,
        status=AppointmentStatus.SCHEDULED,
        price=15000.0,
    )
    values.update(overrides)
    return Appointment(**values)


@pytest.fixture
def configured(configuration_service):
    """Saved clinic configuration."""
    return configuration_service.save(build_configuration())


@pytest.fixture
def patient(patient_service) -> Patient:
    return patient_service.create(build_patient())


@pytest.fixture
def other_patient(patient_service) -> Patient:
    return patient_service.create(build_patient(
        first_name="María",
        last_name="López",
        national_id="28999111",
        email="maria@example.com",
    ))


@pytest.fixture
def make_configuration():
    return build_configuration


@pytest.fixture
def make_patient():
    return build_patient


@pytest.fixture
def make_appointment():
    return build_appointment
