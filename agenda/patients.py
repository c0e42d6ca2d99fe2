"""Patient records service."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from agenda.clock import Clock, resolve_clock
from agenda.database import Database
from agenda.dateutils import calculate_age
from agenda.errors import NotFoundError, PatientHasAppointmentsError, ValidationError
from agenda.logging_config import get_logger
from agenda.models import Appointment, Patient
from agenda.repositories import AppointmentRepository, PatientRepository
from agenda.state import AppointmentStatus
from agenda.validators import (
    describe_pydantic_errors,
    is_valid_email,
    is_valid_national_id,
    is_valid_phone,
    normalize_national_id,
)

logger = get_logger(__name__)

MAX_AGE_YEARS = 120

EDITABLE_FIELDS = frozenset({
    "first_name", "last_name", "national_id", "phone", "email", "birth_date",
    "address", "insurance_plan", "member_number", "clinical_notes",
})


@dataclass(frozen=True)
class PatientHistory:
    """A patient's appointments (newest first) with summary counts."""
    patient: Patient
    appointments: List[Appointment]
    total: int
    completed: int
    cancelled: int
    no_show: int
    total_billed: float
    past: int
    upcoming: int


class PatientService:
    """Creates, edits, searches and deletes patients."""

    def __init__(self, database: Database, clock: Optional[Clock] = None):
        self.database = database
        self.clock = resolve_clock(clock)
        self.repo = PatientRepository()
        self.appointments = AppointmentRepository()

    def validate(self, patient: Patient, exclude_id: Optional[int] = None) -> List[str]:
        """
        Check required fields, formats and uniqueness.

        Args:
            patient: Candidate patient
            exclude_id: Patient being updated (ignored by uniqueness checks)

        Returns:
            List of human-readable errors (empty when valid)
        """
        errors = []

        if not patient.first_name.strip():
            errors.append("First name is required")
        if not patient.last_name.strip():
            errors.append("Last name is required")

        with self.database.transaction() as db:
            if not patient.national_id.strip():
                errors.append("National ID is required")
            elif not is_valid_national_id(patient.national_id):
                errors.append("National ID must have 7 or 8 digits")
            elif self.repo.exists_by_national_id(db, patient.national_id, exclude_id):
                errors.append("A patient with this national ID already exists")

            if not patient.email.strip():
                errors.append("Email is required")
            elif not is_valid_email(patient.email):
                errors.append("Email format is not valid")
            elif self.repo.exists_by_email(db, patient.email, exclude_id):
                errors.append("A patient with this email already exists")

        if not patient.phone.strip():
            errors.append("Phone is required")
        elif not is_valid_phone(patient.phone):
            errors.append("Phone format is not valid")

        today = self.clock.today()
        if patient.birth_date > today:
            errors.append("Birth date cannot be in the future")
        elif calculate_age(patient.birth_date, today) > MAX_AGE_YEARS:
            errors.append(f"Age cannot be greater than {MAX_AGE_YEARS} years")

        return errors

    def create(self, patient: Patient) -> Patient:
        """
        Raises:
            ValidationError: If any field is missing, malformed or not unique
        """
        patient = self._normalized(patient)
        errors = self.validate(patient)
        if errors:
            logger.warning("patient_rejected", errors=errors)
            raise ValidationError(errors)

        with self.database.transaction() as db:
            stored = self.repo.add(db, patient.model_copy(update={"id": None, "created_at": None}))

        logger.info("patient_created", patient_id=stored.id)
        return stored

    def update(self, patient_id: int, changes: Dict[str, Any]) -> Patient:
        """
        Apply a partial update; fields not in ``changes`` stay as they are.

        Raises:
            NotFoundError: If the patient does not exist
            ValidationError: If the updated record is invalid
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError([f"Field cannot be edited: {name}" for name in sorted(unknown)])

        current = self.get(patient_id)
        values = current.model_dump()
        values.update(changes)
        try:
            candidate = self._normalized(Patient.model_validate(values))
        except PydanticValidationError as e:
            raise ValidationError(describe_pydantic_errors(e)) from e

        errors = self.validate(candidate, exclude_id=patient_id)
        if errors:
            raise ValidationError(errors)

        with self.database.transaction() as db:
            stored = self.repo.update(db, candidate)

        logger.info("patient_updated", patient_id=patient_id, fields=sorted(changes))
        return stored

    def get(self, patient_id: int) -> Patient:
        """
        Raises:
            NotFoundError: If the patient does not exist
        """
        with self.database.transaction() as db:
            patient = self.repo.get(db, patient_id)
        if patient is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        return patient

    def list(self) -> List[Patient]:
        with self.database.transaction() as db:
            return self.repo.list(db)

    def search(self, term: str) -> List[Patient]:
        if not term or not term.strip():
            return self.list()
        with self.database.transaction() as db:
            return self.repo.search(db, term)

    def count(self) -> int:
        with self.database.transaction() as db:
            return self.repo.count(db)

    def delete(self, patient_id: int) -> None:
        """
        Delete a patient that no appointment references.

        Raises:
            NotFoundError: If the patient does not exist
            PatientHasAppointmentsError: If appointments still reference the patient
        """
        with self.database.transaction() as db:
            if self.repo.get(db, patient_id) is None:
                raise NotFoundError(f"Patient {patient_id} not found")

            count = self.appointments.count_for_patient(db, patient_id)
            if count:
                logger.warning("patient_delete_blocked", patient_id=patient_id, appointment_count=count)
                raise PatientHasAppointmentsError(patient_id, count)

            self.repo.delete(db, patient_id)

        logger.info("patient_deleted", patient_id=patient_id)

    def _normalized(self, patient: Patient) -> Patient:
        """Store national IDs as digits only when they are otherwise valid."""
        if is_valid_national_id(patient.national_id):
            return patient.model_copy(update={"national_id": normalize_national_id(patient.national_id)})
        return patient

    def has_upcoming_appointments(self, patient_id: int) -> bool:
        today = self.clock.today()
        with self.database.transaction() as db:
            return any(a.date >= today for a in self.appointments.list_for_patient(db, patient_id))

    def history(self, patient_id: int) -> PatientHistory:
        patient = self.get(patient_id)
        with self.database.transaction() as db:
            appointments = self.appointments.list_for_patient(db, patient_id)

        today = self.clock.today()
        completed = [a for a in appointments if a.status == AppointmentStatus.COMPLETED]
        return PatientHistory(
            patient=patient,
            appointments=appointments,
            total=len(appointments),
            completed=len(completed),
            cancelled=sum(1 for a in appointments if a.status == AppointmentStatus.CANCELLED),
            no_show=sum(1 for a in appointments if a.status == AppointmentStatus.NO_SHOW),
            total_billed=sum(a.price for a in completed),
            past=sum(1 for a in appointments if a.date < today),
            upcoming=sum(1 for a in appointments if a.date >= today),
        )
