"""Appointment lifecycle management.

Handles:
- Booking (field validation, availability check, insert)
- Status changes through the central transition table
- Notes / follow-up text
- Rescheduling and general edits
- Deletion (no guard; the patient side guards its own deletion)

Booking writes run inside one transaction that first locks the target
date, so the availability check and the insert cannot interleave with
another booking on the same day.
"""
from datetime import date, time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from agenda.availability import AvailabilityChecker, RejectionReason, ScheduleCheck, TimeOfDay
from agenda.clock import Clock, resolve_clock
from agenda.config import MAX_APPOINTMENT_DURATION, MIN_APPOINTMENT_DURATION
from agenda.database import Database
from agenda.dateutils import parse_date, parse_time, validate_date_range
from agenda.errors import (
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from agenda.logging_config import get_logger
from agenda.models import Appointment, AppointmentDetail
from agenda.repositories import AppointmentRepository, ConfigurationRepository, PatientRepository
from agenda.state import AppointmentStatus, is_terminal, validate_transition
from agenda.validators import describe_pydantic_errors

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset({
    "patient_id", "date", "time", "duration", "consultation_type",
    "price", "notes", "follow_up",
})
SLOT_FIELDS = ("date", "time", "duration")


def validate_appointment_fields(appointment: Appointment) -> List[str]:
    """
    Business limits not expressed by the model itself.

    Returns:
        List of human-readable errors (empty when valid)
    """
    errors = []
    if not MIN_APPOINTMENT_DURATION <= appointment.duration <= MAX_APPOINTMENT_DURATION:
        errors.append(
            f"Duration must be between {MIN_APPOINTMENT_DURATION} "
            f"and {MAX_APPOINTMENT_DURATION} minutes"
        )
    if appointment.price < 0:
        errors.append("Price must be a non-negative number")
    return errors


def raise_for_check(check: ScheduleCheck) -> None:
    """Turn a rejected ScheduleCheck into the matching exception."""
    if check.ok:
        return
    if check.reason == RejectionReason.CONFLICT:
        raise SlotConflictError(check.conflicting_ids)
    raise ValidationError([check.message], reason=check.reason.value)


class AppointmentService:
    """Creates, edits and moves appointments through their lifecycle."""

    def __init__(
        self,
        database: Database,
        clock: Optional[Clock] = None,
        checker: Optional[AvailabilityChecker] = None
    ):
        self.database = database
        self.clock = resolve_clock(clock)
        self.checker = checker or AvailabilityChecker(self.clock)
        self.repo = AppointmentRepository()
        self.patients = PatientRepository()
        self.configuration = ConfigurationRepository()

    # --- Queries ---------------------------------------------------------

    def get(self, appointment_id: int) -> Appointment:
        """
        Raises:
            NotFoundError: If the appointment does not exist
        """
        with self.database.transaction() as db:
            return self._get(db, appointment_id)

    def list_all(self) -> List[Appointment]:
        with self.database.transaction() as db:
            return self.repo.list(db)

    def list_for_date(self, day: date) -> List[Appointment]:
        with self.database.transaction() as db:
            return self.repo.list_for_date(db, parse_date(day))

    def list_between(self, start: date, end: date) -> List[Appointment]:
        """
        Raises:
            ValidationError: If the range is reversed or longer than 12 months
        """
        start, end = parse_date(start), parse_date(end)
        errors = validate_date_range(start, end)
        if errors:
            raise ValidationError(errors)
        with self.database.transaction() as db:
            return self.repo.list_between(db, start, end)

    def list_for_patient(self, patient_id: int) -> List[Appointment]:
        with self.database.transaction() as db:
            return self.repo.list_for_patient(db, patient_id)

    def today(self) -> List[Appointment]:
        return self.list_for_date(self.clock.today())

    def details(self, start: Optional[date] = None, end: Optional[date] = None) -> List[AppointmentDetail]:
        with self.database.transaction() as db:
            return self.repo.details(db, start, end)

    def check_availability(
        self,
        day: date,
        start: time,
        duration: Optional[int] = None,
        exclude_id: Optional[int] = None
    ) -> ScheduleCheck:
        """
        Read-only slot check against the stored configuration and bookings.

        ``duration`` defaults to the configured appointment length.
        """
        day, start = parse_date(day), parse_time(start)
        with self.database.transaction() as db:
            config = self.configuration.get_or_none(db)
            existing = self.repo.list_for_date(db, day)

        if duration is None and config is not None:
            duration = config.default_duration
        return self.checker.can_schedule(config, day, start, duration, existing, exclude_id=exclude_id)

    def available_slots(
        self,
        day: date,
        duration: Optional[int] = None,
        preference: TimeOfDay = TimeOfDay.ANY
    ) -> List[time]:
        day = parse_date(day)
        with self.database.transaction() as db:
            config = self.configuration.get_or_none(db)
            existing = self.repo.list_for_date(db, day)
        return self.checker.available_slots(config, day, existing, duration, preference)

    # --- Commands --------------------------------------------------------

    def create(self, appointment: Appointment) -> Appointment:
        """
        Book a new appointment.

        Initial status is whatever the caller set (``scheduled`` by default).

        Returns:
            Stored appointment with generated id and creation timestamp

        Raises:
            ValidationError: Bad fields, unknown patient, past date,
                non-working day or out-of-hours start (``reason`` set for slot errors)
            SlotConflictError: If the interval overlaps another appointment
        """
        errors = validate_appointment_fields(appointment)
        if errors:
            logger.warning("appointment_rejected", errors=errors)
            raise ValidationError(errors)

        with self.database.transaction() as db:
            if self.patients.get(db, appointment.patient_id) is None:
                raise ValidationError(["Patient does not exist"])

            self._check_slot(db, appointment.date, appointment.time, appointment.duration)
            stored = self.repo.add(db, appointment.model_copy(update={"id": None, "created_at": None}))

        logger.info(
            "appointment_created",
            appointment_id=stored.id,
            patient_id=stored.patient_id,
            date=stored.date.isoformat(),
            time=stored.time.strftime("%H:%M"),
            duration=stored.duration,
        )
        return stored

    def change_status(self, appointment_id: int, new_status: AppointmentStatus) -> Appointment:
        """
        Move an appointment to ``new_status``. The slot is not re-checked.

        Raises:
            NotFoundError: If the appointment does not exist
            InvalidTransitionError: If the change is not in the transition table
        """
        try:
            new_status = AppointmentStatus(new_status)
        except ValueError as e:
            raise ValidationError([f"Unknown status: {new_status}"]) from e

        with self.database.transaction() as db:
            current = self._get(db, appointment_id)
            if not validate_transition(current.status, new_status):
                logger.warning(
                    "invalid_status_transition",
                    appointment_id=appointment_id,
                    current=current.status.value,
                    requested=new_status.value,
                )
                raise InvalidTransitionError(current.status, new_status)

            updated = self.repo.update(db, current.model_copy(update={"status": new_status}))

        logger.info(
            "appointment_status_changed",
            appointment_id=appointment_id,
            previous=current.status.value,
            status=new_status.value,
        )
        return updated

    def attach_notes(self, appointment_id: int, notes: str, follow_up: str) -> Appointment:
        """Replace notes and follow-up text. Status is untouched."""
        if notes is None or follow_up is None:
            raise ValidationError(["Notes and follow-up must not be null"])

        with self.database.transaction() as db:
            current = self._get(db, appointment_id)
            updated = self.repo.update(
                db,
                current.model_copy(update={"notes": notes.strip(), "follow_up": follow_up.strip()}),
            )

        logger.info("appointment_notes_updated", appointment_id=appointment_id)
        return updated

    def reschedule(self, appointment_id: int, new_date: date, new_time: time) -> Appointment:
        """
        Move an appointment to another date/time.

        Availability is only re-checked when the date or time actually
        differs from the stored one.

        Raises:
            NotFoundError: If the appointment does not exist
            ValidationError: If the appointment is closed or the new slot is not bookable
            SlotConflictError: If the new interval overlaps another appointment
        """
        new_date, new_time = parse_date(new_date), parse_time(new_time)

        with self.database.transaction() as db:
            current = self._get(db, appointment_id)
            if current.date == new_date and current.time == new_time:
                return current

            self._ensure_movable(current)
            self._check_slot(db, new_date, new_time, current.duration, exclude_id=appointment_id)
            updated = self.repo.update(db, current.model_copy(update={"date": new_date, "time": new_time}))

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment_id,
            date=new_date.isoformat(),
            time=new_time.strftime("%H:%M"),
        )
        return updated

    def update(self, appointment_id: int, changes: Dict[str, Any]) -> Appointment:
        """
        Edit an appointment's fields (status excluded, see ``change_status``).

        The slot is re-checked only when date, time or duration change.

        Raises:
            NotFoundError: If the appointment does not exist
            ValidationError: If a field is invalid or the new slot is not bookable
            SlotConflictError: If the new interval overlaps another appointment
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError([f"Field cannot be edited: {name}" for name in sorted(unknown)])

        with self.database.transaction() as db:
            current = self._get(db, appointment_id)
            values = current.model_dump()
            values.update(changes)
            try:
                candidate = Appointment.model_validate(values)
            except PydanticValidationError as e:
                raise ValidationError(describe_pydantic_errors(e)) from e

            errors = validate_appointment_fields(candidate)
            if errors:
                raise ValidationError(errors)

            if candidate.patient_id != current.patient_id and self.patients.get(db, candidate.patient_id) is None:
                raise ValidationError(["Patient does not exist"])

            moved = any(getattr(candidate, name) != getattr(current, name) for name in SLOT_FIELDS)
            if moved:
                self._ensure_movable(current)
                self._check_slot(db, candidate.date, candidate.time, candidate.duration, exclude_id=appointment_id)

            updated = self.repo.update(db, candidate)

        logger.info("appointment_updated", appointment_id=appointment_id, fields=sorted(changes), slot_changed=moved)
        return updated

    def delete(self, appointment_id: int) -> bool:
        """Remove an appointment. Returns False when it did not exist."""
        with self.database.transaction() as db:
            deleted = self.repo.delete(db, appointment_id)

        if deleted:
            logger.info("appointment_deleted", appointment_id=appointment_id)
        return deleted

    # --- Helpers ---------------------------------------------------------

    def _get(self, db: Session, appointment_id: int) -> Appointment:
        appointment = self.repo.get(db, appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def _ensure_movable(self, appointment: Appointment) -> None:
        if is_terminal(appointment.status):
            raise ValidationError(
                [f"A {appointment.status.value} appointment cannot be moved"]
            )

    def _check_slot(
        self,
        db: Session,
        day: date,
        start: time,
        duration: int,
        exclude_id: Optional[int] = None
    ) -> None:
        """Lock ``day``, then run the availability check against its bookings."""
        self.repo.lock_day(db, day)
        config = self.configuration.get_or_none(db)
        existing = self.repo.list_for_date(db, day)

        check = self.checker.can_schedule(config, day, start, duration, existing, exclude_id=exclude_id)
        if not check.ok:
            logger.warning(
                "slot_rejected",
                date=day.isoformat(),
                time=start.strftime("%H:%M"),
                duration=duration,
                reason=check.reason.value,
                conflicting_ids=list(check.conflicting_ids),
            )
        raise_for_check(check)
