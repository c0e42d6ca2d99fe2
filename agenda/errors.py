"""Exceptions raised by the scheduling services.

Every precondition failure is raised before any write reaches the store.
"""
from typing import List, Optional, Sequence


class AgendaError(Exception):
    """Base class for all application errors."""
    pass


class ValidationError(AgendaError):
    """Raised when input data or a requested slot is not acceptable."""

    def __init__(self, errors: Sequence[str], reason: Optional[str] = None):
        self.errors: List[str] = list(errors)
        self.reason = reason
        super().__init__("; ".join(self.errors) or "Validation failed")


class SlotConflictError(AgendaError):
    """Raised when a slot overlaps an existing non-cancelled appointment."""

    def __init__(self, conflicting_ids: Sequence[int]):
        self.conflicting_ids = list(conflicting_ids)
        self.reason = "conflict"
        super().__init__("An appointment already exists in that time slot")


class PatientHasAppointmentsError(AgendaError):
    """Raised when deleting a patient that appointments still reference."""

    def __init__(self, patient_id: int, appointment_count: int):
        self.patient_id = patient_id
        self.appointment_count = appointment_count
        super().__init__(
            f"Patient {patient_id} has {appointment_count} appointment(s). "
            "Cancel or delete them first."
        )


class InvalidTransitionError(AgendaError):
    """Raised when a status change is not in the transition table."""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change appointment status from "
            f"'{current.value}' to '{requested.value}'"
        )


class NotFoundError(AgendaError):
    """Raised when a record does not exist."""
    pass


class ConfigurationMissingError(AgendaError):
    """Raised when the clinic has not completed its initial setup."""

    def __init__(self):
        super().__init__("Clinic configuration does not exist; run the initial setup")


class StoreError(AgendaError):
    """Raised when the backing store fails. Not retried."""
    pass
