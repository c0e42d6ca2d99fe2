"""Appointment status machine.

Status values and the transition table live here and nowhere else.
Callers ask ``validate_transition`` instead of comparing strings.
"""
from enum import Enum
from typing import Dict, FrozenSet


class AppointmentStatus(str, Enum):
    """Lifecycle status of an appointment."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class ConsultationType(str, Enum):
    """Kind of consultation booked."""
    FIRST_VISIT = "first_visit"
    FOLLOW_UP = "follow_up"
    CONTROL = "control"


# Pattern: current status -> allowed next statuses
VALID_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[AppointmentStatus] = frozenset(
    status for status, allowed in VALID_TRANSITIONS.items() if not allowed
)

# Statuses that still hold their slot on the calendar
ACTIVE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
})


def validate_transition(
    current: AppointmentStatus,
    intended: AppointmentStatus
) -> bool:
    """
    Check whether ``current -> intended`` is an allowed status change.

    Example:
        >>> validate_transition(
        ...     AppointmentStatus.SCHEDULED,
        ...     AppointmentStatus.CONFIRMED
        ... )
        True
    """
    return intended in VALID_TRANSITIONS.get(current, frozenset())


def is_terminal(status: AppointmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def occupies_slot(status: AppointmentStatus) -> bool:
    """Every status except cancelled blocks its time interval."""
    return status != AppointmentStatus.CANCELLED


def empty_status_counts() -> Dict[AppointmentStatus, int]:
    """Mapping with every status present and zero counts."""
    return {status: 0 for status in AppointmentStatus}
