"""Slot availability and conflict detection.

A proposed slot is accepted only when, in this order:
1. its duration is a positive number of minutes
2. its date is today or later
3. its date is a working day (weekday configured, not a holiday)
4. its start time is within working hours (the end is not checked)
5. ``[start, start + duration)`` overlaps no non-cancelled appointment
   on the same date

Intervals are half-open: an appointment ending at 09:30 and one starting
at 09:30 do not conflict.
"""
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from agenda.clock import Clock, resolve_clock
from agenda.dateutils import parse_date, parse_time, time_to_minutes
from agenda.models import Appointment, ClinicConfiguration
from agenda.state import occupies_slot


class RejectionReason(str, Enum):
    """Why a slot cannot be booked."""
    INVALID_DURATION = "invalid duration"
    PAST_DATE = "past date"
    NON_WORKING_DAY = "non-working day"
    OUTSIDE_WORKING_HOURS = "outside working hours"
    CONFLICT = "conflict"


REASON_MESSAGES = {
    RejectionReason.INVALID_DURATION: "Duration must be a positive number of minutes",
    RejectionReason.PAST_DATE: "Appointments cannot be booked on past dates",
    RejectionReason.NON_WORKING_DAY: "The selected date is not a working day",
    RejectionReason.OUTSIDE_WORKING_HOURS: "The selected time is outside working hours",
    RejectionReason.CONFLICT: "An appointment already exists in that time slot",
}


class TimeOfDay(str, Enum):
    """Time of day preferences."""
    MORNING = "morning"  # Before 12:00
    AFTERNOON = "afternoon"  # 12:00 and after
    ANY = "any"


MORNING_CUTOFF = time(12, 0)


@dataclass(frozen=True)
class ScheduleCheck:
    """Outcome of ``can_schedule``."""
    ok: bool
    reason: Optional[RejectionReason] = None
    conflicting_ids: Tuple[int, ...] = ()

    @property
    def message(self) -> str:
        return REASON_MESSAGES[self.reason] if self.reason else ""

    @classmethod
    def accept(cls) -> "ScheduleCheck":
        return cls(ok=True)

    @classmethod
    def reject(cls, reason: RejectionReason, conflicting_ids: Iterable[int] = ()) -> "ScheduleCheck":
        return cls(ok=False, reason=reason, conflicting_ids=tuple(conflicting_ids))


def find_conflicts(
    day: date,
    start: time,
    duration: int,
    existing: Iterable[Appointment],
    exclude_id: Optional[int] = None
) -> List[Appointment]:
    """
    Appointments on ``day`` whose interval overlaps the candidate.

    Cancelled appointments and ``exclude_id`` (the appointment being
    edited) are ignored.
    """
    candidate_start = time_to_minutes(start)
    candidate_end = candidate_start + duration

    return [
        other for other in existing
        if other.date == day
        and occupies_slot(other.status)
        and (exclude_id is None or other.id != exclude_id)
        and other.overlaps(candidate_start, candidate_end)
    ]


def filter_by_time_of_day(slots: List[time], preference: TimeOfDay) -> List[time]:
    """
    Filter slot start times by time of day preference.

    Args:
        slots: Available start times
        preference: Morning, afternoon, or any

    Returns:
        Filtered start times
    """
    if preference == TimeOfDay.ANY:
        return slots
    if preference == TimeOfDay.MORNING:
        return [slot for slot in slots if slot < MORNING_CUTOFF]
    return [slot for slot in slots if slot >= MORNING_CUTOFF]


class AvailabilityChecker:
    """Decides whether a slot can host an appointment."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = resolve_clock(clock)

    def can_schedule(
        self,
        config: Optional[ClinicConfiguration],
        day: date,
        start: time,
        duration: Optional[int],
        existing: Iterable[Appointment],
        exclude_id: Optional[int] = None
    ) -> ScheduleCheck:
        """
        Check a proposed slot against the calendar and existing bookings.

        Args:
            config: Clinic configuration (None means nothing is bookable)
            day: Proposed date
            start: Proposed start time
            duration: Length in minutes
            existing: Appointments to check against (any dates)
            exclude_id: Appointment being edited, ignored for conflicts

        Returns:
            ScheduleCheck with ``ok`` and, when rejected, the reason
        """
        if duration is None or isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            return ScheduleCheck.reject(RejectionReason.INVALID_DURATION)

        day = parse_date(day)
        start = parse_time(start)

        if day < self.clock.today():
            return ScheduleCheck.reject(RejectionReason.PAST_DATE)

        if config is None or not config.is_working_day(day):
            return ScheduleCheck.reject(RejectionReason.NON_WORKING_DAY)

        if not config.is_working_hour(start):
            return ScheduleCheck.reject(RejectionReason.OUTSIDE_WORKING_HOURS)

        conflicts = find_conflicts(day, start, duration, existing, exclude_id)
        if conflicts:
            return ScheduleCheck.reject(RejectionReason.CONFLICT, [c.id for c in conflicts])

        return ScheduleCheck.accept()

    def available_slots(
        self,
        config: Optional[ClinicConfiguration],
        day: date,
        existing: Iterable[Appointment],
        duration: Optional[int] = None,
        preference: TimeOfDay = TimeOfDay.ANY
    ) -> List[time]:
        """
        Start times on ``day`` that could be booked right now.

        Candidates come from the configuration's slot grid; start times
        already gone by today are skipped.
        """
        if config is None:
            return []

        day = parse_date(day)
        duration = duration or config.default_duration
        existing = list(existing)
        now = self.clock.now()

        slots = []
        for slot in config.time_slots(duration):
            if day == now.date() and slot < now.time().replace(second=0, microsecond=0):
                continue
            if self.can_schedule(config, day, slot, duration, existing).ok:
                slots.append(slot)

        return filter_by_time_of_day(slots, preference)
