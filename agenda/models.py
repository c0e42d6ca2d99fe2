"""Domain models for patients, appointments and clinic configuration.

Best Practices:
- Attributes are snake_case in Python, camelCase on the wire (aliases)
- Models are frozen; updates go through ``model_copy(update=...)``
- Dates and times are parsed field by field (no timezone shifting)
"""
import datetime as dt
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from agenda.dateutils import (
    Weekday,
    format_time,
    parse_date,
    parse_time,
    time_slots,
    time_to_minutes,
    weekday_of,
)
from agenda.state import AppointmentStatus, ConsultationType


class AgendaModel(BaseModel):
    """Base model: camelCase aliases, immutable instances."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Patient(AgendaModel):
    """A patient of the practice."""
    id: Optional[int] = None
    first_name: str
    last_name: str
    national_id: str
    phone: str
    email: str
    birth_date: dt.date
    address: str = ""
    insurance_plan: str = ""
    member_number: str = ""
    clinical_notes: str = ""
    created_at: Optional[dt.datetime] = None

    @field_validator("birth_date", mode="before")
    @classmethod
    def _parse_birth_date(cls, v):
        return parse_date(v)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Appointment(AgendaModel):
    """A booked consultation occupying ``[time, time + duration)`` on ``date``."""
    id: Optional[int] = None
    patient_id: int
    date: dt.date
    time: dt.time
    duration: int = Field(30, gt=0, description="Duration in minutes")
    consultation_type: ConsultationType
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str = ""
    follow_up: str = ""
    price: float = Field(0.0, ge=0)
    created_at: Optional[dt.datetime] = None

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, v):
        return parse_date(v)

    @field_validator("time", mode="before")
    @classmethod
    def _parse_time(cls, v):
        return parse_time(v)

    @field_serializer("time")
    def _serialize_time(self, value: dt.time) -> str:
        return format_time(value)

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration

    def overlaps(self, start_minutes: int, end_minutes: int) -> bool:
        """Half-open overlap test: touching endpoints do not overlap."""
        return start_minutes < self.end_minutes and end_minutes > self.start_minutes


class ClinicConfiguration(AgendaModel):
    """Practitioner details and working calendar. At most one exists."""
    id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    specialty: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    license_number: str = ""
    working_days: FrozenSet[Weekday] = frozenset()
    opening_time: dt.time
    closing_time: dt.time
    default_duration: int = Field(30, gt=0)
    consultation_price: float = Field(0.0, ge=0)
    non_working_dates: FrozenSet[dt.date] = frozenset()
    created_at: Optional[dt.datetime] = None

    @field_validator("opening_time", "closing_time", mode="before")
    @classmethod
    def _parse_times(cls, v):
        return parse_time(v)

    @field_validator("non_working_dates", mode="before")
    @classmethod
    def _parse_dates(cls, v):
        return frozenset(parse_date(d) for d in v)

    @model_validator(mode="after")
    def _check_hours(self):
        if self.opening_time >= self.closing_time:
            raise ValueError("Opening time must be before closing time")
        return self

    @field_serializer("opening_time", "closing_time")
    def _serialize_times(self, value: dt.time) -> str:
        return format_time(value)

    @field_serializer("working_days")
    def _serialize_days(self, value: FrozenSet[Weekday]) -> List[int]:
        return sorted(int(d) for d in value)

    @field_serializer("non_working_dates")
    def _serialize_dates(self, value: FrozenSet[dt.date]) -> List[str]:
        return [d.isoformat() for d in sorted(value)]

    def is_working_day(self, day: dt.date) -> bool:
        """Weekday is configured as working and the date is not a holiday."""
        return weekday_of(day) in self.working_days and day not in self.non_working_dates

    def is_working_hour(self, value: dt.time) -> bool:
        """``opening <= value < closing`` on wall-clock time only."""
        clock = value.replace(second=0, microsecond=0, tzinfo=None)
        return self.opening_time <= clock < self.closing_time

    def time_slots(self, duration: Optional[int] = None) -> List[dt.time]:
        """Bookable start times on a working day."""
        return time_slots(self.opening_time, self.closing_time, duration or self.default_duration)


class AppointmentDetail(AgendaModel):
    """Appointment joined with the identifying fields of its patient."""
    appointment: Appointment
    patient_name: str
    patient_national_id: str
    patient_phone: str = ""


class DailyStatistics(AgendaModel):
    """Per-date appointment counts by status and completed revenue."""
    date: dt.date
    total: int
    counts: Dict[AppointmentStatus, int]
    revenue: float
