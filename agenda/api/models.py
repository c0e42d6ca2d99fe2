"""Pydantic models for API request/response validation.

Request bodies and responses use camelCase keys, like the domain models.
"""
import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agenda.availability import ScheduleCheck
from agenda.models import AgendaModel, Appointment, Patient
from agenda.patients import PatientHistory
from agenda.state import AppointmentStatus, ConsultationType
from agenda.statistics import Dashboard, PatientFrequency, PeriodSummary


class ConfigurationRequest(AgendaModel):
    """Request schema for PUT /api/v1/configuration."""
    first_name: str
    last_name: str
    specialty: str
    phone: str
    email: str
    address: str = ""
    license_number: str
    working_days: List[int] = Field(..., description="0 = Sunday ... 6 = Saturday")
    opening_time: dt.time
    closing_time: dt.time
    default_duration: int = 30
    consultation_price: float = 0.0
    non_working_dates: List[dt.date] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "firstName": "Ana",
                "lastName": "Pérez",
                "specialty": "Cardiology",
                "phone": "+54 11 5555-0000",
                "email": "ana@example.com",
                "licenseNumber": "MN-12345",
                "workingDays": [1, 2, 3, 4, 5],
                "openingTime": "08:00",
                "closingTime": "18:00",
                "defaultDuration": 30,
                "consultationPrice": 15000,
            }
        }
    )


class WorkingHoursRequest(AgendaModel):
    working_days: List[int]
    opening_time: dt.time
    closing_time: dt.time
    default_duration: int


class PriceRequest(AgendaModel):
    consultation_price: float


class NonWorkingDatesRequest(AgendaModel):
    """Individual dates, or an inclusive ``start``..``end`` range."""
    dates: List[str] = Field(default_factory=list)
    start: Optional[dt.date] = None
    end: Optional[dt.date] = None


class PatientCreate(AgendaModel):
    """Request schema for POST /api/v1/patients."""
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


class PatientUpdate(AgendaModel):
    """Partial update; only keys present in the body are changed."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    national_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[dt.date] = None
    address: Optional[str] = None
    insurance_plan: Optional[str] = None
    member_number: Optional[str] = None
    clinical_notes: Optional[str] = None


class AppointmentCreate(AgendaModel):
    """
    Request schema for POST /api/v1/appointments.

    ``duration`` and ``price`` default to the clinic configuration.
    """
    patient_id: int
    date: dt.date
    time: dt.time
    duration: Optional[int] = None
    consultation_type: ConsultationType = ConsultationType.FIRST_VISIT
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    price: Optional[float] = None
    notes: str = ""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "patientId": 1,
                "date": "2024-01-08",
                "time": "09:00",
                "duration": 30,
                "consultationType": "first_visit",
            }
        }
    )


class AppointmentUpdate(AgendaModel):
    patient_id: Optional[int] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    duration: Optional[int] = None
    consultation_type: Optional[ConsultationType] = None
    price: Optional[float] = None
    notes: Optional[str] = None
    follow_up: Optional[str] = None


class StatusChangeRequest(AgendaModel):
    status: AppointmentStatus


class NotesRequest(AgendaModel):
    notes: str
    follow_up: str = ""


class RescheduleRequest(AgendaModel):
    date: dt.date
    time: dt.time


class ScheduleCheckResponse(AgendaModel):
    """Outcome of an availability check."""
    ok: bool
    reason: Optional[str] = None
    message: str = ""
    conflicting_ids: List[int] = Field(default_factory=list)

    @classmethod
    def from_check(cls, check: ScheduleCheck) -> "ScheduleCheckResponse":
        return cls(
            ok=check.ok,
            reason=check.reason.value if check.reason else None,
            message=check.message,
            conflicting_ids=list(check.conflicting_ids),
        )


class SlotsResponse(AgendaModel):
    date: Optional[dt.date] = None
    duration: Optional[int] = None
    slots: List[str]


class PatientHistoryResponse(AgendaModel):
    patient: Patient
    appointments: List[Appointment]
    total: int
    completed: int
    cancelled: int
    no_show: int
    total_billed: float
    past: int
    upcoming: int

    @classmethod
    def from_history(cls, history: PatientHistory) -> "PatientHistoryResponse":
        return cls(
            patient=history.patient,
            appointments=history.appointments,
            total=history.total,
            completed=history.completed,
            cancelled=history.cancelled,
            no_show=history.no_show,
            total_billed=history.total_billed,
            past=history.past,
            upcoming=history.upcoming,
        )


class DashboardResponse(AgendaModel):
    today_count: int
    total_patients: int
    upcoming: List[Appointment]
    monthly_revenue: float
    no_show_rate: float
    counts_by_status: Dict[AppointmentStatus, int]

    @classmethod
    def from_dashboard(cls, dashboard: Dashboard) -> "DashboardResponse":
        return cls(
            today_count=dashboard.today_count,
            total_patients=dashboard.total_patients,
            upcoming=dashboard.upcoming,
            monthly_revenue=dashboard.monthly_revenue,
            no_show_rate=dashboard.no_show_rate,
            counts_by_status=dashboard.counts_by_status,
        )


class PeriodSummaryResponse(AgendaModel):
    label: str
    count: int
    revenue: float

    @classmethod
    def from_summary(cls, summary: PeriodSummary) -> "PeriodSummaryResponse":
        return cls(label=summary.label, count=summary.count, revenue=summary.revenue)


class TopPatientResponse(AgendaModel):
    patient: Patient
    appointment_count: int
    last_appointment_date: dt.date

    @classmethod
    def from_frequency(cls, entry: PatientFrequency) -> "TopPatientResponse":
        return cls(
            patient=entry.patient,
            appointment_count=entry.appointment_count,
            last_appointment_date=entry.last_appointment_date,
        )


class ErrorResponse(BaseModel):
    """Error response schema."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Detailed error information")
    code: Optional[str] = Field(None, description="Error code")
    errors: List[str] = Field(default_factory=list, description="Individual validation messages")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Slot Conflict",
                "detail": "An appointment already exists in that time slot",
                "code": "SLOT_CONFLICT",
                "errors": [],
            }
        }
    )
