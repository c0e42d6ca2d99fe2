"""FastAPI server for the clinic agenda.

Features:
- CORS middleware for the front-desk web client
- Request IDs bound into structured logs and echoed in X-Request-ID
- Domain errors mapped to HTTP status codes with a uniform ErrorResponse
- API key authentication on mutating endpoints
- Health check endpoint
"""
import datetime as dt
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Type

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from agenda.api.dependencies import (
    get_appointment_service,
    get_clock,
    get_configuration_service,
    get_patient_service,
    get_statistics_service,
    validate_api_key,
)
from agenda.api.models import (
    AppointmentCreate,
    AppointmentUpdate,
    ConfigurationRequest,
    DashboardResponse,
    ErrorResponse,
    NonWorkingDatesRequest,
    NotesRequest,
    PatientCreate,
    PatientHistoryResponse,
    PatientUpdate,
    PeriodSummaryResponse,
    PriceRequest,
    RescheduleRequest,
    ScheduleCheckResponse,
    SlotsResponse,
    StatusChangeRequest,
    TopPatientResponse,
    WorkingHoursRequest,
)
from agenda.appointments import AppointmentService
from agenda.availability import TimeOfDay
from agenda.clock import Clock
from agenda.config import DEFAULT_APPOINTMENT_DURATION, get_settings
from agenda.configuration import ConfigurationService
from agenda.database import close_database, init_database
from agenda.dateutils import format_time
from agenda.errors import (
    ConfigurationMissingError,
    InvalidTransitionError,
    NotFoundError,
    PatientHasAppointmentsError,
    SlotConflictError,
    StoreError,
    ValidationError,
)
from agenda.logging_config import bind_request_id, generate_request_id, get_logger, setup_structured_logging
from agenda.models import Appointment, ClinicConfiguration, DailyStatistics, Patient
from agenda.patients import PatientService
from agenda.state import AppointmentStatus
from agenda.statistics import StatisticsService
from agenda.validators import describe_pydantic_errors

logger = get_logger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    setup_structured_logging(get_settings().log_level)
    logger.info("server_starting", version=API_VERSION)

    try:
        init_database()
    except StoreError as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    yield

    close_database()
    logger.info("server_stopped")


app = FastAPI(
    title="Clinic Agenda API",
    description="Appointment scheduling for a single-practitioner clinic",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every request with an ID for log correlation."""
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    bind_request_id(request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def _error(status_code: int, error: str, detail: str, code: str, errors: Optional[List[str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail, code=code, errors=errors or []).model_dump()
    )


# Global exception handlers
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors consistently."""
    errors = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'Invalid value')}"
        for error in exc.errors()
    ]
    logger.warning("request_validation_failed", errors=errors)
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation Error", "; ".join(errors), "VALIDATION_ERROR", errors)


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    code = exc.reason.upper().replace(" ", "_").replace("-", "_") if exc.reason else "VALIDATION_ERROR"
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation Error", str(exc), code, exc.errors)


@app.exception_handler(SlotConflictError)
async def slot_conflict_handler(request: Request, exc: SlotConflictError):
    return _error(
        status.HTTP_409_CONFLICT,
        "Slot Conflict",
        str(exc),
        "SLOT_CONFLICT",
        [f"Conflicts with appointment {i}" for i in exc.conflicting_ids],
    )


@app.exception_handler(PatientHasAppointmentsError)
async def patient_has_appointments_handler(request: Request, exc: PatientHasAppointmentsError):
    return _error(status.HTTP_409_CONFLICT, "Patient Has Appointments", str(exc), "PATIENT_HAS_APPOINTMENTS")


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return _error(status.HTTP_409_CONFLICT, "Invalid Status Transition", str(exc), "INVALID_TRANSITION")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(status.HTTP_404_NOT_FOUND, "Not Found", str(exc), "NOT_FOUND")


@app.exception_handler(ConfigurationMissingError)
async def setup_required_handler(request: Request, exc: ConfigurationMissingError):
    return _error(status.HTTP_409_CONFLICT, "Setup Required", str(exc), "SETUP_REQUIRED")


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return _error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Storage Unavailable",
        "The database could not complete the request. Please try again later.",
        "STORE_UNAVAILABLE",
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected exceptions."""
    logger.error("unexpected_error", error=str(exc), exc_info=True)
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_ERROR",
    )


def build(model: Type[BaseModel], values: Dict[str, Any]):
    """Validate ``values`` into ``model``, reporting failures as ValidationError."""
    try:
        return model.model_validate(values)
    except PydanticValidationError as e:
        raise ValidationError(describe_pydantic_errors(e)) from e


# --- Health ------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "service": "clinic-agenda-api",
        "version": API_VERSION
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API info."""
    return {
        "message": "Clinic Agenda API",
        "docs": "/docs",
        "health": "/health"
    }


# --- Configuration -----------------------------------------------------------

@app.get("/api/v1/configuration", tags=["Configuration"])
def get_configuration(service: ConfigurationService = Depends(get_configuration_service)) -> ClinicConfiguration:
    """
    Current clinic configuration.

    Raises:
        409: Initial setup has not been done
    """
    return service.require()


@app.put("/api/v1/configuration", tags=["Configuration"], dependencies=[Depends(validate_api_key)])
def save_configuration(
    request: ConfigurationRequest,
    service: ConfigurationService = Depends(get_configuration_service)
) -> ClinicConfiguration:
    """Create or replace the configuration (initial setup or full edit)."""
    return service.save(build(ClinicConfiguration, request.model_dump()))


@app.patch("/api/v1/configuration/hours", tags=["Configuration"], dependencies=[Depends(validate_api_key)])
def update_working_hours(
    request: WorkingHoursRequest,
    service: ConfigurationService = Depends(get_configuration_service)
) -> ClinicConfiguration:
    return service.update_working_hours(
        request.working_days,
        request.opening_time,
        request.closing_time,
        request.default_duration,
    )


@app.patch("/api/v1/configuration/price", tags=["Configuration"], dependencies=[Depends(validate_api_key)])
def update_price(
    request: PriceRequest,
    service: ConfigurationService = Depends(get_configuration_service)
) -> ClinicConfiguration:
    return service.update_price(request.consultation_price)


@app.post("/api/v1/configuration/non-working-dates", tags=["Configuration"], dependencies=[Depends(validate_api_key)])
def add_non_working_dates(
    request: NonWorkingDatesRequest,
    service: ConfigurationService = Depends(get_configuration_service)
) -> ClinicConfiguration:
    """Add holidays, either as a list of dates or as an inclusive range."""
    if (request.start is None) != (request.end is None):
        raise ValidationError(["Both start and end are required for a date range"])

    config = None
    if request.start is not None:
        config = service.add_non_working_range(request.start, request.end)
    if request.dates or config is None:
        config = service.add_non_working_dates(request.dates)
    return config


@app.delete("/api/v1/configuration/non-working-dates", tags=["Configuration"], dependencies=[Depends(validate_api_key)])
def remove_non_working_dates(
    dates: List[str] = Query(..., description="Dates to remove (YYYY-MM-DD)"),
    service: ConfigurationService = Depends(get_configuration_service)
) -> ClinicConfiguration:
    return service.remove_non_working_dates(dates)


@app.get("/api/v1/configuration/slots", tags=["Configuration"])
def configuration_slots(
    duration: Optional[int] = Query(None, gt=0),
    service: ConfigurationService = Depends(get_configuration_service)
) -> SlotsResponse:
    """Slot grid of a working day, independent of bookings."""
    return SlotsResponse(duration=duration, slots=[format_time(t) for t in service.time_slots(duration)])


# --- Patients ----------------------------------------------------------------

@app.get("/api/v1/patients", tags=["Patients"])
def list_patients(
    search: Optional[str] = Query(None, description="Name or national ID fragment"),
    service: PatientService = Depends(get_patient_service)
) -> List[Patient]:
    return service.search(search) if search else service.list()


@app.post(
    "/api/v1/patients",
    tags=["Patients"],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(validate_api_key)]
)
def create_patient(
    request: PatientCreate,
    service: PatientService = Depends(get_patient_service)
) -> Patient:
    return service.create(build(Patient, request.model_dump()))


@app.get("/api/v1/patients/{patient_id}", tags=["Patients"])
def get_patient(patient_id: int, service: PatientService = Depends(get_patient_service)) -> Patient:
    return service.get(patient_id)


@app.patch("/api/v1/patients/{patient_id}", tags=["Patients"], dependencies=[Depends(validate_api_key)])
def update_patient(
    patient_id: int,
    request: PatientUpdate,
    service: PatientService = Depends(get_patient_service)
) -> Patient:
    return service.update(patient_id, request.model_dump(exclude_unset=True))


@app.delete(
    "/api/v1/patients/{patient_id}",
    tags=["Patients"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(validate_api_key)]
)
def delete_patient(patient_id: int, service: PatientService = Depends(get_patient_service)):
    """
    Delete a patient.

    Raises:
        409: The patient still has appointments
    """
    service.delete(patient_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/v1/patients/{patient_id}/history", tags=["Patients"])
def patient_history(patient_id: int, service: PatientService = Depends(get_patient_service)) -> PatientHistoryResponse:
    return PatientHistoryResponse.from_history(service.history(patient_id))


# --- Appointments ------------------------------------------------------------

@app.get("/api/v1/appointments", tags=["Appointments"])
def list_appointments(
    day: Optional[dt.date] = Query(None, alias="date"),
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    patient_id: Optional[int] = Query(None, alias="patientId"),
    service: AppointmentService = Depends(get_appointment_service)
) -> List[Appointment]:
    if patient_id is not None:
        return service.list_for_patient(patient_id)
    if day is not None:
        return service.list_for_date(day)
    if start is not None or end is not None:
        if start is None or end is None:
            raise ValidationError(["Both start and end are required for a date range"])
        return service.list_between(start, end)
    return service.list_all()


@app.post(
    "/api/v1/appointments",
    tags=["Appointments"],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(validate_api_key)]
)
def create_appointment(
    request: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
    configuration: ConfigurationService = Depends(get_configuration_service)
) -> Appointment:
    """
    Book an appointment.

    Raises:
        409: The slot overlaps another appointment
        422: Invalid fields, past date, non-working day or out-of-hours start
    """
    values = request.model_dump()
    config = configuration.get_or_none()
    if values["duration"] is None:
        values["duration"] = config.default_duration if config else DEFAULT_APPOINTMENT_DURATION
    if values["price"] is None:
        values["price"] = config.consultation_price if config else 0.0
    return service.create(build(Appointment, values))


@app.get("/api/v1/appointments/{appointment_id}", tags=["Appointments"])
def get_appointment(appointment_id: int, service: AppointmentService = Depends(get_appointment_service)) -> Appointment:
    return service.get(appointment_id)


@app.patch("/api/v1/appointments/{appointment_id}", tags=["Appointments"], dependencies=[Depends(validate_api_key)])
def update_appointment(
    appointment_id: int,
    request: AppointmentUpdate,
    service: AppointmentService = Depends(get_appointment_service)
) -> Appointment:
    return service.update(appointment_id, request.model_dump(exclude_unset=True))


@app.delete(
    "/api/v1/appointments/{appointment_id}",
    tags=["Appointments"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(validate_api_key)]
)
def delete_appointment(appointment_id: int, service: AppointmentService = Depends(get_appointment_service)):
    if not service.delete(appointment_id):
        raise NotFoundError(f"Appointment {appointment_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/v1/appointments/{appointment_id}/status", tags=["Appointments"], dependencies=[Depends(validate_api_key)])
def change_appointment_status(
    appointment_id: int,
    request: StatusChangeRequest,
    service: AppointmentService = Depends(get_appointment_service)
) -> Appointment:
    """
    Move an appointment through its lifecycle.

    Raises:
        409: The transition is not allowed
    """
    return service.change_status(appointment_id, request.status)


@app.post("/api/v1/appointments/{appointment_id}/notes", tags=["Appointments"], dependencies=[Depends(validate_api_key)])
def attach_appointment_notes(
    appointment_id: int,
    request: NotesRequest,
    service: AppointmentService = Depends(get_appointment_service)
) -> Appointment:
    return service.attach_notes(appointment_id, request.notes, request.follow_up)


@app.post("/api/v1/appointments/{appointment_id}/reschedule", tags=["Appointments"], dependencies=[Depends(validate_api_key)])
def reschedule_appointment(
    appointment_id: int,
    request: RescheduleRequest,
    service: AppointmentService = Depends(get_appointment_service)
) -> Appointment:
    return service.reschedule(appointment_id, request.date, request.time)


# --- Availability ------------------------------------------------------------

@app.get("/api/v1/availability", tags=["Availability"])
def check_availability(
    day: dt.date = Query(..., alias="date"),
    start: dt.time = Query(..., alias="time"),
    duration: Optional[int] = None,
    exclude_id: Optional[int] = Query(None, alias="excludeId"),
    service: AppointmentService = Depends(get_appointment_service)
) -> ScheduleCheckResponse:
    """Whether a slot could be booked, and why not when it cannot."""
    return ScheduleCheckResponse.from_check(service.check_availability(day, start, duration, exclude_id))


@app.get("/api/v1/availability/slots", tags=["Availability"])
def available_slots(
    day: dt.date = Query(..., alias="date"),
    duration: Optional[int] = Query(None, gt=0),
    preference: TimeOfDay = TimeOfDay.ANY,
    service: AppointmentService = Depends(get_appointment_service)
) -> SlotsResponse:
    slots = service.available_slots(day, duration, preference)
    return SlotsResponse(date=day, duration=duration, slots=[format_time(t) for t in slots])


# --- Statistics --------------------------------------------------------------

@app.get("/api/v1/statistics/dashboard", tags=["Statistics"])
def dashboard(service: StatisticsService = Depends(get_statistics_service)) -> DashboardResponse:
    return DashboardResponse.from_dashboard(service.dashboard())


@app.get("/api/v1/statistics/monthly", tags=["Statistics"])
def monthly_summary(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    service: StatisticsService = Depends(get_statistics_service),
    clock: Clock = Depends(get_clock)
) -> List[PeriodSummaryResponse]:
    year = year or clock.today().year
    return [PeriodSummaryResponse.from_summary(s) for s in service.monthly_summary(year)]


@app.get("/api/v1/statistics/weekly", tags=["Statistics"])
def weekly_summary(
    day: Optional[dt.date] = Query(None, alias="date"),
    service: StatisticsService = Depends(get_statistics_service),
    clock: Clock = Depends(get_clock)
) -> List[PeriodSummaryResponse]:
    return [PeriodSummaryResponse.from_summary(s) for s in service.weekly_summary(day or clock.today())]


@app.get("/api/v1/statistics/top-patients", tags=["Statistics"])
def top_patients(
    n: int = Query(5, ge=1, le=100),
    service: StatisticsService = Depends(get_statistics_service)
) -> List[TopPatientResponse]:
    return [TopPatientResponse.from_frequency(entry) for entry in service.top_patients(n)]


@app.get("/api/v1/statistics/daily", tags=["Statistics"])
def daily_statistics(
    start: dt.date,
    end: dt.date,
    source: str = Query("view", pattern="^(view|client)$"),
    service: StatisticsService = Depends(get_statistics_service)
) -> List[DailyStatistics]:
    return service.daily_statistics(start, end, use_view=source == "view")


@app.get("/api/v1/statistics/status-counts", tags=["Statistics"])
def status_counts(
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    service: StatisticsService = Depends(get_statistics_service)
) -> Dict[AppointmentStatus, int]:
    return service.counts_by_status(start, end)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
