"""Row-level access to patients, appointments and the clinic configuration.

Pattern: Separate database persistence from domain models.
Rows (snake_case tables) are mapped to frozen domain models on the way
out and back to column values on the way in. Repositories never commit;
callers own the transaction (see ``Database.transaction``).
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from agenda.database_models import (
    CONFIGURATION_ID,
    AppointmentRow,
    ClinicConfigurationRow,
    PatientRow,
    ScheduleDayRow,
)
from agenda.dateutils import parse_date
from agenda.models import (
    Appointment,
    AppointmentDetail,
    ClinicConfiguration,
    DailyStatistics,
    Patient,
)
from agenda.state import AppointmentStatus, ConsultationType, empty_status_counts

PATIENT_FIELDS = (
    "first_name", "last_name", "national_id", "phone", "email", "birth_date",
    "address", "insurance_plan", "member_number", "clinical_notes",
)
APPOINTMENT_FIELDS = (
    "patient_id", "date", "time", "duration", "consultation_type", "status",
    "notes", "follow_up", "price",
)
CONFIGURATION_FIELDS = (
    "first_name", "last_name", "specialty", "phone", "email", "address",
    "license_number", "working_days", "opening_time", "closing_time",
    "default_duration", "consultation_price", "non_working_dates",
)

# Supported backends; both accept INSERT ... ON CONFLICT DO NOTHING
CONFLICT_FREE_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


# --- Mapping -------------------------------------------------------------

def patient_from_row(row: PatientRow) -> Patient:
    return Patient(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        national_id=row.national_id,
        phone=row.phone,
        email=row.email,
        birth_date=row.birth_date,
        address=row.address or "",
        insurance_plan=row.insurance_plan or "",
        member_number=row.member_number or "",
        clinical_notes=row.clinical_notes or "",
        created_at=row.created_at,
    )


def patient_to_values(patient: Patient) -> Dict[str, Any]:
    values = {name: getattr(patient, name) for name in PATIENT_FIELDS}
    values["address"] = patient.address or None
    return values


def appointment_from_row(row: AppointmentRow) -> Appointment:
    return Appointment(
        id=row.id,
        patient_id=row.patient_id,
        date=row.date,
        time=row.time,
        duration=row.duration,
        consultation_type=ConsultationType(row.consultation_type),
        status=AppointmentStatus(row.status),
        notes=row.notes or "",
        follow_up=row.follow_up or "",
        price=row.price,
        created_at=row.created_at,
    )


def appointment_to_values(appointment: Appointment) -> Dict[str, Any]:
    values = {name: getattr(appointment, name) for name in APPOINTMENT_FIELDS}
    values["consultation_type"] = appointment.consultation_type.value
    values["status"] = appointment.status.value
    return values


def configuration_from_row(row: ClinicConfigurationRow) -> ClinicConfiguration:
    return ClinicConfiguration(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        specialty=row.specialty,
        phone=row.phone,
        email=row.email,
        address=row.address or "",
        license_number=row.license_number,
        working_days=frozenset(row.working_days or []),
        opening_time=row.opening_time,
        closing_time=row.closing_time,
        default_duration=row.default_duration,
        consultation_price=row.consultation_price,
        non_working_dates=frozenset(parse_date(d) for d in row.non_working_dates or []),
        created_at=row.created_at,
    )


def configuration_to_values(config: ClinicConfiguration) -> Dict[str, Any]:
    values = {name: getattr(config, name) for name in CONFIGURATION_FIELDS}
    values["address"] = config.address or None
    values["working_days"] = sorted(int(d) for d in config.working_days)
    values["non_working_dates"] = [d.isoformat() for d in sorted(config.non_working_dates)]
    return values


# --- Repositories --------------------------------------------------------

class PatientRepository:
    """Queries over the ``patients`` relation."""

    def list(self, db: Session) -> List[Patient]:
        rows = db.query(PatientRow).order_by(PatientRow.last_name, PatientRow.first_name).all()
        return [patient_from_row(r) for r in rows]

    def get(self, db: Session, patient_id: int) -> Optional[Patient]:
        row = db.get(PatientRow, patient_id)
        return patient_from_row(row) if row else None

    def get_many(self, db: Session, patient_ids: Iterable[int]) -> Dict[int, Patient]:
        ids = list(set(patient_ids))
        if not ids:
            return {}
        rows = db.query(PatientRow).filter(PatientRow.id.in_(ids)).all()
        return {r.id: patient_from_row(r) for r in rows}

    def search(self, db: Session, term: str) -> List[Patient]:
        """Case-insensitive substring match on names and national ID."""
        pattern = f"%{term.strip()}%"
        rows = db.query(PatientRow).filter(
            or_(
                PatientRow.first_name.ilike(pattern),
                PatientRow.last_name.ilike(pattern),
                PatientRow.national_id.ilike(pattern),
            )
        ).order_by(PatientRow.last_name, PatientRow.first_name).all()
        return [patient_from_row(r) for r in rows]

    def count(self, db: Session) -> int:
        return db.query(func.count(PatientRow.id)).scalar() or 0

    def exists_by_national_id(self, db: Session, national_id: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(PatientRow.id).filter(PatientRow.national_id == national_id)
        if exclude_id is not None:
            query = query.filter(PatientRow.id != exclude_id)
        return query.first() is not None

    def exists_by_email(self, db: Session, email: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(PatientRow.id).filter(func.lower(PatientRow.email) == email.lower())
        if exclude_id is not None:
            query = query.filter(PatientRow.id != exclude_id)
        return query.first() is not None

    def add(self, db: Session, patient: Patient) -> Patient:
        row = PatientRow(**patient_to_values(patient))
        db.add(row)
        db.flush()
        return patient_from_row(row)

    def update(self, db: Session, patient: Patient) -> Patient:
        row = db.get(PatientRow, patient.id)
        for name, value in patient_to_values(patient).items():
            setattr(row, name, value)
        db.flush()
        return patient_from_row(row)

    def delete(self, db: Session, patient_id: int) -> bool:
        deleted = db.query(PatientRow).filter(PatientRow.id == patient_id).delete()
        return deleted > 0


class AppointmentRepository:
    """Queries over the ``appointments`` relation and its aggregate views."""

    def list(self, db: Session) -> List[Appointment]:
        rows = db.query(AppointmentRow).order_by(AppointmentRow.date, AppointmentRow.time).all()
        return [appointment_from_row(r) for r in rows]

    def get(self, db: Session, appointment_id: int) -> Optional[Appointment]:
        row = db.get(AppointmentRow, appointment_id)
        return appointment_from_row(row) if row else None

    def list_for_date(self, db: Session, day: date) -> List[Appointment]:
        rows = db.query(AppointmentRow).filter(
            AppointmentRow.date == day
        ).order_by(AppointmentRow.time).all()
        return [appointment_from_row(r) for r in rows]

    def list_between(self, db: Session, start: date, end: date) -> List[Appointment]:
        rows = db.query(AppointmentRow).filter(
            AppointmentRow.date >= start,
            AppointmentRow.date <= end,
        ).order_by(AppointmentRow.date, AppointmentRow.time).all()
        return [appointment_from_row(r) for r in rows]

    def list_for_patient(self, db: Session, patient_id: int) -> List[Appointment]:
        """Newest first."""
        rows = db.query(AppointmentRow).filter(
            AppointmentRow.patient_id == patient_id
        ).order_by(AppointmentRow.date.desc(), AppointmentRow.time.desc()).all()
        return [appointment_from_row(r) for r in rows]

    def count_for_patient(self, db: Session, patient_id: int) -> int:
        return db.query(func.count(AppointmentRow.id)).filter(
            AppointmentRow.patient_id == patient_id
        ).scalar() or 0

    def upcoming(self, db: Session, from_day: date, limit: int) -> List[Appointment]:
        rows = db.query(AppointmentRow).filter(
            AppointmentRow.date >= from_day,
            AppointmentRow.status.in_([
                AppointmentStatus.SCHEDULED.value,
                AppointmentStatus.CONFIRMED.value,
            ]),
        ).order_by(AppointmentRow.date, AppointmentRow.time).limit(limit).all()
        return [appointment_from_row(r) for r in rows]

    def add(self, db: Session, appointment: Appointment) -> Appointment:
        row = AppointmentRow(**appointment_to_values(appointment))
        db.add(row)
        db.flush()
        return appointment_from_row(row)

    def update(self, db: Session, appointment: Appointment) -> Appointment:
        row = db.get(AppointmentRow, appointment.id)
        for name, value in appointment_to_values(appointment).items():
            setattr(row, name, value)
        db.flush()
        return appointment_from_row(row)

    def delete(self, db: Session, appointment_id: int) -> bool:
        deleted = db.query(AppointmentRow).filter(AppointmentRow.id == appointment_id).delete()
        return deleted > 0

    def lock_day(self, db: Session, day: date) -> None:
        """
        Serialize bookings on ``day`` for the rest of the transaction.

        The lock row is created with ``INSERT ... ON CONFLICT DO NOTHING``
        and then selected ``FOR UPDATE``. On PostgreSQL that is a row lock;
        on SQLite the insert takes the database write lock. Either way a
        concurrent booking on the same date, including the first one of
        that date, waits until this transaction commits and then sees its
        rows.
        """
        insert = CONFLICT_FREE_INSERTS[db.get_bind().dialect.name]
        db.execute(
            insert(ScheduleDayRow)
            .values(date=day, version=0)
            .on_conflict_do_nothing(index_elements=[ScheduleDayRow.date])
        )

        row = db.query(ScheduleDayRow).filter(
            ScheduleDayRow.date == day
        ).with_for_update().populate_existing().one()
        row.version = (row.version or 0) + 1
        db.flush()

    def daily_statistics(self, db: Session, start: date, end: date) -> List[DailyStatistics]:
        """Per-date counts by status and completed revenue, aggregated in SQL."""
        completed = AppointmentStatus.COMPLETED.value
        rows = db.query(
            AppointmentRow.date,
            AppointmentRow.status,
            func.count(AppointmentRow.id),
            func.sum(case((AppointmentRow.status == completed, AppointmentRow.price), else_=0.0)),
        ).filter(
            AppointmentRow.date >= start,
            AppointmentRow.date <= end,
        ).group_by(AppointmentRow.date, AppointmentRow.status).order_by(AppointmentRow.date).all()

        per_day: Dict[date, Dict[str, Any]] = {}
        for day, status, count, revenue in rows:
            entry = per_day.setdefault(day, {"counts": empty_status_counts(), "revenue": 0.0})
            entry["counts"][AppointmentStatus(status)] += count
            entry["revenue"] += float(revenue or 0.0)

        return [
            DailyStatistics(
                date=day,
                total=sum(entry["counts"].values()),
                counts=entry["counts"],
                revenue=entry["revenue"],
            )
            for day, entry in sorted(per_day.items())
        ]

    def details(
        self,
        db: Session,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[AppointmentDetail]:
        """Appointments joined with their patient, ordered by date and time."""
        query = db.query(AppointmentRow, PatientRow).join(
            PatientRow, PatientRow.id == AppointmentRow.patient_id
        )
        if start is not None:
            query = query.filter(AppointmentRow.date >= start)
        if end is not None:
            query = query.filter(AppointmentRow.date <= end)

        return [
            AppointmentDetail(
                appointment=appointment_from_row(appointment),
                patient_name=f"{patient.first_name} {patient.last_name}",
                patient_national_id=patient.national_id,
                patient_phone=patient.phone,
            )
            for appointment, patient in query.order_by(AppointmentRow.date, AppointmentRow.time).all()
        ]


class ConfigurationRepository:
    """Access to the single ``clinic_configuration`` row."""

    def get_or_none(self, db: Session) -> Optional[ClinicConfiguration]:
        row = db.get(ClinicConfigurationRow, CONFIGURATION_ID)
        return configuration_from_row(row) if row else None

    def upsert(self, db: Session, config: ClinicConfiguration) -> ClinicConfiguration:
        """Insert the row on first save, update it afterwards."""
        values = configuration_to_values(config)
        row = db.get(ClinicConfigurationRow, CONFIGURATION_ID)
        if row is None:
            row = ClinicConfigurationRow(id=CONFIGURATION_ID, **values)
            db.add(row)
        else:
            for name, value in values.items():
                setattr(row, name, value)
        db.flush()
        return configuration_from_row(row)
