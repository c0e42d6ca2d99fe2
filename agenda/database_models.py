"""SQLAlchemy table definitions (snake_case storage boundary)."""
from datetime import datetime, UTC

import bcrypt
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

CONFIGURATION_ID = 1


def utc_now():
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class PatientRow(Base):
    """Patient records."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, index=True)
    national_id = Column(String(20), nullable=False, unique=True, index=True)
    phone = Column(String(30), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    birth_date = Column(Date, nullable=False)
    address = Column(String(255), nullable=True)
    insurance_plan = Column(String(100), nullable=False, default="")
    member_number = Column(String(50), nullable=False, default="")
    clinical_notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<PatientRow(id={self.id}, national_id={self.national_id})>"


class AppointmentRow(Base):
    """Appointment bookings."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_date_time", "date", "time"),
        CheckConstraint("duration > 0", name="ck_appointments_duration_positive"),
        CheckConstraint("price >= 0", name="ck_appointments_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(
        Integer,
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False)
    consultation_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    notes = Column(Text, nullable=False, default="")
    follow_up = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<AppointmentRow(id={self.id}, date={self.date}, time={self.time}, status={self.status})>"


class ClinicConfigurationRow(Base):
    """Clinic configuration. Single row pinned to ``id = 1``."""
    __tablename__ = "clinic_configuration"
    __table_args__ = (
        CheckConstraint(f"id = {CONFIGURATION_ID}", name="ck_clinic_configuration_singleton"),
    )

    id = Column(Integer, primary_key=True, default=CONFIGURATION_ID)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    specialty = Column(String(100), nullable=False, default="")
    phone = Column(String(30), nullable=False, default="")
    email = Column(String(255), nullable=False, default="")
    address = Column(String(255), nullable=True)
    license_number = Column(String(50), nullable=False, default="")
    working_days = Column(JSON, nullable=False, default=list)  # Weekday ints, 0 = Sunday
    opening_time = Column(Time, nullable=False)
    closing_time = Column(Time, nullable=False)
    default_duration = Column(Integer, nullable=False)
    consultation_price = Column(Float, nullable=False, default=0.0)
    non_working_dates = Column(JSON, nullable=False, default=list)  # ISO date strings
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<ClinicConfigurationRow(id={self.id})>"


class ScheduleDayRow(Base):
    """Per-date lock row; bookings on a date write it before checking conflicts."""
    __tablename__ = "schedule_days"

    date = Column(Date, primary_key=True)
    version = Column(Integer, nullable=False, default=0)


class APIKey(Base):
    """API key authentication table with bcrypt hashing."""
    __tablename__ = "api_keys"

    # Performance optimization: store first 16 chars of key for O(1) lookup
    key_prefix = Column(String(20), primary_key=True, index=True)  # "ak_" + first 13 chars
    key_hash = Column(String(255), nullable=False)  # Full bcrypt hash
    principal = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    last_used = Column(DateTime, default=utc_now, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)  # Optional label

    @staticmethod
    def hash_key(api_key: str) -> str:
        """Hash API key using bcrypt."""
        return bcrypt.hashpw(api_key.encode(), bcrypt.gensalt()).decode()

    @staticmethod
    def verify_key(api_key: str, key_hash: str) -> bool:
        """Verify API key against hash."""
        return bcrypt.checkpw(api_key.encode(), key_hash.encode())

    @staticmethod
    def get_key_prefix(api_key: str) -> str:
        """Get first 16 chars for indexing."""
        return api_key[:16]

    def __repr__(self):
        return f"<APIKey(prefix={self.key_prefix}, principal={self.principal}, active={self.is_active})>"
