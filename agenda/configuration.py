"""Clinic configuration service.

Handles:
- Single-instance access (``get_or_none``) and first-time setup (upsert)
- Working day / working hour predicates
- Incremental holiday management (non-working dates as a set)
- Partial updates of hours and price

Every mutator persists the full record and returns the refreshed
snapshot. Snapshots are immutable; callers replace their copy.
"""
from datetime import date, time
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from agenda.clock import Clock, resolve_clock
from agenda.config import (
    DEFAULT_APPOINTMENT_DURATION,
    DEFAULT_CLOSING_TIME,
    DEFAULT_CONSULTATION_PRICE,
    DEFAULT_OPENING_TIME,
    DEFAULT_WORKING_DAYS,
    MAX_APPOINTMENT_DURATION,
    MIN_APPOINTMENT_DURATION,
)
from agenda.database import Database
from agenda.dateutils import add_days, parse_date, parse_time, validate_date_range
from agenda.errors import ConfigurationMissingError, ValidationError
from agenda.logging_config import get_logger
from agenda.models import ClinicConfiguration
from agenda.repositories import ConfigurationRepository
from agenda.validators import describe_pydantic_errors, is_valid_email, is_valid_phone

logger = get_logger(__name__)


def default_configuration(**overrides: Any) -> ClinicConfiguration:
    """Configuration seeded with the business defaults."""
    values: Dict[str, Any] = {
        "working_days": DEFAULT_WORKING_DAYS,
        "opening_time": DEFAULT_OPENING_TIME,
        "closing_time": DEFAULT_CLOSING_TIME,
        "default_duration": DEFAULT_APPOINTMENT_DURATION,
        "consultation_price": DEFAULT_CONSULTATION_PRICE,
    }
    values.update(overrides)
    return ClinicConfiguration(**values)


def validate_configuration(config: ClinicConfiguration) -> List[str]:
    """
    Check a configuration before it is saved.

    Returns:
        List of human-readable errors (empty when valid)
    """
    errors = []

    if not config.first_name.strip():
        errors.append("First name is required")
    if not config.last_name.strip():
        errors.append("Last name is required")
    if not config.specialty.strip():
        errors.append("Specialty is required")
    if not config.license_number.strip():
        errors.append("License number is required")

    if not config.phone.strip():
        errors.append("Phone is required")
    elif not is_valid_phone(config.phone):
        errors.append("Phone format is not valid")

    if not config.email.strip():
        errors.append("Email is required")
    elif not is_valid_email(config.email):
        errors.append("Email format is not valid")

    errors.extend(validate_schedule(
        config.working_days,
        config.opening_time,
        config.closing_time,
        config.default_duration,
    ))
    return errors


def validate_schedule(
    working_days: Iterable[int],
    opening_time: time,
    closing_time: time,
    default_duration: int
) -> List[str]:
    errors = []
    if not list(working_days):
        errors.append("At least one working day must be selected")
    if opening_time >= closing_time:
        errors.append("Opening time must be before closing time")
    if not MIN_APPOINTMENT_DURATION <= default_duration <= MAX_APPOINTMENT_DURATION:
        errors.append(
            f"Default duration must be between {MIN_APPOINTMENT_DURATION} "
            f"and {MAX_APPOINTMENT_DURATION} minutes"
        )
    return errors


def with_changes(config: ClinicConfiguration, **changes: Any) -> ClinicConfiguration:
    """
    Copy of ``config`` with ``changes`` applied and re-validated.

    Raises:
        ValidationError: If the result is not a valid configuration
    """
    values = config.model_dump()
    values.update(changes)
    try:
        return ClinicConfiguration.model_validate(values)
    except PydanticValidationError as e:
        raise ValidationError(describe_pydantic_errors(e)) from e


class ConfigurationService:
    """Reads and updates the clinic configuration singleton."""

    def __init__(
        self,
        database: Database,
        repository: Optional[ConfigurationRepository] = None,
        clock: Optional[Clock] = None
    ):
        self.database = database
        self.repo = repository or ConfigurationRepository()
        self.clock = resolve_clock(clock)

    def get_or_none(self) -> Optional[ClinicConfiguration]:
        """Current configuration, or None when setup has not been done."""
        with self.database.transaction() as db:
            return self.repo.get_or_none(db)

    def require(self) -> ClinicConfiguration:
        """
        Current configuration.

        Raises:
            ConfigurationMissingError: If setup has not been done
        """
        config = self.get_or_none()
        if config is None:
            raise ConfigurationMissingError()
        return config

    def needs_setup(self) -> bool:
        return self.get_or_none() is None

    def save(self, config: ClinicConfiguration) -> ClinicConfiguration:
        """
        Create or replace the configuration (upsert, never a second row).

        Raises:
            ValidationError: If practitioner or schedule fields are invalid
        """
        errors = validate_configuration(config)
        if errors:
            logger.warning("configuration_rejected", errors=errors)
            raise ValidationError(errors)

        with self.database.transaction() as db:
            saved = self.repo.upsert(db, config)

        logger.info("configuration_saved", working_days=sorted(int(d) for d in saved.working_days))
        return saved

    def is_working_day(self, day: date) -> bool:
        """
        False when no configuration exists.

        Raises:
            ValidationError: If ``day`` is not a YYYY-MM-DD date
        """
        try:
            day = parse_date(day)
        except ValueError as e:
            raise ValidationError([str(e)]) from e

        config = self.get_or_none()
        return config is not None and config.is_working_day(day)

    def is_working_hour(self, value: time) -> bool:
        """
        False when no configuration exists.

        Raises:
            ValidationError: If ``value`` is not an HH:MM time
        """
        try:
            value = parse_time(value)
        except ValueError as e:
            raise ValidationError([str(e)]) from e

        config = self.get_or_none()
        return config is not None and config.is_working_hour(value)

    def time_slots(self, duration: Optional[int] = None) -> List[time]:
        return self.require().time_slots(duration)

    def update_working_hours(
        self,
        working_days: Iterable[int],
        opening_time: time,
        closing_time: time,
        default_duration: int
    ) -> ClinicConfiguration:
        """Replace the schedule fields only."""
        working_days = list(working_days)
        try:
            opening_time, closing_time = parse_time(opening_time), parse_time(closing_time)
        except ValueError as e:
            raise ValidationError([str(e)]) from e

        errors = validate_schedule(working_days, opening_time, closing_time, default_duration)
        if errors:
            raise ValidationError(errors)

        return self._update(
            "working_hours_updated",
            working_days=working_days,
            opening_time=opening_time,
            closing_time=closing_time,
            default_duration=default_duration,
        )

    def update_price(self, price: float) -> ClinicConfiguration:
        if price is None or price < 0:
            raise ValidationError(["Consultation price must be a non-negative number"])
        return self._update("price_updated", consultation_price=price)

    def add_non_working_dates(self, dates: Iterable[date]) -> ClinicConfiguration:
        """
        Union ``dates`` into the holiday set. Adding a date twice is a no-op.

        Raises:
            ValidationError: If a date is malformed or in the past
        """
        parsed = self._parse_new_dates(dates)
        with self.database.transaction() as db:
            config = self._require(db)
            updated = with_changes(config, non_working_dates=config.non_working_dates | parsed)
            saved = self.repo.upsert(db, updated)

        logger.info("non_working_dates_added", dates=sorted(d.isoformat() for d in parsed))
        return saved

    def add_non_working_range(self, start: date, end: date) -> ClinicConfiguration:
        """Mark every day from ``start`` to ``end`` (inclusive) as non-working."""
        start, end = parse_date(start), parse_date(end)
        errors = validate_date_range(start, end)
        if errors:
            raise ValidationError(errors)

        days = []
        current = start
        while current <= end:
            days.append(current)
            current = add_days(current, 1)
        return self.add_non_working_dates(days)

    def remove_non_working_dates(self, dates: Iterable[date]) -> ClinicConfiguration:
        """Set difference; removing an absent date is a no-op."""
        try:
            parsed = frozenset(parse_date(d) for d in dates)
        except ValueError as e:
            raise ValidationError([str(e)]) from e

        with self.database.transaction() as db:
            config = self._require(db)
            updated = with_changes(config, non_working_dates=config.non_working_dates - parsed)
            saved = self.repo.upsert(db, updated)

        logger.info("non_working_dates_removed", dates=sorted(d.isoformat() for d in parsed))
        return saved

    def _parse_new_dates(self, dates: Iterable[date]) -> frozenset:
        today = self.clock.today()
        errors = []
        parsed = set()
        for index, value in enumerate(dates, start=1):
            try:
                day = parse_date(value)
            except ValueError:
                errors.append(f"Date {index}: invalid format (expected YYYY-MM-DD)")
                continue
            if day < today:
                errors.append(f"Date {index}: past dates cannot be added")
                continue
            parsed.add(day)

        if errors:
            raise ValidationError(errors)
        return frozenset(parsed)

    def _update(self, event: str, **changes: Any) -> ClinicConfiguration:
        with self.database.transaction() as db:
            config = self._require(db)
            saved = self.repo.upsert(db, with_changes(config, **changes))

        logger.info(event, **{k: str(v) for k, v in changes.items()})
        return saved

    def _require(self, db: Session) -> ClinicConfiguration:
        config = self.repo.get_or_none(db)
        if config is None:
            raise ConfigurationMissingError()
        return config
