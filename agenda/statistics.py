"""Dashboard and report figures.

``StatisticsAggregator`` is pure: it takes appointment/patient collections
and an injected clock, and writes nothing. ``StatisticsService`` loads the
collections from the store and delegates.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from agenda.clock import Clock, resolve_clock
from agenda.config import DASHBOARD_UPCOMING_LIMIT, NO_SHOW_WINDOW_DAYS
from agenda.database import Database
from agenda.dateutils import add_days, month_bounds, parse_date, validate_date_range, week_days
from agenda.errors import ValidationError
from agenda.models import Appointment, DailyStatistics, Patient
from agenda.repositories import AppointmentRepository, PatientRepository
from agenda.state import ACTIVE_STATUSES, AppointmentStatus, empty_status_counts

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


@dataclass(frozen=True)
class PatientFrequency:
    patient: Patient
    appointment_count: int
    last_appointment_date: date


@dataclass(frozen=True)
class PeriodSummary:
    """Appointment count and completed revenue for a month or a day."""
    label: str
    count: int
    revenue: float


@dataclass(frozen=True)
class Dashboard:
    today_count: int
    total_patients: int
    upcoming: List[Appointment]
    monthly_revenue: float
    no_show_rate: float
    counts_by_status: Dict[AppointmentStatus, int] = field(default_factory=empty_status_counts)


def _completed_revenue(appointments: Iterable[Appointment]) -> float:
    return sum(a.price for a in appointments if a.status == AppointmentStatus.COMPLETED)


def _in_range(appointment: Appointment, start: Optional[date], end: Optional[date]) -> bool:
    if start is not None and appointment.date < start:
        return False
    if end is not None and appointment.date > end:
        return False
    return True


class StatisticsAggregator:
    """Computes figures over an appointment collection."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = resolve_clock(clock)

    def today_count(self, appointments: Iterable[Appointment]) -> int:
        today = self.clock.today()
        return sum(1 for a in appointments if a.date == today)

    def upcoming(self, appointments: Iterable[Appointment], n: int = 10) -> List[Appointment]:
        """Scheduled/confirmed appointments from today on, soonest first."""
        today = self.clock.today()
        pending = [a for a in appointments if a.date >= today and a.status in ACTIVE_STATUSES]
        pending.sort(key=lambda a: (a.date, a.time))
        return pending[:n]

    def monthly_revenue(self, appointments: Iterable[Appointment], year: int, month: int) -> float:
        """Sum of prices of completed appointments dated in the month."""
        first, last = month_bounds(year, month)
        return _completed_revenue(a for a in appointments if first <= a.date <= last)

    def no_show_rate(self, appointments: Iterable[Appointment], window_days: int = NO_SHOW_WINDOW_DAYS) -> float:
        """
        Percentage of no-shows among appointments dated in
        ``[today - window_days, today)``, rounded to two decimals.

        Returns 0 when the window holds no appointments.
        """
        today = self.clock.today()
        window_start = add_days(today, -window_days)
        in_window = [a for a in appointments if window_start <= a.date < today]
        if not in_window:
            return 0.0

        no_shows = sum(1 for a in in_window if a.status == AppointmentStatus.NO_SHOW)
        return round(no_shows / len(in_window) * 100, 2)

    def counts_by_status(
        self,
        appointments: Iterable[Appointment],
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> Dict[AppointmentStatus, int]:
        """Count per status; every status key is present."""
        counts = empty_status_counts()
        for appointment in appointments:
            if _in_range(appointment, start, end):
                counts[appointment.status] += 1
        return counts

    def top_patients(
        self,
        appointments: Sequence[Appointment],
        patients: Iterable[Patient],
        n: int = 5
    ) -> List[PatientFrequency]:
        """
        Patients ranked by number of appointments, most first.

        Ties keep the order in which patients first appear by date/time.
        Patients without appointments (or missing from ``patients``) are
        left out.
        """
        by_id = {p.id: p for p in patients}
        ordered = sorted(appointments, key=lambda a: (a.date, a.time))

        counts = Counter()
        last_dates: Dict[int, date] = {}
        for appointment in ordered:
            counts[appointment.patient_id] += 1
            previous = last_dates.get(appointment.patient_id)
            if previous is None or appointment.date > previous:
                last_dates[appointment.patient_id] = appointment.date

        ranking = [
            PatientFrequency(
                patient=by_id[patient_id],
                appointment_count=count,
                last_appointment_date=last_dates[patient_id],
            )
            for patient_id, count in counts.items()
            if patient_id in by_id
        ]
        ranking.sort(key=lambda entry: -entry.appointment_count)
        return ranking[:n]

    def monthly_summary(self, appointments: Sequence[Appointment], year: int) -> List[PeriodSummary]:
        """Twelve entries: appointment count and completed revenue per month."""
        summary = []
        for month, name in enumerate(MONTH_NAMES, start=1):
            in_month = [a for a in appointments if a.date.year == year and a.date.month == month]
            summary.append(PeriodSummary(label=name, count=len(in_month), revenue=_completed_revenue(in_month)))
        return summary

    def weekly_summary(self, appointments: Sequence[Appointment], day: date) -> List[PeriodSummary]:
        """Seven entries (Monday to Sunday) for the week containing ``day``."""
        summary = []
        for current in week_days(day):
            on_day = [a for a in appointments if a.date == current]
            summary.append(PeriodSummary(
                label=current.isoformat(),
                count=len(on_day),
                revenue=_completed_revenue(on_day),
            ))
        return summary

    def daily_statistics(
        self,
        appointments: Iterable[Appointment],
        start: date,
        end: date
    ) -> List[DailyStatistics]:
        """Per-date counts by status and completed revenue (dates with appointments only)."""
        per_day: Dict[date, List[Appointment]] = {}
        for appointment in appointments:
            if _in_range(appointment, start, end):
                per_day.setdefault(appointment.date, []).append(appointment)

        return [
            DailyStatistics(
                date=day,
                total=len(items),
                counts=self.counts_by_status(items),
                revenue=_completed_revenue(items),
            )
            for day, items in sorted(per_day.items())
        ]

    def average_consultation_price(
        self,
        appointments: Iterable[Appointment],
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> float:
        completed = [
            a for a in appointments
            if a.status == AppointmentStatus.COMPLETED and _in_range(a, start, end)
        ]
        if not completed:
            return 0.0
        return round(sum(a.price for a in completed) / len(completed), 2)

    def dashboard(self, appointments: Sequence[Appointment], total_patients: int) -> Dashboard:
        today = self.clock.today()
        return Dashboard(
            today_count=self.today_count(appointments),
            total_patients=total_patients,
            upcoming=self.upcoming(appointments, DASHBOARD_UPCOMING_LIMIT),
            monthly_revenue=self.monthly_revenue(appointments, today.year, today.month),
            no_show_rate=self.no_show_rate(appointments),
            counts_by_status=self.counts_by_status(appointments),
        )


class StatisticsService:
    """Loads appointments and patients, then aggregates."""

    def __init__(self, database: Database, clock: Optional[Clock] = None):
        self.database = database
        self.aggregator = StatisticsAggregator(clock)
        self.appointments = AppointmentRepository()
        self.patients = PatientRepository()

    @property
    def clock(self) -> Clock:
        return self.aggregator.clock

    def _all_appointments(self) -> List[Appointment]:
        with self.database.transaction() as db:
            return self.appointments.list(db)

    def dashboard(self) -> Dashboard:
        with self.database.transaction() as db:
            appointments = self.appointments.list(db)
            total_patients = self.patients.count(db)
        return self.aggregator.dashboard(appointments, total_patients)

    def upcoming(self, n: int = 10) -> List[Appointment]:
        with self.database.transaction() as db:
            return self.appointments.upcoming(db, self.clock.today(), n)

    def monthly_revenue(self, year: int, month: int) -> float:
        return self.aggregator.monthly_revenue(self._all_appointments(), year, month)

    def no_show_rate(self, window_days: int = NO_SHOW_WINDOW_DAYS) -> float:
        return self.aggregator.no_show_rate(self._all_appointments(), window_days)

    def counts_by_status(self, start: Optional[date] = None, end: Optional[date] = None) -> Dict[AppointmentStatus, int]:
        return self.aggregator.counts_by_status(self._all_appointments(), start, end)

    def top_patients(self, n: int = 5) -> List[PatientFrequency]:
        with self.database.transaction() as db:
            appointments = self.appointments.list(db)
            patients = self.patients.get_many(db, (a.patient_id for a in appointments))
        return self.aggregator.top_patients(appointments, patients.values(), n)

    def monthly_summary(self, year: int) -> List[PeriodSummary]:
        first, _ = month_bounds(year, 1)
        _, last = month_bounds(year, 12)
        with self.database.transaction() as db:
            appointments = self.appointments.list_between(db, first, last)
        return self.aggregator.monthly_summary(appointments, year)

    def weekly_summary(self, day: date) -> List[PeriodSummary]:
        days = week_days(parse_date(day))
        with self.database.transaction() as db:
            appointments = self.appointments.list_between(db, days[0], days[-1])
        return self.aggregator.weekly_summary(appointments, days[0])

    def daily_statistics(self, start: date, end: date, use_view: bool = True) -> List[DailyStatistics]:
        """
        Per-date breakdown for ``[start, end]``.

        With ``use_view`` the store aggregates in SQL; otherwise rows are
        loaded and aggregated here. Both give the same result.
        """
        start, end = parse_date(start), parse_date(end)
        errors = validate_date_range(start, end)
        if errors:
            raise ValidationError(errors)

        with self.database.transaction() as db:
            if use_view:
                return self.appointments.daily_statistics(db, start, end)
            appointments = self.appointments.list_between(db, start, end)
        return self.aggregator.daily_statistics(appointments, start, end)

    def average_consultation_price(self, start: Optional[date] = None, end: Optional[date] = None) -> float:
        return self.aggregator.average_consultation_price(self._all_appointments(), start, end)
