"""Unit tests for the clinic configuration service."""
from datetime import date, time

import pytest

from agenda.configuration import validate_configuration
from agenda.database_models import ClinicConfigurationRow
from agenda.errors import ConfigurationMissingError, ValidationError

MONDAY = date(2024, 1, 8)
SATURDAY = date(2024, 1, 6)


class TestSetup:
    def test_needs_setup_until_saved(self, configuration_service, make_configuration):
        assert configuration_service.needs_setup() is True
        assert configuration_service.get_or_none() is None

        configuration_service.save(make_configuration())

        assert configuration_service.needs_setup() is False

    def test_require_without_configuration(self, configuration_service):
        with pytest.raises(ConfigurationMissingError):
            configuration_service.require()

    def test_save_twice_keeps_single_row(self, configuration_service, make_configuration, database):
        configuration_service.save(make_configuration())
        saved = configuration_service.save(make_configuration(specialty="Neurology"))

        assert saved.specialty == "Neurology"
        assert saved.id == 1
        with database.transaction() as db:
            assert db.query(ClinicConfigurationRow).count() == 1

    def test_save_rejects_missing_practitioner_fields(self, configuration_service, make_configuration):
        with pytest.raises(ValidationError) as exc_info:
            configuration_service.save(make_configuration(first_name="", license_number=" "))

        assert "First name is required" in exc_info.value.errors
        assert "License number is required" in exc_info.value.errors
        assert configuration_service.needs_setup()

    def test_validate_requires_a_working_day(self, make_configuration):
        errors = validate_configuration(make_configuration(working_days=[]))
        assert "At least one working day must be selected" in errors

    def test_round_trips_schedule(self, configuration_service, configured):
        loaded = configuration_service.require()
        assert loaded.opening_time == time(8, 0)
        assert loaded.closing_time == time(18, 0)
        assert sorted(int(d) for d in loaded.working_days) == [1, 2, 3, 4, 5]
        assert loaded.consultation_price == 15000.0


class TestPredicates:
    def test_nothing_is_working_without_configuration(self, configuration_service):
        assert configuration_service.is_working_day(MONDAY) is False
        assert configuration_service.is_working_hour(time(9, 0)) is False

    def test_working_day(self, configuration_service, configured):
        assert configuration_service.is_working_day(MONDAY)
        assert not configuration_service.is_working_day(SATURDAY)
        assert configuration_service.is_working_day("2024-01-08")

    def test_working_hour_bounds(self, configuration_service, configured):
        assert configuration_service.is_working_hour("08:00")
        assert configuration_service.is_working_hour("17:59")
        assert not configuration_service.is_working_hour("18:00")
        assert not configuration_service.is_working_hour("07:59")

    @pytest.mark.parametrize("value", ["08/01/2024", "2024-02-30", ""])
    def test_malformed_date_is_a_validation_error(self, configuration_service, configured, value):
        with pytest.raises(ValidationError):
            configuration_service.is_working_day(value)

    @pytest.mark.parametrize("value", ["9am", "25:00", "12:60"])
    def test_malformed_time_is_a_validation_error(self, configuration_service, configured, value):
        with pytest.raises(ValidationError):
            configuration_service.is_working_hour(value)

    def test_malformed_input_rejected_before_setup(self, configuration_service):
        with pytest.raises(ValidationError):
            configuration_service.is_working_day("tomorrow")

    def test_time_slots(self, configuration_service, configured):
        slots = configuration_service.time_slots()
        assert len(slots) == 20
        assert slots[-1] == time(17, 30)


class TestNonWorkingDates:
    def test_adding_is_idempotent(self, configuration_service, configured):
        configuration_service.add_non_working_dates([MONDAY])
        updated = configuration_service.add_non_working_dates(["2024-01-08"])

        assert updated.non_working_dates == frozenset({MONDAY})
        assert not configuration_service.is_working_day(MONDAY)

    def test_adding_keeps_existing_dates(self, configuration_service, configured):
        configuration_service.add_non_working_dates([MONDAY])
        updated = configuration_service.add_non_working_dates([date(2024, 1, 9)])
        assert updated.non_working_dates == frozenset({MONDAY, date(2024, 1, 9)})

    def test_past_dates_are_rejected(self, configuration_service, configured):
        with pytest.raises(ValidationError) as exc_info:
            configuration_service.add_non_working_dates([date(2024, 1, 1)])
        assert "past dates cannot be added" in exc_info.value.errors[0]

    def test_malformed_dates_are_rejected(self, configuration_service, configured):
        with pytest.raises(ValidationError):
            configuration_service.add_non_working_dates(["08/01/2024"])

    def test_removing_absent_date_is_noop(self, configuration_service, configured):
        configuration_service.add_non_working_dates([MONDAY])
        updated = configuration_service.remove_non_working_dates([date(2024, 2, 1)])
        assert updated.non_working_dates == frozenset({MONDAY})

    def test_removing_restores_working_day(self, configuration_service, configured):
        configuration_service.add_non_working_dates([MONDAY])
        configuration_service.remove_non_working_dates([MONDAY])
        assert configuration_service.is_working_day(MONDAY)

    def test_range_adds_every_day(self, configuration_service, configured):
        updated = configuration_service.add_non_working_range(MONDAY, date(2024, 1, 10))
        assert len(updated.non_working_dates) == 3

    def test_requires_configuration(self, configuration_service):
        with pytest.raises(ConfigurationMissingError):
            configuration_service.add_non_working_dates([MONDAY])


class TestPartialUpdates:
    def test_update_working_hours_keeps_holidays(self, configuration_service, configured):
        configuration_service.add_non_working_dates([MONDAY])
        updated = configuration_service.update_working_hours([1, 3, 5], "09:00", "13:00", 20)

        assert sorted(int(d) for d in updated.working_days) == [1, 3, 5]
        assert updated.opening_time == time(9, 0)
        assert updated.default_duration == 20
        assert updated.non_working_dates == frozenset({MONDAY})
        assert updated.specialty == "Cardiology"

    def test_update_working_hours_rejects_inverted_hours(self, configuration_service, configured):
        with pytest.raises(ValidationError) as exc_info:
            configuration_service.update_working_hours([1], "13:00", "09:00", 30)
        assert "Opening time must be before closing time" in exc_info.value.errors

    def test_update_working_hours_rejects_no_days(self, configuration_service, configured):
        with pytest.raises(ValidationError):
            configuration_service.update_working_hours([], "09:00", "13:00", 30)

    def test_update_price(self, configuration_service, configured):
        assert configuration_service.update_price(20000).consultation_price == 20000

    @pytest.mark.parametrize("price", [-1, None])
    def test_update_price_rejects_invalid(self, configuration_service, configured, price):
        with pytest.raises(ValidationError):
            configuration_service.update_price(price)
