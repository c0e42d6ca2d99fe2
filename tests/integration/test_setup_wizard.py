# tests/integration/test_setup_wizard.py
from datetime import time
from unittest.mock import patch

import pytest

from agenda.configuration import ConfigurationService
from agenda.dateutils import Weekday
from agenda.setup_wizard import (
    main,
    parse_days,
    prompt_days,
    prompt_number,
    prompt_time,
    prompt_text,
    prompt_yes_no,
    run_setup_wizard,
)

WIZARD_ANSWERS = [
    'Ana',  # first name
    'Pérez',  # last name
    'Cardiology',  # specialty
    'MN-12345',  # license number
    '011 5555-0000',  # phone
    'ana@example.com',  # email
    '',  # address
    'monday,wednesday,friday',  # working days
    '09:00',  # opening time
    '17:00',  # closing time
    '20',  # default length
    '15000',  # price
]


@patch('builtins.input')
def test_prompt_yes_no_accepts_yes(mock_input):
    """Test yes/no prompt with 'yes' answer."""
    mock_input.return_value = 'yes'
    assert prompt_yes_no("Continue?") is True


@patch('builtins.input')
def test_prompt_yes_no_accepts_no(mock_input):
    """Test yes/no prompt with 'no' answer."""
    mock_input.return_value = 'no'
    assert prompt_yes_no("Continue?") is False


@patch('builtins.input')
def test_prompt_yes_no_uses_default(mock_input):
    mock_input.return_value = ''
    assert prompt_yes_no("Continue?", default=False) is False


@patch('builtins.input')
def test_prompt_text_retries_when_required(mock_input):
    """Empty input is rejected until a value is given."""
    mock_input.side_effect = ['', 'Cardiology']
    assert prompt_text("Specialty", required=True) == 'Cardiology'
    assert mock_input.call_count == 2


@patch('builtins.input')
def test_prompt_text_default(mock_input):
    mock_input.return_value = ''
    assert prompt_text("Opening time", default='08:00') == '08:00'


@patch('builtins.input')
def test_prompt_text_enforces_max_length(mock_input):
    mock_input.side_effect = ['MN-' + '1' * 60, 'MN-12345']
    assert prompt_text("License number", max_length=50) == 'MN-12345'


@patch('builtins.input')
def test_prompt_number_retries_until_in_range(mock_input):
    """Non-numbers and out-of-range values are asked again."""
    mock_input.side_effect = ['thirty', '10', '200', '45']
    assert prompt_number("Length", 15, 120, cast=int) == 45
    assert mock_input.call_count == 4


@patch('builtins.input')
def test_prompt_number_default(mock_input):
    mock_input.return_value = ''
    assert prompt_number("Length", 15, 120, cast=int, default=30) == 30


@patch('builtins.input')
def test_prompt_number_without_upper_bound(mock_input):
    mock_input.side_effect = ['-1', '15000.50']
    assert prompt_number("Consultation price", 0.0) == 15000.5


@patch('builtins.input')
def test_prompt_time_retries_on_bad_format(mock_input):
    mock_input.side_effect = ['8am', '08:30']
    assert prompt_time("Opening time", time(8, 0)) == time(8, 30)


def test_parse_days():
    """Day names map to Sunday-based weekdays."""
    assert parse_days("monday, Friday") == [Weekday.MONDAY, Weekday.FRIDAY]
    assert parse_days("sunday") == [Weekday.SUNDAY]
    assert parse_days("") == []


def test_parse_days_rejects_unknown_names():
    with pytest.raises(ValueError):
        parse_days("monday,funday")


@patch('builtins.input')
def test_prompt_days_defaults_to_weekdays(mock_input):
    mock_input.return_value = ''
    assert prompt_days() == [
        Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY,
    ]


@patch('builtins.input')
def test_run_setup_wizard(mock_input):
    """Full wizard run produces a complete configuration."""
    mock_input.side_effect = list(WIZARD_ANSWERS)

    config = run_setup_wizard()

    assert config.first_name == 'Ana'
    assert config.specialty == 'Cardiology'
    assert config.working_days == frozenset({Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY})
    assert config.opening_time == time(9, 0)
    assert config.closing_time == time(17, 0)
    assert config.default_duration == 20
    assert config.consultation_price == 15000.0


@patch('builtins.input')
def test_run_setup_wizard_reasks_inverted_hours(mock_input):
    answers = list(WIZARD_ANSWERS)
    answers[8:10] = ['18:00', '09:00', '08:00', '18:00']
    mock_input.side_effect = answers

    config = run_setup_wizard()

    assert config.opening_time == time(8, 0)
    assert config.closing_time == time(18, 0)


@patch('builtins.input')
def test_run_setup_wizard_reasks_invalid_email(mock_input):
    answers = list(WIZARD_ANSWERS)
    answers[5:6] = ['not-an-email', 'ana@example.com']
    mock_input.side_effect = answers

    assert run_setup_wizard().email == 'ana@example.com'


@patch('builtins.input')
def test_main_saves_configuration(mock_input, database):
    mock_input.side_effect = WIZARD_ANSWERS + ['yes']

    with patch('agenda.setup_wizard.init_database', return_value=database):
        main()

    saved = ConfigurationService(database).require()
    assert saved.license_number == 'MN-12345'
    assert saved.default_duration == 20


@patch('builtins.input')
def test_main_discards_when_declined(mock_input, database):
    mock_input.side_effect = WIZARD_ANSWERS + ['no']

    with patch('agenda.setup_wizard.init_database', return_value=database):
        main()

    assert ConfigurationService(database).needs_setup()


@patch('builtins.input')
def test_main_skips_when_already_configured(mock_input, database, configured):
    with patch('agenda.setup_wizard.init_database', return_value=database):
        main()

    mock_input.assert_not_called()
