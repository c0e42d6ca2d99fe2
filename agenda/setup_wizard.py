"""
Interactive setup wizard for the clinic configuration.

Guides user through:
1. Practitioner details
2. Working days
3. Opening hours and default appointment length
4. Consultation price

Runs only while no configuration exists; afterwards the API edits it.
"""
import sys
from datetime import time
from typing import Callable, List, Optional

from agenda.config import (
    DEFAULT_APPOINTMENT_DURATION,
    DEFAULT_CLOSING_TIME,
    DEFAULT_OPENING_TIME,
    MAX_APPOINTMENT_DURATION,
    MIN_APPOINTMENT_DURATION,
)
from agenda.configuration import ConfigurationService, validate_configuration
from agenda.database import init_database
from agenda.dateutils import WEEKDAYS, Weekday, format_time, parse_time
from agenda.errors import AgendaError
from agenda.models import ClinicConfiguration
from agenda.validators import is_valid_email, is_valid_phone

DEFAULT_DAYS = ",".join(day.name.lower() for day in WEEKDAYS)
YES_NO_ANSWERS = {"y": True, "yes": True, "n": False, "no": False}


def print_header(text: str) -> None:
    """Print section header."""
    print("\n" + "=" * 70)
    print(f"  {text}")
    print("=" * 70 + "\n")


def prompt_text(
    prompt: str,
    required: bool = True,
    max_length: Optional[int] = None,
    default: Optional[str] = None
) -> str:
    """
    Ask for a line of text, re-asking until it is acceptable.

    Args:
        prompt: Field label
        required: Reject empty answers
        max_length: Column width the value must fit in
        default: Value used when the answer is empty (shown in brackets)
    """
    label = f"{prompt} [{default}]: " if default else f"{prompt}: "
    while True:
        value = input(label).strip() or (default or "")
        if required and not value:
            print(f"❌ {prompt} is required.\n")
        elif max_length and len(value) > max_length:
            print(f"❌ {prompt} must fit in {max_length} characters.\n")
        else:
            return value


def prompt_yes_no(prompt: str, default: bool = True) -> bool:
    """Ask a yes/no question; an empty answer means ``default``."""
    suffix = "Y/n" if default else "y/N"
    while True:
        answer = input(f"{prompt} [{suffix}]: ").strip().lower()
        if not answer:
            return default
        if answer in YES_NO_ANSWERS:
            return YES_NO_ANSWERS[answer]
        print("❌ Please answer 'yes' or 'no'.\n")


def prompt_number(
    prompt: str,
    minimum: float,
    maximum: Optional[float] = None,
    cast: Callable[[str], float] = float,
    default: Optional[float] = None
) -> float:
    """
    Ask for a number within ``[minimum, maximum]``.

    Args:
        prompt: Field label
        minimum: Smallest accepted value
        maximum: Largest accepted value (unbounded when None)
        cast: ``int`` for whole minutes, ``float`` for amounts
        default: Value used when the answer is empty
    """
    label = f"{prompt} [{default}]: " if default is not None else f"{prompt}: "
    while True:
        answer = input(label).strip()
        if not answer and default is not None:
            return default
        try:
            value = cast(answer)
        except ValueError:
            print("❌ Invalid number. Please try again.\n")
            continue

        if value < minimum or (maximum is not None and value > maximum):
            bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
            print(f"❌ {prompt} must be {bounds}.\n")
            continue
        return value


def prompt_time(prompt: str, default: time) -> time:
    """Prompt for an HH:MM time, re-asking until it parses."""
    while True:
        value = prompt_text(prompt, default=format_time(default))
        try:
            return parse_time(value)
        except ValueError:
            print("❌ Use the HH:MM format. Please try again.\n")


def parse_days(value: str) -> List[Weekday]:
    """
    Parse comma-separated day names ("monday,tuesday").

    Raises:
        ValueError: If a name is not a weekday
    """
    days = []
    for name in value.split(","):
        name = name.strip().upper()
        if not name:
            continue
        if name not in Weekday.__members__:
            raise ValueError(f"Unknown day: {name.lower()}")
        days.append(Weekday[name])
    return days


def prompt_days() -> List[Weekday]:
    """Prompt for working days until at least one valid day is given."""
    while True:
        value = prompt_text("Working days (comma-separated)", default=DEFAULT_DAYS)
        try:
            days = parse_days(value)
        except ValueError as e:
            print(f"❌ {e}. Please try again.\n")
            continue

        if not days:
            print("❌ At least one working day must be selected.\n")
            continue

        return days


def prompt_contact(prompt: str, is_valid) -> str:
    while True:
        value = prompt_text(prompt, required=True)
        if is_valid(value):
            return value
        print(f"❌ {prompt} format is not valid. Please try again.\n")


def run_setup_wizard() -> ClinicConfiguration:
    """
    Run interactive setup wizard.

    Returns:
        ClinicConfiguration ready to be saved
    """
    print_header("CLINIC SETUP WIZARD")
    print("This wizard will guide you through configuring your practice.\n")

    print_header("PRACTITIONER DETAILS")
    first_name = prompt_text("First name", required=True, max_length=100)
    last_name = prompt_text("Last name", required=True, max_length=100)
    specialty = prompt_text("Specialty", required=True, max_length=100)
    license_number = prompt_text("License number", required=True, max_length=50)
    phone = prompt_contact("Phone", is_valid_phone)
    email = prompt_contact("Email", is_valid_email)
    address = prompt_text("Address", required=False, max_length=255)

    print_header("WORKING DAYS")
    working_days = prompt_days()

    print_header("OPENING HOURS")
    while True:
        opening_time = prompt_time("Opening time (HH:MM)", DEFAULT_OPENING_TIME)
        closing_time = prompt_time("Closing time (HH:MM)", DEFAULT_CLOSING_TIME)
        if opening_time < closing_time:
            break
        print("❌ Opening time must be before closing time. Please try again.\n")

    print(f"Appointment length between {MIN_APPOINTMENT_DURATION} and {MAX_APPOINTMENT_DURATION} minutes "
          f"(typical: {DEFAULT_APPOINTMENT_DURATION}).")
    default_duration = prompt_number(
        "Default appointment length (minutes)",
        MIN_APPOINTMENT_DURATION,
        MAX_APPOINTMENT_DURATION,
        cast=int,
        default=DEFAULT_APPOINTMENT_DURATION
    )

    print_header("PRICING")
    consultation_price = prompt_number("Consultation price", 0.0)

    return ClinicConfiguration(
        first_name=first_name,
        last_name=last_name,
        specialty=specialty,
        license_number=license_number,
        phone=phone,
        email=email,
        address=address,
        working_days=working_days,
        opening_time=opening_time,
        closing_time=closing_time,
        default_duration=int(default_duration),
        consultation_price=consultation_price,
    )


def print_summary(config: ClinicConfiguration) -> None:
    print_header("CONFIGURATION SUMMARY")
    print(f"Practitioner: {config.first_name} {config.last_name} ({config.specialty})")
    print(f"License: {config.license_number}")
    print(f"Contact: {config.phone} / {config.email}")
    days = ", ".join(Weekday(d).name.capitalize() for d in sorted(config.working_days))
    print(f"Working days: {days}")
    print(f"Hours: {format_time(config.opening_time)} - {format_time(config.closing_time)}")
    print(f"Default length: {config.default_duration} min")
    print(f"Consultation price: {config.consultation_price:.2f}\n")


def main():
    """Main entry point."""
    try:
        service = ConfigurationService(init_database())
        if not service.needs_setup():
            print("✅ The clinic is already configured. Use the API to change it.")
            return

        config = run_setup_wizard()
        print_summary(config)

        errors = validate_configuration(config)
        if errors:
            for error in errors:
                print(f"❌ {error}")
            sys.exit(1)

        if prompt_yes_no("\nSave this configuration?", default=True):
            service.save(config)
            print("\n✅ Configuration saved successfully!")
        else:
            print("\n❌ Configuration not saved.")

    except KeyboardInterrupt:
        print("\n\n❌ Setup cancelled.")
        sys.exit(1)
    except AgendaError as e:
        print(f"\n\n❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
