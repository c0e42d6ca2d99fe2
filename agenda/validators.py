"""Field format checks shared by patient and configuration validation."""
import re
from typing import List

from pydantic import ValidationError as PydanticValidationError

PHONE_PATTERN = re.compile(r'^[+]?[\d\s\-()]{8,15}$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
NATIONAL_ID_PATTERN = re.compile(r'^\d{7,8}$')


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(phone))


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def normalize_national_id(national_id: str) -> str:
    """Keep digits only ("12.345.678" -> "12345678")."""
    return re.sub(r'\D', '', national_id)


def is_valid_national_id(national_id: str) -> bool:
    """7 or 8 digits once separators are stripped."""
    return bool(NATIONAL_ID_PATTERN.match(normalize_national_id(national_id)))


def describe_pydantic_errors(exc: PydanticValidationError) -> List[str]:
    """Flatten pydantic errors into human-readable strings."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
        message = error.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return messages
