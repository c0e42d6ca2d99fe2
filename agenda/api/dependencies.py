"""FastAPI dependency injection functions."""
from typing import Optional
from weakref import WeakKeyDictionary

from fastapi import Depends, Header, HTTPException, status

from agenda.appointments import AppointmentService
from agenda.auth import APIKeyManager, InvalidAPIKeyError, Principal
from agenda.clock import Clock, SystemClock
from agenda.config import Settings, get_settings
from agenda.configuration import ConfigurationService
from agenda.database import Database, get_database
from agenda.logging_config import get_logger
from agenda.patients import PatientService
from agenda.statistics import StatisticsService

logger = get_logger(__name__)

_api_key_managers: "WeakKeyDictionary[Database, APIKeyManager]" = WeakKeyDictionary()


def get_db() -> Database:
    """Process-wide database (overridden in tests)."""
    return get_database()


def get_clock() -> Clock:
    return SystemClock()


def get_configuration_service(
    database: Database = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> ConfigurationService:
    return ConfigurationService(database, clock=clock)


def get_patient_service(
    database: Database = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> PatientService:
    return PatientService(database, clock=clock)


def get_appointment_service(
    database: Database = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> AppointmentService:
    return AppointmentService(database, clock=clock)


def get_statistics_service(
    database: Database = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> StatisticsService:
    return StatisticsService(database, clock=clock)


def get_api_key_manager(database: Database = Depends(get_db)) -> APIKeyManager:
    """Get or create the API key manager for ``database`` (one per database)."""
    manager = _api_key_managers.get(database)
    if manager is None:
        manager = APIKeyManager(database)
        _api_key_managers[database] = manager
    return manager


def validate_api_key(
    x_api_key: Optional[str] = Header(None, description="API Key"),
    settings: Settings = Depends(get_settings),
    manager: APIKeyManager = Depends(get_api_key_manager)
) -> Optional[Principal]:
    """
    FastAPI dependency for API key validation on mutating endpoints.

    Returns None when API keys are disabled (AGENDA_REQUIRE_API_KEY=false).

    Raises:
        HTTPException 401: If the key is missing or invalid
    """
    if not settings.require_api_key:
        return None

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    try:
        return manager.validate_api_key(x_api_key)
    except InvalidAPIKeyError as e:
        logger.warning("api_key_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "ApiKey"}
        )
