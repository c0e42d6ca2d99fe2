"""API key authentication and management."""
import uuid
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Optional

from agenda.database import Database
from agenda.database_models import APIKey
from agenda.errors import AgendaError
from agenda.logging_config import get_logger

logger = get_logger(__name__)


class InvalidAPIKeyError(AgendaError):
    """Raised when API key is invalid or inactive."""
    pass


@dataclass(frozen=True)
class Principal:
    """Caller identity attached to a validated API key."""
    name: str
    key_prefix: str


class APIKeyManager:
    """
    Manages API key generation, validation, and lifecycle.

    Pattern: Secure key generation with bcrypt hashing + prefix indexing.
    Performance: O(1) lookup using key prefix, then bcrypt verification.
    Keys are shown in plain text ONCE during generation.
    """

    def __init__(self, database: Database):
        """Initialize with the shared database (tables are created if missing)."""
        self.database = database
        self.database.create_all()

    def generate_api_key(self, principal: str, description: Optional[str] = None) -> str:
        """
        Generate new API key for a principal (front desk, practitioner, integration).

        WARNING: Returns key in plain text ONCE.
        Store it securely - cannot be retrieved later.

        Args:
            principal: Name of the key holder
            description: Optional description/label

        Returns:
            API key in format: ak_<hex>
        """
        api_key = f"ak_{uuid.uuid4().hex}"
        key_prefix = APIKey.get_key_prefix(api_key)

        with self.database.transaction() as db:
            db.add(APIKey(
                key_prefix=key_prefix,
                key_hash=APIKey.hash_key(api_key),
                principal=principal,
                created_at=datetime.now(UTC),
                last_used=datetime.now(UTC),
                is_active=True,
                description=description,
            ))

        logger.info("api_key_generated", principal=principal, key_prefix=key_prefix)
        return api_key

    def validate_api_key(self, api_key: str) -> Principal:
        """
        Validate API key and return its principal.

        Updates last_used timestamp on successful validation.

        Raises:
            InvalidAPIKeyError: If key is invalid or inactive
        """
        key_prefix = APIKey.get_key_prefix(api_key)

        with self.database.transaction() as db:
            db_key = db.query(APIKey).filter(
                APIKey.key_prefix == key_prefix,
                APIKey.is_active == True  # noqa: E712
            ).first()

            if not db_key or not APIKey.verify_key(api_key, db_key.key_hash):
                raise InvalidAPIKeyError("Invalid or inactive API key")

            db_key.last_used = datetime.now(UTC)
            return Principal(name=db_key.principal, key_prefix=key_prefix)

    def deactivate_api_key(self, api_key: str) -> None:
        """
        Deactivate API key (soft delete).

        Raises:
            InvalidAPIKeyError: If key not found
        """
        with self.database.transaction() as db:
            db_key = self._find(db, api_key)
            db_key.is_active = False

        logger.info("api_key_deactivated", key_prefix=APIKey.get_key_prefix(api_key))

    def _get_last_used(self, api_key: str) -> datetime:
        """Helper for testing - get last_used timestamp."""
        with self.database.transaction() as db:
            return self._find(db, api_key).last_used

    def _find(self, db, api_key: str) -> APIKey:
        db_key = db.query(APIKey).filter(
            APIKey.key_prefix == APIKey.get_key_prefix(api_key)
        ).first()

        if not db_key or not APIKey.verify_key(api_key, db_key.key_hash):
            raise InvalidAPIKeyError("API key not found")
        return db_key
