"""Database engine and transaction setup.

Production Pattern:
- One engine per process (lazily created from DATABASE_URL)
- Automatic table creation via init_database()
- Every unit of work runs inside ``Database.transaction()``, which commits
  on success, rolls back on error and wraps driver failures in StoreError
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agenda.config import get_settings
from agenda.database_models import Base
from agenda.errors import StoreError
from agenda.logging_config import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """
    Create engine for the given URL.

    SQLite connections are shared across threads (FastAPI runs sync routes
    in a worker pool) and in-memory databases use a single static
    connection so every session sees the same data.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(database_url, pool_pre_ping=True)


class Database:
    """
    Engine plus session factory.

    Pattern: Thin wrapper around SQLAlchemy, shared by all repositories.
    """

    def __init__(self, database_url: str):
        """
        Initialize with database connection.

        Args:
            database_url: SQLAlchemy connection string
        """
        self.database_url = database_url
        self.engine = create_db_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        """Create tables if they don't exist. Safe to call multiple times."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not initialize database: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Session scoped to one unit of work.

        Usage:
            with database.transaction() as db:
                repo.add(db, record)

        Raises:
            StoreError: If the backing store fails
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("store_failure", error=str(e))
            raise StoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


# Global database (initialized on first use)
_database: Optional[Database] = None


def get_database() -> Database:
    """
    Get or create the process-wide database.

    Returns:
        Database bound to DATABASE_URL
    """
    global _database

    if _database is None:
        _database = Database(get_settings().database_url)

    return _database


def init_database() -> Database:
    """
    Initialize database tables.

    Usage:
        @asynccontextmanager
        async def lifespan(app):
            init_database()
            yield
    """
    database = get_database()
    database.create_all()
    logger.info("database_initialized", url=database.engine.url.render_as_string(hide_password=True))
    return database


def close_database():
    """
    Dispose of the global database engine.

    Call this during application shutdown to gracefully close
    all database connections.
    """
    global _database

    if _database is not None:
        _database.dispose()
        _database = None
