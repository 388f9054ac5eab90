"""Database connection and session management."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from mediaforge.logging_config import get_logger
from mediaforge.settings import settings
from mediaforge.storage.models import Base

logger = get_logger(__name__)


def _load_models() -> None:
    """Import every model module so their tables are registered on Base."""
    import mediaforge.auth.models  # noqa: F401
    import mediaforge.credits.models  # noqa: F401
    import mediaforge.notifications.models  # noqa: F401
    import mediaforge.payments.models  # noqa: F401
    import mediaforge.referral.models  # noqa: F401


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None, echo: bool | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
            echo: Log SQL statements (defaults to on in development)
        """
        self.database_url = database_url or settings.database_url

        connect_args = {}
        if self.database_url.startswith("sqlite"):
            # Concurrent writers wait for the lock instead of failing fast
            connect_args = {"check_same_thread": False, "timeout": 30}

        self.engine = create_engine(
            self.database_url,
            echo=settings.env == "development" if echo is None else echo,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        logger.info("database_initialized", url=self.engine.url.render_as_string(hide_password=True))

    def create_tables(self) -> None:
        """Create all tables in the database."""
        _load_models()
        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created")

    def drop_tables(self) -> None:
        """Drop all tables from the database."""
        _load_models()
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for database operations.

        Commits on success, rolls back everything on any exception.

        Yields:
            Database session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Global database instance
db = Database()


def get_database() -> Database:
    """FastAPI dependency returning the process-wide database."""
    return db
