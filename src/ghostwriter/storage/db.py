"""Engine and transaction scope for the ledger database."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ghostwriter.logging_config import get_logger
from ghostwriter.settings import settings
from ghostwriter.storage.models import Base

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine and hands out one session per ledger operation.

    Services open a session for each operation, so the balance change,
    its ledger entry and any idempotency row commit together.
    """

    def __init__(self, database_url: str | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
        """
        self.database_url = database_url or settings.database_url
        self.is_sqlite = self.database_url.startswith("sqlite")

        connect_args = {}
        if self.is_sqlite:
            # FastAPI runs sync handlers in a threadpool
            connect_args["check_same_thread"] = False

        self.engine = create_engine(
            self.database_url,
            echo=settings.env == "development",
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        if self.is_sqlite:
            # SQLite leaves user references unchecked unless asked per connection
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        logger.info("database_initialized", url=self.engine.url.render_as_string(hide_password=True))

    def create_tables(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created")

    def drop_tables(self) -> None:
        """Drop all tables from the database."""
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for one ledger operation.

        Commits when the block exits normally. Any exception, including
        a validation error raised mid-operation, rolls back every write
        of the block.

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

    def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("database_unreachable", error=str(e))
            return False
        return True

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()


# Global database instance
db = Database()
