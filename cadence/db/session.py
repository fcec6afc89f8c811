from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager, suppress

from loguru import logger
from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cadence.core.errors import StorageError
from cadence.db.models import Base


def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
    """Enable foreign key constraints in SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _log_session_state(session: Session, stage: str) -> None:
    with suppress(Exception):
        logger.debug(f"{stage}: dirty={len(session.dirty)}, new={len(session.new)}, deleted={len(session.deleted)}")


def commit_session(session: Session) -> None:
    """Commit the session's transaction, skipping the round trip when none is open.

    Raises:
        IntegrityError: On a unique constraint violation (rolled back first)
        StorageError: If the commit fails for any other reason (rolled back first)
    """
    _log_session_state(session, "Before commit")
    has_pending = bool(session.new or session.dirty or session.deleted)
    if not has_pending and not session.in_transaction():
        logger.debug("No active transaction, skipping commit")
        return
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database commit failed, rolling back: {e}. Error type: {type(e).__name__}")
        session.rollback()
        raise StorageError("commit", str(e)) from e
    logger.debug("Database session committed successfully")


class Store:
    """Explicit handle on one local database.

    Owns the engine and the session factory. Construct it with a database
    URL, use `session_scope()` for units of work, and call `dispose()` on
    teardown. Nothing here is process-global.
    """

    def __init__(self, database_url: str, *, echo: bool = False):
        self.database_url = database_url
        self.engine = self._create_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info("Database session factory initialized")

    @classmethod
    def from_settings(cls, *, configure_logging: bool = True, create_schema: bool = True) -> Store:
        """Open the configured database the way an app does at startup.

        Args:
            configure_logging: Set up loguru from LOG_LEVEL / CADENCE_LOG_FILE first
            create_schema: Create missing tables
        """
        from cadence.config.settings import settings
        from cadence.core.logger import setup_logger_from_settings

        if configure_logging:
            setup_logger_from_settings()
        store = cls(settings.database_url)
        if create_schema:
            store.create_all()
        return store

    @staticmethod
    def _create_engine(database_url: str, *, echo: bool) -> Engine:
        logger.info(f"Initializing database engine: {database_url}")
        connect_args = {}
        is_sqlite = "sqlite" in database_url.lower()
        if is_sqlite:
            connect_args = {"check_same_thread": False}

        engine = create_engine(
            database_url,
            connect_args=connect_args,
            echo=echo,
            pool_pre_ping=True,
        )
        if is_sqlite:
            event.listen(engine, "connect", _set_sqlite_pragma)
        logger.info("Database engine initialized")
        return engine

    def create_all(self) -> None:
        """Create the schema if it does not exist yet."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema ensured")

    def check_connection(self) -> None:
        """Run a trivial query to verify the database is reachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database connection test failed: {e}")
            raise StorageError("connect", str(e)) from e
        logger.info("Database connection test successful")

    def new_session(self) -> Session:
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Transactional session scope.

        Commits on success, rolls back and re-raises on any error, and
        always closes the session.
        """
        logger.debug("Creating new database session")
        session = self._session_factory()
        try:
            yield session
            commit_session(session)
        except Exception as e:
            logger.error(f"Session error, rolling back: {e}. Error type: {type(e).__name__}")
            session.rollback()
            raise
        finally:
            session.close()
            logger.debug("Database session closed")

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
        logger.info("Database engine disposed")
