"""Primary and secondary SQLite stores behind one explicit context object."""

import importlib
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from kosh.config import Settings, get_settings
from kosh.core.exceptions import StoreNotInitializedError
from kosh.database.base import Base, SecondaryBase
from kosh.database.migrations import (
    PRIMARY_MIGRATIONS,
    SECONDARY_MIGRATIONS,
    create_schema,
    run_migrations,
)

logger = logging.getLogger(__name__)

_BEGIN_MODE_OPTION = "sqlite_begin_mode"


def secondary_path_for(primary_path: Union[str, Path], filename: str = "database_old.db") -> Path:
    """The non-GST store always sits next to the primary file."""
    return Path(primary_path).parent / filename


def _create_sqlite_engine(path: Path, busy_timeout_seconds: int) -> Engine:
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": busy_timeout_seconds},
        pool_pre_ping=True,
    )
    busy_timeout_ms = busy_timeout_seconds * 1000

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _connection_record):
        # transactions are started explicitly by the "begin" listener below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
            try:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
            except sqlite3.DatabaseError:
                pass
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_transaction(conn):
        mode = conn.get_execution_options().get(_BEGIN_MODE_OPTION, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")

    return engine


def _import_models():
    importlib.import_module("kosh.models")


class StoreContext:
    """Owns the primary and secondary store handles for one database path.

    Nothing is opened until :meth:`initialize`; every accessor raises
    :class:`StoreNotInitializedError` before that and after :meth:`close`.
    Several contexts may live side by side (one per test, one per restore).
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._lock = threading.Lock()
        self._db_path: Optional[Path] = None
        self._primary: Optional[Engine] = None
        self._secondary: Optional[Engine] = None
        self._primary_sessions: Optional[sessionmaker] = None
        self._primary_writers: Optional[sessionmaker] = None
        self._secondary_sessions: Optional[sessionmaker] = None
        self._secondary_writers: Optional[sessionmaker] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_initialized(self) -> bool:
        return self._primary is not None

    @property
    def db_path(self) -> Optional[Path]:
        return self._db_path

    @property
    def secondary_db_path(self) -> Optional[Path]:
        if self._db_path is None:
            return None
        return secondary_path_for(self._db_path, self.settings.SECONDARY_DB_FILENAME)

    def initialize(self, db_path: Union[str, Path, None] = None) -> "StoreContext":
        with self._lock:
            if self.is_initialized:
                logger.info("Store already initialized at %s; ignoring repeated initialize().", self._db_path)
                return self

            path = Path(db_path).expanduser().resolve() if db_path else self.settings.database_path
            path.parent.mkdir(parents=True, exist_ok=True)
            secondary_path = secondary_path_for(path, self.settings.SECONDARY_DB_FILENAME)
            timeout = self.settings.SQLITE_BUSY_TIMEOUT_SECONDS

            _import_models()
            primary = _create_sqlite_engine(path, timeout)
            secondary = _create_sqlite_engine(secondary_path, timeout)
            try:
                create_schema(primary, Base.metadata)
                run_migrations(primary, PRIMARY_MIGRATIONS)
                create_schema(secondary, SecondaryBase.metadata)
                run_migrations(secondary, SECONDARY_MIGRATIONS)
            except Exception:
                logger.exception("Failed to prepare store at %s", path)
                primary.dispose()
                secondary.dispose()
                raise

            self._db_path = path
            self._primary = primary
            self._secondary = secondary
            self._primary_sessions = self._sessionmaker(primary)
            self._primary_writers = self._sessionmaker(
                primary.execution_options(**{_BEGIN_MODE_OPTION: "IMMEDIATE"})
            )
            self._secondary_sessions = self._sessionmaker(secondary)
            self._secondary_writers = self._sessionmaker(
                secondary.execution_options(**{_BEGIN_MODE_OPTION: "IMMEDIATE"})
            )

        try:
            self._seed()
        except Exception:
            logger.exception("Failed to seed store at %s", path)
            self.close()
            raise

        logger.info("Store opened: primary=%s secondary=%s", path, secondary_path)
        return self

    def _seed(self) -> None:
        from kosh.services.user_service import ensure_default_admin

        with self.write_session() as db:
            ensure_default_admin(db, self.settings)

    @staticmethod
    def _sessionmaker(bind) -> sessionmaker:
        return sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=bind,
        )

    def close(self) -> None:
        with self._lock:
            if not self.is_initialized:
                return
            for engine in (self._primary, self._secondary):
                if engine is not None:
                    engine.dispose()
            logger.info("Store closed: %s", self._db_path)
            self._db_path = None
            self._primary = None
            self._secondary = None
            self._primary_sessions = None
            self._primary_writers = None
            self._secondary_sessions = None
            self._secondary_writers = None

    def reinitialize(self, db_path: Union[str, Path, None] = None) -> "StoreContext":
        """Close and reopen, e.g. after a restore swapped the file on disk."""
        path = db_path or self._db_path
        self.close()
        return self.initialize(path)

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------
    @property
    def primary(self) -> Engine:
        if self._primary is None:
            raise StoreNotInitializedError("primary")
        return self._primary

    @property
    def secondary(self) -> Engine:
        if self._secondary is None:
            raise StoreNotInitializedError("secondary")
        return self._secondary

    def primary_session(self) -> Session:
        if self._primary_sessions is None:
            raise StoreNotInitializedError("primary")
        return self._primary_sessions()

    def secondary_session(self) -> Session:
        if self._secondary_sessions is None:
            raise StoreNotInitializedError("secondary")
        return self._secondary_sessions()

    @contextmanager
    def write_session(self) -> Iterator[Session]:
        """Primary-store unit of work opened with ``BEGIN IMMEDIATE``."""
        if self._primary_writers is None:
            raise StoreNotInitializedError("primary")
        with self._unit_of_work(self._primary_writers) as db:
            yield db

    @contextmanager
    def secondary_write_session(self) -> Iterator[Session]:
        if self._secondary_writers is None:
            raise StoreNotInitializedError("secondary")
        with self._unit_of_work(self._secondary_writers) as db:
            yield db

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        db = self.primary_session()
        try:
            yield db
        finally:
            db.close()

    @staticmethod
    @contextmanager
    def _unit_of_work(factory: sessionmaker) -> Iterator[Session]:
        db = factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------
    def backup_to(self, target_path: Union[str, Path]) -> Path:
        """Online copy of the primary store using the SQLite backup API."""
        target = Path(target_path).expanduser().resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        raw = self.primary.raw_connection()
        try:
            destination = sqlite3.connect(str(target))
            try:
                raw.driver_connection.backup(destination)
            finally:
                destination.close()
        finally:
            raw.close()
        logger.info("Primary store backed up to %s", target)
        return target


__all__ = ["StoreContext", "secondary_path_for"]
