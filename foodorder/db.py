import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from foodorder.config import Settings
from foodorder.errors import Conflict, EngineError, StorageTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class Database:
    """
    Owns the engine and the session factory for one application instance.

    Built explicitly by `create_app()` (or a test fixture) and torn down with
    `dispose()`; nothing in the package keeps a module-level engine.
    """

    def __init__(self, settings: Settings):
        self.url = settings.DB_URL
        self.retry_attempts = max(1, settings.REDEEM_MAX_ATTEMPTS)
        is_sqlite = self.url.startswith("sqlite")

        if is_sqlite:
            connect_args = {"timeout": settings.DB_TIMEOUT_SEC, "check_same_thread": False}
            self.engine = create_engine(self.url, connect_args=connect_args)
            _tune_sqlite(self.engine)
        else:
            self.engine = create_engine(
                self.url,
                pool_pre_ping=True,
                pool_timeout=settings.DB_TIMEOUT_SEC,
            )

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
            info={"retry_attempts": self.retry_attempts},
        )

    def create_all(self) -> None:
        # Importing the models registers their tables with Base
        import foodorder.models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _tune_sqlite(engine) -> None:
    # SQLite has no row locks; every transaction takes the write lock up front
    # so concurrent writers queue on the busy timeout instead of deadlocking
    # while upgrading a read lock.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON;")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_db(request: Request) -> Iterator[Session]:
    database: Database = request.app.state.db
    with database.session() as db:
        yield db


def run_with_retries(db: Session, fn: Callable[[], T], *, what: str) -> T:
    """
    Run `fn` (which must commit on success) and retry it on optimistic-lock
    collisions or a busy database.

    Typed engine errors are rolled back and re-raised untouched. After the
    last failed attempt a version collision surfaces as Conflict and a busy
    database as StorageTimeout.
    """
    attempts = db.info.get("retry_attempts", 3)
    last_exc: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except EngineError:
            db.rollback()
            raise
        except StaleDataError as exc:
            db.rollback()
            last_exc = exc
            logger.info("%s: concurrent update, retrying (attempt %d/%d)", what, attempt, attempts)
        except OperationalError as exc:
            db.rollback()
            last_exc = exc
            logger.info("%s: storage busy, retrying (attempt %d/%d): %s", what, attempt, attempts, exc.orig)
        except Exception:
            db.rollback()
            raise

    if isinstance(last_exc, StaleDataError):
        raise Conflict(f"{what}: gave up after {attempts} concurrent updates")
    raise StorageTimeout(f"{what}: storage did not respond in time")
