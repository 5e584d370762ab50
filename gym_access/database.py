from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings
from .errors import StorageUnavailableError


settings = get_settings()

engine_kwargs = {"future": True, "pool_pre_ping": True}
connect_args: dict = {}
if settings.is_sqlite:
    # Needed for SQLite when used with threads (FastAPI default); the busy
    # timeout bounds how long a writer waits for the database lock.
    connect_args = {"check_same_thread": False, "timeout": settings.storage_timeout_seconds}
elif settings.database_url.startswith("postgresql"):
    timeout_ms = int(settings.storage_timeout_seconds * 1000)
    connect_args = {"options": f"-c statement_timeout={timeout_ms}"}

engine = create_engine(settings.database_url, connect_args=connect_args, **engine_kwargs)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_errors() -> Iterator[None]:
    """Translate connection loss, lock waits and statement timeouts into a transient failure."""
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        raise StorageUnavailableError(cause=exc) from exc
