"""Database session utilities."""
from __future__ import annotations

from contextlib import contextmanager
import logging
import time
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

from ..domain import models  # noqa: F401  registers tables on SQLModel.metadata
from ..domain.errors import AccessDenied, BackingStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty db
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, future=True, **kwargs)
    return create_engine(database_url, echo=False, future=True, pool_pre_ping=True)


def build_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        class_=Session,
    )


def init_db(engine: Engine, attempts: int = 30) -> None:
    """Create tables if they do not exist.

    Retries on startup to wait for the database service in Docker.
    """
    last_err: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            SQLModel.metadata.create_all(engine)
            return
        except SQLAlchemyError as exc:  # pragma: no cover
            last_err = exc
            logger.warning("waiting for database... (%d/%d) %s", attempt, attempts, exc)
            time.sleep(1)
    if last_err:
        raise BackingStoreError("Database not reachable") from last_err


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except AccessDenied:
        # nothing but audit rows is pending at a denial; keep them
        session.commit()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("database error, transaction rolled back")
        raise BackingStoreError() from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def retry_read(
    operation: Callable[[], T],
    attempts: int = 3,
    backoff_seconds: float = 0.2,
    on_retry: Optional[Callable[[], None]] = None,
) -> T:
    """Run an idempotent read, retrying store failures with linear backoff.

    Writes must never go through here.
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except (SQLAlchemyError, OSError) as exc:
            if attempt == attempts:
                logger.error("read failed after %d attempts: %s", attempts, exc)
                raise BackingStoreError() from exc
            logger.warning("read failed (%d/%d), retrying: %s", attempt, attempts, exc)
            if on_retry is not None:
                on_retry()
            time.sleep(backoff_seconds * attempt)
    raise BackingStoreError()  # pragma: no cover
