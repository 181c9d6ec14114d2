# backend/spacezone/db/session.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from spacezone.core.config import settings
from spacezone.core.errors import DomainError, ServerError

logger = logging.getLogger(__name__)


def build_session_factory(database_url: str) -> sessionmaker:
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
    )
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


SessionLocal = build_session_factory(settings.database_url)


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Scoped atomic unit of work: every write made inside the block is committed
    together, or all of them are rolled back.

    IntegrityError is re-raised untouched so callers can react to uniqueness
    violations; other driver errors surface as ServerError.
    """
    try:
        yield db
        db.commit()
    except (DomainError, IntegrityError):
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Transaction rolled back")
        raise ServerError("Database operation failed") from exc
    except Exception:
        db.rollback()
        raise


def run_in_session(session_factory: Callable[[], Session], fn, *args, **kwargs):
    """Open a session, run ``fn(db, *args, **kwargs)`` and close the session."""
    db = session_factory()
    try:
        return fn(db, *args, **kwargs)
    finally:
        db.close()
