"""
Engine and session plumbing for the SQL record store.

SQLite is used for local runs and tests, PostgreSQL in deployment; the
URL comes from ``Settings.database_url`` via ``api.sessions``.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from admissions.infrastructure.db.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # autosave and background uploads reach the store from worker threads
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(url, pool_size=10, max_overflow=20, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Creates the draft and application tables (and indexes) when missing."""
    Base.metadata.create_all(engine)
    logger.info(f"Record store schema ready on {engine.url.render_as_string(hide_password=True)}")


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """One unit of work: commits on success, rolls back on any error."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
