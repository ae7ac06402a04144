"""
Synchronous Database Access for CutStitch Worker

The worker uses synchronous database operations since RQ tasks are sync.
This module provides a sync session factory and context manager.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings


def get_database_url() -> str:
    """
    Get database URL from settings.
    Converts async SQLite URL to sync URL if needed.
    """
    url = get_settings().database_url

    if url.startswith("sqlite+aiosqlite://"):
        url = url.replace("sqlite+aiosqlite://", "sqlite://")

    return url


_engine = None


def get_engine() -> Engine:
    """Get or create the sync database engine, creating tables on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine(get_database_url())
        Base.metadata.create_all(_engine)
    return _engine


_SessionLocal = None


def get_session_factory():
    """Get or create the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
        )
    return _SessionLocal


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager that provides a database session.

    Usage:
        with get_db_session() as db:
            job = db.query(RenderJob).filter_by(id=job_id).first()
            job.status = "rendering"
            db.commit()
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class Base(DeclarativeBase):
    """Base class for worker models."""
    pass
