"""
Database Session Management
===========================

Engine and session handling with SQLAlchemy.
Engines are cached per database URL so tests can point at temporary files.
"""

import os
from contextlib import contextmanager
from typing import Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from .models import Base

_engines: Dict[str, Engine] = {}


def _current_database_url() -> str:
    from ..config import get_settings
    return get_settings().database_url


def _create_engine_for_url(database_url: str) -> Engine:
    echo = os.environ.get("SQL_ECHO", "false").lower() == "true"

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=echo,
    )


def get_engine(database_url: Optional[str] = None) -> Engine:
    """Get the SQLAlchemy engine for a URL (defaults to configured URL)"""
    url = database_url or _current_database_url()
    engine = _engines.get(url)
    if engine is None:
        engine = _create_engine_for_url(url)
        _engines[url] = engine
    return engine


def reset_engines():
    """Dispose cached engines (primarily for tests)."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()


def init_db(engine: Optional[Engine] = None):
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def get_db_session(engine: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Context manager for database session.

    Usage:
        with get_db_session(engine) as db:
            db.get(StoredSnapshot, key)
    """
    factory = sessionmaker(bind=engine or get_engine(), autoflush=False)
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
