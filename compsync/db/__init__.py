"""
Database Package - SQLAlchemy
=============================

Snapshot storage for the tracker's persisted state.
"""

from .models import Base, StoredSnapshot
from .session import get_db_session, get_engine, init_db, reset_engines

__all__ = [
    # Base
    "Base",
    # Models
    "StoredSnapshot",
    # Session
    "get_db_session", "get_engine", "init_db", "reset_engines",
]
