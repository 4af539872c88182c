"""
SQLAlchemy Models for Database
==============================

Durable storage is a single key-value table. Each row holds one JSON
snapshot of the tracker's data collections under a fixed namespace key.

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StoredSnapshot(Base):
    """Persisted snapshot row"""
    __tablename__ = "snapshots"

    key = Column(String(128), primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
