"""
Snapshot Persistence
====================

Reads and writes the tracker's durable snapshot: one row in the `snapshots`
table under a fixed namespace key, holding the findings, evidence and
generated-response collections as JSON.

A missing row means "start empty". Any database or decoding failure is
raised as PersistenceError so callers never lose a failed write silently.
"""

import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .db.models import StoredSnapshot
from .db.session import get_db_session, get_engine, init_db
from .errors import PersistenceError
from .schemas import Snapshot

logger = logging.getLogger(__name__)


class SnapshotRepository:
    """
    Key-value snapshot storage backed by SQLAlchemy.

    Usage:
        repo = SnapshotRepository("sqlite:///./compsync.db")
        snapshot = repo.load()      # None if nothing stored yet
        repo.save(snapshot)
    """

    def __init__(self, database_url: Optional[str] = None, storage_key: Optional[str] = None):
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self.storage_key = storage_key or settings.storage_key
        self._engine = get_engine(self.database_url)
        self._schema_ready = False

    def _ensure_schema(self):
        if not self._schema_ready:
            init_db(self._engine)
            self._schema_ready = True

    def load(self) -> Optional[Snapshot]:
        """Read the stored snapshot, or None if the key is absent"""
        try:
            self._ensure_schema()
            with get_db_session(self._engine) as db:
                row = db.get(StoredSnapshot, self.storage_key)
                payload = row.payload if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Snapshot read failed for key '{self.storage_key}': {e}")
            raise PersistenceError(f"Could not read snapshot: {e}") from e

        if payload is None:
            logger.info(f"No snapshot stored under '{self.storage_key}', starting empty")
            return None

        try:
            return Snapshot.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Stored snapshot under '{self.storage_key}' is invalid: {e}")
            raise PersistenceError(f"Stored snapshot is invalid: {e}") from e

    def save(self, snapshot: Snapshot) -> None:
        """Write the snapshot, replacing any previous one"""
        payload = snapshot.model_dump(mode="json")
        try:
            self._ensure_schema()
            with get_db_session(self._engine) as db:
                row = db.get(StoredSnapshot, self.storage_key)
                if row is None:
                    db.add(StoredSnapshot(key=self.storage_key, payload=payload))
                else:
                    row.payload = payload
        except SQLAlchemyError as e:
            logger.error(f"Snapshot write failed for key '{self.storage_key}': {e}")
            raise PersistenceError(f"Could not write snapshot: {e}") from e

        logger.debug(
            f"Snapshot saved: findings={len(snapshot.findings)} "
            f"evidence={len(snapshot.evidence)} responses={len(snapshot.generated_responses)}"
        )

