"""
Snapshot Persistence Tests
==========================

Round-trips the store through a temporary SQLite database.
"""

import pytest
from datetime import date, datetime
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from compsync.db import get_db_session, get_engine, init_db, reset_engines
from compsync.db.models import StoredSnapshot
from compsync.errors import PersistenceError
from compsync.persistence import SnapshotRepository
from compsync.schemas import (
    EvidenceCategory,
    EvidenceCreate,
    FindingCategory,
    FindingCreate,
    FindingStatus,
    GeneratedResponse,
    Priority,
    Snapshot,
)
from compsync.store import FindingStore


@pytest.fixture
def database_url(tmp_path):
    yield f"sqlite:///{tmp_path / 'compsync_test.db'}"
    reset_engines()


@pytest.fixture
def repository(database_url):
    return SnapshotRepository(database_url=database_url, storage_key="compsync-storage")


def _populate(store: FindingStore):
    finding = store.create_finding(FindingCreate(
        title="Board reporting",
        description="Insufficient detail",
        assignee="Jennifer Williams",
        deadline=date(2025, 6, 1),
        category=FindingCategory.GOVERNANCE,
        priority=Priority.MEDIUM,
    ))
    doc = store.create_evidence(EvidenceCreate(
        name="Board_Minutes.pdf",
        category=EvidenceCategory.BOARD_MINUTES,
        file_type="application/pdf",
        file_size=890000,
        content="Minutes",
    ))
    store.link_evidence(finding.id, doc.id)
    store.attach_generated_response(GeneratedResponse(
        id="resp-1",
        mra_id=finding.id,
        content="Response text",
        generated_at=datetime(2025, 1, 5, 10, 30),
    ))
    return finding, doc


class FailingRepository(SnapshotRepository):
    """Repository whose writes always fail"""

    def __init__(self):
        self.database_url = "sqlite://"
        self.storage_key = "compsync-storage"

    def load(self):
        return None

    def save(self, snapshot):
        raise PersistenceError("disk full")


class TestSnapshotRepository:

    def test_empty_database_loads_none(self, repository):
        assert repository.load() is None

    def test_save_then_load(self, repository):
        snapshot = Snapshot()
        repository.save(snapshot)
        assert repository.load() == snapshot

    def test_keys_are_isolated(self, database_url, repository):
        repository.save(Snapshot())
        other = SnapshotRepository(database_url=database_url, storage_key="other")
        assert other.load() is None

    def test_invalid_payload_raises(self, database_url, repository):
        engine = get_engine(database_url)
        init_db(engine)
        with get_db_session(engine) as db:
            db.add(StoredSnapshot(key="compsync-storage", payload={"findings": "not-a-list"}))

        with pytest.raises(PersistenceError):
            repository.load()

    def test_reset_engines_drops_cached_engine(self, database_url, repository):
        repository.save(Snapshot())
        cached = get_engine(database_url)
        assert get_engine(database_url) is cached

        reset_engines()

        assert get_engine(database_url) is not cached
        # Data lives in the file, not the engine
        assert SnapshotRepository(database_url, "compsync-storage").load() == Snapshot()


class TestStoreRoundTrip:

    def test_every_mutation_is_persisted(self, repository):
        store = FindingStore(repository=repository)
        finding, _ = _populate(store)

        restored = FindingStore.load(repository)
        assert restored.snapshot() == store.snapshot()
        assert restored.get_finding(finding.id).generated_response.id == "resp-1"

    def test_links_restored_on_both_sides(self, repository):
        store = FindingStore(repository=repository)
        finding, doc = _populate(store)

        restored = FindingStore.load(repository)
        assert restored.get_finding(finding.id).evidence_ids == [doc.id]
        assert restored.get_evidence(doc.id).finding_ids == [finding.id]

    def test_ui_state_not_persisted(self, repository):
        store = FindingStore(repository=repository)
        finding, _ = _populate(store)
        store.select_finding(finding.id)
        store.set_status_filter(FindingStatus.OPEN)

        restored = FindingStore.load(repository)
        assert restored.selected_finding_id is None
        assert restored.status_filter == "all"

    def test_bulk_writes_once(self, repository, monkeypatch):
        store = FindingStore(repository=repository)
        writes = []
        original = repository.save

        def counting_save(snapshot):
            writes.append(snapshot)
            original(snapshot)

        monkeypatch.setattr(repository, "save", counting_save)

        with store.bulk():
            _populate(store)

        assert len(writes) == 1
        assert len(FindingStore.load(repository).list_findings()) == 1

    def test_dangling_references_dropped_on_load(self, repository):
        store = FindingStore(repository=repository)
        finding, doc = _populate(store)

        snapshot = store.snapshot()
        snapshot.findings[0].evidence_ids.append("ghost-evidence")
        snapshot.evidence[0].finding_ids.append("ghost-finding")
        snapshot.generated_responses.append(GeneratedResponse(
            id="orphan", mra_id="ghost-finding", content="x", generated_at=datetime(2025, 1, 1),
        ))
        repository.save(snapshot)

        restored = FindingStore.load(repository)
        assert restored.get_finding(finding.id).evidence_ids == [doc.id]
        assert restored.get_evidence(doc.id).finding_ids == [finding.id]
        assert [r.id for r in restored.list_responses()] == ["resp-1"]

    def test_clear_all_persists_empty(self, repository):
        store = FindingStore(repository=repository)
        _populate(store)
        store.clear_all()

        assert FindingStore.load(repository).snapshot() == Snapshot()


class TestPersistenceFailure:

    def test_failed_write_raises_after_applying(self):
        store = FindingStore(repository=FailingRepository())

        with pytest.raises(PersistenceError):
            store.create_evidence(EvidenceCreate(name="a.pdf", category=EvidenceCategory.OTHER))

        # In-memory state stays authoritative
        assert len(store.list_evidence()) == 1
