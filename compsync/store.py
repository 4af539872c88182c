"""
Finding Store
=============

The single authoritative, mutable home of findings, evidence documents and
generated responses, plus small UI-state fields (selection and list filters).

- All mutations run to completion under one lock.
- Finding <-> Evidence references live in one bidirectional index, so the two
  sides can never drift apart.
- Every data mutation writes a snapshot through the repository (if any).
  UI state is never persisted.
- Unknown identifiers are reported as None/False, never raised.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, Iterator, List, Optional, Union

from . import workflow
from .errors import InvalidTransitionError
from .persistence import SnapshotRepository
from .schemas import (
    ALL,
    CategoryFilter,
    EvidenceCreate,
    EvidenceDocument,
    EvidenceUpdate,
    Finding,
    FindingCategory,
    FindingCreate,
    FindingStatus,
    FindingUpdate,
    GeneratedResponse,
    ResponseUpdate,
    Snapshot,
    StatusFilter,
)

logger = logging.getLogger(__name__)


def generate_id() -> str:
    return str(uuid.uuid4())


class EvidenceLinks:
    """
    Bidirectional Finding <-> Evidence index.

    Both directions are updated by the same call. Insertion order is kept
    so linked IDs come back in the order they were linked.
    """

    def __init__(self):
        self._by_finding: Dict[str, Dict[str, None]] = {}
        self._by_evidence: Dict[str, Dict[str, None]] = {}

    def link(self, finding_id: str, evidence_id: str) -> bool:
        """Link a pair; returns False if it was already linked"""
        if evidence_id in self._by_finding.get(finding_id, {}):
            return False
        self._by_finding.setdefault(finding_id, {})[evidence_id] = None
        self._by_evidence.setdefault(evidence_id, {})[finding_id] = None
        return True

    def unlink(self, finding_id: str, evidence_id: str) -> bool:
        """Unlink a pair; returns False if it was not linked"""
        if evidence_id not in self._by_finding.get(finding_id, {}):
            return False
        del self._by_finding[finding_id][evidence_id]
        del self._by_evidence[evidence_id][finding_id]
        return True

    def evidence_for(self, finding_id: str) -> List[str]:
        return list(self._by_finding.get(finding_id, {}))

    def findings_for(self, evidence_id: str) -> List[str]:
        return list(self._by_evidence.get(evidence_id, {}))

    def drop_finding(self, finding_id: str) -> List[str]:
        """Remove every link of a finding; returns the evidence IDs it held"""
        evidence_ids = list(self._by_finding.pop(finding_id, {}))
        for evidence_id in evidence_ids:
            self._by_evidence.get(evidence_id, {}).pop(finding_id, None)
        return evidence_ids

    def drop_evidence(self, evidence_id: str) -> List[str]:
        """Remove every link of an evidence document; returns affected finding IDs"""
        finding_ids = list(self._by_evidence.pop(evidence_id, {}))
        for finding_id in finding_ids:
            self._by_finding.get(finding_id, {}).pop(evidence_id, None)
        return finding_ids

    def clear(self):
        self._by_finding.clear()
        self._by_evidence.clear()


class FindingStore:
    """
    In-process store for the tracker.

    Usage:
        store = FindingStore.load(SnapshotRepository())
        finding = store.create_finding(FindingCreate(...))
        store.link_evidence(finding.id, evidence.id)

    Records handed out are copies; callers change state only through the
    operations below.
    """

    def __init__(
        self,
        repository: Optional[SnapshotRepository] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._repository = repository
        self._clock = clock
        self._lock = RLock()

        self._findings: Dict[str, Finding] = {}
        self._evidence: Dict[str, EvidenceDocument] = {}
        self._responses: List[GeneratedResponse] = []
        self._links = EvidenceLinks()

        self._bulk_depth = 0
        self._dirty = False

        # UI state (not persisted)
        self.selected_finding_id: Optional[str] = None
        self.status_filter: StatusFilter = ALL
        self.category_filter: CategoryFilter = ALL

    @classmethod
    def load(
        cls,
        repository: SnapshotRepository,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "FindingStore":
        """Build a store from the persisted snapshot (empty if none stored)"""
        store = cls(repository=repository, clock=clock)
        snapshot = repository.load()
        if snapshot is not None:
            store._restore(snapshot)
        return store

    def _restore(self, snapshot: Snapshot):
        for doc in snapshot.evidence:
            self._evidence[doc.id] = doc.model_copy(update={"finding_ids": []})
        for finding in snapshot.findings:
            self._findings[finding.id] = finding.model_copy(update={"evidence_ids": []})

        # Rebuild links from both sides; dangling references are dropped
        for finding in snapshot.findings:
            for evidence_id in finding.evidence_ids:
                if evidence_id in self._evidence:
                    self._links.link(finding.id, evidence_id)
        for doc in snapshot.evidence:
            for finding_id in doc.finding_ids:
                if finding_id in self._findings:
                    self._links.link(finding_id, doc.id)

        self._responses = [r for r in snapshot.generated_responses if r.mra_id in self._findings]

        logger.info(
            f"Store restored: findings={len(self._findings)} evidence={len(self._evidence)} "
            f"responses={len(self._responses)}"
        )

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def _persist(self):
        if self._repository is None:
            return
        if self._bulk_depth:
            self._dirty = True
            return
        self._repository.save(self.snapshot())

    @contextmanager
    def bulk(self) -> Iterator["FindingStore"]:
        """Coalesce the snapshot writes of several mutations into one"""
        with self._lock:
            self._bulk_depth += 1
            try:
                yield self
            finally:
                self._bulk_depth -= 1
            if self._bulk_depth == 0 and self._dirty:
                self._dirty = False
                self._persist()

    def snapshot(self) -> Snapshot:
        """Current data collections, as persisted"""
        with self._lock:
            return Snapshot(
                findings=self.list_findings(),
                evidence=self.list_evidence(),
                generated_responses=[r.model_copy(deep=True) for r in self._responses],
            )

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    def _finding_out(self, finding: Finding) -> Finding:
        return finding.model_copy(
            update={"evidence_ids": self._links.evidence_for(finding.id)}, deep=True
        )

    def _evidence_out(self, doc: EvidenceDocument) -> EvidenceDocument:
        return doc.model_copy(update={"finding_ids": self._links.findings_for(doc.id)}, deep=True)

    def get_finding(self, finding_id: Optional[str]) -> Optional[Finding]:
        with self._lock:
            finding = self._findings.get(finding_id) if finding_id else None
            return self._finding_out(finding) if finding is not None else None

    def list_findings(self) -> List[Finding]:
        with self._lock:
            return [self._finding_out(f) for f in self._findings.values()]

    def get_evidence(self, evidence_id: str) -> Optional[EvidenceDocument]:
        with self._lock:
            doc = self._evidence.get(evidence_id)
            return self._evidence_out(doc) if doc is not None else None

    def list_evidence(self) -> List[EvidenceDocument]:
        with self._lock:
            return [self._evidence_out(d) for d in self._evidence.values()]

    def evidence_for_finding(self, finding_id: str) -> List[EvidenceDocument]:
        """Evidence documents linked to a finding, in link order"""
        with self._lock:
            return [
                self._evidence_out(self._evidence[eid])
                for eid in self._links.evidence_for(finding_id)
                if eid in self._evidence
            ]

    def get_response(self, response_id: str) -> Optional[GeneratedResponse]:
        with self._lock:
            for response in self._responses:
                if response.id == response_id:
                    return response.model_copy(deep=True)
            return None

    def list_responses(self, finding_id: Optional[str] = None) -> List[GeneratedResponse]:
        """Response history, optionally for one finding"""
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._responses
                if finding_id is None or r.mra_id == finding_id
            ]

    # -------------------------------------------------------------------------
    # FINDING OPERATIONS
    # -------------------------------------------------------------------------

    def create_finding(self, data: FindingCreate) -> Finding:
        """Record a new finding with fresh ID and timestamps"""
        now = self._clock()
        finding = Finding(
            id=generate_id(),
            created_at=now,
            updated_at=now,
            evidence_ids=[],
            **data.model_dump(),
        )
        with self._lock:
            self._findings[finding.id] = finding
            logger.debug(f"Finding created: {finding.id}")
            self._persist()
            return self._finding_out(finding)

    def update_finding(self, finding_id: str, data: FindingUpdate) -> Optional[Finding]:
        """Merge explicitly set fields; None if the finding does not exist"""
        changes = data.model_dump(exclude_unset=True)
        with self._lock:
            finding = self._findings.get(finding_id)
            if finding is None:
                logger.debug(f"update_finding: unknown id {finding_id}")
                return None
            changes["updated_at"] = self._clock()
            finding = finding.model_copy(update=changes)
            self._findings[finding_id] = finding
            self._persist()
            return self._finding_out(finding)

    def advance_finding_status(
        self, finding_id: str, status: Union[FindingStatus, str]
    ) -> Optional[Finding]:
        """
        Set a finding's status.

        Accepts any status; ordering checks belong to the caller
        (see transition_finding_status).
        """
        status = FindingStatus(status)
        with self._lock:
            finding = self._findings.get(finding_id)
            if finding is None:
                logger.debug(f"advance_finding_status: unknown id {finding_id}")
                return None
            finding = finding.model_copy(update={"status": status, "updated_at": self._clock()})
            self._findings[finding_id] = finding
            logger.debug(f"Finding {finding_id} status -> {status.value}")
            self._persist()
            return self._finding_out(finding)

    def transition_finding_status(
        self, finding_id: str, requested: Union[FindingStatus, str]
    ) -> Optional[Finding]:
        """
        Move a finding to `requested`, which must be its next workflow stage.

        Raises InvalidTransitionError otherwise; None if the finding does not exist.
        """
        with self._lock:
            finding = self._findings.get(finding_id)
            if finding is None:
                return None
            workflow.validate_transition(finding.status, FindingStatus(requested))
            return self.advance_finding_status(finding_id, requested)

    def advance_to_next_stage(self, finding_id: str) -> Optional[Finding]:
        """Single-step forward move; raises InvalidTransitionError at the terminal stage"""
        with self._lock:
            finding = self._findings.get(finding_id)
            if finding is None:
                return None
            upcoming = workflow.next_stage(finding.status)
            if upcoming is None:
                raise InvalidTransitionError(
                    f"Finding {finding_id} is already {workflow.get_stage(finding.status).label}"
                )
            return self.transition_finding_status(finding_id, upcoming.status)

    def delete_finding(self, finding_id: str) -> bool:
        """Remove a finding, its links and every response it owns"""
        with self._lock:
            if self._findings.pop(finding_id, None) is None:
                return False
            self._links.drop_finding(finding_id)
            self._responses = [r for r in self._responses if r.mra_id != finding_id]
            logger.debug(f"Finding deleted: {finding_id}")
            self._persist()
            return True

    # -------------------------------------------------------------------------
    # LINK OPERATIONS
    # -------------------------------------------------------------------------

    def _touch(self, finding_id: str):
        finding = self._findings[finding_id]
        self._findings[finding_id] = finding.model_copy(update={"updated_at": self._clock()})

    def link_evidence(self, finding_id: str, evidence_id: str) -> bool:
        """
        Link evidence to a finding (both sides at once).

        Idempotent. Returns False only when either record does not exist.
        """
        with self._lock:
            if finding_id not in self._findings or evidence_id not in self._evidence:
                return False
            if self._links.link(finding_id, evidence_id):
                self._touch(finding_id)
                self._persist()
            return True

    def unlink_evidence(self, finding_id: str, evidence_id: str) -> bool:
        """
        Unlink evidence from a finding (both sides at once).

        Unlinking a pair that is not linked is a no-op. Returns False only
        when either record does not exist.
        """
        with self._lock:
            if finding_id not in self._findings or evidence_id not in self._evidence:
                return False
            if self._links.unlink(finding_id, evidence_id):
                self._touch(finding_id)
                self._persist()
            return True

    # -------------------------------------------------------------------------
    # EVIDENCE OPERATIONS
    # -------------------------------------------------------------------------

    def create_evidence(self, data: EvidenceCreate) -> EvidenceDocument:
        doc = EvidenceDocument(
            id=generate_id(),
            uploaded_at=self._clock(),
            finding_ids=[],
            **data.model_dump(),
        )
        with self._lock:
            self._evidence[doc.id] = doc
            logger.debug(f"Evidence created: {doc.id} ({doc.name})")
            self._persist()
            return self._evidence_out(doc)

    def update_evidence(self, evidence_id: str, data: EvidenceUpdate) -> Optional[EvidenceDocument]:
        changes = data.model_dump(exclude_unset=True)
        with self._lock:
            doc = self._evidence.get(evidence_id)
            if doc is None:
                return None
            doc = doc.model_copy(update=changes)
            self._evidence[evidence_id] = doc
            self._persist()
            return self._evidence_out(doc)

    def delete_evidence(self, evidence_id: str) -> bool:
        """Remove a document and strip it from every finding that held it"""
        with self._lock:
            if self._evidence.pop(evidence_id, None) is None:
                return False
            for finding_id in self._links.drop_evidence(evidence_id):
                if finding_id in self._findings:
                    self._touch(finding_id)
            logger.debug(f"Evidence deleted: {evidence_id}")
            self._persist()
            return True

    # -------------------------------------------------------------------------
    # GENERATED RESPONSE OPERATIONS
    # -------------------------------------------------------------------------

    def attach_generated_response(self, response: GeneratedResponse) -> Optional[Finding]:
        """
        Add a response to history and attach it to its finding.

        No-op returning None when the finding was deleted meanwhile.
        """
        with self._lock:
            finding = self._findings.get(response.mra_id)
            if finding is None:
                logger.info(f"Discarding response {response.id}: finding {response.mra_id} no longer exists")
                return None
            response = response.model_copy(deep=True)
            self._responses.append(response)
            finding = finding.model_copy(
                update={"generated_response": response, "updated_at": self._clock()}
            )
            self._findings[finding.id] = finding
            self._persist()
            return self._finding_out(finding)

    def update_generated_response(
        self, response_id: str, data: ResponseUpdate
    ) -> Optional[GeneratedResponse]:
        """Edit content and/or review status; other fields are untouched"""
        changes = data.model_dump(exclude_unset=True)
        with self._lock:
            for i, response in enumerate(self._responses):
                if response.id == response_id:
                    break
            else:
                return None

            updated = response.model_copy(update=changes)
            self._responses[i] = updated

            owner = self._findings.get(updated.mra_id)
            if owner is not None and owner.generated_response is not None \
                    and owner.generated_response.id == response_id:
                self._findings[owner.id] = owner.model_copy(
                    update={"generated_response": updated, "updated_at": self._clock()}
                )

            self._persist()
            return updated.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # RESET
    # -------------------------------------------------------------------------

    def clear_all(self):
        """Empty all collections and clear the selection"""
        with self._lock:
            self._findings = {}
            self._evidence = {}
            self._responses = []
            self._links.clear()
            self.selected_finding_id = None
            logger.info("Store cleared")
            self._persist()

    # -------------------------------------------------------------------------
    # UI STATE
    # -------------------------------------------------------------------------

    def select_finding(self, finding_id: Optional[str]):
        self.selected_finding_id = finding_id

    def set_status_filter(self, value: Union[FindingStatus, str]):
        self.status_filter = ALL if value == ALL else FindingStatus(value)

    def set_category_filter(self, value: Union[FindingCategory, str]):
        self.category_filter = ALL if value == ALL else FindingCategory(value)
