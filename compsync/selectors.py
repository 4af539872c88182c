"""
Derived Views
=============

Pure read-only projections over store data. Recomputed on every call;
collections are small enough that no caching is needed.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

from .schemas import (
    ALL,
    CategoryFilter,
    DashboardStats,
    DeadlineUrgency,
    EvidenceCategory,
    EvidenceDocument,
    Finding,
    FindingStatus,
    StatusFilter,
)
from .store import FindingStore

URGENT_WINDOW_DAYS = 7
RECENT_LIMIT = 5

DateLike = Union[date, datetime, str]


# =============================================================================
# FINDINGS
# =============================================================================

def filter_findings(
    findings: Iterable[Finding],
    status_filter: StatusFilter = ALL,
    category_filter: CategoryFilter = ALL,
) -> List[Finding]:
    """Findings matching both the status and the category filter"""
    return [
        f for f in findings
        if (status_filter == ALL or f.status == status_filter)
        and (category_filter == ALL or f.category == category_filter)
    ]


def filtered_findings(store: FindingStore) -> List[Finding]:
    """Findings matching the store's active filters"""
    return filter_findings(store.list_findings(), store.status_filter, store.category_filter)


def selected_finding(store: FindingStore) -> Optional[Finding]:
    """The selected finding, or None if nothing is selected or it was deleted"""
    return store.get_finding(store.selected_finding_id)


def status_tally(findings: Iterable[Finding]) -> Dict[FindingStatus, int]:
    """Count of findings per status; zero for empty statuses"""
    counts = {status: 0 for status in FindingStatus}
    for f in findings:
        counts[f.status] += 1
    return counts


# =============================================================================
# DEADLINES
# =============================================================================

def _as_date(value: DateLike) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value).date()


def days_until_deadline(deadline: DateLike, today: Optional[DateLike] = None) -> int:
    """
    Whole days from today until the deadline.

    Both sides are reduced to calendar dates first, so time of day never
    causes an off-by-one. Negative means overdue.
    """
    today_date = _as_date(today) if today is not None else date.today()
    return (_as_date(deadline) - today_date).days


def classify_deadline(deadline: DateLike, today: Optional[DateLike] = None) -> DeadlineUrgency:
    days = days_until_deadline(deadline, today)
    if days < 0:
        return DeadlineUrgency.OVERDUE
    if days <= URGENT_WINDOW_DAYS:
        return DeadlineUrgency.URGENT
    return DeadlineUrgency.ON_TRACK


def dashboard_stats(findings: Iterable[Finding], today: Optional[DateLike] = None) -> DashboardStats:
    """
    Aggregate counts for the dashboard.

    Overdue and urgent only count findings that are not closed.
    """
    findings = list(findings)
    open_findings = [f for f in findings if f.status != FindingStatus.CLOSED]
    closed = len(findings) - len(open_findings)

    urgency = [classify_deadline(f.deadline, today) for f in open_findings]

    recent = sorted(findings, key=lambda f: f.updated_at, reverse=True)[:RECENT_LIMIT]

    return DashboardStats(
        total=len(findings),
        open=len(open_findings),
        closed=closed,
        overdue=urgency.count(DeadlineUrgency.OVERDUE),
        urgent=urgency.count(DeadlineUrgency.URGENT),
        with_responses=sum(1 for f in findings if f.generated_response is not None),
        completion_rate=round(closed / len(findings) * 100) if findings else 0,
        status_counts=status_tally(findings),
        recent=recent,
    )


# =============================================================================
# EVIDENCE
# =============================================================================

def filter_evidence(
    evidence: Iterable[EvidenceDocument],
    search: str = "",
    category: Union[EvidenceCategory, str] = ALL,
) -> List[EvidenceDocument]:
    """Case-insensitive name search AND category match"""
    needle = (search or "").lower()
    return [
        doc for doc in evidence
        if needle in doc.name.lower()
        and (category == ALL or doc.category == category)
    ]


def evidence_category_counts(evidence: Iterable[EvidenceDocument]) -> Dict[EvidenceCategory, int]:
    counts = {category: 0 for category in EvidenceCategory}
    for doc in evidence:
        counts[doc.category] += 1
    return counts


def linked_evidence(store: FindingStore, finding_id: str) -> List[EvidenceDocument]:
    return store.evidence_for_finding(finding_id)


def unlinked_evidence(store: FindingStore, finding_id: str) -> List[EvidenceDocument]:
    """Evidence documents not yet linked to the finding"""
    return [doc for doc in store.list_evidence() if finding_id not in doc.finding_ids]
