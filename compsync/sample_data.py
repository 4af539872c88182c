"""
Sample Data
===========

Demonstration findings and evidence documents for a BSA/AML examination.
Loaded through regular store operations so every invariant holds.
"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from .schemas import (
    EvidenceCategory,
    EvidenceCreate,
    FindingCategory,
    FindingCreate,
    FindingStatus,
    Priority,
    SampleDataResponse,
)
from .store import FindingStore

logger = logging.getLogger(__name__)

# Findings at these indexes get the first LINKED_EVIDENCE_COUNT documents
LINKED_FINDING_COUNT = 2
LINKED_EVIDENCE_COUNT = 3


SAMPLE_FINDINGS: List[Dict] = [
    {
        "title": "Transaction monitoring system lacks documented tuning methodology",
        "description": (
            "The Bank's transaction monitoring system lacks a formally documented tuning "
            "methodology. While staff indicated that tuning occurs periodically, there is no "
            "written procedure describing the frequency, criteria, or approval process for "
            "tuning decisions.\n\n"
            "The Bank should develop and implement a comprehensive tuning methodology document "
            "that includes:\n"
            "- Frequency of tuning reviews\n"
            "- Criteria for modifying thresholds\n"
            "- Documentation requirements for tuning decisions\n"
            "- Approval process and responsible parties"
        ),
        "status": FindingStatus.EVIDENCE,
        "assignee": "Sarah Johnson, BSA Officer",
        "deadline_offset_days": 45,
        "category": FindingCategory.BSA_AML,
        "priority": Priority.HIGH,
    },
    {
        "title": "BSA/AML risk assessment does not address all risk categories",
        "description": (
            "The Bank's BSA/AML risk assessment does not comprehensively address all relevant "
            "risk categories. Specifically, the assessment lacks detailed analysis of:\n"
            "- Geographic risk associated with higher-risk jurisdictions\n"
            "- Product risk for newer digital banking services\n"
            "- Customer risk stratification methodology\n\n"
            "Management should enhance the risk assessment to include all applicable risk "
            "categories with supporting rationale and data sources."
        ),
        "status": FindingStatus.IN_PROGRESS,
        "assignee": "Michael Chen, Chief Compliance Officer",
        "deadline_offset_days": 30,
        "category": FindingCategory.BSA_AML,
        "priority": Priority.HIGH,
    },
    {
        "title": "Board BSA reporting lacks sufficient detail",
        "description": (
            "Board reporting on BSA/AML matters does not provide sufficient detail to enable "
            "effective oversight. Current reports include only high-level metrics without trend "
            "analysis, exception reporting, or discussion of emerging risks.\n\n"
            "The Bank should enhance Board reporting to include SAR filing statistics with trend "
            "analysis, alert volumes and disposition metrics, training completion rates, "
            "regulatory update summaries and key risk indicator dashboards."
        ),
        "status": FindingStatus.OPEN,
        "assignee": "Jennifer Williams, VP Compliance",
        "deadline_offset_days": 14,
        "category": FindingCategory.GOVERNANCE,
        "priority": Priority.MEDIUM,
    },
    {
        "title": "CDD procedures do not address beneficial ownership updates",
        "description": (
            "Customer Due Diligence (CDD) procedures do not include processes for updating "
            "beneficial ownership information on an ongoing basis. While initial collection is "
            "documented, there is no established trigger or periodic review to ensure ownership "
            "information remains current.\n\n"
            "Management should update CDD procedures to include trigger events requiring "
            "re-verification, a periodic review schedule for high-risk customers, and "
            "documentation requirements for ownership changes."
        ),
        "status": FindingStatus.REVIEW,
        "assignee": "David Martinez, BSA Analyst",
        "deadline_offset_days": 7,
        "category": FindingCategory.BSA_AML,
        "priority": Priority.MEDIUM,
    },
    {
        "title": "Vendor management program lacks BSA-specific controls",
        "description": (
            "The Bank's vendor management program does not include BSA/AML-specific due "
            "diligence and monitoring requirements for critical BSA service providers, including "
            "the transaction monitoring vendor and sanctions screening provider.\n\n"
            "The Bank should enhance vendor management to include BSA-specific due diligence "
            "questionnaires, annual performance reviews, contract provisions for regulatory "
            "access and incident reporting requirements."
        ),
        "status": FindingStatus.CLOSED,
        "assignee": "Robert Thompson, Operations Manager",
        "deadline_offset_days": -10,
        "category": FindingCategory.OPERATIONS,
        "priority": Priority.LOW,
    },
]


SAMPLE_EVIDENCE: List[Dict] = [
    {
        "name": "BSA_AML_Policy_v2.1_October2024.pdf",
        "category": EvidenceCategory.POLICIES,
        "file_type": "application/pdf",
        "file_size": 2450000,
        "content": (
            "BSA/AML Policy Document - Version 2.1\n\n"
            "Section 4.2 - Transaction Monitoring\n"
            "The Bank utilizes automated transaction monitoring systems to identify potentially "
            "suspicious activity.\n\n"
            "Section 4.3 - Tuning Methodology\n"
            "Transaction monitoring parameters shall be reviewed and tuned on a quarterly basis, "
            "or more frequently as warranted by changes in risk profile.\n\n"
            "Section 5.1 - Customer Risk Rating\n"
            "All customers are assigned a risk rating (High, Medium, Low) based on objective criteria."
        ),
    },
    {
        "name": "Transaction_Monitoring_Procedures_2024.pdf",
        "category": EvidenceCategory.PROCEDURES,
        "file_type": "application/pdf",
        "file_size": 1850000,
        "content": (
            "Transaction Monitoring Procedures\n\n"
            "1. Alert Generation - alerts prioritized by risk score\n"
            "2. Alert Investigation - Level 1 review within 24 hours\n"
            "3. SAR Decision Process - supervisory review and approval workflow\n"
            "4. System Tuning (Section 4) - quarterly tuning review schedule, threshold "
            "adjustment criteria, approval requirements for changes"
        ),
    },
    {
        "name": "Board_Minutes_Q3_2024_BSA_Report.pdf",
        "category": EvidenceCategory.BOARD_MINUTES,
        "file_type": "application/pdf",
        "file_size": 890000,
        "content": (
            "Board of Directors Meeting Minutes - October 20, 2024\n\n"
            "Agenda Item 5: BSA/AML Program Update\n"
            "- New tuning methodology documentation presented for approval\n"
            "- Board approved enhanced reporting format effective Q4 2024\n\n"
            "Resolution: The Board approves the updated BSA/AML Policy v2.1 and the new "
            "transaction monitoring tuning methodology. Vote: Unanimous approval"
        ),
    },
    {
        "name": "Vendor_TM_Tuning_Report_Q3_2024.xlsx",
        "category": EvidenceCategory.REPORTS,
        "file_type": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "file_size": 456000,
        "content": (
            "Transaction Monitoring Tuning Report - Q3 2024\n"
            "Prepared by: TM Vendor Solutions Inc.\n\n"
            "- 3 scenarios adjusted for improved detection\n"
            "- False positive rate reduced by 12%\n"
            "- 2 new scenarios recommended for implementation"
        ),
    },
    {
        "name": "BSA_Training_Completion_Report_2024.pdf",
        "category": EvidenceCategory.TRAINING,
        "file_type": "application/pdf",
        "file_size": 325000,
        "content": (
            "Annual BSA/AML Training Completion Report - 2024\n\n"
            "1. BSA/AML Fundamentals (All Staff) - 98% completion\n"
            "2. SAR Filing Procedures (BSA Team) - 100% completion\n"
            "3. CDD/EDD Requirements (Front Line) - 95% completion\n"
            "4. Transaction Monitoring (BSA Team) - 100% completion"
        ),
    },
    {
        "name": "CDD_Policy_Update_November2024.docx",
        "category": EvidenceCategory.POLICIES,
        "file_type": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "file_size": 567000,
        "content": (
            "Customer Due Diligence Policy - November 2024 Update\n"
            "DRAFT - Pending Board Approval\n\n"
            "New Section: Ongoing Beneficial Ownership Monitoring\n"
            "1. Trigger Events - material change in business, transaction pattern deviation, "
            "adverse media alerts, annual review for high-risk customers\n"
            "2. Update Procedures - re-certification requests, escalation for non-response"
        ),
    },
]


def load_sample_data(store: FindingStore, today: Optional[date] = None) -> SampleDataResponse:
    """
    Add the sample evidence and findings to the store.

    Deadlines are relative to `today`. The first three documents are linked
    to the first two findings. Existing data is kept.
    """
    today = today or date.today()

    with store.bulk():
        evidence_ids = [
            store.create_evidence(EvidenceCreate(**doc)).id
            for doc in SAMPLE_EVIDENCE
        ]

        for index, item in enumerate(SAMPLE_FINDINGS):
            fields = dict(item)
            offset = fields.pop("deadline_offset_days")
            finding = store.create_finding(
                FindingCreate(deadline=today + timedelta(days=offset), **fields)
            )
            if index < LINKED_FINDING_COUNT:
                for evidence_id in evidence_ids[:LINKED_EVIDENCE_COUNT]:
                    store.link_evidence(finding.id, evidence_id)

    logger.info(f"Sample data loaded: findings={len(SAMPLE_FINDINGS)} evidence={len(evidence_ids)}")
    return SampleDataResponse(
        findings_created=len(SAMPLE_FINDINGS),
        evidence_created=len(evidence_ids),
    )
