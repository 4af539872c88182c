"""
Pydantic Schemas for CompSync
=============================

Entity shapes, fixed enumerations and request/response models.

Entities:
- Finding: an MRA (Matter Requiring Attention) tracked through remediation
- EvidenceDocument: a supporting document linkable to many findings
- GeneratedResponse: a drafted examiner response attached to a finding

Request models enumerate only the fields that may legally change after
creation, so identifiers and timestamps can never be overwritten.
"""

from typing import Any, List, Optional, Dict, Union, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from datetime import date, datetime


# =============================================================================
# ENUMS
# =============================================================================

class FindingStatus(str, Enum):
    """
    Remediation workflow stages, in order.

    The order itself lives in compsync.workflow.STAGES.
    """
    OPEN = "open"                # Finding received, needs attention
    IN_PROGRESS = "in_progress"  # Remediation underway
    EVIDENCE = "evidence"        # Collecting supporting documents
    REVIEW = "review"            # Response being finalized
    CLOSED = "closed"            # Remediation complete


class FindingCategory(str, Enum):
    """Regulatory area of the finding"""
    BSA_AML = "bsa_aml"
    COMPLIANCE = "compliance"
    RISK_MANAGEMENT = "risk_management"
    OPERATIONS = "operations"
    IT_SECURITY = "it_security"
    GOVERNANCE = "governance"
    OTHER = "other"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EvidenceCategory(str, Enum):
    """Kind of supporting document"""
    POLICIES = "policies"
    PROCEDURES = "procedures"
    REPORTS = "reports"
    TRAINING = "training"
    BOARD_MINUTES = "board_minutes"
    OTHER = "other"


class ResponseStatus(str, Enum):
    """Review status of a drafted response"""
    DRAFT = "draft"
    REVIEWED = "reviewed"
    APPROVED = "approved"


class DeadlineUrgency(str, Enum):
    """Deadline bucket relative to today"""
    OVERDUE = "overdue"    # deadline already passed
    URGENT = "urgent"      # due within 7 days (inclusive of today)
    ON_TRACK = "on_track"


class LLMMode(str, Enum):
    """Response generation provider"""
    NONE = "none"              # Templated drafts only
    OPENAI = "openai"
    OPENROUTER = "openrouter"


ALL = "all"

StatusFilter = Union[FindingStatus, Literal["all"]]
CategoryFilter = Union[FindingCategory, Literal["all"]]


CATEGORY_LABELS: Dict[FindingCategory, str] = {
    FindingCategory.BSA_AML: "BSA/AML",
    FindingCategory.COMPLIANCE: "Compliance",
    FindingCategory.RISK_MANAGEMENT: "Risk Management",
    FindingCategory.OPERATIONS: "Operations",
    FindingCategory.IT_SECURITY: "IT/Security",
    FindingCategory.GOVERNANCE: "Governance",
    FindingCategory.OTHER: "Other",
}

EVIDENCE_CATEGORY_LABELS: Dict[EvidenceCategory, str] = {
    EvidenceCategory.POLICIES: "Policies",
    EvidenceCategory.PROCEDURES: "Procedures",
    EvidenceCategory.REPORTS: "Reports",
    EvidenceCategory.TRAINING: "Training",
    EvidenceCategory.BOARD_MINUTES: "Board Minutes",
    EvidenceCategory.OTHER: "Other",
}


# =============================================================================
# ENTITIES
# =============================================================================

class EvidenceCitation(BaseModel):
    """Reference from a generated response to an evidence document"""
    evidence_id: Optional[str] = Field(None, description="Matched evidence ID, None if unresolved")
    evidence_name: str = Field(..., description="Document name as cited")
    relevant_section: Optional[str] = Field(None, description="Cited section, if any")


class GeneratedResponse(BaseModel):
    """Drafted examiner response for a finding"""
    id: str
    mra_id: str = Field(..., description="Owning finding ID")
    content: str = Field(..., description="Narrative text")
    evidence_used: List[EvidenceCitation] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list, description="Evidence gaps to address")
    generated_at: datetime
    status: ResponseStatus = ResponseStatus.DRAFT


class Finding(BaseModel):
    """MRA finding tracked through the remediation workflow"""
    id: str
    title: str
    description: str
    status: FindingStatus = FindingStatus.OPEN
    assignee: str
    deadline: date
    created_at: datetime
    updated_at: datetime
    category: FindingCategory
    priority: Priority
    evidence_ids: List[str] = Field(default_factory=list, description="Linked evidence IDs")
    generated_response: Optional[GeneratedResponse] = Field(None, description="Attached response")
    examiner_notes: Optional[str] = None


class EvidenceDocument(BaseModel):
    """Supporting document uploaded to the evidence library"""
    id: str
    name: str
    category: EvidenceCategory
    uploaded_at: datetime
    file_type: str = Field(..., description="MIME type")
    file_size: int = Field(..., ge=0, description="Size in bytes")
    content: Optional[str] = Field(None, description="Extracted text used for generation")
    finding_ids: List[str] = Field(default_factory=list, description="Findings referencing this document")


# =============================================================================
# REQUEST MODELS
# =============================================================================

class FindingCreate(BaseModel):
    """Fields supplied by the caller when recording a finding"""
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    assignee: str = Field(..., min_length=1)
    deadline: date
    category: FindingCategory
    priority: Priority
    status: FindingStatus = FindingStatus.OPEN
    examiner_notes: Optional[str] = None


class FindingUpdate(BaseModel):
    """Fields of a finding that may change after creation"""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    assignee: Optional[str] = Field(None, min_length=1)
    deadline: Optional[date] = None
    category: Optional[FindingCategory] = None
    priority: Optional[Priority] = None
    examiner_notes: Optional[str] = None

    @field_validator("title", "description", "assignee", "deadline", "category", "priority")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} may not be null")
        return value


class EvidenceCreate(BaseModel):
    """Metadata captured when a document is uploaded"""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    category: EvidenceCategory
    file_type: str = Field("application/octet-stream")
    file_size: int = Field(0, ge=0)
    content: Optional[str] = None


class EvidenceUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1)
    category: Optional[EvidenceCategory] = None
    content: Optional[str] = None

    @field_validator("name", "category")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} may not be null")
        return value


class ResponseUpdate(BaseModel):
    """Hand edit of a drafted response"""
    model_config = ConfigDict(extra="forbid")

    content: Optional[str] = None
    status: Optional[ResponseStatus] = None

    @field_validator("content", "status")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} may not be null")
        return value


class FilterRequest(BaseModel):
    """Active list filters; omitted fields are left unchanged"""
    model_config = ConfigDict(extra="forbid")

    status: Optional[StatusFilter] = None
    category: Optional[CategoryFilter] = None


class SelectionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    finding_id: Optional[str] = None


# =============================================================================
# OUTPUT SCHEMAS
# =============================================================================

class StageInfo(BaseModel):
    """One workflow stage"""
    status: FindingStatus
    label: str
    description: str


class CategoryOption(BaseModel):
    value: str
    label: str


class CategoriesResponse(BaseModel):
    """Display labels for finding and evidence categories"""
    findings: List[CategoryOption]
    evidence: List[CategoryOption]


class ProgressResponse(BaseModel):
    """Where a finding sits in the workflow"""
    finding_id: str
    stage: StageInfo
    stage_index: int
    progress_percent: float
    next_stage: Optional[StageInfo] = None
    days_until_deadline: int
    urgency: DeadlineUrgency


class DashboardStats(BaseModel):
    """Aggregate view over all findings"""
    total: int
    open: int = Field(..., description="Findings not yet closed")
    closed: int
    overdue: int = Field(..., description="Open findings past deadline")
    urgent: int = Field(..., description="Open findings due within 7 days")
    with_responses: int
    completion_rate: int = Field(..., description="Closed / total, rounded percent")
    status_counts: Dict[FindingStatus, int]
    recent: List[Finding] = Field(default_factory=list, description="Most recently updated")


class UIStateResponse(BaseModel):
    selected_finding_id: Optional[str] = None
    status_filter: StatusFilter = ALL
    category_filter: CategoryFilter = ALL


class DraftResponse(BaseModel):
    """Outcome of a response generation request"""
    success: bool
    used_fallback: bool = Field(..., description="True when the templated draft was used")
    response: Optional[GeneratedResponse] = None
    error: Optional[str] = None


class SampleDataResponse(BaseModel):
    findings_created: int
    evidence_created: int


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    llm_mode: LLMMode = Field(..., description="Current LLM mode")
    llm_configured: bool = Field(..., description="Whether a generation credential is set")
    timestamp: datetime = Field(..., description="Current timestamp")


class ErrorDetail(BaseModel):
    """Structured error detail"""
    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Any] = Field(None, description="Additional structured detail")


class ErrorResponse(BaseModel):
    """Structured error response"""
    error: ErrorDetail


class Snapshot(BaseModel):
    """Persisted state: the three data collections only"""
    findings: List[Finding] = Field(default_factory=list)
    evidence: List[EvidenceDocument] = Field(default_factory=list)
    generated_responses: List[GeneratedResponse] = Field(default_factory=list)
