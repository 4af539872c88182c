"""
Response Drafting
=================

Drafts examiner-ready responses to MRA findings.

Two paths:
- Configured: one chat-completion call with a fixed system prompt and a
  templated user prompt; the JSON reply is turned into a GeneratedResponse.
- Not configured: a deterministic templated draft built locally. This path
  never fails and never touches the network.

Either way the result is a DraftResult; the store is never modified here.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from .llm_client import LLMClient, get_llm_client, parse_json_robust, safe_log_content
from .schemas import (
    EVIDENCE_CATEGORY_LABELS,
    EvidenceCitation,
    EvidenceDocument,
    Finding,
    FindingCategory,
    GeneratedResponse,
    ResponseStatus,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Prompts
# =============================================================================

SYSTEM_PROMPT = """You are an expert compliance officer and examiner response specialist with deep knowledge of banking regulations, BSA/AML requirements, and regulatory examination processes.

Your role is to help banks draft professional, examiner-ready responses to MRA (Matters Requiring Attention) findings.

Key guidelines:
1. Write in a formal, professional tone appropriate for regulatory correspondence
2. Be specific and cite evidence when available
3. Structure responses with clear remediation steps taken or planned
4. Acknowledge the finding appropriately without being defensive
5. Demonstrate understanding of the regulatory requirement
6. Show concrete actions with dates and responsible parties
7. Reference specific policies, procedures, and documentation

Response structure should include:
- Acknowledgment of the finding
- Summary of remediation actions taken
- Evidence citations with specific document names, sections, and dates
- Timeline of implementation
- Ongoing monitoring/controls established"""

GENERATE_RESPONSE_PROMPT = """Based on the MRA finding below and the available evidence documents, draft an examiner-ready response.

MRA FINDING:
Title: {mra_title}
Description: {mra_description}
Category: {mra_category}

AVAILABLE EVIDENCE DOCUMENTS:
{evidence_list}

Please provide:
1. A professional narrative response addressing the finding (2-3 paragraphs)
2. Specific citations to the evidence documents provided
3. Any gaps in the evidence that should be addressed

Format your response as JSON with this structure:
{{
  "narrative": "The full response text...",
  "citations": [
    {{"documentName": "...", "relevantSection": "..."}}
  ],
  "gaps": ["Gap 1...", "Gap 2..."]
}}"""

NO_EVIDENCE_PLACEHOLDER = "No evidence documents have been uploaded yet."
CONTENT_NOT_EXTRACTED = "Content not extracted"

GENERIC_GAPS = [
    "Training records documenting staff awareness of updated procedures",
    "Board meeting minutes approving the remediation plan",
    "Third-party validation report (if applicable)",
]
MONITORING_GAP = "Ongoing monitoring reports to demonstrate sustained compliance"

FALLBACK_DOCUMENT_LIMIT = 3


@dataclass
class DraftResult:
    """Outcome of a drafting request"""
    success: bool
    response: Optional[GeneratedResponse] = None
    error: Optional[str] = None
    used_fallback: bool = False


# =============================================================================
# Prompt building
# =============================================================================

def format_evidence_list(evidence: List[EvidenceDocument]) -> str:
    if not evidence:
        return NO_EVIDENCE_PLACEHOLDER
    return "\n".join(
        f"- {e.name} ({e.category.value}): {e.content or CONTENT_NOT_EXTRACTED}"
        for e in evidence
    )


def build_user_prompt(finding: Finding, evidence: List[EvidenceDocument]) -> str:
    return GENERATE_RESPONSE_PROMPT.format(
        mra_title=finding.title,
        mra_description=finding.description,
        mra_category=finding.category.value,
        evidence_list=format_evidence_list(evidence),
    )


def match_citation(document_name: str, evidence: Iterable[EvidenceDocument]) -> Optional[str]:
    """ID of the first document whose name contains, or is contained in, the cited name"""
    cited = document_name.lower()
    if not cited:
        return None
    for doc in evidence:
        name = doc.name.lower()
        if cited in name or name in cited:
            return doc.id
    return None


# =============================================================================
# Templated fallback
# =============================================================================

def build_fallback_response(
    finding: Finding,
    evidence: List[EvidenceDocument],
    now: Optional[datetime] = None,
) -> GeneratedResponse:
    """Deterministic templated draft used when no API key is configured"""
    cited = evidence[:FALLBACK_DOCUMENT_LIMIT]
    names = [e.name for e in cited]

    program = (
        "BSA/AML compliance program"
        if finding.category == FindingCategory.BSA_AML
        else "compliance framework"
    )

    if evidence:
        support = (
            "Our remediation efforts are supported by the following documentation: "
            f"{', '.join(names)}."
        )
        controls = (
            "Specifically, we have implemented enhanced controls as documented in our "
            f"updated policies and procedures. The {names[0]} has been revised to include "
            "detailed methodology and governance frameworks. Board oversight has been "
            "strengthened through quarterly reporting and dedicated committee review."
        )
    else:
        support = (
            "We are currently gathering supporting documentation to demonstrate our "
            "remediation efforts."
        )
        controls = (
            "We are actively developing enhanced controls and documentation to address "
            "the specific concerns raised in this finding."
        )

    narrative = "\n\n".join([
        f'We acknowledge the examiner\'s finding regarding "{finding.title}" and have taken '
        "comprehensive steps to address this matter.",
        f"In response to this finding, we have updated our {program} to ensure full "
        f"alignment with regulatory expectations. {support}",
        controls,
        "Going forward, we have established ongoing monitoring processes to ensure sustained "
        "compliance. Our compliance team will conduct periodic reviews to verify the "
        "effectiveness of these remediation measures.",
    ])

    citations = [
        EvidenceCitation(
            evidence_id=e.id,
            evidence_name=e.name,
            relevant_section=f"Section 4.2 - {EVIDENCE_CATEGORY_LABELS[e.category]} Framework",
        )
        for e in cited
    ]

    gaps = list(GENERIC_GAPS) if len(evidence) < 2 else [MONITORING_GAP]

    return GeneratedResponse(
        id=str(uuid.uuid4()),
        mra_id=finding.id,
        content=narrative,
        evidence_used=citations,
        gaps=gaps,
        generated_at=now or datetime.now(),
        status=ResponseStatus.DRAFT,
    )


# =============================================================================
# Drafter
# =============================================================================

class ResponseDrafter:
    """
    Drafts responses for findings.

    Usage:
        drafter = ResponseDrafter()
        result = await drafter.generate(finding, store.evidence_for_finding(finding.id))
        if result.success:
            store.attach_generated_response(result.response)
    """

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.client = client or get_llm_client()
        self._clock = clock

    def is_api_configured(self) -> bool:
        """True when generate() will call the API rather than use the template"""
        return self.client.configured

    async def generate(self, finding: Finding, evidence: List[EvidenceDocument]) -> DraftResult:
        evidence = list(evidence)

        if not self.is_api_configured():
            logger.info(f"No API key configured; templated draft for finding {finding.id}")
            return DraftResult(
                success=True,
                response=build_fallback_response(finding, evidence, self._clock()),
                used_fallback=True,
            )

        result = await self.client.generate(
            prompt=build_user_prompt(finding, evidence),
            system_prompt=SYSTEM_PROMPT,
            json_mode=True,
        )

        if not result.success:
            return DraftResult(success=False, error=result.error or "Failed to generate response")

        data, parse_ok, error_msg = parse_json_robust(result.content)
        if not parse_ok or data is None:
            logger.error(f"Unparseable draft ({error_msg}): {safe_log_content(result.content)}")
            return DraftResult(success=False, error=f"Could not parse generated response: {error_msg}")

        narrative = data.get("narrative")
        if not isinstance(narrative, str) or not narrative.strip():
            return DraftResult(success=False, error="Generated response is missing a narrative")

        response = GeneratedResponse(
            id=str(uuid.uuid4()),
            mra_id=finding.id,
            content=narrative,
            evidence_used=self._parse_citations(data.get("citations"), evidence),
            gaps=self._parse_gaps(data.get("gaps")),
            generated_at=self._clock(),
            status=ResponseStatus.DRAFT,
        )
        logger.info(
            f"Draft generated for finding {finding.id}: "
            f"citations={len(response.evidence_used)} gaps={len(response.gaps)}"
        )
        return DraftResult(success=True, response=response)

    @staticmethod
    def _parse_gaps(raw) -> List[str]:
        # A bare string is one gap, not a sequence of characters
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, list):
            return []
        return [str(g).strip() for g in raw if g and str(g).strip()]

    @staticmethod
    def _parse_citations(raw, evidence: List[EvidenceDocument]) -> List[EvidenceCitation]:
        citations: List[EvidenceCitation] = []
        if not isinstance(raw, list):
            return citations
        for item in raw:
            if not isinstance(item, dict):
                continue
            name = str(item.get("documentName") or "").strip()
            if not name:
                continue
            section = item.get("relevantSection")
            citations.append(EvidenceCitation(
                evidence_id=match_citation(name, evidence),
                evidence_name=name,
                relevant_section=str(section) if section else None,
            ))
        return citations


# Singleton
_drafter: Optional[ResponseDrafter] = None


def get_drafter() -> ResponseDrafter:
    """Get singleton drafter"""
    global _drafter
    if _drafter is None:
        _drafter = ResponseDrafter()
    return _drafter
