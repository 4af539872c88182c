"""
Response Drafting Tests
=======================

Templated fallback and the configured generation path (with a mocked
chat-completions endpoint).
"""

import json
import pytest
from datetime import date, datetime
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import httpx

from compsync.config import Settings
from compsync.drafting import (
    GENERIC_GAPS,
    MONITORING_GAP,
    NO_EVIDENCE_PLACEHOLDER,
    ResponseDrafter,
    build_fallback_response,
    build_user_prompt,
    match_citation,
)
from compsync.llm_client import LLMClient
from compsync.schemas import (
    EvidenceCategory,
    EvidenceDocument,
    Finding,
    FindingCategory,
    FindingStatus,
    LLMMode,
    Priority,
    ResponseStatus,
)


FIXED_NOW = datetime(2025, 2, 1, 9, 30)


@pytest.fixture
def finding():
    return Finding(
        id="mra-1",
        title="Transaction monitoring system lacks documented tuning methodology",
        description="No written tuning procedure.",
        status=FindingStatus.EVIDENCE,
        assignee="Sarah Johnson",
        deadline=date(2025, 3, 1),
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
        category=FindingCategory.BSA_AML,
        priority=Priority.HIGH,
    )


def _doc(doc_id: str, name: str, category=EvidenceCategory.POLICIES, content=None) -> EvidenceDocument:
    return EvidenceDocument(
        id=doc_id,
        name=name,
        category=category,
        uploaded_at=FIXED_NOW,
        file_type="application/pdf",
        file_size=1000,
        content=content,
    )


@pytest.fixture
def evidence():
    return [
        _doc("e1", "BSA_AML_Policy_v2.1.pdf", content="Section 4.3 - Tuning Methodology"),
        _doc("e2", "Board_Minutes_Q3.pdf", EvidenceCategory.BOARD_MINUTES),
    ]


def _offline_drafter() -> ResponseDrafter:
    settings = Settings(llm_mode=LLMMode.OPENAI, openai_api_key=None)
    return ResponseDrafter(client=LLMClient(settings=settings), clock=lambda: FIXED_NOW)


def _online_drafter(handler) -> ResponseDrafter:
    settings = Settings(
        llm_mode=LLMMode.OPENAI,
        openai_api_key="sk-test",
        openai_model="gpt-test",
        openai_base_url="https://llm.test/v1",
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = LLMClient(settings=settings, http_client=http_client)
    return ResponseDrafter(client=client, clock=lambda: FIXED_NOW)


def _completion(content: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20},
    }


# =============================================================================
# Prompt building
# =============================================================================

class TestPrompt:

    def test_prompt_lists_evidence(self, finding, evidence):
        prompt = build_user_prompt(finding, evidence)
        assert finding.title in prompt
        assert "Category: bsa_aml" in prompt
        assert "- BSA_AML_Policy_v2.1.pdf (policies): Section 4.3 - Tuning Methodology" in prompt
        assert "- Board_Minutes_Q3.pdf (board_minutes): Content not extracted" in prompt

    def test_prompt_without_evidence(self, finding):
        assert NO_EVIDENCE_PLACEHOLDER in build_user_prompt(finding, [])

    def test_match_citation_either_direction(self, evidence):
        assert match_citation("bsa_aml_policy", evidence) == "e1"
        assert match_citation("Board_Minutes_Q3.pdf (page 2)", evidence) == "e2"
        assert match_citation("Vendor report", evidence) is None
        assert match_citation("", evidence) is None


# =============================================================================
# Templated fallback
# =============================================================================

class TestFallback:

    def test_no_evidence(self, finding):
        response = build_fallback_response(finding, [], FIXED_NOW)
        assert response.mra_id == finding.id
        assert response.evidence_used == []
        assert response.gaps == GENERIC_GAPS
        assert response.status == ResponseStatus.DRAFT
        assert response.generated_at == FIXED_NOW
        assert finding.title in response.content
        assert "gathering supporting documentation" in response.content

    def test_two_documents(self, finding, evidence):
        response = build_fallback_response(finding, evidence, FIXED_NOW)
        assert response.gaps == [MONITORING_GAP]
        assert [c.evidence_id for c in response.evidence_used] == ["e1", "e2"]
        assert response.evidence_used[0].relevant_section == "Section 4.2 - Policies Framework"
        assert response.evidence_used[1].relevant_section == "Section 4.2 - Board Minutes Framework"
        assert "BSA_AML_Policy_v2.1.pdf, Board_Minutes_Q3.pdf" in response.content
        assert "BSA/AML compliance program" in response.content

    def test_one_document_still_generic_gaps(self, finding, evidence):
        response = build_fallback_response(finding, evidence[:1], FIXED_NOW)
        assert response.gaps == GENERIC_GAPS
        assert len(response.evidence_used) == 1

    def test_cites_at_most_three(self, finding):
        docs = [_doc(f"e{i}", f"Doc_{i}.pdf") for i in range(5)]
        response = build_fallback_response(finding, docs, FIXED_NOW)
        assert len(response.evidence_used) == 3

    def test_non_bsa_wording(self, finding):
        other = finding.model_copy(update={"category": FindingCategory.GOVERNANCE})
        assert "compliance framework" in build_fallback_response(other, [], FIXED_NOW).content

    @pytest.mark.asyncio
    async def test_drafter_uses_fallback_without_key(self, finding, evidence):
        drafter = _offline_drafter()
        assert not drafter.is_api_configured()

        result = await drafter.generate(finding, evidence)
        assert result.success
        assert result.used_fallback
        assert result.response.gaps == [MONITORING_GAP]


# =============================================================================
# Configured generation
# =============================================================================

class TestConfiguredGeneration:

    @pytest.mark.asyncio
    async def test_success_parses_and_matches_citations(self, finding, evidence):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            reply = {
                "narrative": "We acknowledge the finding.",
                "citations": [
                    {"documentName": "BSA_AML_Policy_v2.1.pdf", "relevantSection": "Section 4.3"},
                    {"documentName": "Unknown memo"},
                ],
                "gaps": ["Training records"],
            }
            return httpx.Response(200, json=_completion(json.dumps(reply)))

        drafter = _online_drafter(handler)
        assert drafter.is_api_configured()

        result = await drafter.generate(finding, evidence)

        assert result.success
        assert not result.used_fallback
        assert result.response.content == "We acknowledge the finding."
        assert result.response.gaps == ["Training records"]
        assert result.response.generated_at == FIXED_NOW

        citations = result.response.evidence_used
        assert citations[0].evidence_id == "e1"
        assert citations[0].relevant_section == "Section 4.3"
        assert citations[1].evidence_id is None
        assert citations[1].evidence_name == "Unknown memo"

        assert captured["url"] == "https://llm.test/v1/chat/completions"
        assert captured["auth"] == "Bearer sk-test"
        assert captured["body"]["model"] == "gpt-test"
        assert captured["body"]["response_format"] == {"type": "json_object"}
        assert captured["body"]["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_fenced_json_accepted(self, finding, evidence):
        def handler(request):
            content = '```json\n{"narrative": "Fenced", "citations": [], "gaps": []}\n```'
            return httpx.Response(200, json=_completion(content))

        result = await _online_drafter(handler).generate(finding, evidence)
        assert result.success
        assert result.response.content == "Fenced"

    @pytest.mark.asyncio
    async def test_string_gaps_kept_whole(self, finding, evidence):
        def handler(request):
            content = '{"narrative": "n", "citations": [], "gaps": "Board minutes"}'
            return httpx.Response(200, json=_completion(content))

        result = await _online_drafter(handler).generate(finding, evidence)
        assert result.success
        assert result.response.gaps == ["Board minutes"]

    @pytest.mark.asyncio
    async def test_non_list_gaps_ignored(self, finding, evidence):
        def handler(request):
            content = '{"narrative": "n", "citations": [], "gaps": {"first": "x"}}'
            return httpx.Response(200, json=_completion(content))

        result = await _online_drafter(handler).generate(finding, evidence)
        assert result.success
        assert result.response.gaps == []

    @pytest.mark.asyncio
    async def test_http_error_reports_provider_message(self, finding, evidence):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Invalid API key"}})

        result = await _online_drafter(handler).generate(finding, evidence)
        assert not result.success
        assert result.response is None
        assert "Invalid API key" in result.error

    @pytest.mark.asyncio
    async def test_unparseable_reply_fails(self, finding, evidence):
        def handler(request):
            return httpx.Response(200, json=_completion("I cannot help with that."))

        result = await _online_drafter(handler).generate(finding, evidence)
        assert not result.success
        assert "parse" in result.error

    @pytest.mark.asyncio
    async def test_missing_narrative_fails(self, finding, evidence):
        def handler(request):
            return httpx.Response(200, json=_completion('{"citations": []}'))

        result = await _online_drafter(handler).generate(finding, evidence)
        assert not result.success

    @pytest.mark.asyncio
    async def test_empty_content_fails(self, finding, evidence):
        def handler(request):
            return httpx.Response(200, json=_completion(""))

        result = await _online_drafter(handler).generate(finding, evidence)
        assert not result.success
        assert result.error == "No response content from API"
