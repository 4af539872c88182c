"""
CompSync API
============

FastAPI endpoints for the MRA tracker.

Findings:
- GET    /api/v1/findings                          - List (filtered)
- POST   /api/v1/findings                          - Create
- GET    /api/v1/findings/{id}                     - Get
- PATCH  /api/v1/findings/{id}                     - Update fields
- DELETE /api/v1/findings/{id}                     - Delete (cascades responses)
- POST   /api/v1/findings/{id}/advance             - Move to next workflow stage
- GET    /api/v1/findings/{id}/progress            - Stage, progress, deadline urgency
- PUT    /api/v1/findings/{id}/evidence/{eid}      - Link evidence
- DELETE /api/v1/findings/{id}/evidence/{eid}      - Unlink evidence
- POST   /api/v1/findings/{id}/responses/generate  - Draft a response
- GET    /api/v1/findings/{id}/response/export     - Download response text

Evidence:
- GET/POST /api/v1/evidence, POST /api/v1/evidence/upload
- PATCH/DELETE /api/v1/evidence/{id}

Other:
- PATCH  /api/v1/responses/{id}   - Edit drafted response
- GET    /api/v1/categories       - Category display labels
- GET    /api/v1/stages           - Workflow stages
- GET    /api/v1/dashboard        - Aggregate stats
- GET/PUT /api/v1/ui/*            - Selection and filters
- POST   /api/v1/sample-data      - Load demonstration data
- DELETE /api/v1/data             - Clear everything
- GET    /health                  - Health check

Run with:
    uvicorn compsync.api:app --host 0.0.0.0 --port 8000
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Depends, APIRouter, UploadFile, File, Form, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import selectors, workflow
from .config import get_settings, get_llm_mode
from .drafting import ResponseDrafter, get_drafter
from .errors import InvalidTransitionError, PersistenceError
from .exporter import export_filename, export_response_text
from .ingest import build_evidence_create
from .llm_client import get_llm_client
from .persistence import SnapshotRepository
from .sample_data import load_sample_data
from .schemas import (
    CATEGORY_LABELS,
    EVIDENCE_CATEGORY_LABELS,
    CategoriesResponse,
    CategoryFilter,
    CategoryOption,
    DashboardStats,
    DraftResponse,
    ErrorDetail,
    ErrorResponse,
    EvidenceCategory,
    EvidenceCreate,
    EvidenceDocument,
    EvidenceUpdate,
    FilterRequest,
    Finding,
    FindingCreate,
    FindingUpdate,
    GeneratedResponse,
    HealthResponse,
    ProgressResponse,
    ResponseUpdate,
    SampleDataResponse,
    SelectionRequest,
    StageInfo,
    StatusFilter,
    UIStateResponse,
)
from .store import FindingStore

settings = get_settings()

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="CompSync",
    description="MRA finding tracker with evidence linking and examiner response drafting",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

CORS_ALLOW_ORIGINS = settings.cors_origins()
logger.info(f"CORS allow origins: {CORS_ALLOW_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# Dependencies
# =============================================================================

_store: Optional[FindingStore] = None


def get_store() -> FindingStore:
    """Process-wide store, loaded from the snapshot on first use"""
    global _store
    if _store is None:
        _store = FindingStore.load(SnapshotRepository())
    return _store


def get_response_drafter() -> ResponseDrafter:
    return get_drafter()


def _error_code_for_status(status_code: int) -> str:
    return {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        422: "VALIDATION_ERROR",
    }.get(status_code, "ERROR")


def _error(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _is_api_v1_request(request: Request) -> bool:
    return request.url.path.startswith("/api/v1")


@app.exception_handler(StarletteHTTPException)
async def api_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Structured errors for /api/v1 endpoints"""
    if not _is_api_v1_request(request):
        return await http_exception_handler(request, exc)
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "Request failed"
    return _error(exc.status_code, _error_code_for_status(exc.status_code), message)


@app.exception_handler(RequestValidationError)
async def api_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Structured validation errors; the offending input values are not echoed back"""
    if not _is_api_v1_request(request):
        return await request_validation_exception_handler(request, exc)
    errors = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return _error(422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    return _error(503, "PERSISTENCE_FAILED", str(exc))


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return _error(409, "INVALID_TRANSITION", str(exc))


def _require_finding(store: FindingStore, finding_id: str) -> Finding:
    finding = store.get_finding(finding_id)
    if finding is None:
        raise HTTPException(status_code=404, detail=f"Finding not found: {finding_id}")
    return finding


def _require_evidence(store: FindingStore, evidence_id: str) -> EvidenceDocument:
    doc = store.get_evidence(evidence_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"Evidence not found: {evidence_id}")
    return doc


# =============================================================================
# Health
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        llm_mode=get_llm_mode(),
        llm_configured=get_settings().llm_configured(),
        timestamp=datetime.now(),
    )


router = APIRouter(prefix="/api/v1")


# =============================================================================
# Findings
# =============================================================================

@router.get("/findings", response_model=List[Finding], tags=["Findings"])
async def list_findings(
    status: Optional[StatusFilter] = Query(None, description="Overrides the active status filter"),
    category: Optional[CategoryFilter] = Query(None, description="Overrides the active category filter"),
    store: FindingStore = Depends(get_store),
):
    """List findings matching the given filters, or the store's active filters"""
    return selectors.filter_findings(
        store.list_findings(),
        status if status is not None else store.status_filter,
        category if category is not None else store.category_filter,
    )


@router.post(
    "/findings",
    response_model=Finding,
    status_code=201,
    tags=["Findings"],
    responses={409: {"model": ErrorResponse, "description": "Status other than the first stage"}},
)
async def create_finding(request: FindingCreate, store: FindingStore = Depends(get_store)):
    """New findings start at the first stage; later stages are reached via /advance"""
    if request.status != workflow.INITIAL_STATUS:
        raise InvalidTransitionError(
            f"New findings start as '{workflow.get_stage(workflow.INITIAL_STATUS).label}'; "
            f"use /advance to reach '{workflow.get_stage(request.status).label}'"
        )
    return store.create_finding(request)


@router.get("/findings/{finding_id}", response_model=Finding, tags=["Findings"])
async def get_finding(finding_id: str, store: FindingStore = Depends(get_store)):
    return _require_finding(store, finding_id)


@router.patch("/findings/{finding_id}", response_model=Finding, tags=["Findings"])
async def update_finding(finding_id: str, request: FindingUpdate, store: FindingStore = Depends(get_store)):
    finding = store.update_finding(finding_id, request)
    if finding is None:
        raise HTTPException(status_code=404, detail=f"Finding not found: {finding_id}")
    return finding


@router.delete("/findings/{finding_id}", status_code=204, tags=["Findings"])
async def delete_finding(finding_id: str, store: FindingStore = Depends(get_store)):
    if not store.delete_finding(finding_id):
        raise HTTPException(status_code=404, detail=f"Finding not found: {finding_id}")
    return Response(status_code=204)


@router.post(
    "/findings/{finding_id}/advance",
    response_model=Finding,
    tags=["Workflow"],
    responses={409: {"model": ErrorResponse, "description": "Already at terminal stage"}},
)
async def advance_finding(finding_id: str, store: FindingStore = Depends(get_store)):
    """Move the finding to the next workflow stage"""
    finding = store.advance_to_next_stage(finding_id)
    if finding is None:
        raise HTTPException(status_code=404, detail=f"Finding not found: {finding_id}")
    return finding


@router.get("/findings/{finding_id}/progress", response_model=ProgressResponse, tags=["Workflow"])
async def finding_progress(finding_id: str, store: FindingStore = Depends(get_store)):
    finding = _require_finding(store, finding_id)
    upcoming = workflow.next_stage(finding.status)
    return ProgressResponse(
        finding_id=finding.id,
        stage=workflow.get_stage(finding.status).to_info(),
        stage_index=workflow.index_of(finding.status),
        progress_percent=workflow.progress_percent(finding.status),
        next_stage=upcoming.to_info() if upcoming else None,
        days_until_deadline=selectors.days_until_deadline(finding.deadline),
        urgency=selectors.classify_deadline(finding.deadline),
    )


@router.get("/stages", response_model=List[StageInfo], tags=["Workflow"])
async def list_stages():
    return [stage.to_info() for stage in workflow.STAGES]


@router.get("/categories", response_model=CategoriesResponse, tags=["Metadata"])
async def list_categories():
    """Finding and evidence categories with their display labels"""
    return CategoriesResponse(
        findings=[CategoryOption(value=c.value, label=label) for c, label in CATEGORY_LABELS.items()],
        evidence=[CategoryOption(value=c.value, label=label) for c, label in EVIDENCE_CATEGORY_LABELS.items()],
    )


@router.put("/findings/{finding_id}/evidence/{evidence_id}", response_model=Finding, tags=["Evidence"])
async def link_evidence(finding_id: str, evidence_id: str, store: FindingStore = Depends(get_store)):
    _require_finding(store, finding_id)
    _require_evidence(store, evidence_id)
    store.link_evidence(finding_id, evidence_id)
    return _require_finding(store, finding_id)


@router.delete("/findings/{finding_id}/evidence/{evidence_id}", response_model=Finding, tags=["Evidence"])
async def unlink_evidence(finding_id: str, evidence_id: str, store: FindingStore = Depends(get_store)):
    _require_finding(store, finding_id)
    _require_evidence(store, evidence_id)
    store.unlink_evidence(finding_id, evidence_id)
    return _require_finding(store, finding_id)


@router.get("/findings/{finding_id}/evidence", response_model=List[EvidenceDocument], tags=["Evidence"])
async def finding_evidence(
    finding_id: str,
    linked: bool = Query(True, description="False lists documents not yet linked"),
    store: FindingStore = Depends(get_store),
):
    _require_finding(store, finding_id)
    if linked:
        return selectors.linked_evidence(store, finding_id)
    return selectors.unlinked_evidence(store, finding_id)


# =============================================================================
# Responses
# =============================================================================

@router.post(
    "/findings/{finding_id}/responses/generate",
    response_model=DraftResponse,
    tags=["Responses"],
    responses={502: {"model": ErrorResponse, "description": "Generation failed"}},
)
async def generate_response(
    finding_id: str,
    store: FindingStore = Depends(get_store),
    drafter: ResponseDrafter = Depends(get_response_drafter),
):
    """
    Draft a response for the finding and attach it.

    The store stays usable while the draft is generated; if the finding is
    deleted meanwhile, the draft is discarded.
    """
    finding = _require_finding(store, finding_id)
    evidence = store.evidence_for_finding(finding_id)

    result = await drafter.generate(finding, evidence)

    if not result.success or result.response is None:
        logger.error(f"Response generation failed for {finding_id}: {result.error}")
        return _error(502, "GENERATION_FAILED", result.error or "Failed to generate response")

    if store.attach_generated_response(result.response) is None:
        raise HTTPException(status_code=404, detail=f"Finding deleted during generation: {finding_id}")

    return DraftResponse(success=True, used_fallback=result.used_fallback, response=result.response)


@router.get("/findings/{finding_id}/responses", response_model=List[GeneratedResponse], tags=["Responses"])
async def response_history(finding_id: str, store: FindingStore = Depends(get_store)):
    _require_finding(store, finding_id)
    return store.list_responses(finding_id)


@router.get("/findings/{finding_id}/response/export", response_class=PlainTextResponse, tags=["Responses"])
async def export_response(finding_id: str, store: FindingStore = Depends(get_store)):
    finding = _require_finding(store, finding_id)
    text = export_response_text(finding)
    if text is None:
        raise HTTPException(status_code=404, detail="No response has been generated for this finding")
    return PlainTextResponse(
        text,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(finding)}"'},
    )


@router.patch("/responses/{response_id}", response_model=GeneratedResponse, tags=["Responses"])
async def update_response(response_id: str, request: ResponseUpdate, store: FindingStore = Depends(get_store)):
    response = store.update_generated_response(response_id, request)
    if response is None:
        raise HTTPException(status_code=404, detail=f"Response not found: {response_id}")
    return response


# =============================================================================
# Evidence
# =============================================================================

@router.get("/evidence", response_model=List[EvidenceDocument], tags=["Evidence"])
async def list_evidence(
    search: str = Query("", description="Case-insensitive name search"),
    category: str = Query("all"),
    store: FindingStore = Depends(get_store),
):
    return selectors.filter_evidence(store.list_evidence(), search, category)


@router.post("/evidence", response_model=EvidenceDocument, status_code=201, tags=["Evidence"])
async def create_evidence(request: EvidenceCreate, store: FindingStore = Depends(get_store)):
    return store.create_evidence(request)


@router.post("/evidence/upload", response_model=EvidenceDocument, status_code=201, tags=["Evidence"])
async def upload_evidence(
    file: UploadFile = File(...),
    category: EvidenceCategory = Form(EvidenceCategory.OTHER),
    store: FindingStore = Depends(get_store),
):
    """Upload a document; metadata is captured immediately"""
    data = await file.read()
    request = build_evidence_create(
        data,
        file.filename or "upload",
        category,
        declared_mime=file.content_type,
    )
    return store.create_evidence(request)


@router.get("/evidence/{evidence_id}", response_model=EvidenceDocument, tags=["Evidence"])
async def get_evidence(evidence_id: str, store: FindingStore = Depends(get_store)):
    return _require_evidence(store, evidence_id)


@router.patch("/evidence/{evidence_id}", response_model=EvidenceDocument, tags=["Evidence"])
async def update_evidence(evidence_id: str, request: EvidenceUpdate, store: FindingStore = Depends(get_store)):
    doc = store.update_evidence(evidence_id, request)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"Evidence not found: {evidence_id}")
    return doc


@router.delete("/evidence/{evidence_id}", status_code=204, tags=["Evidence"])
async def delete_evidence(evidence_id: str, store: FindingStore = Depends(get_store)):
    if not store.delete_evidence(evidence_id):
        raise HTTPException(status_code=404, detail=f"Evidence not found: {evidence_id}")
    return Response(status_code=204)


# =============================================================================
# Dashboard & UI state
# =============================================================================

@router.get("/dashboard", response_model=DashboardStats, tags=["Dashboard"])
async def dashboard(store: FindingStore = Depends(get_store)):
    return selectors.dashboard_stats(store.list_findings())


def _ui_state(store: FindingStore) -> UIStateResponse:
    return UIStateResponse(
        selected_finding_id=store.selected_finding_id,
        status_filter=store.status_filter,
        category_filter=store.category_filter,
    )


@router.get("/ui/state", response_model=UIStateResponse, tags=["UI"])
async def get_ui_state(store: FindingStore = Depends(get_store)):
    return _ui_state(store)


@router.put("/ui/filters", response_model=UIStateResponse, tags=["UI"])
async def set_filters(request: FilterRequest, store: FindingStore = Depends(get_store)):
    if request.status is not None:
        store.set_status_filter(request.status)
    if request.category is not None:
        store.set_category_filter(request.category)
    return _ui_state(store)


@router.put("/ui/selection", response_model=UIStateResponse, tags=["UI"])
async def set_selection(request: SelectionRequest, store: FindingStore = Depends(get_store)):
    store.select_finding(request.finding_id)
    return _ui_state(store)


@router.get("/ui/selected-finding", response_model=Finding, tags=["UI"])
async def get_selected_finding(store: FindingStore = Depends(get_store)):
    finding = selectors.selected_finding(store)
    if finding is None:
        raise HTTPException(status_code=404, detail="No finding selected")
    return finding


# =============================================================================
# Data management
# =============================================================================

@router.post("/sample-data", response_model=SampleDataResponse, tags=["Data"])
async def sample_data(store: FindingStore = Depends(get_store)):
    return load_sample_data(store)


@router.delete("/data", status_code=204, tags=["Data"])
async def clear_data(store: FindingStore = Depends(get_store)):
    store.clear_all()
    return Response(status_code=204)


app.include_router(router)


@app.on_event("startup")
async def startup_event():
    """Log configuration on startup"""
    logger.info(f"Starting CompSync v{settings.service_version}")
    logger.info(f"LLM Mode: {settings.llm_mode.value}")
    for warning in settings.validate_llm_config():
        logger.warning(warning)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    client = get_llm_client()
    await client.close()
    logger.info("CompSync stopped")
