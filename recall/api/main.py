"""
HTTP API over the recall engine: record ingestion, semantic/keyword search,
and cached reference data.
"""

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional

from .schemas import (
    RecordCreateRequest,
    RecordResponse,
    RecordListResponse,
    SearchRequest,
    SearchResponse,
    ProfileUpdateRequest,
    ReferenceResponse,
    SyncStatusResponse,
    HealthResponse,
    ErrorResponse
)
from ..core import config
from ..core.cache import ReferenceDataCache
from ..core.dao import CandidateStoreError, SQLiteCandidateStore, save_record
from ..core.db import health_check
from ..core.reference import ReferenceDataError, ReferenceDataService
from ..core.search_service import RetrievalError, SemanticSearchService
from ..core.sync import SyncOrchestrator
from ..vector.embeddings import EmbeddingsService
from ..vector.similarity import EmbeddingMismatch

# Initialize the FastAPI application
app = FastAPI(
    title="Recall API",
    version=config.VERSION,
    description="Semantic content retrieval and reference-data cache",
    docs_url="/docs" if config.debug_enabled() else None,
    redoc_url="/redoc" if config.debug_enabled() else None
)

# Browser extension and dashboard origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies are built per request so each request owns its collaborators
def provide_embeddings() -> EmbeddingsService:
    return EmbeddingsService()

def provide_candidate_store() -> SQLiteCandidateStore:
    return config.get_candidate_store()

def provide_search_service(embeddings: EmbeddingsService = Depends(provide_embeddings),
                           store: SQLiteCandidateStore = Depends(provide_candidate_store)) -> SemanticSearchService:
    return SemanticSearchService(embeddings, store, scan_limit=config.SEARCH_SCAN_LIMIT)

def provide_reference_cache() -> ReferenceDataCache:
    return ReferenceDataCache(config.get_cache_store(), default_ttl=config.CACHE_TTL_SEC)

def provide_reference_service(cache: ReferenceDataCache = Depends(provide_reference_cache)) -> ReferenceDataService:
    return ReferenceDataService(config.get_reference_source(), cache, config.get_reference_tables())

def provide_sync_orchestrator(service: ReferenceDataService = Depends(provide_reference_service),
                              cache: ReferenceDataCache = Depends(provide_reference_cache)) -> SyncOrchestrator:
    return SyncOrchestrator(service, cache)


def _error(status_code: int, error_type: str, message: str) -> JSONResponse:
    body = ErrorResponse(error_type=error_type, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

@app.exception_handler(ReferenceDataError)
async def reference_data_error_handler(request: Request, exc: ReferenceDataError):
    return _error(502, "reference_data_unavailable", str(exc))

@app.exception_handler(RetrievalError)
async def retrieval_error_handler(request: Request, exc: RetrievalError):
    return _error(503, "retrieval_failed", str(exc))

@app.exception_handler(CandidateStoreError)
async def candidate_store_error_handler(request: Request, exc: CandidateStoreError):
    return _error(503, "record_store_unavailable", str(exc))

@app.exception_handler(EmbeddingMismatch)
async def embedding_mismatch_handler(request: Request, exc: EmbeddingMismatch):
    return _error(409, type(exc).__name__, str(exc))


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=config.VERSION,
        db_health=db_health,
        config_issues=config.validate_config()
    )


@app.post("/records", response_model=RecordResponse, status_code=201)
def create_record(req: RecordCreateRequest,
                  embeddings: EmbeddingsService = Depends(provide_embeddings),
                  store: SQLiteCandidateStore = Depends(provide_candidate_store)):
    """Save a record with its embedding (best effort) and keywords."""
    record = save_record(store, embeddings, req.user_id, req.kind, req.text,
                         generated_output=req.generated_output, context=req.context)
    return RecordResponse(**record.to_dict())

# Define /records/recent BEFORE any /records/{id} route to avoid path parameter conflict
@app.get("/records/recent", response_model=RecordListResponse)
def recent_records(kind: str = "posts", user_id: Optional[str] = None, limit: int = 20, offset: int = 0,
                   store: SQLiteCandidateStore = Depends(provide_candidate_store)):
    if kind not in config.SEARCH_KINDS:
        raise HTTPException(status_code=400, detail=f"Invalid kind: {kind}")
    records = store.list_recent(user_id, kind, limit=limit, offset=offset)
    return RecordListResponse(
        kind=kind,
        results=[RecordResponse(**r.to_dict()) for r in records],
        count=len(records)
    )

@app.delete("/records/{record_id}")
def delete_record(record_id: str, store: SQLiteCandidateStore = Depends(provide_candidate_store)):
    if not store.delete_record(record_id):
        raise HTTPException(status_code=404, detail="Record not found")
    return {"success": True, "message": "Record deleted"}


@app.post("/search/semantic", response_model=SearchResponse)
def semantic_search_endpoint(req: SearchRequest, service: SemanticSearchService = Depends(provide_search_service)):
    """Semantic search; answers from keyword search when the query cannot be embedded."""
    outcome = service.search_with_fallback(req.user_id, req.query, req.kind, req.limit, req.min_similarity)
    data = outcome.to_dict()
    return SearchResponse(
        query=req.query,
        mode=outcome.mode,
        results=[RecordResponse(**item) for item in data["results"]],
        count=data["count"],
        keywords=outcome.keywords,
        embedding_error=outcome.embedding_error
    )

@app.post("/search/keyword", response_model=SearchResponse)
def keyword_search_endpoint(req: SearchRequest, service: SemanticSearchService = Depends(provide_search_service)):
    result = service.keyword_search(req.user_id, req.query, req.kind, req.limit)
    return SearchResponse(
        query=req.query,
        mode="keyword",
        results=[RecordResponse(**r.to_dict()) for r in result.records],
        count=len(result.records),
        keywords=result.keywords
    )


@app.get("/reference/profiles", response_model=ReferenceResponse)
def list_profiles(no_cache: bool = False, service: ReferenceDataService = Depends(provide_reference_service)):
    profiles = service.list_user_profiles(use_cache=not no_cache)
    return ReferenceResponse(
        data=[p.to_dict() for p in profiles],
        message=f"Retrieved {len(profiles)} profiles"
    )

# Define /reference/profiles/user/{user_id} BEFORE /reference/profiles/{profile_id}
@app.get("/reference/profiles/user/{user_id}", response_model=ReferenceResponse)
def get_profile_by_user(user_id: str, no_cache: bool = False,
                        service: ReferenceDataService = Depends(provide_reference_service)):
    profile = service.get_user_profile_by_user_id(user_id, use_cache=not no_cache)
    if not profile:
        raise HTTPException(status_code=404, detail=f"Profile for user {user_id} not found")
    return ReferenceResponse(data=profile.to_dict())

@app.get("/reference/profiles/{profile_id}", response_model=ReferenceResponse)
def get_profile(profile_id: str, no_cache: bool = False,
                service: ReferenceDataService = Depends(provide_reference_service)):
    profile = service.get_user_profile(profile_id, use_cache=not no_cache)
    if not profile:
        raise HTTPException(status_code=404, detail=f"Profile {profile_id} not found")
    return ReferenceResponse(data=profile.to_dict())

@app.patch("/reference/profiles/{profile_id}", response_model=ReferenceResponse)
def update_profile(profile_id: str, req: ProfileUpdateRequest,
                   service: ReferenceDataService = Depends(provide_reference_service)):
    updates = req.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    profile = service.update_user_profile(profile_id, updates)
    return ReferenceResponse(data=profile.to_dict(), message="Profile updated")

@app.get("/reference/websites", response_model=ReferenceResponse)
def list_websites(no_cache: bool = False, service: ReferenceDataService = Depends(provide_reference_service)):
    websites = service.list_websites(use_cache=not no_cache)
    return ReferenceResponse(
        data=[w.to_dict() for w in websites],
        message=f"Retrieved {len(websites)} websites"
    )

@app.get("/reference/websites/{website_id}", response_model=ReferenceResponse)
def get_website(website_id: str, no_cache: bool = False,
                service: ReferenceDataService = Depends(provide_reference_service)):
    website = service.get_website(website_id, use_cache=not no_cache)
    if not website:
        raise HTTPException(status_code=404, detail=f"Website {website_id} not found")
    return ReferenceResponse(data=website.to_dict())

@app.post("/reference/sync", response_model=SyncStatusResponse)
def run_sync(orchestrator: SyncOrchestrator = Depends(provide_sync_orchestrator)):
    status = orchestrator.sync_all()
    return SyncStatusResponse(**status.to_dict())

@app.get("/reference/sync/status", response_model=SyncStatusResponse)
def sync_status(orchestrator: SyncOrchestrator = Depends(provide_sync_orchestrator)):
    status = orchestrator.get_sync_status()
    if status is None:
        raise HTTPException(status_code=404, detail="No sync has been recorded")
    return SyncStatusResponse(**status.to_dict())
