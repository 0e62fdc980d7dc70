"""
Request/response models for the recall HTTP API.
"""

from pydantic import BaseModel, field_validator, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..core.config import SEARCH_KINDS, SEARCH_DEFAULT_LIMIT, SEARCH_MIN_SIMILARITY


def _kind_must_be_valid(v):
    if v not in SEARCH_KINDS:
        raise ValueError(f'kind must be one of: {list(SEARCH_KINDS)}')
    return v


class RecordCreateRequest(BaseModel):
    user_id: str = "default"
    kind: str = "memory"
    text: str
    generated_output: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v

    @field_validator('kind')
    @classmethod
    def kind_must_be_valid(cls, v):
        return _kind_must_be_valid(v)

class RecordResponse(BaseModel):
    id: str
    owner_id: str
    kind: str
    text: str
    generated_output: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    embedding_model: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    created_at: float
    has_embedding: bool
    similarity: Optional[float] = None

class RecordListResponse(BaseModel):
    success: bool = True
    kind: str
    results: List[RecordResponse]
    count: int

class SearchRequest(BaseModel):
    query: str
    user_id: str = "default"
    kind: str = "posts"
    limit: int = Field(default=SEARCH_DEFAULT_LIMIT, ge=1, le=100)
    min_similarity: float = SEARCH_MIN_SIMILARITY

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v

    @field_validator('kind')
    @classmethod
    def kind_must_be_valid(cls, v):
        return _kind_must_be_valid(v)

class SearchResponse(BaseModel):
    success: bool = True
    query: str
    mode: str  # semantic|keyword
    results: List[RecordResponse]
    count: int
    keywords: List[str] = Field(default_factory=list)
    embedding_error: Optional[str] = None

class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    accounts: Optional[List[str]] = None
    writing_profile: Optional[Dict[str, Any]] = None
    branding_colors: Optional[Dict[str, Any]] = None
    logo_url: Optional[str] = None
    default_language: Optional[str] = None
    enabled: Optional[bool] = None

class ReferenceResponse(BaseModel):
    success: bool = True
    data: Any = None
    message: Optional[str] = None

class SyncStatusResponse(BaseModel):
    last_sync_at: float
    profiles_count: int
    websites_count: int
    success: bool
    errors: List[str] = Field(default_factory=list)

class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    config_issues: List[str] = Field(default_factory=list)

class ErrorResponse(BaseModel):
    error_type: str
    message: str
    timestamp: datetime = None
    details: Optional[Dict[str, Any]] = None

    def __init__(self, **data):
        super().__init__(timestamp=datetime.now(), **data)
