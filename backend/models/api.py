"""Request and response schemas for the HTTP API."""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from config import DEFAULT_TOP_K, MAX_CONTEXT_LENGTH


class IngestRequest(BaseModel):
    """Raw document text to segment and index."""
    text: str = Field(..., min_length=1)
    filename: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IngestResponse(BaseModel):
    document_id: str
    collection: str
    chunk_count: int
    extraction_strategy: str
    processing_time_ms: int


class DocumentQueryRequest(BaseModel):
    """Question against a single document."""
    question: str = Field(..., min_length=1)
    top_k: int = Field(DEFAULT_TOP_K, ge=1, le=50)
    instruction_template: str = "default"
    include_metadata: bool = True
    max_context_length: int = Field(MAX_CONTEXT_LENGTH, ge=1)
    relevance_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    generate: bool = True
    allow_empty_context: bool = False


class QueryRequest(DocumentQueryRequest):
    """Conversational question over explicitly attached or remembered documents."""
    user_id: str = Field(..., min_length=1)
    document_ids: List[str] = Field(default_factory=list)
    conversation_id: Optional[str] = None


class TokenUsage(BaseModel):
    input: int
    output: int


class ResponseMetadata(BaseModel):
    model_used: Optional[str] = None
    tokens: Optional[TokenUsage] = None
    prompt_tokens: int
    latency_ms: int
    chunks_retrieved: int
    chunks_included: int


class Source(BaseModel):
    """Citation shown to the end user."""
    id: int
    chunk_index: Optional[int] = None
    document_id: str
    file_name: str
    page: Union[int, str]
    relevance_score: str
    preview: str


class ContextInfo(BaseModel):
    source: str
    document_ids: List[str]
    context_used: bool


class QueryResponse(BaseModel):
    answer: Optional[str] = None
    answered: bool
    metadata: ResponseMetadata
    sources: List[Source]
    context: Optional[ContextInfo] = None
    conversation_id: Optional[str] = None
