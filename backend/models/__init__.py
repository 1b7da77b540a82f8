"""Data models for the Document RAG API."""
from .document import Document, Page
from .chunk import (
    Chunk,
    ChunkNavigation,
    OverlapInfo,
    Paragraph,
    RetrievalResult,
    RetrievedChunk,
    SegmentationResult,
    SegmentationStats,
    SourceMetadata,
)
from .context import ContextResolution, ContextSource
from .conversation import Turn
from .prompt import (
    AnalysisType,
    Citation,
    InstructionTemplate,
    PromptAssemblyResult,
    PromptOptions,
    SummaryType,
)
from .api import QueryRequest, QueryResponse, ResponseMetadata, TokenUsage, Source

__all__ = [
    "Document",
    "Page",
    "Chunk",
    "ChunkNavigation",
    "OverlapInfo",
    "Paragraph",
    "RetrievalResult",
    "RetrievedChunk",
    "SegmentationResult",
    "SegmentationStats",
    "SourceMetadata",
    "ContextResolution",
    "ContextSource",
    "Turn",
    "AnalysisType",
    "Citation",
    "InstructionTemplate",
    "PromptAssemblyResult",
    "PromptOptions",
    "SummaryType",
    "QueryRequest",
    "QueryResponse",
    "ResponseMetadata",
    "TokenUsage",
    "Source",
]
