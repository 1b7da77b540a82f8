"""Chunk data models for segmentation and retrieval."""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Paragraph:
    """Intermediate unit produced while segmenting one document."""
    id: str
    text: str
    token_estimate: int
    source_index: int
    is_split: bool = False
    split_part: Optional[int] = None
    is_combined: bool = False
    combined_count: int = 1


@dataclass(frozen=True)
class OverlapInfo:
    """Text carried over from the previous chunk."""
    text: str
    token_estimate: int
    from_chunk_id: str


@dataclass(frozen=True)
class ChunkNavigation:
    """Links between neighbouring chunks of the same document."""
    is_first: bool
    is_last: bool
    previous_chunk_id: Optional[str] = None
    next_chunk_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isFirst": self.is_first,
            "isLast": self.is_last,
            "previousChunkId": self.previous_chunk_id,
            "nextChunkId": self.next_chunk_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkNavigation":
        """
        Build navigation from its wire form.

        Raises:
            ValueError: If the payload is not a mapping with boolean flags
        """
        if not isinstance(data, dict):
            raise ValueError(f"Navigation payload must be an object, got {type(data).__name__}")
        is_first = data.get("isFirst")
        is_last = data.get("isLast")
        if not isinstance(is_first, bool) or not isinstance(is_last, bool):
            raise ValueError("Navigation payload requires boolean isFirst/isLast")
        return cls(
            is_first=is_first,
            is_last=is_last,
            previous_chunk_id=data.get("previousChunkId"),
            next_chunk_id=data.get("nextChunkId"),
        )


@dataclass(frozen=True)
class SourceMetadata:
    """Lineage of a chunk back to the paragraphs it came from."""
    original_index: int
    is_split: bool = False
    is_combined: bool = False
    split_part: Optional[int] = None
    combined_count: int = 1


@dataclass
class Chunk:
    """Represents a document chunk for retrieval."""
    id: str  # Format: "chunk_{chunk_index}"
    chunk_index: int
    text: str
    token_estimate: int
    original_token_estimate: int
    navigation: ChunkNavigation
    source_metadata: SourceMetadata
    overlap_info: Optional[OverlapInfo] = None
    global_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def body(self) -> str:
        """Chunk text without the overlap prefix."""
        if self.overlap_info is None:
            return self.text
        return self.text[len(self.overlap_info.text) + 2:]

    def to_index_metadata(self, document_id: str, filename: Optional[str] = None) -> Dict[str, Any]:
        """
        Flatten the chunk into the metadata map stored next to its vector.

        Navigation is serialized to a JSON string so schema-less index
        backends can store it as a scalar.
        """
        metadata: Dict[str, Any] = dict(self.global_metadata)
        metadata.update({
            "documentId": document_id,
            "filename": filename if filename is not None else self.global_metadata.get("filename", "Unknown"),
            "chunkIndex": self.chunk_index,
            "tokens": self.token_estimate,
            "originalTokens": self.original_token_estimate,
            "originalIndex": self.source_metadata.original_index,
            "isSplit": self.source_metadata.is_split,
            "isCombined": self.source_metadata.is_combined,
            "combinedCount": self.source_metadata.combined_count,
            "navigation": json.dumps(self.navigation.to_dict()),
        })
        if self.source_metadata.split_part is not None:
            metadata["splitPart"] = self.source_metadata.split_part
        return metadata


@dataclass
class SegmentationStats:
    """Processing information for one segmentation call."""
    original_length: int
    cleaned_length: int
    paragraph_count: int
    chunk_count: int
    extraction_strategy: str
    processing_time_ms: int


@dataclass
class SegmentationResult:
    """Output of the chunking engine."""
    chunks: List[Chunk]
    stats: SegmentationStats


@dataclass
class RetrievedChunk:
    """Chunk returned by the similarity index with its query-relative score."""
    content: str
    metadata: Dict[str, Any]
    score: float  # similarity, higher is better
    relevance_score: float  # raw distance, lower is better
    document_id: Optional[str]
    chunk_index: Optional[int]
    tokens: Optional[int]
    navigation: Optional[ChunkNavigation] = None

    @property
    def filename(self) -> Optional[str]:
        return self.metadata.get("filename") or self.metadata.get("fileName")

    @property
    def page(self) -> Optional[Any]:
        return self.metadata.get("page") or self.metadata.get("pageNumber")


@dataclass
class RetrievalResult:
    """Ranked chunks for one query over one or more documents."""
    query: str
    document_ids: List[str]
    retrieved_chunks: List[RetrievedChunk]

    @property
    def count(self) -> int:
        return len(self.retrieved_chunks)

    @property
    def document_id(self) -> Optional[str]:
        return self.document_ids[0] if len(self.document_ids) == 1 else None
