"""Unit tests for data models and request schemas."""
import sys
import json
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from pydantic import ValidationError
from errors import CollaboratorError, CollectionNotFoundError, InvalidInputError, RAGError
from models.api import DocumentQueryRequest, QueryRequest
from models.chunk import (
    Chunk,
    ChunkNavigation,
    OverlapInfo,
    RetrievalResult,
    RetrievedChunk,
    SourceMetadata,
)
from models.document import Document, Page
from models.prompt import InstructionTemplate


class TestChunkModels:
    """Test suite for chunk models."""

    def test_navigation_wire_form(self):
        navigation = ChunkNavigation(is_first=False, is_last=True, previous_chunk_id="chunk_0")

        data = navigation.to_dict()

        assert data == {"isFirst": False, "isLast": True, "previousChunkId": "chunk_0", "nextChunkId": None}
        assert ChunkNavigation.from_dict(data) == navigation

    @pytest.mark.parametrize("payload", [[1, 2], {"isFirst": True}, {"isFirst": "yes", "isLast": False}])
    def test_navigation_rejects_malformed_payload(self, payload):
        with pytest.raises(ValueError):
            ChunkNavigation.from_dict(payload)

    def test_chunk_body_strips_overlap(self):
        chunk = Chunk(
            id="chunk_1",
            chunk_index=1,
            text="End of previous.\n\nNew paragraph.",
            token_estimate=9,
            original_token_estimate=4,
            navigation=ChunkNavigation(is_first=False, is_last=True, previous_chunk_id="chunk_0"),
            source_metadata=SourceMetadata(original_index=1, is_split=True, split_part=2),
            overlap_info=OverlapInfo(text="End of previous.", token_estimate=4, from_chunk_id="chunk_0"),
            global_metadata={"filename": "a.pdf", "title": "Report"}
        )

        assert chunk.body == "New paragraph."

        metadata = chunk.to_index_metadata("D1")
        assert metadata["documentId"] == "D1"
        assert metadata["filename"] == "a.pdf"
        assert metadata["title"] == "Report"
        assert metadata["splitPart"] == 2
        assert json.loads(metadata["navigation"])["previousChunkId"] == "chunk_0"

    def test_retrieved_chunk_accessors(self):
        chunk = RetrievedChunk(
            content="text",
            metadata={"fileName": "b.pdf", "pageNumber": 4},
            score=0.8,
            relevance_score=0.2,
            document_id="D1",
            chunk_index=0,
            tokens=1
        )

        assert chunk.filename == "b.pdf"
        assert chunk.page == 4

    def test_retrieval_result_document_id(self):
        assert RetrievalResult("q", ["D1"], []).document_id == "D1"
        assert RetrievalResult("q", ["D1", "D2"], []).document_id is None


class TestDocumentModel:
    """Test suite for Document."""

    def test_text_joins_non_empty_pages(self):
        document = Document(
            filename="a.pdf",
            pages=[Page(1, " Intro. ", 1), Page(2, "   ", 0), Page(3, "Body.", 1)],
            total_pages=3
        )

        assert document.text == "Intro.\n\nBody."

    def test_ingestion_metadata(self):
        document = Document(filename="a.pdf", pages=[], total_pages=2, title="Report")

        assert document.ingestion_metadata() == {"filename": "a.pdf", "totalPages": 2, "title": "Report"}


class TestInstructionTemplate:
    """Test suite for InstructionTemplate lookup."""

    @pytest.mark.parametrize("name,expected", [
        ("strict", InstructionTemplate.STRICT),
        (" Concise ", InstructionTemplate.CONCISE),
        (InstructionTemplate.DETAILED, InstructionTemplate.DETAILED),
        ("unknown", InstructionTemplate.DEFAULT),
        (None, InstructionTemplate.DEFAULT),
    ])
    def test_from_name(self, name, expected):
        assert InstructionTemplate.from_name(name) == expected


class TestErrors:
    """Test suite for the error hierarchy."""

    def test_error_hierarchy(self):
        assert issubclass(InvalidInputError, RAGError)
        assert issubclass(CollectionNotFoundError, RAGError)
        assert issubclass(CollaboratorError, RAGError)

    def test_collaborator_error_carries_stage(self):
        error = CollaboratorError("index", "write failed")

        assert error.stage == "index"
        assert str(error) == "[index] write failed"

    def test_collection_not_found_message(self):
        error = CollectionNotFoundError("D1", "doc_D1_chunks")

        assert error.message == "Collection not found for document: D1"
        assert error.collection_name == "doc_D1_chunks"


class TestRequestSchemas:
    """Test suite for API request validation."""

    def test_document_query_defaults(self):
        request = DocumentQueryRequest(question="What is revenue?")

        assert request.top_k == 5
        assert request.include_metadata is True
        assert request.generate is True
        assert request.allow_empty_context is False

    @pytest.mark.parametrize("top_k", [0, 51])
    def test_top_k_bounds(self, top_k):
        with pytest.raises(ValidationError):
            DocumentQueryRequest(question="What is revenue?", top_k=top_k)

    def test_query_request_requires_user(self):
        with pytest.raises(ValidationError):
            QueryRequest(question="What is revenue?")

        request = QueryRequest(user_id="u1", question="What is revenue?")
        assert request.document_ids == []
        assert request.conversation_id is None
