"""Unit tests for RAGService orchestration."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock
from errors import CollaboratorError, CollectionNotFoundError, InvalidInputError
from models.chunk import RetrievalResult, RetrievedChunk
from models.context import ContextResolution, ContextSource
from models.conversation import Turn
from services.chunking_engine import ChunkingEngine
from services.llm_client import LLMResponse
from services.prompt_builder import NO_CONTEXT_SENTINEL, PromptBuilder
from services.rag_service import RAGService
from services.retrieval_engine import RetrievalEngine


def make_chunk(content, score):
    return RetrievedChunk(
        content=content,
        metadata={"filename": "a.pdf"},
        score=score,
        relevance_score=1 - score,
        document_id="D1",
        chunk_index=0,
        tokens=5
    )


class TestRAGService:
    """Test suite for RAGService."""

    @pytest.fixture
    def embedding_model(self):
        model = Mock()
        model.embed.side_effect = lambda texts: [[0.1, 0.2] for _ in texts]
        return model

    @pytest.fixture
    def vector_store(self):
        store = Mock()
        store.collection_name.side_effect = lambda document_id: f"doc_{document_id}_chunks"
        store.exists.return_value = False
        return store

    @pytest.fixture
    def retrieval_engine(self):
        engine = Mock(spec=RetrievalEngine)
        engine.filter_by_relevance.side_effect = RetrievalEngine.filter_by_relevance
        engine.retrieve_multi.return_value = RetrievalResult("q", ["D1"], [make_chunk("Revenue grew 10%.", 0.9)])
        engine.retrieve.return_value = RetrievalResult("q", ["D1"], [make_chunk("Revenue grew 10%.", 0.9)])
        return engine

    @pytest.fixture
    def context_resolver(self):
        resolver = Mock()
        resolver.resolve.return_value = ContextResolution(
            source=ContextSource.REFERENCE_DETECTED, document_ids=["D1"], context_used=True
        )
        return resolver

    @pytest.fixture
    def history_store(self):
        store = Mock()
        store.find_recent_turns.return_value = [Turn("user", "Tell me about the report"), Turn("assistant", "Sure.")]
        return store

    @pytest.fixture
    def llm_client(self):
        client = Mock()
        client.generate.return_value = LLMResponse(
            text="Revenue grew by 10%.",
            tokens_input=120,
            tokens_output=8,
            latency_ms=300,
            model_name="llama-3.3-70b-versatile"
        )
        return client

    @pytest.fixture
    def service(self, embedding_model, vector_store, retrieval_engine, context_resolver, history_store, llm_client):
        return RAGService(
            chunking_engine=ChunkingEngine(),
            embedding_model=embedding_model,
            vector_store=vector_store,
            retrieval_engine=retrieval_engine,
            prompt_builder=PromptBuilder(),
            context_resolver=context_resolver,
            history_store=history_store,
            llm_client=llm_client
        )

    def test_ingest_document(self, service, embedding_model, vector_store):
        text = "First paragraph of the report.\n\nSecond paragraph of the report."

        result = service.ingest_document("D1", text, {"filename": "report.pdf"})

        assert result.collection_name == "doc_D1_chunks"
        assert result.chunk_count == len(result.chunks) >= 1
        embedding_model.embed.assert_called_once_with([chunk.text for chunk in result.chunks])

        args, kwargs = vector_store.upsert.call_args
        assert args == ("doc_D1_chunks",)
        assert kwargs["ids"] == [chunk.id for chunk in result.chunks]
        assert kwargs["texts"] == [chunk.text for chunk in result.chunks]
        assert len(kwargs["vectors"]) == result.chunk_count
        assert kwargs["metadatas"][0]["documentId"] == "D1"
        assert kwargs["metadatas"][0]["filename"] == "report.pdf"
        assert isinstance(kwargs["metadatas"][0]["navigation"], str)
        vector_store.delete_stale.assert_called_once_with("doc_D1_chunks", kwargs["ids"])
        vector_store.delete_collection.assert_not_called()

    def test_reingest_writes_before_pruning(self, service, vector_store):
        vector_store.exists.return_value = True

        service.ingest_document("D1", "Some text for the document.")

        writes = [name for name, _, _ in vector_store.mock_calls if name in ("upsert", "delete_stale")]
        assert writes == ["upsert", "delete_stale"]

    def test_failed_upsert_leaves_existing_chunks(self, service, vector_store):
        vector_store.exists.return_value = True
        vector_store.upsert.side_effect = CollaboratorError("index", "write failed")

        with pytest.raises(CollaboratorError) as exc_info:
            service.ingest_document("D1", "Some text for the document.")

        assert exc_info.value.stage == "index"
        vector_store.delete_collection.assert_not_called()
        vector_store.delete_stale.assert_not_called()

    def test_document_exists(self, service, vector_store):
        assert service.document_exists("D1") is False

        vector_store.exists.return_value = True
        assert service.document_exists("D1") is True
        vector_store.exists.assert_called_with("doc_D1_chunks")

    def test_ingest_rejects_empty_text(self, service, embedding_model):
        with pytest.raises(InvalidInputError):
            service.ingest_document("D1", "")
        embedding_model.embed.assert_not_called()

    def test_ingest_wraps_embedding_failure(self, service, embedding_model, vector_store):
        embedding_model.embed.side_effect = RuntimeError("model offline")

        with pytest.raises(CollaboratorError) as exc_info:
            service.ingest_document("D1", "Some text for the document.")

        assert exc_info.value.stage == "embedding"
        vector_store.upsert.assert_not_called()

    def test_ingest_propagates_index_failure(self, service, vector_store):
        vector_store.upsert.side_effect = CollaboratorError("index", "write failed")

        with pytest.raises(CollaboratorError) as exc_info:
            service.ingest_document("D1", "Some text for the document.")

        assert exc_info.value.stage == "index"

    def test_query_answers_with_context(self, service, context_resolver, retrieval_engine, history_store, llm_client):
        result = service.query("u1", "what about it?", [], "conv123", top_k=3)

        assert result.answered is True
        assert result.answer == "Revenue grew by 10%."
        assert result.context.source == ContextSource.REFERENCE_DETECTED
        assert result.chunks_retrieved == 1
        assert len(result.citations) == 1
        assert "Previous Conversation:\nUser: Tell me about the report" in result.prompt
        context_resolver.resolve.assert_called_once_with("u1", "what about it?", [], "conv123")
        retrieval_engine.retrieve_multi.assert_called_once_with(["D1"], "what about it?", 3)
        history_store.find_recent_turns.assert_called_once_with("conv123", "u1", 5)
        llm_client.generate.assert_called_once_with(result.prompt)

    def test_query_without_conversation_skips_history(self, service, history_store):
        result = service.query("u1", "What is revenue?", ["D1"])

        history_store.find_recent_turns.assert_not_called()
        assert "Previous Conversation:" not in result.prompt
        assert "Question: What is revenue?" in result.prompt

    def test_query_history_failure_is_not_fatal(self, service, history_store):
        history_store.find_recent_turns.side_effect = CollaboratorError("history", "db down")

        result = service.query("u1", "what about it?", [], "conv123")

        assert result.answered is True
        assert "Previous Conversation:" not in result.prompt

    def test_query_without_context_does_not_call_model(self, service, retrieval_engine, llm_client):
        retrieval_engine.retrieve_multi.return_value = RetrievalResult("q", [], [])

        result = service.query("u1", "What is revenue?")

        assert result.answered is False
        assert result.answer is None
        assert NO_CONTEXT_SENTINEL in result.prompt
        llm_client.generate.assert_not_called()

    def test_query_without_context_can_still_answer(self, service, retrieval_engine, llm_client):
        retrieval_engine.retrieve_multi.return_value = RetrievalResult("q", [], [])

        result = service.query("u1", "What is revenue?", allow_empty_context=True)

        assert result.answered is True
        llm_client.generate.assert_called_once()

    def test_relevance_threshold_filters_chunks(self, service, retrieval_engine, llm_client):
        retrieval_engine.retrieve_multi.return_value = RetrievalResult(
            "q", ["D1"], [make_chunk("Strong match.", 0.9), make_chunk("Weak match.", 0.4)]
        )

        result = service.query("u1", "What is revenue?", ["D1"], relevance_threshold=0.7)

        assert result.chunks_retrieved == 2
        assert len(result.citations) == 1
        assert "Weak match." not in result.prompt

    def test_query_without_generation(self, service, llm_client):
        result = service.query("u1", "What is revenue?", ["D1"], generate=False)

        assert result.answered is False
        assert len(result.citations) == 1
        llm_client.generate.assert_not_called()

    def test_query_document(self, service, retrieval_engine, llm_client):
        result = service.query_document("D1", "What is revenue?", top_k=2)

        retrieval_engine.retrieve.assert_called_once_with("D1", "What is revenue?", 2)
        assert result.answered is True
        assert result.context is None

    def test_query_document_missing_collection(self, service, retrieval_engine):
        retrieval_engine.retrieve.side_effect = CollectionNotFoundError("D404")

        with pytest.raises(CollectionNotFoundError):
            service.query_document("D404", "What is revenue?")

    def test_generation_failure_propagates(self, service, llm_client):
        llm_client.generate.side_effect = CollaboratorError("generation", "provider down")

        with pytest.raises(CollaboratorError) as exc_info:
            service.query("u1", "What is revenue?", ["D1"])

        assert exc_info.value.stage == "generation"
