"""Unit tests for ContextResolver."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock
from errors import CollaboratorError
from models.context import ContextSource
from services.context_resolver import ContextResolver


class TestContextResolver:
    """Test suite for the document context cascade."""

    @pytest.fixture
    def history_store(self):
        store = Mock()
        store.find_recent_document_refs.return_value = []
        return store

    @pytest.fixture
    def resolver(self, history_store):
        return ContextResolver(history_store)

    def test_initialization_rejects_non_positive_lookback(self, history_store):
        with pytest.raises(ValueError, match="Lookback"):
            ContextResolver(history_store, conversation_lookback=0)

        with pytest.raises(ValueError, match="Lookback"):
            ContextResolver(history_store, reference_lookback=-1)

    def test_explicit_documents_win(self, resolver, history_store):
        history_store.find_recent_document_refs.return_value = [["D9"]]

        resolution = resolver.resolve("u1", "what about it?", ["A", "B", "A"], "conv123")

        assert resolution.source == ContextSource.EXPLICIT
        assert resolution.document_ids == ["A", "B"]
        assert resolution.context_used is False
        history_store.find_recent_document_refs.assert_not_called()

    def test_reference_query_uses_recent_documents(self, resolver, history_store):
        history_store.find_recent_document_refs.return_value = [["D1"]]

        resolution = resolver.resolve("u", "what about it?", [], "conv123")

        assert resolution.source == ContextSource.REFERENCE_DETECTED
        assert resolution.document_ids == ["D1"]
        assert resolution.context_used is True
        history_store.find_recent_document_refs.assert_called_once_with("conv123", "u", 5)

    def test_plain_query_uses_conversation_context(self, resolver, history_store):
        history_store.find_recent_document_refs.return_value = [["D1", "D2"], ["D2", "D3"], []]

        resolution = resolver.resolve("u", "Summarize the key findings", None, "conv123")

        assert resolution.source == ContextSource.CONVERSATION_CONTEXT
        assert resolution.document_ids == ["D1", "D2", "D3"]
        assert resolution.context_used is True
        history_store.find_recent_document_refs.assert_called_once_with("conv123", "u", 3)

    def test_custom_lookback_windows(self, history_store):
        resolver = ContextResolver(history_store, conversation_lookback=2, reference_lookback=8)
        history_store.find_recent_document_refs.return_value = [["D1"]]

        resolver.resolve("u", "Summarize the key findings", None, "c1")
        resolver.resolve("u", "Tell me more details", None, "c1")

        limits = [call.args[2] for call in history_store.find_recent_document_refs.call_args_list]
        assert limits == [2, 8]

    def test_no_conversation_means_no_documents(self, resolver, history_store):
        resolution = resolver.resolve("u", "what about this document?")

        assert resolution.source == ContextSource.NO_DOCUMENTS
        assert resolution.document_ids == []
        assert resolution.context_used is False
        history_store.find_recent_document_refs.assert_not_called()

    def test_empty_history_means_no_documents(self, resolver, history_store):
        resolution = resolver.resolve("u", "what about it?", [], "conv123")

        assert resolution.source == ContextSource.NO_DOCUMENTS
        assert resolution.document_ids == []
        history_store.find_recent_document_refs.assert_called_once()

    def test_history_failure_degrades_to_no_documents(self, resolver, history_store):
        history_store.find_recent_document_refs.side_effect = CollaboratorError("history", "db down")

        resolution = resolver.resolve("u", "Summarize the key findings", [], "conv123")

        assert resolution.source == ContextSource.NO_DOCUMENTS
        assert resolution.document_ids == []

    def test_unexpected_history_error_is_not_raised(self, resolver, history_store):
        history_store.find_recent_document_refs.side_effect = RuntimeError("boom")

        resolution = resolver.resolve("u", "what about it?", [], "conv123")

        assert resolution.source == ContextSource.NO_DOCUMENTS

    def test_history_entries_with_missing_ids_are_ignored(self, resolver, history_store):
        history_store.find_recent_document_refs.return_value = [None, ["D1", None, ""], ["D1"]]

        resolution = resolver.resolve("u", "Summarize the key findings", [], "conv123")

        assert resolution.document_ids == ["D1"]

    @pytest.mark.parametrize("query", [
        "Tell me more about this document",
        "What did the report say?",
        "Can you give more details",
        "As mentioned above",
        "And what about the budget?",
        "ALSO the dates",
        "explain what is in it",
    ])
    def test_detects_document_references(self, query):
        assert ContextResolver.detect_document_reference(query) is True

    @pytest.mark.parametrize("query", [
        "Summarize the key findings",
        "How many employees work there",
        "",
        None,
    ])
    def test_ignores_non_references(self, query):
        assert ContextResolver.detect_document_reference(query) is False
