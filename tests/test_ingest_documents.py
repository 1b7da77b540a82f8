"""Unit tests for the ingestion script."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock, patch
import ingest_documents
from errors import CollaboratorError
from models.document import Document, Page


def make_document(filename, text):
    return Document(filename=filename, pages=[Page(1, text, len(text.split()))], total_pages=1)


@pytest.mark.parametrize("filename,expected", [
    ("Annual Report 2024.pdf", "annual_report_2024"),
    ("pricing-v2.PDF", "pricing-v2"),
    ("???.pdf", "document"),
])
def test_document_id_for(filename, expected):
    assert ingest_documents.document_id_for(filename) == expected


class TestIngestMain:
    """Test suite for the ingestion entry point."""

    @pytest.fixture
    def services(self):
        with patch('ingest_documents.EmbeddingModel'), \
                patch('ingest_documents.VectorStore'), \
                patch('ingest_documents.DocumentLoader') as loader_class, \
                patch('ingest_documents.RAGService') as service_class:
            rag_service = Mock()
            rag_service.ingest_document.return_value = Mock(chunk_count=4)
            service_class.return_value = rag_service
            yield loader_class.return_value, rag_service

    def test_ingests_every_document(self, services):
        loader, rag_service = services
        loader.load_documents.return_value = [
            make_document("Report.pdf", "Quarterly numbers."),
            make_document("Plan.pdf", "Next year's plan.")
        ]

        assert ingest_documents.main(["docs"]) == 0

        calls = rag_service.ingest_document.call_args_list
        assert [c.args[0] for c in calls] == ["report", "plan"]
        assert calls[0].args[2]["filename"] == "Report.pdf"
        rag_service.document_exists.assert_not_called()

    def test_skip_existing_flag(self, services):
        loader, rag_service = services
        loader.load_documents.return_value = [
            make_document("Report.pdf", "Quarterly numbers."),
            make_document("Plan.pdf", "Next year's plan.")
        ]
        rag_service.document_exists.side_effect = lambda document_id: document_id == "report"

        assert ingest_documents.main(["docs", "--skip-existing"]) == 0

        assert [c.args[0] for c in rag_service.ingest_document.call_args_list] == ["plan"]

    def test_no_documents_fails(self, services):
        loader, _ = services
        loader.load_documents.return_value = []

        assert ingest_documents.main(["docs"]) == 1

    def test_failed_document_is_reported(self, services):
        loader, rag_service = services
        loader.load_documents.return_value = [
            make_document("Broken.pdf", "Text."),
            make_document("Empty.pdf", "   "),
            make_document("Good.pdf", "Text.")
        ]
        rag_service.ingest_document.side_effect = [CollaboratorError("index", "write failed"), Mock(chunk_count=2)]

        assert ingest_documents.main(["docs"]) == 1
        assert rag_service.ingest_document.call_count == 2
