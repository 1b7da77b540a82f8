"""Error taxonomy shared by the RAG core services."""
from typing import Optional


class RAGError(Exception):
    """Base class for every error raised by the RAG core."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(RAGError):
    """Malformed or missing required input (empty text, missing query)."""


class CollectionNotFoundError(RAGError):
    """No index collection exists for the requested document."""

    def __init__(self, document_id: str, collection_name: Optional[str] = None):
        self.document_id = document_id
        self.collection_name = collection_name
        super().__init__(f"Collection not found for document: {document_id}")


class CollaboratorError(RAGError):
    """
    Failure reported by an external collaborator.

    Args:
        stage: Which collaborator failed ("embedding", "index", "history", "generation")
        message: Human-readable description of the failure
    """

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"[{stage}] {message}")
