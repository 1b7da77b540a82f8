"""Document loading service for PDF processing."""
import logging
import os
from typing import List, Optional
import fitz  # PyMuPDF

from models.document import Document, Page
from errors import InvalidInputError

logger = logging.getLogger(__name__)


class DocumentLoader:
    """Loads and extracts text from PDF files."""

    def __init__(self, docs_directory: str = "documents"):
        """
        Initialize DocumentLoader.

        Args:
            docs_directory: Path to directory containing PDF files
        """
        self.docs_directory = docs_directory

    def load_documents(self) -> List[Document]:
        """
        Load all PDF files from the documents directory.

        Corrupted files are logged and skipped.

        Returns:
            List of Document objects with text, filename, and page numbers
        """
        documents = []

        if not os.path.isdir(self.docs_directory):
            logger.error(f"Documents directory not found: {self.docs_directory}")
            return documents

        pdf_files = [f for f in os.listdir(self.docs_directory) if f.lower().endswith('.pdf')]
        logger.info(f"Found {len(pdf_files)} PDF files in {self.docs_directory}")

        for filename in sorted(pdf_files):
            filepath = os.path.join(self.docs_directory, filename)

            try:
                document = self.load_path(filepath)
                documents.append(document)
                logger.info(f"Loaded {filename}: {document.total_pages} pages")
            except Exception as e:
                logger.error(f"Error loading {filename}: {str(e)}", exc_info=True)
                continue

        logger.info(f"Successfully loaded {len(documents)} documents")
        return documents

    def load_path(self, filepath: str) -> Document:
        """Load a single PDF file from disk."""
        with fitz.open(filepath) as pdf_document:
            return self._extract(pdf_document, os.path.basename(filepath))

    def load_bytes(self, data: bytes, filename: str) -> Document:
        """
        Load a PDF held in memory.

        Raises:
            InvalidInputError: If no bytes are given
        """
        if not data:
            raise InvalidInputError(f"No content supplied for {filename}")

        with fitz.open(stream=data, filetype="pdf") as pdf_document:
            return self._extract(pdf_document, filename)

    @staticmethod
    def _extract(pdf_document, filename: str) -> Document:
        """Extract text page-by-page along with title and author metadata."""
        pages = []
        for page_num in range(len(pdf_document)):
            text = pdf_document[page_num].get_text()
            pages.append(Page(
                page_number=page_num + 1,  # 1-indexed
                text=text,
                word_count=len(text.split())
            ))

        metadata = pdf_document.metadata or {}
        title: Optional[str] = (metadata.get("title") or "").strip() or None
        author: Optional[str] = (metadata.get("author") or "").strip() or None

        return Document(
            filename=filename,
            pages=pages,
            total_pages=len(pages),
            title=title,
            author=author
        )
