"""Document data models."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class Page:
    """Represents a single page from a document."""
    page_number: int
    text: str
    word_count: int


@dataclass
class Document:
    """Represents a loaded PDF document."""
    filename: str
    pages: List[Page]
    total_pages: int
    title: Optional[str] = None
    author: Optional[str] = None

    @property
    def text(self) -> str:
        """Full text with pages separated by blank lines."""
        return "\n\n".join(page.text.strip() for page in self.pages if page.text.strip())

    def ingestion_metadata(self) -> Dict[str, Any]:
        """Metadata attached to every chunk of this document."""
        metadata: Dict[str, Any] = {"filename": self.filename, "totalPages": self.total_pages}
        if self.title:
            metadata["title"] = self.title
        if self.author:
            metadata["author"] = self.author
        return metadata
