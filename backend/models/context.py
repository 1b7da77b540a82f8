"""Context resolution data models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class ContextSource(str, Enum):
    """Which branch of the resolution cascade produced the document set."""
    EXPLICIT = "explicit"
    CONVERSATION_CONTEXT = "conversation_context"
    REFERENCE_DETECTED = "reference_detected"
    NO_DOCUMENTS = "no_documents"


@dataclass
class ContextResolution:
    """Documents that should be searched for one conversational turn."""
    source: ContextSource
    document_ids: List[str] = field(default_factory=list)
    context_used: bool = False
