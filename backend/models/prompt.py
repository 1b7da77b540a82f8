"""Prompt assembly data models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Union

from config import MAX_CONTEXT_LENGTH


class InstructionTemplate(str, Enum):
    """Closed set of instruction presets."""
    DEFAULT = "default"
    STRICT = "strict"
    CREATIVE = "creative"
    CITATION = "citation"
    DETAILED = "detailed"
    CONCISE = "concise"

    @classmethod
    def from_name(cls, name: Union[str, "InstructionTemplate", None]) -> "InstructionTemplate":
        """Look up a template by name, falling back to DEFAULT for unknown names."""
        if isinstance(name, cls):
            return name
        try:
            return cls((name or "").strip().lower())
        except ValueError:
            return cls.DEFAULT


class SummaryType(str, Enum):
    BRIEF = "brief"
    DETAILED = "detailed"
    BULLETS = "bullets"


class AnalysisType(str, Enum):
    GENERAL = "general"
    COMPARISON = "comparison"
    EXTRACTION = "extraction"
    SENTIMENT = "sentiment"


@dataclass
class PromptOptions:
    """Knobs for prompt assembly."""
    include_metadata: bool = True
    max_context_length: int = MAX_CONTEXT_LENGTH
    instruction_template: InstructionTemplate = InstructionTemplate.DEFAULT


@dataclass
class Citation:
    """Pointer from an in-prompt chunk back to its source."""
    id: int
    chunk_index: Union[int, None]
    document_id: str
    file_name: str
    page: Union[int, str]
    relevance_score: str
    preview: str


@dataclass
class PromptAssemblyResult:
    """Prompt string plus citations for the chunks it actually contains."""
    prompt: str
    citations: List[Citation] = field(default_factory=list)
