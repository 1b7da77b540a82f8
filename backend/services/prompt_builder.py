"""Prompt assembly for retrieval-augmented generation."""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from config import CITATION_PREVIEW_LENGTH, HISTORY_MAX_TURNS, MAX_CONTEXT_LENGTH
from errors import InvalidInputError
from models.chunk import RetrievedChunk
from models.conversation import Turn, USER_ROLE
from models.prompt import (
    AnalysisType,
    Citation,
    InstructionTemplate,
    PromptAssemblyResult,
    PromptOptions,
    SummaryType,
)

logger = logging.getLogger(__name__)

NO_CONTEXT_SENTINEL = "No relevant context found."

INSTRUCTION_TEMPLATES: Dict[InstructionTemplate, str] = {
    InstructionTemplate.DEFAULT: (
        "You are an intelligent assistant helping users understand documents. "
        "Use the context information below to answer the question accurately and concisely. "
        "If the context doesn't contain enough information to answer the question fully, "
        "acknowledge what you don't know and provide what information you can based on the context."
    ),
    InstructionTemplate.STRICT: (
        "You are an assistant that answers questions strictly based on the provided context. "
        "Only use information from the context below. If the context does not contain the answer, "
        "respond with \"I cannot answer this question based on the provided documents.\""
    ),
    InstructionTemplate.CREATIVE: (
        "You are a helpful assistant. Use the context below as a knowledge base, but feel free "
        "to provide comprehensive answers that go beyond the context when helpful. Always indicate "
        "when you're using information from the context versus general knowledge."
    ),
    InstructionTemplate.CITATION: (
        "You are an assistant that provides well-cited answers. Use the context information below "
        "to answer questions, and always cite which part of the context you're using "
        "(e.g., \"According to Chunk #1...\" or \"As mentioned in Chunk #3...\"). "
        "Include source references in your answer."
    ),
    InstructionTemplate.DETAILED: (
        "You are a thorough assistant that provides detailed, comprehensive answers. Use all "
        "relevant information from the context below. Break down complex topics into "
        "understandable explanations and provide examples where applicable."
    ),
    InstructionTemplate.CONCISE: (
        "You are a concise assistant. Provide brief, direct answers based strictly on the context "
        "below. Keep responses short and to the point, typically 2-3 sentences unless more detail "
        "is absolutely necessary."
    ),
}

SUMMARY_INSTRUCTIONS: Dict[SummaryType, str] = {
    SummaryType.BRIEF: "Provide a brief summary (2-3 paragraphs) of the main points.",
    SummaryType.DETAILED: "Provide a comprehensive, detailed summary covering all major topics and subtopics.",
    SummaryType.BULLETS: "Provide a bullet-point summary of the key points and takeaways.",
}

ANALYSIS_INSTRUCTIONS: Dict[AnalysisType, str] = {
    AnalysisType.GENERAL: "Analyze the content and provide insights.",
    AnalysisType.COMPARISON: "Compare and contrast the different aspects mentioned.",
    AnalysisType.EXTRACTION: "Extract and list the specific information requested.",
    AnalysisType.SENTIMENT: "Analyze the tone and sentiment of the content.",
}

HistoryEntry = Union[Turn, Dict[str, Any]]


class PromptBuilder:
    """
    Turn ranked chunks (and optional chat history) into a bounded prompt.

    Chunks are included first-fit in the order given until the rendered
    context section would exceed the character budget; the remainder is
    dropped. Citations are produced from exactly the included chunks.
    """

    def __init__(
        self,
        history_max_turns: int = HISTORY_MAX_TURNS,
        preview_length: int = CITATION_PREVIEW_LENGTH
    ):
        if history_max_turns <= 0:
            raise ValueError("history_max_turns must be positive")
        if preview_length < 0:
            raise ValueError("preview_length cannot be negative")

        self.history_max_turns = history_max_turns
        self.preview_length = preview_length

    def build(
        self,
        query: str,
        chunks: Sequence[RetrievedChunk],
        options: Optional[PromptOptions] = None
    ) -> str:
        """Build a plain RAG prompt: instruction, context, question."""
        return self.assemble(query, chunks, options).prompt

    def build_conversational(
        self,
        query: str,
        chunks: Sequence[RetrievedChunk],
        chat_history: Optional[Sequence[HistoryEntry]] = None,
        options: Optional[PromptOptions] = None
    ) -> str:
        """Build a RAG prompt with a previous-conversation section."""
        return self.assemble(query, chunks, options, chat_history=chat_history or []).prompt

    def assemble(
        self,
        query: str,
        chunks: Sequence[RetrievedChunk],
        options: Optional[PromptOptions] = None,
        chat_history: Optional[Sequence[HistoryEntry]] = None
    ) -> PromptAssemblyResult:
        """
        Build the prompt and the citations for the chunks it contains.

        Args:
            query: User question
            chunks: Retrieved chunks, already ranked
            options: Metadata, budget and instruction settings
            chat_history: Previous turns; when given (even empty) the
                conversational layout is used

        Returns:
            PromptAssemblyResult with the prompt and one citation per included chunk

        Raises:
            InvalidInputError: If the query is empty
        """
        if not isinstance(query, str) or not query.strip():
            raise InvalidInputError("Query text is required to build a prompt")

        options = options or PromptOptions()
        context, included = self.build_context(
            chunks, options.max_context_length, options.include_metadata
        )
        instruction = self.get_instruction_template(options.instruction_template)

        if chat_history is None:
            prompt = f"""{instruction}

Context Information:
{context}

Question: {query}

Answer:"""
        else:
            history_section = ""
            if chat_history:
                history_section = f"\nPrevious Conversation:\n{self.format_chat_history(chat_history)}\n"

            prompt = f"""{instruction}

Context Information:
{context}
{history_section}
Current Question: {query}

Answer:"""

        citations = self.format_source_citations(included)
        logger.debug(
            f"Assembled prompt with {len(included)}/{len(chunks or [])} chunks, "
            f"{len(prompt)} characters"
        )
        return PromptAssemblyResult(prompt=prompt, citations=citations)

    def build_context(
        self,
        chunks: Optional[Sequence[RetrievedChunk]],
        max_length: int = MAX_CONTEXT_LENGTH,
        include_metadata: bool = True
    ) -> Tuple[str, List[RetrievedChunk]]:
        """
        Render the context section under a character budget.

        Returns:
            Tuple of (context text, chunks included in it). The context is the
            sentinel when nothing fits.
        """
        blocks: List[str] = []
        included: List[RetrievedChunk] = []
        current_length = 0

        for position, chunk in enumerate(chunks or []):
            if chunk is None or not chunk.content:
                logger.warning(f"Chunk at position {position} has no content, skipping")
                continue

            number = len(included) + 1
            chunk_text = chunk.content
            if include_metadata:
                chunk_text = f"{self.format_metadata(chunk, number, position)}\n{chunk_text}"

            block = f"--- Chunk {number} ---\n{chunk_text}"
            separator = 2 if blocks else 0
            if current_length + separator + len(block) > max_length:
                break

            blocks.append(block)
            included.append(chunk)
            current_length += separator + len(block)

        if not blocks:
            return NO_CONTEXT_SENTINEL, []

        return "\n\n".join(blocks), included

    @staticmethod
    def format_metadata(chunk: RetrievedChunk, chunk_number: int, position: int = 0) -> str:
        """Render the one-line header shown above a chunk in the prompt."""
        chunk_index = chunk.chunk_index if chunk.chunk_index is not None else position
        parts = [
            f"[Chunk #{chunk_number}]",
            f"Index: {chunk_index}",
            f"Document: {chunk.document_id or 'Unknown'}",
            f"File: {chunk.filename or 'Unknown'}",
        ]

        if chunk.page:
            parts.append(f"Page: {chunk.page}")

        if chunk.score is not None:
            parts.append(f"Similarity: {chunk.score * 100:.1f}%")

        return " | ".join(parts)

    @staticmethod
    def get_instruction_template(template: Union[str, InstructionTemplate, None]) -> str:
        """Instruction text for a template name; unknown names get the default."""
        return INSTRUCTION_TEMPLATES[InstructionTemplate.from_name(template)]

    def format_chat_history(self, chat_history: Sequence[HistoryEntry]) -> str:
        """Render the most recent turns as alternating User/Assistant lines."""
        lines = []
        for entry in list(chat_history)[-self.history_max_turns:]:
            if isinstance(entry, dict):
                role, content = entry.get("role"), entry.get("content", "")
            else:
                role, content = entry.role, entry.content
            speaker = "User" if role == USER_ROLE else "Assistant"
            lines.append(f"{speaker}: {content}")
        return "\n".join(lines)

    def format_source_citations(self, chunks: Sequence[RetrievedChunk]) -> List[Citation]:
        """Project included chunks into citations, preserving order."""
        citations = []
        for index, chunk in enumerate(chunks):
            citations.append(Citation(
                id=index + 1,
                chunk_index=chunk.chunk_index if chunk.chunk_index is not None else index,
                document_id=chunk.document_id or chunk.metadata.get("documentId") or "Unknown",
                file_name=chunk.filename or "Unknown",
                page=chunk.page or "N/A",
                relevance_score=f"{chunk.score:.4f}" if chunk.score is not None else "N/A",
                preview=chunk.content[:self.preview_length] + "..."
            ))
        return citations

    @staticmethod
    def build_summarization_prompt(
        chunks: Sequence[RetrievedChunk],
        summary_type: Union[str, SummaryType] = SummaryType.BRIEF
    ) -> str:
        """Prompt asking the model to summarize the given chunks."""
        try:
            summary_type = SummaryType(summary_type)
        except ValueError:
            summary_type = SummaryType.BRIEF

        content = "\n\n".join(chunk.content for chunk in chunks if chunk.content)

        return f"""Please summarize the following content. {SUMMARY_INSTRUCTIONS[summary_type]}

Content:
{content}

Summary:"""

    def build_analysis_prompt(
        self,
        query: str,
        chunks: Sequence[RetrievedChunk],
        analysis_type: Union[str, AnalysisType] = AnalysisType.GENERAL
    ) -> str:
        """Prompt asking the model for a specific kind of analysis over the chunks."""
        try:
            analysis_type = AnalysisType(analysis_type)
        except ValueError:
            analysis_type = AnalysisType.GENERAL

        context, _ = self.build_context(chunks, MAX_CONTEXT_LENGTH, True)

        return f"""{ANALYSIS_INSTRUCTIONS[analysis_type]}

Context:
{context}

Analysis Request: {query}

Analysis:"""
