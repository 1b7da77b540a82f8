"""Orchestrates ingestion and question answering over the injected components."""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from config import DEFAULT_TOP_K, HISTORY_MAX_TURNS
from errors import CollaboratorError, RAGError
from models.chunk import Chunk, RetrievedChunk, SegmentationStats
from models.context import ContextResolution
from models.conversation import Turn
from models.prompt import Citation, PromptOptions
from services.llm_client import LLMResponse

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Chunks written to the index for one document."""
    document_id: str
    collection_name: str
    chunks: List[Chunk]
    stats: SegmentationStats

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)


@dataclass
class QueryResult:
    """Outcome of one question, with or without a generated answer."""
    answered: bool
    prompt: str
    citations: List[Citation] = field(default_factory=list)
    chunks_retrieved: int = 0
    answer: Optional[str] = None
    context: Optional[ContextResolution] = None
    llm_response: Optional[LLMResponse] = None


class RAGService:
    """
    Wire segmentation, retrieval, prompt assembly and generation together.

    Every collaborator is passed in; the service never creates network
    clients itself.
    """

    def __init__(
        self,
        chunking_engine,
        embedding_model,
        vector_store,
        retrieval_engine,
        prompt_builder,
        context_resolver=None,
        history_store=None,
        llm_client=None,
        history_max_turns: int = HISTORY_MAX_TURNS
    ):
        self.chunking_engine = chunking_engine
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.retrieval_engine = retrieval_engine
        self.prompt_builder = prompt_builder
        self.context_resolver = context_resolver
        self.history_store = history_store
        self.llm_client = llm_client
        self.history_max_turns = history_max_turns

    def ingest_document(
        self,
        document_id: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> IngestionResult:
        """
        Segment a document, embed its chunks and store them in its collection.

        Re-ingesting replaces the previous chunk set: the new chunks are
        upserted first and only then are leftover rows pruned, so a failed
        write leaves the previously indexed chunks in place.

        Args:
            document_id: Identifier used to name the collection
            text: Extracted document text
            metadata: Caller metadata merged into every chunk (``filename`` is
                also written to the dedicated wire field)

        Raises:
            InvalidInputError: If the text is empty
            CollaboratorError: If embedding or index calls fail
        """
        metadata = dict(metadata or {})
        result = self.chunking_engine.segment(text, metadata)
        chunks = result.chunks
        collection = self.vector_store.collection_name(document_id)

        try:
            vectors = self.embedding_model.embed([chunk.text for chunk in chunks])
        except RAGError:
            raise
        except Exception as e:
            raise CollaboratorError("embedding", f"Failed to embed chunks of {document_id}: {str(e)}") from e

        filename = metadata.get("filename")
        try:
            chunk_ids = [chunk.id for chunk in chunks]
            self.vector_store.upsert(
                collection,
                ids=chunk_ids,
                texts=[chunk.text for chunk in chunks],
                vectors=vectors,
                metadatas=[chunk.to_index_metadata(document_id, filename) for chunk in chunks]
            )
            self.vector_store.delete_stale(collection, chunk_ids)
        except RAGError:
            raise
        except Exception as e:
            raise CollaboratorError("index", f"Failed to store chunks of {document_id}: {str(e)}") from e

        logger.info(
            f"Ingested document {document_id}: {len(chunks)} chunks "
            f"({result.stats.extraction_strategy}, {result.stats.processing_time_ms}ms)",
            extra={"document_id": document_id, "collection": collection}
        )
        return IngestionResult(
            document_id=document_id,
            collection_name=collection,
            chunks=chunks,
            stats=result.stats
        )

    def document_exists(self, document_id: str) -> bool:
        """Check whether a document already has indexed chunks."""
        return bool(self.vector_store.exists(self.vector_store.collection_name(document_id)))

    def query_document(
        self,
        document_id: str,
        question: str,
        top_k: int = DEFAULT_TOP_K,
        options: Optional[PromptOptions] = None,
        relevance_threshold: Optional[float] = None,
        generate: bool = True,
        allow_empty_context: bool = False
    ) -> QueryResult:
        """
        Answer a question from one document.

        Raises:
            InvalidInputError: If the question is empty
            CollectionNotFoundError: If the document was never ingested
            CollaboratorError: If embedding, index or generation fails
        """
        retrieval = self.retrieval_engine.retrieve(document_id, question, top_k)
        return self._answer(
            question,
            retrieval.retrieved_chunks,
            options=options,
            relevance_threshold=relevance_threshold,
            generate=generate,
            allow_empty_context=allow_empty_context
        )

    def query(
        self,
        user_id: str,
        question: str,
        document_ids: Optional[Sequence[str]] = None,
        conversation_id: Optional[str] = None,
        top_k: int = DEFAULT_TOP_K,
        options: Optional[PromptOptions] = None,
        relevance_threshold: Optional[float] = None,
        generate: bool = True,
        allow_empty_context: bool = False
    ) -> QueryResult:
        """
        Answer a conversational question.

        Attached documents win; otherwise the conversation decides which
        documents are searched. Documents that cannot be searched are skipped.

        Raises:
            InvalidInputError: If the question is empty
            CollaboratorError: If the question cannot be embedded or generation fails
        """
        if self.context_resolver is None:
            raise ValueError("A context resolver is required for conversational queries")

        context = self.context_resolver.resolve(user_id, question, document_ids, conversation_id)
        logger.info(
            f"Resolved {len(context.document_ids)} documents via {context.source.value}",
            extra={"conversation_id": conversation_id, "source": context.source.value}
        )

        retrieval = self.retrieval_engine.retrieve_multi(context.document_ids, question, top_k)

        chat_history = None
        if conversation_id:
            chat_history = self._recent_turns(conversation_id, user_id)

        result = self._answer(
            question,
            retrieval.retrieved_chunks,
            options=options,
            relevance_threshold=relevance_threshold,
            generate=generate,
            allow_empty_context=allow_empty_context,
            chat_history=chat_history
        )
        result.context = context
        return result

    def _recent_turns(self, conversation_id: str, user_id: str) -> List[Turn]:
        if self.history_store is None:
            return []
        try:
            return list(self.history_store.find_recent_turns(conversation_id, user_id, self.history_max_turns))
        except Exception as e:
            logger.warning(
                f"Continuing without chat history for {conversation_id}: {e}",
                extra={"conversation_id": conversation_id, "stage": "history"}
            )
            return []

    def _answer(
        self,
        question: str,
        chunks: List[RetrievedChunk],
        options: Optional[PromptOptions],
        relevance_threshold: Optional[float],
        generate: bool,
        allow_empty_context: bool,
        chat_history: Optional[List[Turn]] = None
    ) -> QueryResult:
        chunks_retrieved = len(chunks)
        if relevance_threshold is not None:
            chunks = self.retrieval_engine.filter_by_relevance(chunks, relevance_threshold)

        assembly = self.prompt_builder.assemble(question, chunks, options, chat_history=chat_history)
        result = QueryResult(
            answered=False,
            prompt=assembly.prompt,
            citations=assembly.citations,
            chunks_retrieved=chunks_retrieved
        )

        if not generate:
            return result

        if not assembly.citations and not allow_empty_context:
            logger.info("No context available for generation, not calling the model")
            return result

        if self.llm_client is None:
            raise ValueError("An LLM client is required to generate answers")

        start_time = time.time()
        llm_response = self.llm_client.generate(assembly.prompt)
        logger.info(
            f"Generated answer with {llm_response.model_name} "
            f"in {int((time.time() - start_time) * 1000)}ms",
            extra={"stage": "generation"}
        )

        result.answered = True
        result.answer = llm_response.text
        result.llm_response = llm_response
        return result
