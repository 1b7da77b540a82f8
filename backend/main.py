"""Main entry point for the Document RAG API."""
import logging
import time
import tiktoken
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config import PORT, CORS_ORIGINS, LOG_LEVEL, LOG_FORMAT
from errors import CollaboratorError, CollectionNotFoundError, InvalidInputError, RAGError
from logger import setup_logging
from models.api import (
    ContextInfo,
    DocumentQueryRequest,
    IngestRequest,
    IngestResponse,
    QueryRequest,
    QueryResponse,
    ResponseMetadata,
    Source,
    TokenUsage,
)
from models.conversation import ASSISTANT_ROLE, USER_ROLE
from models.prompt import InstructionTemplate, PromptOptions
from services.chunking_engine import ChunkingEngine
from services.context_resolver import ContextResolver
from services.conversation_manager import ConversationManager
from services.embedding_model import EmbeddingModel
from services.llm_client import LLMClient, LLMClientError
from services.prompt_builder import PromptBuilder
from services.rag_service import QueryResult, RAGService
from services.retrieval_engine import RetrievalEngine
from services.vector_store import VectorStore

if LOG_FORMAT == "json":
    setup_logging(LOG_LEVEL, "json")

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Document RAG API",
    description="Ingest documents and answer questions about them with retrieval-augmented generation",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
rag_service: RAGService = None
conversation_manager: ConversationManager = None
tiktoken_encoder = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global rag_service, conversation_manager, tiktoken_encoder

    logger.info("Initializing Document RAG services...")

    try:
        # Prompt token counting for response metadata only; chunk sizing uses the char estimate
        tiktoken_encoder = tiktoken.get_encoding("o200k_base")
        logger.info("Initialized tiktoken encoder (o200k_base)")

        embedding_model = EmbeddingModel()
        vector_store = VectorStore()
        conversation_manager = ConversationManager()

        rag_service = RAGService(
            chunking_engine=ChunkingEngine(),
            embedding_model=embedding_model,
            vector_store=vector_store,
            retrieval_engine=RetrievalEngine(vector_store, embedding_model),
            prompt_builder=PromptBuilder(),
            context_resolver=ContextResolver(conversation_manager),
            history_store=conversation_manager,
            llm_client=LLMClient()
        )

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Document RAG API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "document-rag",
        "version": "1.0.0"
    }


@app.post("/documents/{document_id}/ingest", response_model=IngestResponse)
async def ingest_endpoint(document_id: str, request: IngestRequest) -> IngestResponse:
    """
    Segment, embed and index the text of one document.

    Re-ingesting a document replaces its previous chunks.
    """
    metadata = dict(request.metadata)
    if request.filename:
        metadata["filename"] = request.filename

    try:
        result = rag_service.ingest_document(document_id, request.text, metadata)
    except Exception as e:
        raise _to_http_exception(e)

    return IngestResponse(
        document_id=document_id,
        collection=result.collection_name,
        chunk_count=result.chunk_count,
        extraction_strategy=result.stats.extraction_strategy,
        processing_time_ms=result.stats.processing_time_ms
    )


@app.post("/documents/{document_id}/query", response_model=QueryResponse)
async def document_query_endpoint(document_id: str, request: DocumentQueryRequest) -> QueryResponse:
    """Answer a question from a single document."""
    start_time = time.time()
    logger.info(f"Processing query for document {document_id}: {request.question[:100]}...")

    try:
        result = rag_service.query_document(
            document_id,
            request.question,
            top_k=request.top_k,
            options=_prompt_options(request),
            relevance_threshold=request.relevance_threshold,
            generate=request.generate,
            allow_empty_context=request.allow_empty_context
        )
    except Exception as e:
        raise _to_http_exception(e)

    return _build_response(result, start_time)


@app.post("/query", response_model=QueryResponse)
async def query_endpoint(request: QueryRequest) -> QueryResponse:
    """
    Answer a question over attached documents or the conversation's documents.

    When a conversation id is given, the question and the answer are stored
    so that follow-up questions can refer back to the same documents.
    """
    start_time = time.time()
    logger.info(f"Processing query: {request.question[:100]}...")

    try:
        result = rag_service.query(
            request.user_id,
            request.question,
            document_ids=request.document_ids,
            conversation_id=request.conversation_id,
            top_k=request.top_k,
            options=_prompt_options(request),
            relevance_threshold=request.relevance_threshold,
            generate=request.generate,
            allow_empty_context=request.allow_empty_context
        )
    except Exception as e:
        raise _to_http_exception(e)

    if request.conversation_id:
        _record_turn(request, result)

    return _build_response(result, start_time, conversation_id=request.conversation_id)


def _prompt_options(request: DocumentQueryRequest) -> PromptOptions:
    return PromptOptions(
        include_metadata=request.include_metadata,
        max_context_length=request.max_context_length,
        instruction_template=InstructionTemplate.from_name(request.instruction_template)
    )


def _record_turn(request: QueryRequest, result: QueryResult) -> None:
    """
    Store the question and the answer.

    Only the documents the user attached are stamped on the question; ids
    resolved from history are not written back, so context falls out of
    the lookback window once the user stops attaching it.
    """
    try:
        conversation_manager.add_message(
            request.conversation_id, request.user_id, USER_ROLE, request.question, request.document_ids
        )
        if result.answered:
            conversation_manager.add_message(
                request.conversation_id, request.user_id, ASSISTANT_ROLE, result.answer
            )
    except CollaboratorError as e:
        logger.error(
            f"Failed to record turn: {e}",
            extra={"conversation_id": request.conversation_id, "stage": "history"}
        )


def _build_response(result: QueryResult, start_time: float, conversation_id=None) -> QueryResponse:
    tokens = None
    model_used = None
    if result.llm_response is not None:
        model_used = result.llm_response.model_name
        tokens = TokenUsage(
            input=result.llm_response.tokens_input,
            output=result.llm_response.tokens_output
        )

    context = None
    if result.context is not None:
        context = ContextInfo(
            source=result.context.source.value,
            document_ids=result.context.document_ids,
            context_used=result.context.context_used
        )

    total_latency_ms = int((time.time() - start_time) * 1000)
    response = QueryResponse(
        answer=result.answer,
        answered=result.answered,
        metadata=ResponseMetadata(
            model_used=model_used,
            tokens=tokens,
            prompt_tokens=len(tiktoken_encoder.encode(result.prompt)),
            latency_ms=total_latency_ms,
            chunks_retrieved=result.chunks_retrieved,
            chunks_included=len(result.citations)
        ),
        sources=[
            Source(
                id=citation.id,
                chunk_index=citation.chunk_index,
                document_id=citation.document_id,
                file_name=citation.file_name,
                page=citation.page,
                relevance_score=citation.relevance_score,
                preview=citation.preview
            )
            for citation in result.citations
        ],
        context=context,
        conversation_id=conversation_id
    )

    logger.info(f"Query processed successfully in {total_latency_ms}ms")
    return response


def _to_http_exception(e: Exception) -> HTTPException:
    """Map core errors onto HTTP status codes."""
    if isinstance(e, InvalidInputError):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, CollectionNotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, LLMClientError):
        logger.error(f"LLM client error: {e.error.message}")
        return HTTPException(
            status_code=503,
            detail={
                "error": {
                    "code": e.error.code,
                    "message": e.error.message,
                    "details": e.error.details
                }
            }
        )
    if isinstance(e, CollaboratorError):
        logger.error(f"Collaborator error: {e}", extra={"stage": e.stage})
        return HTTPException(status_code=503, detail=e.message)
    if isinstance(e, RAGError):
        return HTTPException(status_code=500, detail=e.message)

    logger.error(f"Unexpected error processing request: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Document RAG API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
