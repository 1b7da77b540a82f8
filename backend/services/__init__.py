"""Services for the Document RAG API."""
from .document_loader import DocumentLoader
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel
from .vector_store import VectorStore, IndexQueryResult
from .retrieval_engine import RetrievalEngine
from .context_resolver import ContextResolver
from .prompt_builder import PromptBuilder
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError
from .conversation_manager import ConversationManager
from .rag_service import RAGService, IngestionResult, QueryResult

__all__ = ['DocumentLoader', 'ChunkingEngine', 'EmbeddingModel', 'VectorStore', 'IndexQueryResult', 'RetrievalEngine', 'ContextResolver', 'PromptBuilder', 'LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError', 'ConversationManager', 'RAGService', 'IngestionResult', 'QueryResult']
