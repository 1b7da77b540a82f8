"""Configuration management for the document RAG core."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
LLM_MODEL = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))

# Chunking Configuration
# Token counts are estimated as ceil(chars / CHARS_PER_TOKEN). Changing this
# shifts every chunk boundary, so already-ingested documents must be re-ingested.
CHARS_PER_TOKEN = 4
CHUNK_MAX_TOKENS = 1000
CHUNK_MIN_TOKENS = 100
CHUNK_OVERLAP_TOKENS = 50
CHUNK_COMBINE_THRESHOLD = 200

# Retrieval Configuration
DEFAULT_TOP_K = 5
RELEVANCE_THRESHOLD = 0.7
DYNAMIC_K_CUTOFF = 0.8  # Only include chunks within 80% of top score
RETRIEVAL_MAX_WORKERS = 4

# Context Resolution Configuration
CONTEXT_LOOKBACK_MESSAGES = 3
REFERENCE_LOOKBACK_MESSAGES = 5

# Prompt Configuration
MAX_CONTEXT_LENGTH = 4000  # characters
HISTORY_MAX_TURNS = 5
CITATION_PREVIEW_LENGTH = 100

# Supabase tables
CHUNKS_TABLE = os.getenv("CHUNKS_TABLE", "document_chunks")
MATCH_CHUNKS_FUNCTION = os.getenv("MATCH_CHUNKS_FUNCTION", "match_document_chunks")
MESSAGES_TABLE = os.getenv("MESSAGES_TABLE", "messages")

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
