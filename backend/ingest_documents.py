"""
Document Ingestion Script for the Document RAG API.

This script:
1. Loads all PDFs from a directory
2. Segments each document into overlap-linked chunks
3. Generates embeddings using HuggingFace API
4. Stores each document in its own collection in Supabase pgvector

The document id of each PDF is its file name without extension.

Usage:
    python ingest_documents.py [docs_directory] [--skip-existing]
"""
import argparse
import re
import sys
import logging
from pathlib import Path
from typing import List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from services.document_loader import DocumentLoader
from services.chunking_engine import ChunkingEngine
from services.embedding_model import EmbeddingModel
from services.vector_store import VectorStore
from services.retrieval_engine import RetrievalEngine
from services.prompt_builder import PromptBuilder
from services.rag_service import RAGService
from errors import RAGError

logger = logging.getLogger(__name__)


def document_id_for(filename: str) -> str:
    """Derive a collection-safe document id from a file name."""
    stem = Path(filename).stem.lower()
    return re.sub(r"[^a-z0-9_-]+", "_", stem).strip("_") or "document"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest a directory of PDF documents")
    parser.add_argument(
        "docs_directory",
        nargs="?",
        default=str(Path(__file__).parent.parent / "documents"),
        help="Directory containing PDF files"
    )
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Leave documents that are already indexed untouched instead of re-ingesting them"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main ingestion process."""
    args = parse_args(argv)

    try:
        logger.info("=" * 60)
        logger.info("Starting Document Ingestion")
        logger.info("=" * 60)

        logger.info("[1/3] Initializing services...")
        embedding_model = EmbeddingModel()
        vector_store = VectorStore()
        rag_service = RAGService(
            chunking_engine=ChunkingEngine(),
            embedding_model=embedding_model,
            vector_store=vector_store,
            retrieval_engine=RetrievalEngine(vector_store, embedding_model),
            prompt_builder=PromptBuilder()
        )

        logger.info("This may take 15-20 seconds on first run (HuggingFace free tier)...")
        embedding_model.warmup()

        logger.info(f"[2/3] Loading PDF documents from {args.docs_directory}...")
        documents = DocumentLoader(docs_directory=args.docs_directory).load_documents()
        if not documents:
            logger.error(f"No documents found in {args.docs_directory}")
            return 1

        logger.info("[3/3] Ingesting documents...")
        total_chunks = 0
        skipped = 0
        failed = []
        for doc in documents:
            document_id = document_id_for(doc.filename)
            text = doc.text
            if not text.strip():
                logger.warning(f"Skipping {doc.filename}: no extractable text")
                failed.append(doc.filename)
                continue

            try:
                if args.skip_existing and rag_service.document_exists(document_id):
                    logger.info(f"  {doc.filename} -> {document_id}: already indexed, skipped")
                    skipped += 1
                    continue
                result = rag_service.ingest_document(document_id, text, doc.ingestion_metadata())
            except RAGError as e:
                logger.error(f"Failed to ingest {doc.filename}: {e}", extra={"document_id": document_id})
                failed.append(doc.filename)
                continue

            total_chunks += result.chunk_count
            logger.info(f"  {doc.filename} -> {document_id}: {result.chunk_count} chunks")

        logger.info("=" * 60)
        logger.info("INGESTION COMPLETE!")
        logger.info(f"Documents processed: {len(documents) - len(failed)}/{len(documents)}")
        logger.info(f"Total chunks stored: {total_chunks}")
        if skipped:
            logger.info(f"Documents skipped (already indexed): {skipped}")
        if failed:
            logger.warning(f"Failed documents: {', '.join(failed)}")
        logger.info("=" * 60)
        return 1 if failed else 0

    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Ingestion failed: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
