"""Retrieval engine for orchestrating query embedding and per-document chunk retrieval."""
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from config import DEFAULT_TOP_K, DYNAMIC_K_CUTOFF, RELEVANCE_THRESHOLD, RETRIEVAL_MAX_WORKERS
from errors import CollaboratorError, CollectionNotFoundError, InvalidInputError, RAGError
from models.chunk import ChunkNavigation, RetrievalResult, RetrievedChunk

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Query one or many document collections and rank the matches."""

    def __init__(self, vector_store, embedding_model, max_workers: int = RETRIEVAL_MAX_WORKERS):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: Index collaborator (collection_name/exists/query)
            embedding_model: Embedding collaborator (embed_text)
            max_workers: Upper bound on concurrent per-document queries
        """
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")

        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.max_workers = max_workers
        logger.info("Initialized RetrievalEngine")

    def retrieve(self, document_id: str, query_text: str, top_k: int = DEFAULT_TOP_K) -> RetrievalResult:
        """
        Retrieve the chunks of one document most similar to the query.

        Raises:
            InvalidInputError: If the query is empty or top_k is not positive
            CollectionNotFoundError: If the document has no collection
            CollaboratorError: If embedding or index calls fail
        """
        self._validate(query_text, top_k)
        query_embedding = self._embed_query(query_text)
        chunks = self._query_document(document_id, query_embedding, top_k)

        logger.info(
            f"Retrieved {len(chunks)} chunks from document {document_id}",
            extra={"document_id": document_id}
        )
        return RetrievalResult(query=query_text, document_ids=[document_id], retrieved_chunks=chunks)

    def retrieve_multi(
        self,
        document_ids: Sequence[str],
        query_text: str,
        top_k: int = DEFAULT_TOP_K
    ) -> RetrievalResult:
        """
        Retrieve across several documents and keep the best ``top_k`` overall.

        Each document is queried independently; a document whose collection
        is missing or whose query fails is logged and skipped. An empty
        ``document_ids`` gives an empty result.

        Raises:
            InvalidInputError: If the query is empty or top_k is not positive
            CollaboratorError: If the query itself cannot be embedded
        """
        self._validate(query_text, top_k)
        document_ids = list(dict.fromkeys(document_ids or []))
        if not document_ids:
            logger.info("No documents to search")
            return RetrievalResult(query=query_text, document_ids=[], retrieved_chunks=[])

        query_embedding = self._embed_query(query_text)

        workers = min(self.max_workers, len(document_ids))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                doc_id: pool.submit(self._query_document, doc_id, query_embedding, top_k)
                for doc_id in document_ids
            }

            # Fold in request order so score ties rank deterministically
            all_chunks: List[RetrievedChunk] = []
            for doc_id, future in futures.items():
                try:
                    all_chunks.extend(future.result())
                except RAGError as e:
                    logger.warning(
                        f"Skipping document {doc_id}: {e}",
                        extra={"document_id": doc_id}
                    )
                except Exception as e:
                    logger.error(
                        f"Skipping document {doc_id} after unexpected error: {e}",
                        exc_info=True,
                        extra={"document_id": doc_id}
                    )

        ranked = sorted(all_chunks, key=lambda chunk: chunk.score, reverse=True)[:top_k]

        logger.info(f"Retrieved {len(ranked)} chunks from {len(document_ids)} documents")
        return RetrievalResult(query=query_text, document_ids=document_ids, retrieved_chunks=ranked)

    def collection_exists(self, document_id: str) -> bool:
        """Check if a collection exists for a document."""
        try:
            return bool(self.vector_store.exists(self.vector_store.collection_name(document_id)))
        except Exception as e:
            logger.warning(f"Could not check collection for {document_id}: {e}")
            return False

    @staticmethod
    def filter_by_relevance(
        chunks: List[RetrievedChunk],
        threshold: float = RELEVANCE_THRESHOLD
    ) -> List[RetrievedChunk]:
        """Keep chunks whose similarity score is at least ``threshold``."""
        return [chunk for chunk in chunks if chunk.score >= threshold]

    @staticmethod
    def apply_dynamic_cutoff(
        chunks: List[RetrievedChunk],
        ratio: float = DYNAMIC_K_CUTOFF
    ) -> List[RetrievedChunk]:
        """
        Keep chunks scoring within ``ratio`` of the best chunk.

        Example: with a top score of 0.85 and ratio 0.8, chunks below 0.68
        are dropped. Input order is preserved.
        """
        if not chunks:
            return []
        top_score = max(chunk.score for chunk in chunks)
        cutoff = top_score * ratio
        return [chunk for chunk in chunks if chunk.score >= cutoff]

    @staticmethod
    def format_results(raw_results, document_id: Optional[str] = None) -> List[RetrievedChunk]:
        """
        Convert an index query result into scored chunks.

        Distances become similarity scores as ``1 - distance``. A navigation
        field stored as a JSON string is parsed back; malformed payloads are
        logged and dropped.
        """
        documents = list(raw_results.documents or [])
        metadatas = list(raw_results.metadatas or [])
        distances = list(raw_results.distances or [])

        chunks = []
        for index, content in enumerate(documents):
            metadata: Dict[str, Any] = dict(metadatas[index] or {}) if index < len(metadatas) else {}
            distance = float(distances[index]) if index < len(distances) else 1.0
            navigation = RetrievalEngine._parse_navigation(metadata)

            chunks.append(RetrievedChunk(
                content=content,
                metadata=metadata,
                score=1 - distance,
                relevance_score=distance,
                document_id=document_id or metadata.get("documentId"),
                chunk_index=metadata.get("chunkIndex"),
                tokens=metadata.get("tokens"),
                navigation=navigation
            ))

        return chunks

    @staticmethod
    def _parse_navigation(metadata: Dict[str, Any]) -> Optional[ChunkNavigation]:
        raw = metadata.get("navigation")
        if raw is None:
            return None

        try:
            payload = json.loads(raw) if isinstance(raw, str) else raw
            navigation = ChunkNavigation.from_dict(payload)
        except (ValueError, TypeError) as e:
            logger.warning(f"Failed to parse navigation metadata: {e}")
            return None

        metadata["navigation"] = navigation.to_dict()
        return navigation

    @staticmethod
    def _validate(query_text: str, top_k: int) -> None:
        if not isinstance(query_text, str) or not query_text.strip():
            raise InvalidInputError("Query text is required")
        if top_k <= 0:
            raise InvalidInputError("top_k must be positive")

    def _embed_query(self, query_text: str) -> List[float]:
        try:
            return self.embedding_model.embed_text(query_text)
        except RAGError:
            raise
        except Exception as e:
            raise CollaboratorError("embedding", f"Failed to embed query: {str(e)}") from e

    def _query_document(self, document_id: str, query_embedding: List[float], top_k: int) -> List[RetrievedChunk]:
        collection = self.vector_store.collection_name(document_id)
        try:
            if not self.vector_store.exists(collection):
                raise CollectionNotFoundError(document_id, collection)
            raw_results = self.vector_store.query(collection, query_embedding, k=top_k)
        except RAGError:
            raise
        except Exception as e:
            raise CollaboratorError(
                "index", f"Failed to query collection {collection}: {str(e)}"
            ) from e

        return self.format_results(raw_results, document_id)
