"""Similarity index backed by Supabase pgvector, one logical collection per document."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from supabase import create_client, Client

from config import SUPABASE_URL, SUPABASE_KEY, CHUNKS_TABLE, MATCH_CHUNKS_FUNCTION
from errors import CollaboratorError

logger = logging.getLogger(__name__)


@dataclass
class IndexQueryResult:
    """Parallel lists for one query slot, ordered by ascending distance."""
    documents: List[str] = field(default_factory=list)
    metadatas: List[Dict[str, Any]] = field(default_factory=list)
    distances: List[float] = field(default_factory=list)


class VectorStore:
    """
    Store chunk vectors and answer nearest-neighbour queries.

    A "collection" is the set of rows in ``table_name`` sharing the same
    ``collection`` value. The match RPC is expected to look like::

        CREATE OR REPLACE FUNCTION match_document_chunks(
          query_embedding vector(384),
          collection_name text,
          match_count int,
          metadata_filter jsonb DEFAULT '{}'
        )
        RETURNS TABLE (chunk_id text, text text, metadata jsonb, distance float)
        LANGUAGE sql STABLE AS $$
          SELECT chunk_id, text, metadata, embedding <=> query_embedding AS distance
          FROM document_chunks
          WHERE collection = collection_name AND metadata @> metadata_filter
          ORDER BY embedding <=> query_embedding
          LIMIT match_count;
        $$;
    """

    def __init__(
        self,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        table_name: str = CHUNKS_TABLE,
        match_function: str = MATCH_CHUNKS_FUNCTION
    ):
        """
        Initialize the vector store with Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table holding chunk rows
            match_function: Name of the similarity search RPC

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.table_name = table_name
        self.match_function = match_function

        # One client shared by all requests; queries are independent
        self.client: Client = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized VectorStore with table: {table_name}")

    @staticmethod
    def collection_name(document_id: str) -> str:
        return f"doc_{document_id}_chunks"

    def exists(self, collection_name: str) -> bool:
        """
        Check whether a collection holds any rows.

        Raises:
            CollaboratorError: If database operation fails
        """
        try:
            response = (
                self.client.table(self.table_name)
                .select("id", count="exact")
                .eq("collection", collection_name)
                .limit(1)
                .execute()
            )
            return bool(response.count)
        except Exception as e:
            error_msg = f"Failed to check collection {collection_name}: {str(e)}"
            logger.error(error_msg, extra={"collection": collection_name, "stage": "index"})
            raise CollaboratorError("index", error_msg) from e

    def upsert(
        self,
        collection_name: str,
        ids: Sequence[str],
        texts: Sequence[str],
        vectors: Sequence[Sequence[float]],
        metadatas: Sequence[Dict[str, Any]]
    ) -> int:
        """
        Insert or replace chunk rows in a collection.

        Returns:
            Number of rows written

        Raises:
            ValueError: If the input lists are empty or of different lengths
            CollaboratorError: If database operation fails
        """
        if not ids:
            raise ValueError("Chunks list cannot be empty")
        if not (len(ids) == len(texts) == len(vectors) == len(metadatas)):
            raise ValueError(
                f"Length mismatch: {len(ids)} ids, {len(texts)} texts, "
                f"{len(vectors)} vectors, {len(metadatas)} metadatas"
            )

        records = [
            {
                "id": f"{collection_name}:{chunk_id}",
                "collection": collection_name,
                "chunk_id": chunk_id,
                "text": text,
                "metadata": metadata,
                "embedding": list(vector),
            }
            for chunk_id, text, vector, metadata in zip(ids, texts, vectors, metadatas)
        ]

        try:
            self.client.table(self.table_name).upsert(records).execute()
        except Exception as e:
            error_msg = f"Failed to add chunks to vector store: {str(e)}"
            logger.error(error_msg, extra={"collection": collection_name, "stage": "index"})
            raise CollaboratorError("index", error_msg) from e

        logger.info(f"Stored {len(records)} chunks in collection {collection_name}")
        return len(records)

    def query(
        self,
        collection_name: str,
        query_vector: Sequence[float],
        k: int = 5,
        where: Optional[Dict[str, Any]] = None
    ) -> IndexQueryResult:
        """
        Find the ``k`` rows of a collection closest to ``query_vector``.

        Args:
            collection_name: Collection to search
            query_vector: Embedding of the query text
            k: Number of rows to return
            where: Optional metadata containment filter

        Returns:
            IndexQueryResult with cosine distances (0 = identical)

        Raises:
            ValueError: If query_vector is empty or k is invalid
            CollaboratorError: If database operation fails
        """
        if not query_vector:
            raise ValueError("Query embedding cannot be empty")
        if k <= 0:
            raise ValueError("k must be positive")

        try:
            response = self.client.rpc(
                self.match_function,
                {
                    "query_embedding": list(query_vector),
                    "collection_name": collection_name,
                    "match_count": k,
                    "metadata_filter": where or {},
                }
            ).execute()
        except Exception as e:
            error_msg = f"Failed to search vector store: {str(e)}"
            logger.error(error_msg, extra={"collection": collection_name, "stage": "index"})
            raise CollaboratorError("index", error_msg) from e

        result = IndexQueryResult()
        for row in response.data or []:
            result.documents.append(row["text"])
            result.metadatas.append(row.get("metadata") or {})
            result.distances.append(float(row["distance"]))

        logger.debug(f"Found {len(result.documents)} chunks in {collection_name}")
        return result

    def delete_collection(self, collection_name: str) -> None:
        """
        Remove every row of a collection (used before re-ingesting a document).

        Raises:
            CollaboratorError: If database operation fails
        """
        try:
            self.client.table(self.table_name).delete().eq("collection", collection_name).execute()
            logger.info(f"Deleted collection {collection_name}")
        except Exception as e:
            error_msg = f"Failed to delete collection {collection_name}: {str(e)}"
            logger.error(error_msg, extra={"collection": collection_name, "stage": "index"})
            raise CollaboratorError("index", error_msg) from e

    def delete_stale(self, collection_name: str, keep_ids: Sequence[str]) -> None:
        """
        Remove rows of a collection whose chunk id is not in ``keep_ids``.

        Called after a successful upsert so a re-ingested document keeps
        exactly its new chunk set.

        Raises:
            ValueError: If keep_ids is empty
            CollaboratorError: If database operation fails
        """
        if not keep_ids:
            raise ValueError("keep_ids cannot be empty; use delete_collection instead")

        try:
            (
                self.client.table(self.table_name)
                .delete()
                .eq("collection", collection_name)
                .not_.in_("chunk_id", list(keep_ids))
                .execute()
            )
            logger.info(f"Pruned stale chunks from collection {collection_name}")
        except Exception as e:
            error_msg = f"Failed to prune collection {collection_name}: {str(e)}"
            logger.error(error_msg, extra={"collection": collection_name, "stage": "index"})
            raise CollaboratorError("index", error_msg) from e

    def count(self, collection_name: Optional[str] = None) -> int:
        """
        Count rows, optionally restricted to one collection.

        Raises:
            CollaboratorError: If database operation fails
        """
        try:
            query = self.client.table(self.table_name).select("id", count="exact")
            if collection_name:
                query = query.eq("collection", collection_name)
            response = query.execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count chunks in vector store: {str(e)}"
            logger.error(error_msg)
            raise CollaboratorError("index", error_msg) from e
