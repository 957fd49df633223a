"""
Vector Store Module - ChromaDB wrapper for fragment storage and retrieval.
==========================================================================

Provides a ChromaDB-backed implementation of both index contracts:
- Persistent (or injected in-memory) storage
- Cosine similarity search with an optional score floor
- Exact-substring keyword search over stored fragment text
- Metadata-filtered deletion
"""

from pathlib import Path
from typing import Any, Callable, Optional

import chromadb
from chromadb.config import Settings as ChromaSettings

from library_rag.indexing.base import KeywordIndex, VectorIndex
from library_rag.shared.config import get_settings
from library_rag.shared.errors import RetrievalFailure
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import Fragment, ScoredFragment

logger = get_logger(__name__)

# Maps a batch of texts to their embedding vectors
Embedder = Callable[[list[str]], list[list[float]]]


# ─────────────────────────────────────────────────────────────────────────────
# Vector Store Class
# ─────────────────────────────────────────────────────────────────────────────


class ChromaVectorStore(VectorIndex, KeywordIndex):
    """
    ChromaDB wrapper implementing VectorIndex and KeywordIndex.

    Embeddings are computed by the injected `embedder` when given, otherwise
    by the collection's default embedding function.

    Example:
        >>> store = ChromaVectorStore(collection_name="document_chunks")
        >>> store.add(fragments)
        >>> for hit in store.search("MySQL 默认端口", top_k=5, threshold=0.85):
        ...     print(hit.score, hit.fragment.text[:50])
    """

    def __init__(
        self,
        collection_name: Optional[str] = None,
        persist_directory: Optional[Path] = None,
        embedder: Optional[Embedder] = None,
        client: Optional[Any] = None,
    ):
        """
        Initialize the vector store.

        Args:
            collection_name: Name of the ChromaDB collection
            persist_directory: Directory for persistent storage
            embedder: Optional callable producing embeddings for texts
            client: Optional pre-built chromadb client (e.g. EphemeralClient)
        """
        settings = get_settings()

        self.collection_name = collection_name or settings.index.collection_name
        self._embedder = embedder

        if client is None:
            self.persist_directory: Optional[Path] = (
                persist_directory or settings.resolved_paths.index_dir
            )
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(
                path=str(self.persist_directory),
                settings=ChromaSettings(
                    anonymized_telemetry=False,
                    allow_reset=True,
                ),
            )
        else:
            self.persist_directory = persist_directory

        self._client = client
        self._collection = self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

        logger.info(
            f"Vector store initialized: collection={self.collection_name}, "
            f"persist_dir={self.persist_directory}, "
            f"existing_count={self._collection.count()}"
        )

    @property
    def count(self) -> int:
        """Get the number of fragments in the collection."""
        return self._collection.count()

    # ─────────────────────────────────────────────────────────────────────
    # VectorIndex
    # ─────────────────────────────────────────────────────────────────────

    def add(self, fragments: list[Fragment]) -> int:
        """Upsert fragments into the collection."""
        if not fragments:
            return 0

        ids = [fragment.id for fragment in fragments]
        texts = [fragment.text for fragment in fragments]
        metadatas = [fragment.to_metadata_dict() for fragment in fragments]

        try:
            if self._embedder is not None:
                self._collection.upsert(
                    ids=ids,
                    embeddings=self._embedder(texts),
                    documents=texts,
                    metadatas=metadatas,
                )
            else:
                self._collection.upsert(ids=ids, documents=texts, metadatas=metadatas)
        except Exception as e:
            raise RetrievalFailure(f"Failed to index {len(ids)} fragments: {e}") from e

        logger.debug(f"Indexed {len(ids)} fragments")
        return len(ids)

    def search(
        self,
        query: str,
        top_k: int,
        threshold: Optional[float] = None,
        metadata_filter: Optional[dict[str, Any]] = None,
    ) -> list[ScoredFragment]:
        """
        Query the collection for similar fragments.

        Returns:
            Scored fragments sorted by score (highest first), with scores
            below `threshold` removed
        """
        if not query or not query.strip() or top_k <= 0:
            return []

        try:
            available = self._collection.count()
            if available == 0:
                return []

            where_clause = self._build_where_clause(metadata_filter) if metadata_filter else None
            query_args: dict[str, Any] = {
                "n_results": min(top_k, available),
                "include": ["documents", "metadatas", "distances"],
            }
            if where_clause:
                query_args["where"] = where_clause
            if self._embedder is not None:
                query_args["query_embeddings"] = self._embedder([query])
            else:
                query_args["query_texts"] = [query]

            results = self._collection.query(**query_args)
        except Exception as e:
            raise RetrievalFailure(f"Vector search failed: {e}") from e

        hits = self._results_to_hits(results)
        if threshold is not None:
            hits = [hit for hit in hits if hit.score >= threshold]
        return hits

    def delete(self, metadata_filter: dict[str, Any]) -> None:
        """Delete fragments matching a metadata filter."""
        where_clause = self._build_where_clause(metadata_filter)
        if not where_clause:
            return

        try:
            self._collection.delete(where=where_clause)
        except Exception as e:
            raise RetrievalFailure(f"Delete failed: {e}") from e
        logger.info(f"Deleted fragments matching {metadata_filter}")

    # ─────────────────────────────────────────────────────────────────────
    # KeywordIndex
    # ─────────────────────────────────────────────────────────────────────

    def find_by_content_containing(self, substring: str, page_limit: int) -> list[Fragment]:
        """Exact-substring search over stored fragment text."""
        if not substring or page_limit <= 0:
            return []

        try:
            results = self._collection.get(
                where_document={"$contains": substring},
                limit=page_limit,
                include=["documents", "metadatas"],
            )
        except Exception as e:
            raise RetrievalFailure(f"Keyword search for '{substring}' failed: {e}") from e

        ids = results.get("ids") or []
        documents = results.get("documents") or []
        metadatas = results.get("metadatas") or []

        return [
            Fragment.from_metadata(
                fragment_id,
                documents[i] if documents else "",
                metadatas[i] if metadatas and metadatas[i] else {},
            )
            for i, fragment_id in enumerate(ids)
        ]

    # ─────────────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────────────

    def clear(self) -> None:
        """Clear all fragments from the collection."""
        self._client.delete_collection(self.collection_name)
        self._collection = self._client.create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        logger.info(f"Cleared collection: {self.collection_name}")

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the vector store."""
        results = self._collection.get(include=["metadatas"])
        documents = {
            meta.get("document_id", "")
            for meta in (results.get("metadatas") or [])
            if meta
        }

        return {
            "collection_name": self.collection_name,
            "total_fragments": self.count,
            "total_documents": len(documents),
            "persist_directory": str(self.persist_directory) if self.persist_directory else "memory",
            "embedder": "custom" if self._embedder is not None else "chroma-default",
        }

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _build_where_clause(self, filters: dict[str, Any]) -> dict[str, Any]:
        """Build ChromaDB where clause from filters."""
        conditions = []

        for key, value in filters.items():
            if value is None:
                continue

            if isinstance(value, list):
                if value:
                    conditions.append({key: {"$in": value}})
            else:
                conditions.append({key: value})

        if not conditions:
            return {}
        elif len(conditions) == 1:
            return conditions[0]
        else:
            return {"$and": conditions}

    def _results_to_hits(self, results: dict) -> list[ScoredFragment]:
        """Convert ChromaDB query results to scored fragments."""
        if not results or not results.get("ids") or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = (results.get("documents") or [[]])[0]
        metadatas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        hits = []
        for i, fragment_id in enumerate(ids):
            # Cosine distance: similarity = 1 - distance
            distance = distances[i] if distances else 0.0
            fragment = Fragment.from_metadata(
                fragment_id,
                documents[i] if documents else "",
                metadatas[i] if metadatas and metadatas[i] else {},
            )
            hits.append(ScoredFragment(fragment=fragment, score=1.0 - distance))

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits


# ─────────────────────────────────────────────────────────────────────────────
# Factory Function
# ─────────────────────────────────────────────────────────────────────────────


def create_vector_store(
    collection_name: Optional[str] = None,
    persist_directory: Optional[Path] = None,
    embedder: Optional[Embedder] = None,
) -> ChromaVectorStore:
    """Create a persistent vector store using settings defaults."""
    return ChromaVectorStore(
        collection_name=collection_name,
        persist_directory=persist_directory,
        embedder=embedder,
    )
