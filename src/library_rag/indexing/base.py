"""
Indexing Base Module - Abstract contracts for consumed index services.
======================================================================

The routing engine never talks to a concrete store directly. It consumes
three collaborators through these interfaces:

- VectorIndex: similarity search with an optional score floor
- KeywordIndex: exact-substring search
- DocumentCatalog: maps a fragment's document id to a readable source name

Implementations raise RetrievalFailure when the backing store is
unreachable or times out.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from library_rag.shared.schemas import DocumentRecord, Fragment, ScoredFragment


# ─────────────────────────────────────────────────────────────────────────────
# Vector Index
# ─────────────────────────────────────────────────────────────────────────────


class VectorIndex(ABC):
    """
    Similarity-search contract.

    Implementations must provide:
    - search(): ranked fragments with scores, best first
    - add(): index fragments
    - delete(): remove fragments matching a metadata filter
    """

    @abstractmethod
    def search(
        self,
        query: str,
        top_k: int,
        threshold: Optional[float] = None,
        metadata_filter: Optional[dict[str, Any]] = None,
    ) -> list[ScoredFragment]:
        """
        Search for fragments similar to the query.

        Args:
            query: Query text
            top_k: Maximum number of results
            threshold: Minimum similarity score; None means no floor
            metadata_filter: Optional equality filter on fragment metadata

        Returns:
            At most top_k scored fragments, highest score first
        """

    @abstractmethod
    def add(self, fragments: list[Fragment]) -> int:
        """Index fragments and return how many were added."""

    @abstractmethod
    def delete(self, metadata_filter: dict[str, Any]) -> None:
        """Remove every fragment whose metadata matches the filter."""


# ─────────────────────────────────────────────────────────────────────────────
# Keyword Index
# ─────────────────────────────────────────────────────────────────────────────


class KeywordIndex(ABC):
    """Exact-substring search contract."""

    @abstractmethod
    def find_by_content_containing(self, substring: str, page_limit: int) -> list[Fragment]:
        """Return up to page_limit fragments whose text contains substring."""


# ─────────────────────────────────────────────────────────────────────────────
# Document Catalog
# ─────────────────────────────────────────────────────────────────────────────


class DocumentCatalog(ABC):
    """Document metadata lookup contract."""

    @abstractmethod
    def find_by_document_id(self, document_id: str) -> Optional[DocumentRecord]:
        """Return the catalog record for a document, or None if unknown."""

    @abstractmethod
    def register(self, record: DocumentRecord) -> None:
        """Add or replace a catalog record."""

    @abstractmethod
    def remove(self, document_id: str) -> bool:
        """Drop a record; returns False if it did not exist."""

    @abstractmethod
    def list_documents(self) -> list[DocumentRecord]:
        """All known records."""
