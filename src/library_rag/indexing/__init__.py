"""
Indexing Module - Index contracts and their ChromaDB / JSON implementations.
============================================================================

This module handles fragment storage and lookup:

- base: Abstract VectorIndex, KeywordIndex and DocumentCatalog contracts
- vector_store: ChromaDB implementation of both index contracts
- catalog: Document metadata catalog (in-memory and JSON-file backed)
"""

from library_rag.indexing.base import DocumentCatalog, KeywordIndex, VectorIndex
from library_rag.indexing.catalog import InMemoryDocumentCatalog, JsonDocumentCatalog
from library_rag.indexing.vector_store import ChromaVectorStore, create_vector_store

__all__ = [
    # Contracts
    "VectorIndex",
    "KeywordIndex",
    "DocumentCatalog",
    # Catalog
    "InMemoryDocumentCatalog",
    "JsonDocumentCatalog",
    # Vector Store
    "ChromaVectorStore",
    "create_vector_store",
]
