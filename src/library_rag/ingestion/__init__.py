"""
Ingestion Module - Chunk plain-text documents and index them.
=============================================================

- chunker: Overlapping chunk splitter with boundary-aware split points
- pipeline: DocumentIngestor feeding fragments to the vector index

Pipeline flow:
    text → ChunkSplitter → Fragments → VectorIndex (+ DocumentCatalog)
"""

from library_rag.ingestion.chunker import ChunkSplitter, TextChunk, split_text
from library_rag.ingestion.pipeline import DocumentIngestor

__all__ = [
    # Chunker
    "ChunkSplitter",
    "TextChunk",
    "split_text",
    # Pipeline
    "DocumentIngestor",
]
