"""
Library RAG - Retrieval Routing & Context Assembly Engine
=========================================================

Answers questions against a private document library when the library
actually holds the answer, and falls back to the model's general knowledge
when it does not:

- Chunk documents into overlapping fragments and index them
- Retrieve through a similarity-threshold cascade with keyword augmentation
- Assemble a bounded context from the surviving fragments
- Gate grounded answers on relevance before committing to them
- Stream answers as typed events with exactly one terminal event
"""

__version__ = "0.1.0"
__author__ = "Library RAG Team"
__license__ = "MIT"

# Public API - lazy imports to avoid circular dependencies and speed up startup
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "ingestion",
    "indexing",
    "rag",
    "cli",
]
