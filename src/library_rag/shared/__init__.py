"""
Shared Module - Common utilities, configuration, schemas, and logging.
======================================================================

This module provides foundational components used across all other modules:

- config: Configuration loading and management
- logging: Rich logging setup
- schemas: Pydantic data models
- errors: Exception taxonomy
- utils: Utility functions (hashing, IDs, JSON I/O)
"""

from library_rag.shared.config import Settings, get_settings
from library_rag.shared.errors import GenerationFailure, LibraryRAGError, RetrievalFailure
from library_rag.shared.logging import get_logger, setup_logging
from library_rag.shared.schemas import (
    Answer,
    AssembledContext,
    DocumentRecord,
    Fragment,
    RetrievalResult,
    RetrievalTier,
    RouteType,
    StreamEvent,
    StreamEventType,
)
from library_rag.shared.utils import (
    compute_hash,
    ensure_directory,
    generate_document_id,
    generate_fragment_id,
    load_json,
    save_json,
)

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Errors
    "LibraryRAGError",
    "RetrievalFailure",
    "GenerationFailure",
    # Logging
    "get_logger",
    "setup_logging",
    # Schemas
    "Answer",
    "AssembledContext",
    "DocumentRecord",
    "Fragment",
    "RetrievalResult",
    "RetrievalTier",
    "RouteType",
    "StreamEvent",
    "StreamEventType",
    # Utils
    "compute_hash",
    "ensure_directory",
    "generate_document_id",
    "generate_fragment_id",
    "load_json",
    "save_json",
]
