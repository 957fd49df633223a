"""
Errors Module - Exception taxonomy for the routing engine.
==========================================================

None of these are fatal to the process. Index adapters raise
RetrievalFailure, model adapters raise GenerationFailure, and the Router
turns both into an apology plus a machine-readable flag.
"""


class LibraryRAGError(Exception):
    """Base class for all library_rag errors."""


class RetrievalFailure(LibraryRAGError):
    """The vector or keyword index was unreachable or timed out."""


class GenerationFailure(LibraryRAGError):
    """The language model call failed or timed out."""
