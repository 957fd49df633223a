"""
Schemas Module - Pydantic data models for the application.
==========================================================

Defines the data contracts passed between the routing engine's components:
- Fragments and retrieval results
- Assembled context
- Routing decisions and answers
- Stream events
- Document catalog records
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class RetrievalTier(str, Enum):
    """Which retrieval step produced a fragment."""

    HIGH_SIMILARITY = "high_similarity"
    STANDARD_SIMILARITY = "standard_similarity"
    KEYWORD = "keyword"
    UNBOUNDED = "unbounded"
    NONE = "none"


class RouteType(str, Enum):
    """Routing decision for a query."""

    LIBRARY = "library"
    GENERAL = "general"
    GREETING = "greeting"
    ERROR = "error"


class StreamEventType(str, Enum):
    """Stream event kinds, in the order a client typically sees them."""

    START = "start"
    THINKING = "thinking"
    ANSWER_START = "answer_start"
    CHUNK = "chunk"
    SOURCE = "source"
    NOTE = "note"
    END = "end"
    ERROR = "error"


TERMINAL_EVENT_TYPES = frozenset({StreamEventType.END, StreamEventType.ERROR})


# ─────────────────────────────────────────────────────────────────────────────
# Fragment Models
# ─────────────────────────────────────────────────────────────────────────────


class Fragment(BaseModel):
    """
    A retrieval-unit slice of a source document.

    Produced by the chunk splitter and never mutated afterwards; the cascade
    only filters and copies fragments.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique fragment identifier")
    source_document_id: str = Field(..., description="Owning document ID")
    text: str = Field(..., description="Fragment text")
    chunk_index: int = Field(default=0, description="Position within the document")
    category: str = Field(default="", description="Document category")
    start_offset: int = Field(default=0, description="Start character offset in the document")
    end_offset: int = Field(default=0, description="End character offset in the document")

    def to_metadata_dict(self) -> dict[str, Any]:
        """Convert to metadata dict for vector store."""
        return {
            "fragment_id": self.id,
            "document_id": self.source_document_id,
            "chunk_index": self.chunk_index,
            "category": self.category,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
        }

    @classmethod
    def from_metadata(cls, fragment_id: str, text: str, metadata: dict[str, Any]) -> "Fragment":
        """Rebuild a fragment from stored text plus metadata."""
        return cls(
            id=metadata.get("fragment_id", fragment_id),
            source_document_id=metadata.get("document_id", ""),
            text=text or "",
            chunk_index=int(metadata.get("chunk_index", 0)),
            category=metadata.get("category", "") or "",
            start_offset=int(metadata.get("start_offset", 0)),
            end_offset=int(metadata.get("end_offset", 0)),
        )


class ScoredFragment(BaseModel):
    """A fragment returned by the vector index with its similarity score."""

    model_config = ConfigDict(frozen=True)

    fragment: Fragment
    score: float = Field(default=0.0, description="Similarity score (0-1)")


class RetrievalHit(BaseModel):
    """A fragment as admitted into a retrieval result, tagged with its tier."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    fragment: Fragment
    tier: RetrievalTier
    score: Optional[float] = None

    @property
    def fragment_id(self) -> str:
        return self.fragment.id


class RetrievalResult(BaseModel):
    """
    Ordered, id-deduplicated retrieval output.

    Keyword-sourced hits come first so context assembly never truncates
    them away. `tier` records which vector tier matched, or NONE when the
    cascade found nothing.
    """

    hits: list[RetrievalHit] = Field(default_factory=list)
    tier: RetrievalTier = RetrievalTier.NONE
    keyword_count: int = 0

    @property
    def fragments(self) -> list[Fragment]:
        return [hit.fragment for hit in self.hits]

    @property
    def fragment_ids(self) -> list[str]:
        return [hit.fragment.id for hit in self.hits]

    @property
    def is_empty(self) -> bool:
        return not self.hits

    @classmethod
    def empty(cls) -> "RetrievalResult":
        return cls()


class AssembledContext(BaseModel):
    """
    Bounded context string plus the ids of the fragments that went into it.

    len(text) never exceeds cap. When truncation happens it affects only the
    last admitted fragment, which then ends with the ellipsis marker.
    """

    model_config = ConfigDict(frozen=True)

    text: str = ""
    fragment_ids: list[str] = Field(default_factory=list)
    cap: int = 0
    truncated: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.text


# ─────────────────────────────────────────────────────────────────────────────
# Classification & Routing Models
# ─────────────────────────────────────────────────────────────────────────────


class QuestionAnalysis(BaseModel):
    """Advisory classification of a question."""

    model_config = ConfigDict(frozen=True)

    is_greeting: bool = False
    prefer_library: bool = False
    is_factual: bool = False
    is_creative: bool = False

    @computed_field
    @property
    def should_retrieve(self) -> bool:
        """Retrieval is attempted only for domain or factual questions."""
        return not self.is_greeting and (self.prefer_library or self.is_factual)


class RoutingDecision(BaseModel):
    """The route taken for one query."""

    model_config = ConfigDict(frozen=True)

    route: RouteType
    source_label: str = ""
    note: Optional[str] = None


class Answer(BaseModel):
    """
    Final single-shot response.

    `relevant` is computed by the router from the relevance gate and the
    generation outcome; callers never set it.
    """

    text: str = Field(..., description="Answer text shown to the user")
    sources: list[str] = Field(default_factory=list, description="Source document names")
    source_type: RouteType = Field(..., description="Route that produced the answer")
    source_label: str = Field(default="", description="Human-readable source label")
    note: Optional[str] = Field(default=None, description="Additional note")
    relevant: bool = Field(default=False, description="Whether the answer is usable")

    @property
    def decision(self) -> RoutingDecision:
        return RoutingDecision(route=self.source_type, source_label=self.source_label, note=self.note)


# ─────────────────────────────────────────────────────────────────────────────
# Stream Events
# ─────────────────────────────────────────────────────────────────────────────


class StreamEvent(BaseModel):
    """
    One event of an answer stream.

    `done` is set on END and ERROR and nowhere else; the validator rejects
    any other combination.
    """

    model_config = ConfigDict(frozen=True)

    type: StreamEventType
    content: Optional[str] = None
    source_type: Optional[str] = None
    sources: Optional[list[str]] = None
    note: Optional[str] = None
    error: Optional[str] = None
    done: bool = False

    @model_validator(mode="after")
    def validate_done(self) -> "StreamEvent":
        """Only terminal events carry done=True."""
        if self.done != self.is_terminal:
            raise ValueError(f"done={self.done} is invalid for a {self.type.value} event")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    @classmethod
    def start(cls, source_type: str) -> "StreamEvent":
        return cls(type=StreamEventType.START, source_type=source_type)

    @classmethod
    def thinking(cls, content: str) -> "StreamEvent":
        return cls(type=StreamEventType.THINKING, content=content)

    @classmethod
    def answer_start(cls) -> "StreamEvent":
        return cls(type=StreamEventType.ANSWER_START)

    @classmethod
    def chunk(cls, content: str) -> "StreamEvent":
        return cls(type=StreamEventType.CHUNK, content=content)

    @classmethod
    def source(cls, sources: list[str]) -> "StreamEvent":
        return cls(type=StreamEventType.SOURCE, sources=list(sources))

    @classmethod
    def with_note(cls, note: str) -> "StreamEvent":
        return cls(type=StreamEventType.NOTE, note=note)

    @classmethod
    def end(cls) -> "StreamEvent":
        return cls(type=StreamEventType.END, done=True)

    @classmethod
    def failure(cls, error: str) -> "StreamEvent":
        return cls(type=StreamEventType.ERROR, error=error, done=True)

    def to_sse(self) -> str:
        """Render as a server-sent-events data line."""
        payload = self.model_dump(mode="json", exclude_none=True)
        return "data: " + json.dumps(payload, ensure_ascii=False) + "\n\n"


# ─────────────────────────────────────────────────────────────────────────────
# Document Catalog
# ─────────────────────────────────────────────────────────────────────────────


class DocumentRecord(BaseModel):
    """Catalog entry used to turn fragments into human-readable sources."""

    document_id: str = Field(..., description="Document identifier")
    original_filename: str = Field(..., description="Name the document was uploaded with")
    category: str = Field(default="", description="Document category")
    chunks_count: int = Field(default=0, description="Number of fragments produced")
    created_at: datetime = Field(default_factory=datetime.now, description="Registration time")


class IngestReport(BaseModel):
    """Outcome of indexing one document."""

    document_id: str
    total_fragments: int = 0
    indexed: int = 0
    failed: int = 0
    failed_fragment_ids: list[str] = Field(default_factory=list)
