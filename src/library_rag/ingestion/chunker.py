"""
Chunker Module - Overlapping text chunking for retrieval.
=========================================================

Splits raw document text into overlapping retrieval units:
- Fixed-size windows with configurable overlap
- Split points moved back to sentence, line or word boundaries
- Real character offsets carried on every chunk
- Super-batching for very large inputs to bound peak memory
"""

from dataclasses import dataclass
from typing import Iterator, Optional

from library_rag.shared.config import ChunkingConfig, get_settings
from library_rag.shared.logging import get_logger

logger = get_logger(__name__)


# Split-point preferences, strongest first
SENTENCE_TERMINATORS = (".", "!", "?", "。", "！", "？")
LINE_BREAK = "\n"
WORD_BREAK = " "


@dataclass(frozen=True)
class TextChunk:
    """A trimmed slice of the input with its position in the original text."""

    text: str
    chunk_index: int
    start_offset: int
    end_offset: int


# ─────────────────────────────────────────────────────────────────────────────
# Chunk Splitter
# ─────────────────────────────────────────────────────────────────────────────


class ChunkSplitter:
    """
    Splits text into overlapping chunks.

    Windows are `chunk_size` characters wide. When a window ends inside the
    text, the split point is searched backward from the window's midpoint to
    its end, preferring:
    1. Sentence terminators (. ! ? and full-width forms)
    2. Line breaks
    3. Spaces
    4. The hard window boundary (last resort)

    The next window starts `chunk_overlap` characters before the previous
    end, always advancing by at least one character.

    Example:
        >>> splitter = ChunkSplitter(chunk_size=1000, chunk_overlap=200)
        >>> for chunk in splitter.split(text):
        ...     print(chunk.chunk_index, chunk.start_offset, len(chunk.text))
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        large_text_threshold: int = 10 * 1024 * 1024,
        super_batch_size: int = 100_000,
        super_batch_overlap: int = 2000,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must satisfy 0 <= chunk_overlap < chunk_size")
        if super_batch_size <= super_batch_overlap:
            raise ValueError("super_batch_size must exceed super_batch_overlap")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.large_text_threshold = large_text_threshold
        self.super_batch_size = super_batch_size
        self.super_batch_overlap = super_batch_overlap

    @classmethod
    def from_config(cls, config: Optional[ChunkingConfig] = None) -> "ChunkSplitter":
        """Build a splitter from settings (loads global settings if None)."""
        if config is None:
            config = get_settings().chunking
        return cls(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            large_text_threshold=config.large_text_threshold,
            super_batch_size=config.super_batch_size,
            super_batch_overlap=config.super_batch_overlap,
        )

    def split(self, text: str) -> list[TextChunk]:
        """
        Split text into chunks.

        Args:
            text: Raw document text

        Returns:
            Ordered, non-empty, trimmed chunks
        """
        if not text or not text.strip():
            return []

        if len(text) > self.large_text_threshold:
            chunks = list(self._split_super_batched(text))
            logger.info(
                f"Split large text ({len(text)} chars) into {len(chunks)} chunks "
                f"using super-batches of {self.super_batch_size}"
            )
            return chunks

        return list(self._split_range(text, 0, len(text), first_index=0))

    def split_texts(self, text: str) -> list[str]:
        """Split text and return only the chunk strings."""
        return [chunk.text for chunk in self.split(text)]

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _split_super_batched(self, text: str) -> Iterator[TextChunk]:
        """Apply the window walk per fixed-size batch, continuing chunk indices."""
        total = len(text)
        batch_start = 0
        next_index = 0

        while batch_start < total:
            batch_end = min(batch_start + self.super_batch_size, total)

            produced = 0
            for chunk in self._split_range(text, batch_start, batch_end, first_index=next_index):
                produced += 1
                yield chunk

            logger.debug(
                f"Super-batch [{batch_start}, {batch_end}) produced {produced} chunks"
            )
            next_index += produced

            if batch_end >= total:
                break
            batch_start = batch_end - self.super_batch_overlap

    def _split_range(
        self,
        text: str,
        range_start: int,
        range_end: int,
        first_index: int,
    ) -> Iterator[TextChunk]:
        """Walk windows over text[range_start:range_end]."""
        index = first_index

        if range_end - range_start <= self.chunk_size:
            chunk = self._make_chunk(text, range_start, range_end, index)
            if chunk is not None:
                yield chunk
            return

        start = range_start
        while start < range_end:
            end = min(start + self.chunk_size, range_end)

            if end < range_end:
                search_from = start + self.chunk_size // 2
                split_at = self._find_split_point(text, search_from, end)
                if split_at is not None:
                    end = split_at + 1

            chunk = self._make_chunk(text, start, end, index)
            if chunk is not None:
                yield chunk
                index += 1

            if end >= range_end:
                break
            start = max(start + 1, end - self.chunk_overlap)

    @staticmethod
    def _find_split_point(text: str, search_from: int, search_to: int) -> Optional[int]:
        """Index of the best break character in text[search_from:search_to], or None."""
        best = max(text.rfind(mark, search_from, search_to) for mark in SENTENCE_TERMINATORS)
        if best != -1:
            return best

        for mark in (LINE_BREAK, WORD_BREAK):
            position = text.rfind(mark, search_from, search_to)
            if position != -1:
                return position

        return None

    @staticmethod
    def _make_chunk(text: str, start: int, end: int, index: int) -> Optional[TextChunk]:
        """Trim text[start:end] and keep offsets pointing at the trimmed content."""
        raw = text[start:end]
        stripped = raw.strip()
        if not stripped:
            return None

        leading = len(raw) - len(raw.lstrip())
        chunk_start = start + leading
        return TextChunk(
            text=stripped,
            chunk_index=index,
            start_offset=chunk_start,
            end_offset=chunk_start + len(stripped),
        )


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def split_text(
    text: str,
    chunk_size: Optional[int] = None,
    chunk_overlap: Optional[int] = None,
) -> list[str]:
    """
    Split text into chunk strings using settings defaults.

    Args:
        text: Text to split
        chunk_size: Optional custom chunk size
        chunk_overlap: Optional custom overlap

    Returns:
        List of chunk strings
    """
    config = get_settings().chunking
    splitter = ChunkSplitter(
        chunk_size=chunk_size if chunk_size is not None else config.chunk_size,
        chunk_overlap=chunk_overlap if chunk_overlap is not None else config.chunk_overlap,
        large_text_threshold=config.large_text_threshold,
        super_batch_size=config.super_batch_size,
        super_batch_overlap=config.super_batch_overlap,
    )
    return splitter.split_texts(text)
