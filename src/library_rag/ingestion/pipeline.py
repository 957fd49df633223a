"""
Pipeline Module - Turn plain-text documents into indexed fragments.
===================================================================

A small ingestion collaborator:
- Registers a DocumentRecord in the catalog
- Runs the chunk splitter (super-batched for very large texts)
- Builds immutable Fragments with real character offsets
- Indexes fragments one at a time so a single failure is skipped, not fatal

Pipeline flow:
    text → ChunkSplitter → TextChunks → Fragments → VectorIndex (+ catalog)
"""

from pathlib import Path
from typing import Optional

from library_rag.indexing.base import DocumentCatalog, VectorIndex
from library_rag.ingestion.chunker import ChunkSplitter
from library_rag.shared.errors import RetrievalFailure
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import DocumentRecord, Fragment, IngestReport
from library_rag.shared.utils import generate_document_id, generate_fragment_id

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".md")


class DocumentIngestor:
    """
    Chunks documents and feeds them to the vector index.

    Example:
        >>> ingestor = DocumentIngestor(vector_index=store, catalog=catalog)
        >>> report = ingestor.ingest_file(Path("docs/mysql_manual.txt"), category="database")
        >>> print(report.indexed, report.failed)
    """

    def __init__(
        self,
        vector_index: VectorIndex,
        catalog: DocumentCatalog,
        splitter: Optional[ChunkSplitter] = None,
    ):
        self.vector_index = vector_index
        self.catalog = catalog
        self.splitter = splitter or ChunkSplitter.from_config()

    def ingest_text(
        self,
        text: str,
        original_filename: str,
        category: str = "",
        document_id: Optional[str] = None,
    ) -> IngestReport:
        """
        Chunk and index one document.

        Args:
            text: Full document text
            original_filename: Name shown as the answer's source
            category: Optional document category
            document_id: Explicit id (derived from name and content if None)

        Returns:
            IngestReport with indexed and failed counts
        """
        document_id = document_id or generate_document_id(original_filename, text)
        fragments = self.build_fragments(text, document_id, category)

        report = IngestReport(document_id=document_id, total_fragments=len(fragments))

        for fragment in fragments:
            try:
                self.vector_index.add([fragment])
                report.indexed += 1
            except RetrievalFailure as e:
                logger.warning(f"Failed to index fragment {fragment.id}: {e}")
                report.failed += 1
                report.failed_fragment_ids.append(fragment.id)

        self.catalog.register(
            DocumentRecord(
                document_id=document_id,
                original_filename=original_filename,
                category=category,
                chunks_count=report.indexed,
            )
        )

        logger.info(
            f"Ingested {original_filename} as {document_id}: "
            f"{report.indexed}/{report.total_fragments} fragments indexed, {report.failed} failed"
        )
        return report

    def ingest_file(self, path: Path, category: str = "") -> IngestReport:
        """
        Read a plain-text file and ingest it.

        Raises:
            ValueError: If the file type is not supported
        """
        path = Path(path)
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ValueError(
                f"Unsupported file type '{path.suffix}'. Supported: {', '.join(SUPPORTED_SUFFIXES)}"
            )

        text = path.read_text(encoding="utf-8", errors="replace")
        return self.ingest_text(text, original_filename=path.name, category=category)

    def remove_document(self, document_id: str) -> bool:
        """Delete a document's fragments and its catalog record."""
        self.vector_index.delete({"document_id": document_id})
        removed = self.catalog.remove(document_id)
        logger.info(f"Removed document {document_id} (catalog record existed: {removed})")
        return removed

    def build_fragments(self, text: str, document_id: str, category: str = "") -> list[Fragment]:
        """Split text into Fragments with ids of the form {document_id}_{index}."""
        return [
            Fragment(
                id=generate_fragment_id(document_id, chunk.chunk_index),
                source_document_id=document_id,
                text=chunk.text,
                chunk_index=chunk.chunk_index,
                category=category,
                start_offset=chunk.start_offset,
                end_offset=chunk.end_offset,
            )
            for chunk in self.splitter.split(text)
        ]
