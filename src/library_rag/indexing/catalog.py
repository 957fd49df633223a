"""
Catalog Module - Document metadata lookup.
==========================================

Tracks which documents have been ingested so that retrieved fragments can
be attributed to a human-readable source:
- InMemoryDocumentCatalog for tests and throwaway runs
- JsonDocumentCatalog persisting records to a JSON file
"""

from pathlib import Path
from typing import Optional

from library_rag.indexing.base import DocumentCatalog
from library_rag.shared.config import get_settings
from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import DocumentRecord
from library_rag.shared.utils import load_json, save_json

logger = get_logger(__name__)


class InMemoryDocumentCatalog(DocumentCatalog):
    """Dictionary-backed catalog."""

    def __init__(self, records: Optional[list[DocumentRecord]] = None):
        self._records: dict[str, DocumentRecord] = {}
        for record in records or []:
            self._records[record.document_id] = record

    def find_by_document_id(self, document_id: str) -> Optional[DocumentRecord]:
        return self._records.get(document_id)

    def register(self, record: DocumentRecord) -> None:
        self._records[record.document_id] = record

    def remove(self, document_id: str) -> bool:
        return self._records.pop(document_id, None) is not None

    def list_documents(self) -> list[DocumentRecord]:
        return list(self._records.values())


class JsonDocumentCatalog(InMemoryDocumentCatalog):
    """
    Catalog persisted as a JSON list of DocumentRecords.

    The file is read once on construction and rewritten after every change.

    Example:
        >>> catalog = JsonDocumentCatalog()
        >>> record = catalog.find_by_document_id("mysql_manual_txt_3f2a9c1b0d4e")
        >>> print(record.original_filename)
    """

    def __init__(self, catalog_file: Optional[Path] = None):
        """
        Initialize the catalog.

        Args:
            catalog_file: Path to the JSON file (default from settings)
        """
        super().__init__()
        self.catalog_file = Path(catalog_file or get_settings().resolved_paths.catalog_file)

        if self.catalog_file.exists():
            data = load_json(self.catalog_file)
            for item in data if isinstance(data, list) else []:
                record = DocumentRecord.model_validate(item)
                self._records[record.document_id] = record

        logger.debug(f"Loaded {len(self._records)} catalog records from {self.catalog_file}")

    def register(self, record: DocumentRecord) -> None:
        super().register(record)
        self._save()

    def remove(self, document_id: str) -> bool:
        removed = super().remove(document_id)
        if removed:
            self._save()
        return removed

    def _save(self) -> None:
        save_json(
            self.catalog_file,
            [record.model_dump(mode="json") for record in self._records.values()],
        )
