"""
Tests for Indexing Module.
==========================

Tests for:
- ChromaVectorStore: Add, search, threshold, keyword search, deletion
- Catalogs: In-memory and JSON-persisted document records
"""

import uuid
from pathlib import Path
from unittest.mock import Mock

import pytest

from tests.conftest import make_fragment


def char_embedder(texts: list[str]) -> list[list[float]]:
    """Deterministic bag-of-characters embedding (64 buckets)."""
    vectors = []
    for text in texts:
        vector = [0.0] * 64
        for ch in text:
            vector[ord(ch) % 64] += 1.0
        vectors.append(vector)
    return vectors


# ─────────────────────────────────────────────────────────────────────────────
# Vector Store Tests
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.integration
class TestChromaVectorStore:
    """Tests for the ChromaDB-backed store (in-memory client)."""

    @pytest.fixture
    def store(self):
        """Create a store on an ephemeral client with a unique collection."""
        import chromadb
        from chromadb.config import Settings as ChromaSettings

        from library_rag.indexing.vector_store import ChromaVectorStore

        client = chromadb.EphemeralClient(
            settings=ChromaSettings(anonymized_telemetry=False, allow_reset=True)
        )
        return ChromaVectorStore(
            collection_name=f"test_{uuid.uuid4().hex[:8]}",
            embedder=char_embedder,
            client=client,
        )

    @pytest.fixture
    def fragments(self):
        return [
            make_fragment("mysql_0", "MySQL默认端口是3306，可以在配置文件中修改。"),
            make_fragment("mysql_1", "InnoDB是MySQL的默认存储引擎，支持事务。", chunk_index=1),
            make_fragment(
                "guide_0",
                "Indexes speed up lookups at the cost of slower writes.",
                document_id="db_guide_md_def456",
            ),
        ]

    def test_empty_store_search_returns_nothing(self, store):
        """Searching an empty collection is not an error."""
        assert store.count == 0
        assert store.search("anything", top_k=5) == []

    def test_add_and_count(self, store, fragments):
        """Adding fragments increases the count; upsert keeps ids unique."""
        assert store.add(fragments) == 3
        assert store.count == 3

        store.add(fragments[:1])
        assert store.count == 3

    def test_search_exact_text_scores_highest(self, store, fragments):
        """An identical query scores close to 1 and ranks first."""
        store.add(fragments)

        hits = store.search(fragments[2].text, top_k=3)

        assert hits[0].fragment.id == "guide_0"
        assert hits[0].score == pytest.approx(1.0, abs=1e-3)
        assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)

    def test_search_preserves_fragment_metadata(self, store, fragments):
        """Stored metadata comes back on the fragment."""
        store.add(fragments)

        hit = store.search(fragments[1].text, top_k=1)[0]

        assert hit.fragment.source_document_id == "mysql_manual_txt_abc123"
        assert hit.fragment.chunk_index == 1
        assert hit.fragment.text == fragments[1].text

    def test_search_threshold_filters(self, store, fragments):
        """Hits below the threshold are dropped."""
        store.add(fragments)

        hits = store.search(fragments[2].text, top_k=3, threshold=0.999)

        assert [h.fragment.id for h in hits] == ["guide_0"]

    def test_top_k_larger_than_collection(self, store, fragments):
        """top_k above the collection size is capped rather than failing."""
        store.add(fragments)

        assert len(store.search("MySQL", top_k=1000)) == 3

    def test_keyword_search(self, store, fragments):
        """Substring search matches stored text exactly."""
        store.add(fragments)

        found = store.find_by_content_containing("3306", page_limit=3)

        assert [f.id for f in found] == ["mysql_0"]

    def test_keyword_search_page_limit(self, store, fragments):
        """page_limit caps the number of keyword results."""
        store.add(fragments)

        assert len(store.find_by_content_containing("MySQL", page_limit=1)) == 1

    def test_delete_by_document(self, store, fragments):
        """Metadata-filtered delete removes a document's fragments."""
        store.add(fragments)

        store.delete({"document_id": "mysql_manual_txt_abc123"})

        assert store.count == 1

    def test_clear(self, store, fragments):
        """Clearing empties the collection."""
        store.add(fragments)
        store.clear()

        assert store.count == 0

    def test_get_stats(self, store, fragments):
        """Stats count fragments and distinct documents."""
        store.add(fragments)

        stats = store.get_stats()

        assert stats["total_fragments"] == 3
        assert stats["total_documents"] == 2
        assert stats["embedder"] == "custom"

    def test_query_failure_raises_retrieval_failure(self, store):
        """Backend errors surface as RetrievalFailure."""
        from library_rag.shared.errors import RetrievalFailure

        broken = Mock()
        broken.count.return_value = 1
        broken.query.side_effect = RuntimeError("backend down")
        store._collection = broken

        with pytest.raises(RetrievalFailure):
            store.search("MySQL", top_k=5)

    def test_build_where_clause(self, store):
        """Filters become chroma where clauses."""
        assert store._build_where_clause({"document_id": "a"}) == {"document_id": "a"}
        assert store._build_where_clause({"document_id": ["a", "b"]}) == {
            "document_id": {"$in": ["a", "b"]}
        }
        assert store._build_where_clause({"document_id": "a", "category": "db"}) == {
            "$and": [{"document_id": "a"}, {"category": "db"}]
        }
        assert store._build_where_clause({"document_id": None}) == {}


# ─────────────────────────────────────────────────────────────────────────────
# Catalog Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestDocumentCatalog:
    """Tests for the catalog implementations."""

    def test_in_memory_lookup(self, catalog):
        """Known ids resolve, unknown ids return None."""
        assert catalog.find_by_document_id("db_guide_md_def456").original_filename == "db_guide.md"
        assert catalog.find_by_document_id("missing") is None

    def test_json_catalog_persists(self, temp_dir: Path):
        """Records survive reloading from disk."""
        from library_rag.indexing.catalog import JsonDocumentCatalog
        from library_rag.shared.schemas import DocumentRecord

        path = temp_dir / "documents.json"
        catalog = JsonDocumentCatalog(catalog_file=path)
        catalog.register(DocumentRecord(document_id="doc_1", original_filename="manual.txt", chunks_count=4))

        reloaded = JsonDocumentCatalog(catalog_file=path)

        record = reloaded.find_by_document_id("doc_1")
        assert record.original_filename == "manual.txt"
        assert record.chunks_count == 4

    def test_json_catalog_remove(self, temp_dir: Path):
        """Removal is persisted; removing twice reports False."""
        from library_rag.indexing.catalog import JsonDocumentCatalog
        from library_rag.shared.schemas import DocumentRecord

        path = temp_dir / "documents.json"
        catalog = JsonDocumentCatalog(catalog_file=path)
        catalog.register(DocumentRecord(document_id="doc_1", original_filename="manual.txt"))

        assert catalog.remove("doc_1") is True
        assert catalog.remove("doc_1") is False
        assert JsonDocumentCatalog(catalog_file=path).list_documents() == []
