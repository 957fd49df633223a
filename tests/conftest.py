"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Sample fragments and catalog records
- Fake vector / keyword indexes that honour thresholds and record calls
- A scripted fake language model
- Default configuration objects
"""

import tempfile
from pathlib import Path
from typing import Any, Callable, Generator, Iterator, Optional, Union

import pytest

from library_rag.indexing.base import KeywordIndex, VectorIndex
from library_rag.indexing.catalog import InMemoryDocumentCatalog
from library_rag.rag.llm import LanguageModel
from library_rag.shared.config import (
    ClassifierConfig,
    ContentFilterConfig,
    ContextConfig,
    GenerationConfig,
    MessagesConfig,
    RelevanceConfig,
    RetrievalConfig,
    StreamingConfig,
)
from library_rag.shared.errors import RetrievalFailure
from library_rag.shared.schemas import DocumentRecord, Fragment, ScoredFragment


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return project_root / "config" / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────────────────────────────


class FakeVectorIndex(VectorIndex):
    """
    In-memory vector index with scripted scores.

    Each stored fragment has a fixed score for every query. search() honours
    threshold and top_k exactly like a real index and records every call.
    """

    def __init__(self, scored: Optional[list[tuple[Fragment, float]]] = None, fail: bool = False):
        self.entries: list[tuple[Fragment, float]] = list(scored or [])
        self.fail = fail
        self.search_calls: list[dict[str, Any]] = []
        self.deleted: list[dict[str, Any]] = []
        self.fail_on_ids: set[str] = set()

    def search(self, query, top_k, threshold=None, metadata_filter=None):
        self.search_calls.append({"query": query, "top_k": top_k, "threshold": threshold})
        if self.fail:
            raise RetrievalFailure("index unavailable")

        ranked = sorted(self.entries, key=lambda entry: entry[1], reverse=True)
        hits = [ScoredFragment(fragment=f, score=s) for f, s in ranked[:top_k]]
        if threshold is not None:
            hits = [hit for hit in hits if hit.score >= threshold]
        return hits

    def add(self, fragments):
        for fragment in fragments:
            if fragment.id in self.fail_on_ids:
                raise RetrievalFailure(f"cannot index {fragment.id}")
            self.entries.append((fragment, 0.5))
        return len(fragments)

    def delete(self, metadata_filter):
        self.deleted.append(metadata_filter)
        document_id = metadata_filter.get("document_id")
        self.entries = [e for e in self.entries if e[0].source_document_id != document_id]


class FakeKeywordIndex(KeywordIndex):
    """Substring search over a fixed fragment list."""

    def __init__(self, fragments: Optional[list[Fragment]] = None, failing: Optional[set[str]] = None):
        self.fragments = list(fragments or [])
        self.failing = failing or set()
        self.calls: list[str] = []

    def find_by_content_containing(self, substring, page_limit):
        self.calls.append(substring)
        if substring in self.failing:
            raise RetrievalFailure(f"keyword search for {substring} failed")
        return [f for f in self.fragments if substring in f.text][:page_limit]


Reply = Union[str, Exception]


class FakeLanguageModel(LanguageModel):
    """
    Scripted model.

    `complete` replies are consumed in order (the last one repeats); a
    callable reply receives the prompt. An Exception reply is raised.
    `stream_deltas` is yielded by stream(), raising `stream_error` at the end
    if set.
    """

    def __init__(
        self,
        replies: Optional[list[Union[Reply, Callable[[str], Reply]]]] = None,
        stream_deltas: Optional[list[str]] = None,
        stream_error: Optional[Exception] = None,
    ):
        self.replies = list(replies or ["默认回答"])
        self.stream_deltas = list(stream_deltas or [])
        self.stream_error = stream_error
        self.prompts: list[str] = []
        self.stream_prompts: list[str] = []

    @property
    def model_name(self) -> str:
        return "fake-model"

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(prompt)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def stream(self, prompt: str) -> Iterator[str]:
        self.stream_prompts.append(prompt)
        for delta in self.stream_deltas:
            yield delta
        if self.stream_error is not None:
            raise self.stream_error


# ─────────────────────────────────────────────────────────────────────────────
# Sample Data Fixtures
# ─────────────────────────────────────────────────────────────────────────────


def make_fragment(
    fragment_id: str,
    text: str,
    document_id: str = "mysql_manual_txt_abc123",
    chunk_index: int = 0,
) -> Fragment:
    """Build a Fragment with sensible defaults."""
    return Fragment(
        id=fragment_id,
        source_document_id=document_id,
        text=text,
        chunk_index=chunk_index,
        start_offset=0,
        end_offset=len(text),
    )


MYSQL_PORT_TEXT = (
    "MySQL服务器的配置说明：MySQL默认端口是3306，客户端连接时如果没有指定端口，"
    "就会使用这个默认值。修改端口需要编辑my.cnf配置文件。"
)

MYSQL_ANSWER = "根据文档内容，MySQL的默认端口是3306。客户端在没有指定端口时会自动使用这个端口进行连接。"


@pytest.fixture
def mysql_fragment() -> Fragment:
    """A fragment that answers the default-port question."""
    return make_fragment("mysql_manual_txt_abc123_0", MYSQL_PORT_TEXT)


@pytest.fixture
def sample_fragments() -> list[Fragment]:
    """Five substantive fragments from two documents."""
    return [
        make_fragment(
            f"doc_{i}",
            f"第{i}节：数据库索引是一种数据结构，用于加快查询速度，例如B树索引。",
            document_id="db_guide_md_def456" if i % 2 else "mysql_manual_txt_abc123",
            chunk_index=i,
        )
        for i in range(5)
    ]


@pytest.fixture
def catalog() -> InMemoryDocumentCatalog:
    """Catalog knowing the two sample documents."""
    return InMemoryDocumentCatalog([
        DocumentRecord(document_id="mysql_manual_txt_abc123", original_filename="mysql_manual.txt"),
        DocumentRecord(document_id="db_guide_md_def456", original_filename="db_guide.md"),
    ])


# ─────────────────────────────────────────────────────────────────────────────
# Configuration Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def retrieval_config() -> RetrievalConfig:
    return RetrievalConfig()


@pytest.fixture
def content_filter_config() -> ContentFilterConfig:
    return ContentFilterConfig()


@pytest.fixture
def classifier_config() -> ClassifierConfig:
    return ClassifierConfig()


@pytest.fixture
def context_config() -> ContextConfig:
    return ContextConfig()


@pytest.fixture
def generation_config() -> GenerationConfig:
    return GenerationConfig()


@pytest.fixture
def relevance_config() -> RelevanceConfig:
    return RelevanceConfig()


@pytest.fixture
def messages() -> MessagesConfig:
    return MessagesConfig()


@pytest.fixture
def streaming_config() -> StreamingConfig:
    return StreamingConfig(timeout_seconds=5.0)


# ─────────────────────────────────────────────────────────────────────────────
# Router Builder
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def build_router(catalog, streaming_config):
    """
    Factory for a Router wired to fakes.

    Usage:
        router, index, llm = build_router(scored=[(fragment, 0.9)], replies=[...])
    """
    from library_rag.rag.content_filter import ContentFilter
    from library_rag.rag.generator import AnswerGenerator
    from library_rag.rag.retriever import RetrievalCascade
    from library_rag.rag.router import Router

    def _build(
        scored: Optional[list[tuple[Fragment, float]]] = None,
        keyword_fragments: Optional[list[Fragment]] = None,
        llm: Optional[FakeLanguageModel] = None,
        streaming: Optional[StreamingConfig] = None,
        generation: Optional[GenerationConfig] = None,
        index_fails: bool = False,
    ):
        index = FakeVectorIndex(scored, fail=index_fails)
        llm = llm or FakeLanguageModel()
        cascade = RetrievalCascade(
            vector_index=index,
            keyword_index=FakeKeywordIndex(keyword_fragments),
            content_filter=ContentFilter(ContentFilterConfig()),
            config=RetrievalConfig(),
        )
        generator = AnswerGenerator(
            llm=llm,
            config=generation or GenerationConfig(),
            messages=MessagesConfig(),
            retriever=cascade,
        )
        router = Router(
            cascade=cascade,
            generator=generator,
            catalog=catalog,
            messages=MessagesConfig(),
            streaming=streaming or streaming_config,
            relevance=RelevanceConfig(),
        )
        return router, index, llm

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_api: marks tests that require API keys"
    )


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset the cached settings between tests."""
    from library_rag.shared.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
