"""
Router Module - One routing decision per query.
===============================================

Orchestrates classification, retrieval, generation and the relevance gate:

    CLASSIFY ─┬─ greeting ─────────────────────────────→ GREETING
              └─ RETRIEVE ─┬─ empty ──────────────────→ GENERAL
                           └─ generate → GATE ─┬─ pass → LIBRARY
                                               └─ fail → GENERAL
    any unexpected failure ───────────────────────────→ ERROR

The streaming variant runs the same decision on a worker thread and emits
START only once a mode is committed: after the gate for the library path,
immediately for the general and greeting paths.
"""

import itertools
import threading
from typing import Iterable, Iterator, Optional

from library_rag.indexing.base import DocumentCatalog
from library_rag.rag.classifier import QuestionClassifier
from library_rag.rag.generator import AnswerGenerator
from library_rag.rag.grounding import RelevanceGate
from library_rag.rag.retriever import RetrievalCascade
from library_rag.rag.streaming import ReasoningStreamSplitter, StreamChannel
from library_rag.shared.config import (
    MessagesConfig,
    RelevanceConfig,
    Settings,
    StreamingConfig,
    get_settings,
)
from library_rag.shared.errors import GenerationFailure
from library_rag.shared.logging import get_logger, log_duration
from library_rag.shared.schemas import (
    Answer,
    Fragment,
    RetrievalResult,
    RouteType,
    StreamEvent,
)
from library_rag.shared.utils import dedupe_preserving_order, truncate_text

logger = get_logger(__name__)

_stream_ids = itertools.count(1)


class Router:
    """
    End-to-end query router.

    Example:
        >>> router = create_router()
        >>> answer = router.answer_query("What is the default MySQL port?")
        >>> print(answer.source_type, answer.sources)
        >>> for event in router.answer_query_stream("你好"):
        ...     print(event.type, event.content)
    """

    def __init__(
        self,
        cascade: RetrievalCascade,
        generator: AnswerGenerator,
        catalog: DocumentCatalog,
        classifier: Optional[QuestionClassifier] = None,
        gate: Optional[RelevanceGate] = None,
        messages: Optional[MessagesConfig] = None,
        streaming: Optional[StreamingConfig] = None,
        relevance: Optional[RelevanceConfig] = None,
    ):
        settings = get_settings()

        self.cascade = cascade
        self.generator = generator
        self.catalog = catalog
        self.relevance = relevance or settings.relevance
        self.classifier = classifier or QuestionClassifier()
        self.gate = gate or RelevanceGate(self.relevance)
        self.messages = messages or settings.messages
        self.streaming = streaming or settings.streaming

    # ─────────────────────────────────────────────────────────────────────
    # Single-shot
    # ─────────────────────────────────────────────────────────────────────

    def answer_query(self, question: str) -> Answer:
        """Answer a question, choosing library, general or greeting mode."""
        logger.info(f"Routing query: {truncate_text(question, 80)!r}")

        try:
            analysis = self.classifier.analyze(question)

            if analysis.is_greeting:
                logger.info("Route: GREETING")
                return self._greeting_answer()

            if analysis.should_retrieve:
                library_answer = self._try_library(question)
                if library_answer is not None:
                    logger.info(f"Route: LIBRARY ({len(library_answer.sources)} sources)")
                    return library_answer
            else:
                logger.info("Question does not call for retrieval")

            logger.info("Route: GENERAL")
            return self._general_answer(question)

        except Exception:
            logger.exception("Routing failed")
            return Answer(
                text=self.messages.router_apology,
                source_type=RouteType.ERROR,
                source_label=self.messages.error_label,
                relevant=False,
            )

    def _try_library(self, question: str) -> Optional[Answer]:
        """Grounded answer if retrieval and the gate both succeed, else None."""
        result = self.cascade.retrieve(question)
        if not self.gate.admits(result):
            logger.info("No usable fragments, skipping grounded generation")
            return None

        try:
            raw = self.generator.generate_grounded(question, result.fragments)
        except GenerationFailure as e:
            logger.warning(f"Grounded generation failed, falling back to general: {e}")
            return None

        verdict = self.gate.evaluate(raw)
        if not verdict.passed:
            return None

        return Answer(
            text=verdict.answer,
            sources=self.resolve_sources(result.fragments),
            source_type=RouteType.LIBRARY,
            source_label=self.messages.library_label,
            relevant=True,
        )

    def _general_answer(self, question: str) -> Answer:
        try:
            text = self.generator.generate_general(question)
        except GenerationFailure as e:
            logger.error(f"General generation failed: {e}")
            return Answer(
                text=self.messages.general_apology,
                source_type=RouteType.GENERAL,
                source_label=self.messages.general_label,
                relevant=False,
            )

        return Answer(
            text=text,
            source_type=RouteType.GENERAL,
            source_label=self.messages.general_label,
            note=self.messages.general_note,
            relevant=True,
        )

    def _greeting_answer(self) -> Answer:
        return Answer(
            text=self.messages.greeting_reply,
            source_type=RouteType.GREETING,
            source_label=self.messages.greeting_label,
            relevant=True,
        )

    def resolve_sources(self, fragments: list[Fragment]) -> list[str]:
        """Map fragments to original filenames, skipping unknown documents."""
        names: list[str] = []
        for document_id in dedupe_preserving_order(f.source_document_id for f in fragments):
            record = self.catalog.find_by_document_id(document_id)
            if record is None:
                logger.warning(f"No catalog record for document {document_id}, skipping source")
                continue
            names.append(record.original_filename)
        return dedupe_preserving_order(names)

    # ─────────────────────────────────────────────────────────────────────
    # Streaming
    # ─────────────────────────────────────────────────────────────────────

    def answer_query_stream(self, question: str) -> Iterator[StreamEvent]:
        """Stream events for a question; ends with exactly one END or ERROR."""
        return self.open_stream(question).events()

    def open_stream(self, question: str) -> StreamChannel:
        """
        Start a streaming worker and return its channel.

        Callers that need to cancel (client disconnect) keep the channel and
        call cancel(); others just iterate channel.events().
        """
        channel = StreamChannel(
            timeout_seconds=self.streaming.timeout_seconds,
            timeout_message=self.messages.timeout,
        )
        stream_id = next(_stream_ids)
        worker = threading.Thread(
            target=self._run_stream,
            args=(question, channel),
            daemon=True,
            name=f"answer-stream-{stream_id}",
        )
        channel.producer = worker
        worker.start()
        logger.debug(f"Started stream worker {worker.name}")
        return channel

    def _run_stream(self, question: str, channel: StreamChannel) -> None:
        logger.info(f"Routing stream query: {truncate_text(question, 80)!r}")

        try:
            analysis = self.classifier.analyze(question)

            if analysis.is_greeting:
                logger.info("Stream route: GREETING")
                channel.emit(StreamEvent.start(RouteType.GREETING.value))
                channel.emit(StreamEvent.chunk(self.messages.greeting_reply))
                channel.complete()
                return

            if analysis.should_retrieve and self._stream_library(question, channel):
                return

            logger.info("Stream route: GENERAL")
            self._stream_general(question, channel)

        except Exception:
            logger.exception("Streaming failed")
            channel.fail(self.messages.router_apology)

    def _stream_library(self, question: str, channel: StreamChannel) -> bool:
        """Stream a grounded answer if the precheck passes; False means fall back."""
        result = self.cascade.retrieve(question)
        if not self.gate.admits(result):
            logger.info("No usable fragments, streaming general answer instead")
            return False

        if not self._precheck(question, result):
            return False

        logger.info("Stream route: LIBRARY")
        if not channel.emit(StreamEvent.start(RouteType.LIBRARY.value)):
            logger.info("Stream closed during precheck, not generating")
            return True
        sources = self.resolve_sources(result.fragments)

        if not self._forward(self.generator.stream_grounded(question, result.fragments), channel):
            return True

        channel.emit(StreamEvent.source(sources))
        channel.complete()
        return True

    def _precheck(self, question: str, result: RetrievalResult) -> bool:
        """Generate once without streaming and gate it before committing."""
        try:
            with log_duration(logger, "Stream precheck"):
                raw = self.generator.generate_grounded(question, result.fragments)
        except GenerationFailure as e:
            logger.warning(f"Precheck generation failed, falling back to general: {e}")
            return False
        return self.gate.evaluate(raw).passed

    def _stream_general(self, question: str, channel: StreamChannel) -> None:
        if not channel.emit(StreamEvent.start(RouteType.GENERAL.value)):
            logger.info("Stream closed before general generation started")
            return
        if not self._forward(self.generator.stream_general(question), channel):
            return
        channel.emit(StreamEvent.with_note(self.messages.general_note))
        channel.complete()

    def _forward(self, deltas: Iterable[str], channel: StreamChannel) -> bool:
        """
        Push deltas into the channel as events.

        Returns:
            False if the channel closed (disconnect or timeout) before the
            model finished
        """
        splitter = (
            ReasoningStreamSplitter(
                self.relevance.reasoning_start_marker, self.relevance.reasoning_end_marker
            )
            if self.streaming.split_reasoning
            else None
        )

        iterator = iter(deltas)
        try:
            for delta in iterator:
                if channel.closed:
                    logger.info("Stream closed, stopping forwarding")
                    return False
                events = splitter.feed(delta) if splitter else [StreamEvent.chunk(delta)]
                for event in events:
                    channel.emit(event)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

        if splitter:
            for event in splitter.flush():
                channel.emit(event)
        return not channel.closed


# ─────────────────────────────────────────────────────────────────────────────
# Factory Function
# ─────────────────────────────────────────────────────────────────────────────


def create_router(settings: Optional[Settings] = None) -> Router:
    """
    Build a router over the persistent Chroma index, the JSON catalog and
    the Gemini model.
    """
    from library_rag.indexing.catalog import JsonDocumentCatalog
    from library_rag.indexing.vector_store import create_vector_store
    from library_rag.rag.context import ContextAssembler
    from library_rag.rag.content_filter import ContentFilter
    from library_rag.rag.llm import create_language_model

    settings = settings or get_settings()

    store = create_vector_store()
    cascade = RetrievalCascade(
        vector_index=store,
        keyword_index=store,
        content_filter=ContentFilter(settings.content_filter),
        config=settings.retrieval,
    )
    generator = AnswerGenerator(
        llm=create_language_model(),
        assembler=ContextAssembler(settings.context),
        config=settings.generation,
        messages=settings.messages,
        retriever=cascade,
    )
    return Router(
        cascade=cascade,
        generator=generator,
        catalog=JsonDocumentCatalog(),
        classifier=QuestionClassifier(settings.classifier),
        gate=RelevanceGate(settings.relevance),
        messages=settings.messages,
        streaming=settings.streaming,
        relevance=settings.relevance,
    )
