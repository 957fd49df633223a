"""
Streaming Module - Event channel and reasoning-aware delta handling.
====================================================================

- StreamChannel: the single shared object between a streaming worker and
  the consumer. Writes are serialized; the first END or ERROR closes the
  channel and every later write is a silent no-op.
- ReasoningStreamSplitter: turns raw model deltas into CHUNK, THINKING and
  ANSWER_START events, coping with markers split across deltas.
- clean_delta: strips bracketed reasoning labels and drops empty deltas.
"""

import queue
import re
import threading
import time
from typing import Iterator, Optional, Union

from library_rag.shared.logging import get_logger
from library_rag.shared.schemas import StreamEvent

logger = get_logger(__name__)

# Queued when the consumer goes away, so a blocked reader wakes up
_CLOSED = object()

DEFAULT_TIMEOUT_MESSAGE = "抱歉，回答超时，请稍后重试。"


# ─────────────────────────────────────────────────────────────────────────────
# Stream Channel
# ─────────────────────────────────────────────────────────────────────────────


class StreamChannel:
    """
    Ordered, single-writer event channel with an at-most-once terminal event.

    The producer calls emit()/complete()/fail(); the consumer iterates
    events(). Leaving events() early counts as a client disconnect and
    cancels the channel.

    Example:
        >>> channel = StreamChannel()
        >>> channel.emit(StreamEvent.start("general"))
        True
        >>> channel.complete()
        True
        >>> channel.emit(StreamEvent.chunk("late"))
        False
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        timeout_message: str = DEFAULT_TIMEOUT_MESSAGE,
    ):
        self.timeout_seconds = timeout_seconds
        self.timeout_message = timeout_message

        self._queue: "queue.Queue[Union[StreamEvent, object]]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._cancelled = threading.Event()
        self.producer: Optional[threading.Thread] = None

    @property
    def closed(self) -> bool:
        """Whether a terminal event has been written (or the channel cancelled)."""
        return self._closed

    @property
    def cancelled(self) -> bool:
        """Whether the consumer disconnected."""
        return self._cancelled.is_set()

    def emit(self, event: StreamEvent) -> bool:
        """
        Write one event.

        Returns:
            False if the channel was already closed and the event was dropped
        """
        with self._lock:
            if self._closed:
                logger.debug(f"Dropped {event.type.value} event after stream close")
                return False
            if event.is_terminal:
                self._closed = True
            self._queue.put(event)
            return True

    def complete(self) -> bool:
        """Write END."""
        return self.emit(StreamEvent.end())

    def fail(self, message: str) -> bool:
        """Write ERROR with a user-facing message."""
        return self.emit(StreamEvent.failure(message))

    def cancel(self) -> None:
        """Stop accepting events; the producer should notice and stop."""
        self._cancelled.set()
        with self._lock:
            self._closed = True
        self._queue.put(_CLOSED)

    def events(self) -> Iterator[StreamEvent]:
        """
        Yield events in order until the terminal one.

        If no terminal event arrives within timeout_seconds, ERROR is
        emitted and yielded, and the stream ends.
        """
        deadline = (
            time.monotonic() + self.timeout_seconds if self.timeout_seconds is not None else None
        )
        finished = False

        try:
            while True:
                wait: Optional[float] = None
                if deadline is not None:
                    wait = deadline - time.monotonic()
                    if wait <= 0:
                        logger.warning(f"Stream timed out after {self.timeout_seconds}s")
                        self.fail(self.timeout_message)
                        deadline = None
                        continue

                try:
                    item = self._queue.get(timeout=wait)
                except queue.Empty:
                    continue

                if item is _CLOSED:
                    finished = True
                    return

                yield item  # type: ignore[misc]
                if item.is_terminal:  # type: ignore[attr-defined]
                    finished = True
                    return
        finally:
            if not finished:
                logger.info("Stream consumer disconnected, cancelling")
                self.cancel()

    def drain(self) -> list[StreamEvent]:
        """Consume the whole stream into a list."""
        return list(self.events())

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the producer thread to exit.

        Returns:
            True if there is no producer or it has finished
        """
        if self.producer is None:
            return True
        self.producer.join(timeout)
        return not self.producer.is_alive()


# ─────────────────────────────────────────────────────────────────────────────
# Delta Cleaning
# ─────────────────────────────────────────────────────────────────────────────


BRACKETED_REASONING = re.compile(r"\[思考\].*?\[/思考\]", re.DOTALL)
BRACKET_MARKERS = re.compile(r"\[/?思考\]")
EMPTY_REASONING_LABELS = ("思考：", "思考:")


def clean_delta(delta: Optional[str]) -> Optional[str]:
    """
    Clean one model delta before forwarding.

    Returns:
        The cleaned delta, or None if nothing worth sending remains
    """
    if not delta:
        return None

    cleaned = BRACKETED_REASONING.sub("", delta)
    cleaned = BRACKET_MARKERS.sub("", cleaned)

    stripped = cleaned.strip()
    if not stripped or stripped in EMPTY_REASONING_LABELS:
        return None
    return cleaned


# ─────────────────────────────────────────────────────────────────────────────
# Reasoning Stream Splitter
# ─────────────────────────────────────────────────────────────────────────────


def _partial_marker_length(text: str, marker: str) -> int:
    """Length of the longest proper prefix of marker that text ends with."""
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0


class ReasoningStreamSplitter:
    """
    Routes <think>…</think> content to THINKING events.

    ANSWER_START is emitted once, when the first end marker is seen. A
    delta ending in what might be the start of a marker is held back until
    the next delta decides it.

    Example:
        >>> splitter = ReasoningStreamSplitter()
        >>> events = splitter.feed("<think>查一下</thi") + splitter.feed("nk>端口是3306") + splitter.flush()
        >>> [e.type.value for e in events]
        ['thinking', 'answer_start', 'chunk']
    """

    def __init__(self, start_marker: str = "<think>", end_marker: str = "</think>"):
        self.start_marker = start_marker
        self.end_marker = end_marker
        self._buffer = ""
        self._in_reasoning = False
        self._answer_started = False
        self._trim_leading = False

    @property
    def answer_started(self) -> bool:
        return self._answer_started

    def feed(self, delta: str) -> list[StreamEvent]:
        """Process one delta and return the events it completes."""
        events: list[StreamEvent] = []
        text = self._buffer + (delta or "")
        self._buffer = ""

        while text:
            if self._in_reasoning:
                index = text.find(self.end_marker)
                if index != -1:
                    self._emit(events, text[:index], thinking=True)
                    self._in_reasoning = False
                    if not self._answer_started:
                        self._answer_started = True
                        events.append(StreamEvent.answer_start())
                    self._trim_leading = True
                    text = text[index + len(self.end_marker):]
                    continue
                keep = _partial_marker_length(text, self.end_marker)
                self._emit(events, text[: len(text) - keep], thinking=True)
                self._buffer = text[len(text) - keep:]
                break

            if self._trim_leading:
                text = text.lstrip()
                if not text:
                    break
                self._trim_leading = False

            index = text.find(self.start_marker)
            if index != -1:
                self._emit(events, text[:index], thinking=False)
                self._in_reasoning = True
                text = text[index + len(self.start_marker):]
                continue
            keep = _partial_marker_length(text, self.start_marker)
            self._emit(events, text[: len(text) - keep], thinking=False)
            self._buffer = text[len(text) - keep:]
            break

        return events

    def flush(self) -> list[StreamEvent]:
        """Release any held-back text at the end of the stream."""
        events: list[StreamEvent] = []
        if self._buffer:
            self._emit(events, self._buffer, thinking=self._in_reasoning)
            self._buffer = ""
        return events

    @staticmethod
    def _emit(events: list[StreamEvent], text: str, thinking: bool) -> None:
        if not text:
            return
        events.append(StreamEvent.thinking(text) if thinking else StreamEvent.chunk(text))
