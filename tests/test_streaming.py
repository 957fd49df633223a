"""
Tests for Streaming.
====================

Tests for:
- StreamChannel: Ordering, single terminal event, cancel, timeout
- ReasoningStreamSplitter: THINKING / ANSWER_START / CHUNK routing
- Router streaming: Event sequences for every route
"""

import json
import threading

import pytest

from tests.conftest import MYSQL_ANSWER, FakeLanguageModel


def event_types(events) -> list[str]:
    return [event.type.value for event in events]


# ─────────────────────────────────────────────────────────────────────────────
# Stream Channel Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestStreamChannel:
    """Tests for the single-writer event channel."""

    def test_events_in_order_until_terminal(self):
        from library_rag.rag.streaming import StreamChannel
        from library_rag.shared.schemas import StreamEvent

        channel = StreamChannel()
        channel.emit(StreamEvent.start("general"))
        channel.emit(StreamEvent.chunk("你"))
        channel.emit(StreamEvent.chunk("好"))
        channel.complete()

        assert event_types(channel.drain()) == ["start", "chunk", "chunk", "end"]

    def test_writes_after_close_are_noops(self):
        """Only the first terminal event is kept; later writes report False."""
        from library_rag.rag.streaming import StreamChannel
        from library_rag.shared.schemas import StreamEvent

        channel = StreamChannel()
        channel.emit(StreamEvent.start("general"))

        assert channel.complete() is True
        assert channel.closed
        assert channel.emit(StreamEvent.chunk("late")) is False
        assert channel.fail("too late") is False
        assert channel.complete() is False

        events = channel.drain()
        assert event_types(events) == ["start", "end"]
        assert events[-1].done

    def test_error_is_terminal(self):
        from library_rag.rag.streaming import StreamChannel

        channel = StreamChannel()
        channel.fail("出错了")

        events = channel.drain()
        assert event_types(events) == ["error"]
        assert events[0].error == "出错了"
        assert events[0].done

    def test_leaving_early_cancels(self):
        """Closing the iterator before the terminal event counts as a disconnect."""
        from library_rag.rag.streaming import StreamChannel
        from library_rag.shared.schemas import StreamEvent

        channel = StreamChannel()
        channel.emit(StreamEvent.start("general"))
        channel.emit(StreamEvent.chunk("部分"))

        events = channel.events()
        next(events)
        events.close()

        assert channel.cancelled
        assert channel.emit(StreamEvent.chunk("more")) is False

    def test_timeout_emits_error(self):
        """No terminal event before the deadline yields exactly one ERROR."""
        from library_rag.rag.streaming import StreamChannel
        from library_rag.shared.schemas import StreamEvent

        channel = StreamChannel(timeout_seconds=0.05, timeout_message="回答超时")
        channel.emit(StreamEvent.start("general"))

        events = channel.drain()

        assert event_types(events) == ["start", "error"]
        assert events[-1].error == "回答超时"
        assert channel.complete() is False

    def test_blocked_reader_receives_events_from_another_thread(self):
        from library_rag.rag.streaming import StreamChannel
        from library_rag.shared.schemas import StreamEvent

        channel = StreamChannel(timeout_seconds=5)

        def produce():
            channel.emit(StreamEvent.start("general"))
            channel.emit(StreamEvent.chunk("异步"))
            channel.complete()

        producer = threading.Thread(target=produce)
        producer.start()
        events = channel.drain()
        producer.join()

        assert event_types(events) == ["start", "chunk", "end"]

    def test_to_sse(self):
        """Events render as 'data: {json}' lines with unescaped text."""
        from library_rag.shared.schemas import StreamEvent

        line = StreamEvent.chunk("端口3306").to_sse()

        assert line.startswith("data: ")
        assert line.endswith("\n\n")
        assert "端口3306" in line
        payload = json.loads(line[len("data: "):])
        assert payload == {"type": "chunk", "content": "端口3306", "done": False}

    @pytest.mark.parametrize("event_type,done", [
        ("chunk", True),
        ("start", True),
        ("end", False),
        ("error", False),
    ])
    def test_done_flag_must_match_terminal_type(self, event_type, done):
        """done is True exactly on END and ERROR, even when built directly."""
        from pydantic import ValidationError

        from library_rag.shared.schemas import StreamEvent

        with pytest.raises(ValidationError):
            StreamEvent(type=event_type, done=done)

    def test_constructors_satisfy_done_rule(self):
        from library_rag.shared.schemas import StreamEvent

        assert StreamEvent.end().done
        assert StreamEvent.failure("x").done
        assert not StreamEvent(type="note", note="提示").done


# ─────────────────────────────────────────────────────────────────────────────
# Delta Cleaning & Splitter Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestReasoningStreamSplitter:
    """Tests for routing reasoning deltas."""

    @pytest.fixture
    def splitter(self):
        from library_rag.rag.streaming import ReasoningStreamSplitter
        return ReasoningStreamSplitter()

    def test_marker_split_across_deltas(self, splitter):
        events = splitter.feed("<think>查一下</thi") + splitter.feed("nk>端口是3306") + splitter.flush()

        assert event_types(events) == ["thinking", "answer_start", "chunk"]
        assert events[0].content == "查一下"
        assert events[2].content == "端口是3306"

    def test_plain_deltas_pass_through(self, splitter):
        events = splitter.feed("默认") + splitter.feed("端口") + splitter.flush()

        assert event_types(events) == ["chunk", "chunk"]
        assert not splitter.answer_started

    def test_partial_start_marker_is_released(self, splitter):
        """A held-back '<' that turns out not to be a marker is emitted as text."""
        events = splitter.feed("答案<") + splitter.feed("b>粗体") + splitter.flush()

        assert "".join(e.content for e in events) == "答案<b>粗体"
        assert set(event_types(events)) == {"chunk"}

    def test_answer_start_emitted_once(self, splitter):
        events = splitter.feed("<think>a</think>b<think>c</think>d") + splitter.flush()

        assert event_types(events) == ["thinking", "answer_start", "chunk", "thinking", "chunk"]

    def test_leading_whitespace_after_reasoning_trimmed(self, splitter):
        events = splitter.feed("<think>想</think>") + splitter.feed("\n\n") + splitter.feed("答案")

        assert events[-1].content == "答案"
        assert event_types(events) == ["thinking", "answer_start", "chunk"]

    @pytest.mark.parametrize("delta,expected", [
        ("[思考]内部推理[/思考]答案", "答案"),
        ("思考：", None),
        ("   ", None),
        ("", None),
        ("正文", "正文"),
    ])
    def test_clean_delta(self, delta, expected):
        from library_rag.rag.streaming import clean_delta

        assert clean_delta(delta) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Router Streaming Tests
# ─────────────────────────────────────────────────────────────────────────────


class BlockingLanguageModel(FakeLanguageModel):
    """Stream that waits for the test to release it and counts pulled deltas."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = threading.Event()
        self.pulled = 0

    def stream(self, prompt):
        self.stream_prompts.append(prompt)
        self.release.wait(timeout=5)
        for delta in self.stream_deltas:
            self.pulled += 1
            yield delta


class TestRouterStreaming:
    """End-to-end streaming over fakes."""

    def test_greeting_stream(self, build_router, mysql_fragment):
        router, index, _ = build_router(scored=[(mysql_fragment, 0.9)])

        events = list(router.answer_query_stream("你好"))

        assert event_types(events) == ["start", "chunk", "end"]
        assert events[0].source_type == "greeting"
        assert index.search_calls == []

    def test_library_stream_sequence(self, build_router, mysql_fragment):
        """START(library) comes only after the precheck passes, SOURCE before END."""
        llm = FakeLanguageModel(
            [MYSQL_ANSWER],
            stream_deltas=["<think>检查文档</think>", "MySQL默认端口", "是3306。"],
        )
        router, _, _ = build_router(scored=[(mysql_fragment, 0.9)], llm=llm)

        events = list(router.answer_query_stream("MySQL默认端口是多少？"))

        assert event_types(events) == [
            "start", "thinking", "answer_start", "chunk", "chunk", "source", "end",
        ]
        assert events[0].source_type == "library"
        assert events[-2].sources == ["mysql_manual.txt"]
        assert len(llm.prompts) == 1
        assert mysql_fragment.text in llm.stream_prompts[0]

    def test_failed_precheck_streams_general(self, build_router, mysql_fragment):
        """A gated-out precheck never emits START(library)."""
        llm = FakeLanguageModel(["抱歉，文档中没有找到相关信息。"], stream_deltas=["通用", "回答"])
        router, _, _ = build_router(scored=[(mysql_fragment, 0.9)], llm=llm)

        events = list(router.answer_query_stream("MySQL默认端口是多少？"))

        assert event_types(events) == ["start", "chunk", "chunk", "note", "end"]
        assert events[0].source_type == "general"
        assert events[3].note == "此回答基于AI的通用知识，建议查阅相关专业资料进行验证"

    def test_empty_corpus_streams_general(self, build_router):
        llm = FakeLanguageModel(stream_deltas=["通用回答"])
        router, _, _ = build_router(llm=llm)

        events = list(router.answer_query_stream("什么是数据库索引？"))

        assert events[0].source_type == "general"
        assert events[-1].type.value == "end"
        assert llm.prompts == []

    def test_model_failure_mid_stream_is_single_error(self, build_router):
        """A failure after some chunks ends the stream with one ERROR."""
        from library_rag.shared.errors import GenerationFailure

        llm = FakeLanguageModel(stream_deltas=["部分"], stream_error=GenerationFailure("down"))
        router, _, _ = build_router(llm=llm)

        events = list(router.answer_query_stream("什么是数据库索引？"))

        assert event_types(events) == ["start", "chunk", "error"]
        assert events[-1].error == "抱歉，处理您的问题时发生了错误，请稍后重试。"

    @pytest.mark.parametrize("question", ["你好", "MySQL默认端口是多少？", "帮我写一首诗", "什么是索引？"])
    def test_exactly_one_terminal_event(self, build_router, mysql_fragment, question):
        llm = FakeLanguageModel([MYSQL_ANSWER], stream_deltas=["a", "b"])
        router, _, _ = build_router(scored=[(mysql_fragment, 0.9)], llm=llm)

        channel = router.open_stream(question)
        events = channel.drain()

        terminal = [e for e in events if e.is_terminal]
        assert len(terminal) == 1
        assert events[-1].is_terminal
        assert channel.closed

    def test_stream_timeout(self, build_router):
        """A stalled model produces a timeout ERROR and nothing after it."""
        from library_rag.shared.config import StreamingConfig

        llm = BlockingLanguageModel(stream_deltas=["迟到的内容"])
        router, _, _ = build_router(llm=llm, streaming=StreamingConfig(timeout_seconds=0.2))

        try:
            events = list(router.answer_query_stream("什么是数据库索引？"))
        finally:
            llm.release.set()

        assert event_types(events) == ["start", "error"]
        assert events[-1].error == "抱歉，回答超时，请稍后重试。"

    def test_timeout_stops_worker(self, build_router):
        """After the timeout ERROR the worker stops pulling model deltas."""
        from library_rag.shared.config import StreamingConfig

        llm = BlockingLanguageModel(stream_deltas=[f"第{i}段" for i in range(50)])
        router, _, _ = build_router(llm=llm, streaming=StreamingConfig(timeout_seconds=0.2))

        channel = router.open_stream("什么是数据库索引？")
        try:
            events = channel.drain()
        finally:
            llm.release.set()

        assert channel.join(timeout=5)
        assert event_types(events) == ["start", "error"]
        assert llm.pulled <= 1

    def test_client_disconnect_cancels_worker(self, build_router):
        """Leaving the stream early cancels the channel and stops the worker."""
        llm = BlockingLanguageModel(stream_deltas=[f"第{i}段" for i in range(50)])
        router, _, _ = build_router(llm=llm)

        channel = router.open_stream("什么是数据库索引？")
        events = channel.events()
        first = next(events)
        events.close()
        llm.release.set()

        assert channel.join(timeout=5)
        assert first.type.value == "start"
        assert channel.cancelled
        assert llm.pulled <= 1

    def test_join_without_producer(self):
        from library_rag.rag.streaming import StreamChannel

        assert StreamChannel().join(timeout=0.1) is True

    def test_reasoning_split_disabled(self, build_router):
        """With splitting off, markers pass through as chunk text."""
        from library_rag.shared.config import StreamingConfig

        llm = FakeLanguageModel(stream_deltas=["<think>x</think>", "答案"])
        router, _, _ = build_router(
            llm=llm, streaming=StreamingConfig(timeout_seconds=5, split_reasoning=False)
        )

        events = list(router.answer_query_stream("帮我写一首诗"))

        assert event_types(events) == ["start", "chunk", "chunk", "note", "end"]
        assert events[1].content == "<think>x</think>"
