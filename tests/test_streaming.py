# SPDX-License-Identifier: Apache-2.0
"""Tests for snapshot diffing and the bounded producer/consumer channel."""

import asyncio
import json

import pytest

from fmgate.api.schema import parse_schema_node
from fmgate.engine import EngineResult, GuardrailViolation, ToolInvocation
from fmgate.engine.content import GeneratedContent
from fmgate.failures import FinishReason
from fmgate.streaming import (
    StreamDiffer,
    StructuredStreamDiffer,
    bounded_channel,
    diff_snapshots,
)


def _call(i):
    return ToolInvocation(id=f"call_{i}", name="lookup", arguments=f'{{"i": {i}}}')


async def _collect(iterator):
    return [item async for item in iterator]


class TestStreamDiffer:
    def test_text_suffixes(self):
        differ = StreamDiffer()
        assert differ.feed(EngineResult(text="Hel")).content == "Hel"
        assert differ.feed(EngineResult(text="Hello")).content == "lo"
        assert differ.feed(EngineResult(text="Hello")).content is None
        assert differ.finish().finish_reason is FinishReason.STOP

    def test_only_new_tool_calls_are_emitted(self):
        differ = StreamDiffer()
        first = differ.feed(EngineResult(tool_calls=()))
        second = differ.feed(EngineResult(tool_calls=(_call(0),)))
        third = differ.feed(EngineResult(tool_calls=(_call(0),)))
        fourth = differ.feed(EngineResult(tool_calls=(_call(0), _call(1))))

        assert first.tool_calls is None
        assert [(d.index, d.id) for d in second.tool_calls] == [(0, "call_0")]
        assert third.tool_calls is None
        assert [(d.index, d.id) for d in fourth.tool_calls] == [(1, "call_1")]
        assert differ.finish().finish_reason is FinishReason.TOOL_CALLS

    def test_chunks_never_carry_finish_reason(self):
        differ = StreamDiffer()
        assert differ.feed(EngineResult(text="a")).finish_reason is None

    def test_structured_differ_sends_full_documents(self):
        node = parse_schema_node(
            {
                "type": "object",
                "properties": {"a": {"type": "integer"}, "b": {"type": "string"}},
            }
        )
        differ = StructuredStreamDiffer(node)
        first = differ.feed(EngineResult(content=GeneratedContent({"a": 1})))
        second = differ.feed(EngineResult(content=GeneratedContent({"a": 1, "b": "x"})))
        assert json.loads(first.content) == {"a": 1}
        assert json.loads(second.content) == {"a": 1, "b": "x"}
        assert differ.feed(EngineResult(text='{"a": 1, "b"')).content is None

    def test_structured_differ_decodes_text_only_snapshots(self):
        node = parse_schema_node(
            {"type": "object", "properties": {"a": {"type": "integer"}}}
        )
        differ = StructuredStreamDiffer(node)
        assert differ.feed(EngineResult(text='{"a"')).content is None
        assert json.loads(differ.feed(EngineResult(text='{"a": 2}')).content) == {"a": 2}


class TestDiffSnapshots:
    @pytest.mark.asyncio
    async def test_terminal_chunk_follows_snapshots(self, make_engine):
        engine = make_engine(
            snapshots=[EngineResult(text="Hel"), EngineResult(text="Hello")]
        )
        chunks = await _collect(diff_snapshots(engine.stream_response("x"), StreamDiffer()))
        assert [c.content for c in chunks] == ["Hel", "lo", None]
        assert [c.finish_reason for c in chunks] == [None, None, FinishReason.STOP]
        assert engine.stream_closed

    @pytest.mark.asyncio
    async def test_mid_stream_failure_ends_stream(self, make_engine):
        engine = make_engine(
            snapshots=[EngineResult(text="a"), EngineResult(text="ab")],
            error=GuardrailViolation("blocked"),
            fail_after=1,
        )
        chunks = await _collect(diff_snapshots(engine.stream_response("x"), StreamDiffer()))
        assert [c.content for c in chunks] == ["a", None]
        assert chunks[-1].finish_reason is FinishReason.CONTENT_FILTER
        assert engine.stream_closed

    @pytest.mark.asyncio
    async def test_failure_before_first_snapshot(self, make_engine):
        engine = make_engine(error=RuntimeError("boom"))
        chunks = await _collect(diff_snapshots(engine.stream_response("x"), StreamDiffer()))
        assert len(chunks) == 1
        assert chunks[0].finish_reason is FinishReason.ERROR
        assert "boom" in chunks[0].content


class TestBoundedChannel:
    @pytest.mark.asyncio
    async def test_items_pass_through_in_order(self):
        async def source():
            for i in range(5):
                yield i

        assert await _collect(bounded_channel(source())) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_producer_errors_reach_consumer(self):
        async def source():
            yield 1
            raise RuntimeError("producer failed")

        received = []
        with pytest.raises(RuntimeError, match="producer failed"):
            async for item in bounded_channel(source()):
                received.append(item)
        assert received == [1]

    @pytest.mark.asyncio
    async def test_producer_waits_for_consumer(self):
        produced = []

        async def source():
            for i in range(10):
                produced.append(i)
                yield i

        channel = bounded_channel(source(), maxsize=1)
        assert await channel.__anext__() == 0
        await asyncio.sleep(0.01)
        # One item handed over, one queued, one blocked on put
        assert len(produced) <= 3
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_closing_consumer_releases_source(self, make_engine):
        engine = make_engine(
            snapshots=[EngineResult(text="a" * (i + 1)) for i in range(100)],
            delay=0.01,
        )
        channel = bounded_channel(engine.stream_response("x"))
        assert (await channel.__anext__()).text == "a"
        await channel.aclose()
        assert engine.stream_closed
