# SPDX-License-Identifier: Apache-2.0
"""
Conversion of cumulative engine snapshots into incremental stream chunks.

Engines stream snapshots: each one holds the whole text generated so far
and every tool invocation emitted so far. Clients expect deltas, so each
snapshot is reduced to the text suffix and the tool calls that are new
since the previous snapshot. Schema-guided streams are the exception: each
snapshot is materialized and sent as a complete JSON document.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from .api.schema import SchemaNode, materialize
from .api.utils import to_tool_call, to_tool_call_delta
from .engine.base import EngineResult
from .failures import FinishReason, SessionResponse, classify_failure

logger = logging.getLogger(__name__)

_END = object()


class StreamDiffer:
    """Per-stream state turning snapshots into deltas."""

    def __init__(self) -> None:
        self.previous_text_length = 0
        self.accumulated_tool_call_count = 0

    def _new_tool_calls(self, snapshot: EngineResult):
        new = snapshot.tool_calls[self.accumulated_tool_call_count :]
        if not new:
            return None
        deltas = [
            to_tool_call_delta(to_tool_call(invocation), self.accumulated_tool_call_count + i)
            for i, invocation in enumerate(new)
        ]
        self.accumulated_tool_call_count += len(new)
        return deltas

    def _content(self, snapshot: EngineResult) -> str | None:
        delta = snapshot.text[self.previous_text_length :]
        self.previous_text_length = len(snapshot.text)
        return delta or None

    def feed(self, snapshot: EngineResult) -> SessionResponse:
        """Return the delta between ``snapshot`` and everything seen before it."""
        return SessionResponse(
            content=self._content(snapshot),
            finish_reason=None,
            tool_calls=self._new_tool_calls(snapshot),
        )

    def finish(self) -> SessionResponse:
        """Terminal chunk: no content, only the finish reason."""
        if self.accumulated_tool_call_count:
            return SessionResponse(finish_reason=FinishReason.TOOL_CALLS)
        return SessionResponse(finish_reason=FinishReason.STOP)


class StructuredStreamDiffer(StreamDiffer):
    """Differ for schema-guided streams: content is the full document each time."""

    def __init__(self, node: SchemaNode) -> None:
        super().__init__()
        self.node = node

    def _content(self, snapshot: EngineResult) -> str | None:
        try:
            content = snapshot.structured_content()
        except ValueError:
            # Partial JSON text; wait for a decodable snapshot
            return None
        return json.dumps(materialize(content, self.node))


async def diff_snapshots(
    snapshots: AsyncIterator[EngineResult],
    differ: StreamDiffer,
) -> AsyncIterator[SessionResponse]:
    """
    Yield one chunk per snapshot, then a terminal chunk.

    If the snapshot stream raises, no further snapshot chunks are produced;
    a single classified failure chunk ends the stream instead.
    """
    try:
        async for snapshot in snapshots:
            yield differ.feed(snapshot)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        yield classify_failure(e)
        return
    finally:
        await _close(snapshots)
    yield differ.finish()


async def _close(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def bounded_channel(
    source: AsyncIterator[Any], maxsize: int = 1
) -> AsyncIterator[Any]:
    """
    Drive ``source`` in its own task and hand items over through a queue.

    The producer task suspends while ``maxsize`` items are waiting to be
    consumed. Closing the returned iterator (client disconnect, request
    cancellation) cancels the producer, which releases ``source``.
    """
    queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def _produce() -> None:
        try:
            async for item in source:
                await queue.put((item, None))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put((_END, e))
            return
        finally:
            await _close(source)
        await queue.put((_END, None))

    producer = asyncio.create_task(_produce())
    try:
        while True:
            item, error = await queue.get()
            if item is _END:
                if error is not None:
                    raise error
                return
            yield item
    finally:
        if not producer.done():
            logger.info("[stream] consumer closed early, cancelling producer")
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer
