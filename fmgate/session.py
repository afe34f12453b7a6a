# SPDX-License-Identifier: Apache-2.0
"""
Per-request generation session.

A ResponseSession is built from one request (``new_session``), resolves the
requested model against the configured model table, prepares the prompt,
transcript, generation options, tool catalogue and response schema, and
then drives the engine once: either a single blocking call
(``get_response``) or a stream of chunks (``stream_responses``). Sessions
are never shared between requests.
"""

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import AsyncIterator

from .api.models import ChatCompletionRequest, ToolChoice
from .api.schema import (
    SchemaNode,
    convert_json_schema,
    materialize,
    response_format_scope,
    tool_parameters_schema,
)
from .api.transcript import build_transcript, get_prompt
from .api.utils import to_tool_call
from .config import ServerConfig
from .engine.base import (
    BaseEngine,
    EngineResult,
    GenerationOptions,
    SamplingMode,
    ToolSpec,
)
from .engine.schema import GenerationSchema
from .engine.transcript import Transcript
from .errors import InvalidModel, MissingResponseSchema, NoPromptOrMessages, SchemaError
from .failures import FinishReason, SessionResponse, classify_failure
from .streaming import StreamDiffer, StructuredStreamDiffer, bounded_channel, diff_snapshots

logger = logging.getLogger(__name__)


def build_generation_options(request: ChatCompletionRequest) -> GenerationOptions:
    """Derive engine options. ``top_p`` takes precedence over ``top_k``."""
    sampling = None
    if request.top_p is not None:
        sampling = SamplingMode.probability_threshold(request.top_p, seed=request.seed)
    elif request.top_k is not None:
        sampling = SamplingMode.top_k(request.top_k, seed=request.seed)
    return GenerationOptions(
        sampling=sampling,
        temperature=request.temperature,
        maximum_response_tokens=request.max_tokens,
    )


def build_tool_specs(request: ChatCompletionRequest) -> list[ToolSpec]:
    """
    Convert request tools into engine tool specs, honoring ``tool_choice``.

    ``"none"`` disables tools; an object naming a function narrows the
    catalogue to that function. Tools whose parameter schema cannot be
    converted are still offered, without a parameter schema.
    """
    if not request.tools or request.tool_choice == "none":
        return []

    tools = request.tools
    choice = request.tool_choice
    if isinstance(choice, ToolChoice) and choice.function is not None:
        tools = [t for t in tools if t.function.name == choice.function.name]

    specs = []
    for tool in tools:
        parameters = None
        if tool.function.parameters is not None:
            try:
                parameters = tool_parameters_schema(tool.function.name, tool.function.parameters)
            except SchemaError as e:
                logger.warning(
                    f"Tool {tool.function.name!r} offered without parameter schema: {e.reason}"
                )
        specs.append(
            ToolSpec(
                name=tool.function.name,
                description=tool.function.description or "",
                parameters=parameters,
            )
        )
    return specs


class ResponseSession:
    """Everything one request needs to drive the engine."""

    def __init__(
        self,
        engine: BaseEngine,
        model_name: str,
        *,
        is_chat: bool,
        prompt: str,
        transcript: Transcript,
        to_stream: bool = False,
        options: GenerationOptions | None = None,
        tools: list[ToolSpec] | None = None,
        structured: bool = False,
        response_node: SchemaNode | None = None,
        response_schema: GenerationSchema | None = None,
    ):
        self.engine = engine
        self.model_name = model_name
        self.is_chat = is_chat
        self.prompt = prompt
        self.transcript = transcript
        self.to_stream = to_stream
        self.options = options or GenerationOptions()
        self.tools = tools or []
        # structured=True with no schema is reported when generating
        self.structured = structured
        self.response_node = response_node
        self.response_schema = response_schema

    def _engine_kwargs(self) -> dict:
        return {
            "transcript": self.transcript,
            "options": self.options,
            "schema": self.response_schema,
            "tools": self.tools or None,
        }

    def _check_response_schema(self) -> None:
        if self.structured and self.response_schema is None:
            raise MissingResponseSchema()

    # -------------------------------------------------------------------------
    # Non-streaming
    # -------------------------------------------------------------------------

    def _structured_content(self, result: EngineResult) -> str:
        return json.dumps(materialize(result.structured_content(), self.response_node))

    def _shape(self, result: EngineResult) -> SessionResponse:
        if result.tool_calls:
            return SessionResponse(
                content=result.text if result.text.strip() else None,
                finish_reason=FinishReason.TOOL_CALLS,
                tool_calls=[to_tool_call(invocation) for invocation in result.tool_calls],
            )
        if self.structured:
            return SessionResponse(
                content=self._structured_content(result),
                finish_reason=FinishReason.STOP,
            )
        return SessionResponse(content=result.text, finish_reason=FinishReason.STOP)

    async def get_response(self) -> SessionResponse:
        """Invoke the engine once; failures are folded into the response."""
        start_time = time.perf_counter()
        try:
            self._check_response_schema()
            result = await self.engine.respond(self.prompt, **self._engine_kwargs())
            response = self._shape(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return classify_failure(e)

        elapsed = time.perf_counter() - start_time
        logger.info(
            f"Response from {self.model_name!r} in {elapsed:.2f}s "
            f"finish_reason={response.finish_reason.value}"
        )
        return response

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------

    async def _produce_chunks(self) -> AsyncIterator[SessionResponse]:
        try:
            self._check_response_schema()
            snapshots = self.engine.stream_response(self.prompt, **self._engine_kwargs())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            yield classify_failure(e)
            return

        if self.structured:
            differ = StructuredStreamDiffer(self.response_node)
        else:
            differ = StreamDiffer()
        # Closing this generator must close the engine stream right away
        async with contextlib.aclosing(diff_snapshots(snapshots, differ)) as chunks:
            async for chunk in chunks:
                yield chunk

    def stream_responses(self) -> AsyncIterator[SessionResponse]:
        """
        Stream chunks produced by a dedicated task.

        Every chunk but the last has ``finish_reason=None``; the last carries
        the finish reason (or a classified failure).
        """
        return bounded_channel(self._produce_chunks(), maxsize=1)


def new_session(request: ChatCompletionRequest, config: ServerConfig) -> ResponseSession:
    """
    Build the session for one request.

    Raises:
        InvalidModel: If the requested model is not configured.
        NoPromptOrMessages: If neither ``messages`` nor ``prompt`` is given.
        InvalidMessageRole: If the conversation cannot become a transcript.
        SchemaError: If a supplied response schema is malformed.
    """
    model_name = request.model or config.default_model
    engine = config.get_engine(model_name)
    if engine is None:
        raise InvalidModel()

    if request.messages is not None:
        is_chat = True
        prompt = get_prompt(request.messages)
        transcript = build_transcript(request.messages, request.tools)
    elif request.prompt is not None:
        is_chat = False
        prompt = request.prompt
        transcript = Transcript()
    else:
        raise NoPromptOrMessages()

    structured = False
    response_node = None
    response_schema = None
    response_format = request.response_format
    if response_format is not None:
        if response_format.type == "json_schema":
            structured = True
            json_schema = response_format.json_schema
            if json_schema is not None and json_schema.schema_ is not None:
                response_node, response_schema = convert_json_schema(
                    json_schema.schema_, response_format_scope(json_schema.name)
                )
                logger.debug(f"Response schema: {json.dumps(response_schema.to_dict())}")
        elif response_format.type != "text":
            logger.warning(
                f"Unsupported response_format type {response_format.type!r}; using text"
            )

    return ResponseSession(
        engine,
        model_name,
        is_chat=is_chat,
        prompt=prompt,
        transcript=transcript,
        to_stream=bool(request.stream),
        options=build_generation_options(request),
        tools=build_tool_specs(request),
        structured=structured,
        response_node=response_node,
        response_schema=response_schema,
    )
