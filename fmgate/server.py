# SPDX-License-Identifier: Apache-2.0
"""
OpenAI-compatible API server for fmgate.

This module provides a FastAPI application that exposes configured
generation engines through the chat/completions protocol.

Features:
- Chat mode (``messages``) with system/user/assistant/tool turns
- Completion mode (``prompt``)
- Streaming responses (server-sent events)
- Tool calling
- Structured output via ``response_format`` JSON schemas

Usage:
    fmgate serve --port 8000
    fmgate serve --models-config models.yaml

The server provides:
    - POST /api/v1/chat/completions - Chat and plain completions
    - GET /api/v1/models - List available models
    - GET /health - Health check
"""

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .api.models import (
    AssistantMessage,
    ChatCompletionChoice,
    ChatCompletionChunk,
    ChatCompletionChunkChoice,
    ChatCompletionChunkDelta,
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionChoice,
    ModelInfo,
    ModelsResponse,
)
from .api.utils import SSE_DONE, jsonify, sse_event, summarize_request
from .config import ServerConfig, build_server_config
from .errors import NonConformingBody, RequestError, ResponseError
from .failures import SessionResponse
from .session import ResponseSession, new_session

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()


def get_server_config(request: Request) -> ServerConfig:
    """Startup configuration attached to the application."""
    config = getattr(request.app.state, "server_config", None)
    if config is None:
        raise HTTPException(status_code=503, detail="Server is not configured")
    return config


# =============================================================================
# Response shaping
# =============================================================================


def _finish_reason_value(response: SessionResponse) -> str | None:
    return response.finish_reason.value if response.finish_reason else None


def make_completion_response(
    session: ResponseSession, response: SessionResponse
) -> ChatCompletionResponse:
    """Shape a non-streaming response for chat or completion mode."""
    finish_reason = _finish_reason_value(response)
    if session.is_chat:
        choices = [
            ChatCompletionChoice(
                finish_reason=finish_reason,
                native_finish_reason=finish_reason,
                message=AssistantMessage(
                    content=response.content,
                    tool_calls=response.tool_calls,
                ),
            )
        ]
    else:
        choices = [CompletionChoice(finish_reason=finish_reason, text=response.content)]
    return ChatCompletionResponse(model=session.model_name, choices=choices)


def make_chunk(
    session: ResponseSession, response_id: str, response: SessionResponse
) -> ChatCompletionChunk:
    """Shape one streaming chunk (both modes use ``delta``)."""
    finish_reason = _finish_reason_value(response)
    return ChatCompletionChunk(
        id=response_id,
        model=session.model_name,
        choices=[
            ChatCompletionChunkChoice(
                finish_reason=finish_reason,
                native_finish_reason=finish_reason,
                delta=ChatCompletionChunkDelta(
                    content=response.content,
                    tool_calls=response.tool_calls,
                ),
            )
        ],
    )


async def stream_session(session: ResponseSession) -> AsyncIterator[str]:
    """Render a session's chunk stream as server-sent events."""
    response_id = f"gen-{uuid.uuid4()}"
    start_time = time.perf_counter()
    chunk_count = 0

    chunks = session.stream_responses()
    try:
        async for response in chunks:
            chunk_count += 1
            yield sse_event(jsonify(make_chunk(session, response_id, response)))
    finally:
        await chunks.aclose()

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"Chat completion (stream): {chunk_count} chunks from {session.model_name!r} "
        f"in {elapsed:.2f}s"
    )
    yield SSE_DONE


# =============================================================================
# Streaming disconnect detection
# =============================================================================


async def _disconnect_guard(
    generator: AsyncIterator[str],
    raw_request: Request,
    poll_interval: float = 0.5,
) -> AsyncIterator[str]:
    """Wrap streaming generator to abort on client disconnect.

    Each __anext__() on the inner generator is raced against a disconnect
    poller, so a disconnect is noticed even while the engine is still
    working on the next snapshot.

    On disconnect the pending __anext__() is cancelled; the cancellation
    propagates down the generator chain and cancels the producer task that
    owns the engine stream.
    """
    t0 = time.monotonic()

    def _elapsed():
        return f"{time.monotonic() - t0:.1f}s"

    async def _wait_disconnect():
        while True:
            await asyncio.sleep(poll_interval)
            if await raw_request.is_disconnected():
                return

    chunk_count = 0
    disconnect_task: asyncio.Task | None = None
    anext_task: asyncio.Future | None = None
    try:
        aiter = generator.__aiter__()
        disconnect_task = asyncio.create_task(_wait_disconnect())
        while True:
            anext_task = asyncio.ensure_future(aiter.__anext__())
            done, _ = await asyncio.wait(
                [anext_task, disconnect_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnect_task in done:
                logger.info(
                    f"[disconnect_guard] CLIENT DISCONNECTED after "
                    f"{chunk_count} chunks, elapsed={_elapsed()}"
                )
                anext_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await anext_task
                break
            try:
                chunk = anext_task.result()
            except StopAsyncIteration:
                break
            chunk_count += 1
            yield chunk
    finally:
        if disconnect_task and not disconnect_task.done():
            disconnect_task.cancel()
        if anext_task and not anext_task.done():
            anext_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                await anext_task
        # The inner generator must not be running when it is closed
        await generator.aclose()
        logger.debug(
            f"[disconnect_guard] CLEANUP done, {chunk_count} chunks total, elapsed={_elapsed()}"
        )


async def _wait_with_disconnect(
    coro,
    raw_request: Request,
    timeout: float,
    poll_interval: float = 0.5,
):
    """Run a coroutine with both timeout and client disconnect detection.

    Returns None when the client disconnected before the result was ready.
    """
    task = asyncio.ensure_future(coro)

    async def _wait_disconnect():
        while True:
            await asyncio.sleep(poll_interval)
            if await raw_request.is_disconnected():
                return

    disconnect_task = asyncio.create_task(_wait_disconnect())

    try:
        done, _ = await asyncio.wait(
            [task, disconnect_task],
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if not done:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise HTTPException(
                status_code=504,
                detail=f"Request timed out after {timeout:.1f} seconds",
            )

        if task not in done:
            logger.info("[disconnect_guard] CLIENT DISCONNECTED (non-stream)")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            return None

        return task.result()

    finally:
        if not disconnect_task.done():
            disconnect_task.cancel()
        if not task.done():
            task.cancel()


# =============================================================================
# Routes
# =============================================================================


@router.get("/health")
async def health(config: ServerConfig = Depends(get_server_config)):
    """Health check endpoint."""
    return {"status": "healthy", "models": config.model_names}


@router.get("/api/v1/models")
async def list_models(config: ServerConfig = Depends(get_server_config)) -> ModelsResponse:
    """List available models."""
    return ModelsResponse(data=[ModelInfo(id=name) for name in config.model_names])


@router.post("/api/v1/chat/completions")
async def create_chat_completion(
    request: ChatCompletionRequest,
    raw_request: Request,
    config: ServerConfig = Depends(get_server_config),
):
    """
    Create a chat completion (``messages``) or plain completion (``prompt``).

    Structured output (JSON Schema):
    ```json
    response_format={
        "type": "json_schema",
        "json_schema": {
            "name": "my_schema",
            "schema": {"type": "object", "properties": {...}}
        }
    }
    ```

    Generation failures are reported in ``finish_reason`` (and, for
    ``error``, in ``content``) with HTTP 200; malformed requests are 400.
    """
    logger.info(f"[REQUEST] POST /api/v1/chat/completions {summarize_request(request)}")

    session = new_session(request, config)

    if session.to_stream:
        return StreamingResponse(
            _disconnect_guard(
                stream_session(session),
                raw_request,
                poll_interval=config.stream_poll_interval,
            ),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
            },
        )

    response = await _wait_with_disconnect(
        session.get_response(),
        raw_request,
        timeout=config.timeout,
        poll_interval=config.stream_poll_interval,
    )
    if response is None:
        return Response(status_code=499)  # Client closed request

    payload = jsonify(make_completion_response(session, response))
    return Response(content=payload, media_type="application/json")


# =============================================================================
# Error handlers
# =============================================================================


async def _request_error_handler(request: Request, exc: RequestError) -> JSONResponse:
    logger.info(f"Rejected request to {request.url.path}: {exc.reason}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason})


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info(f"Non-conforming body for {request.url.path}: {exc.errors()}")
    error = NonConformingBody()
    return JSONResponse(status_code=error.status_code, content={"detail": error.reason})


async def _response_error_handler(request: Request, exc: ResponseError) -> JSONResponse:
    logger.error(f"Failed to produce response for {request.url.path}: {exc.description}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.description})


# =============================================================================
# Application
# =============================================================================


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Start engines before serving and stop them at shutdown."""
    config: ServerConfig = app.state.server_config
    for name, engine in config.models.items():
        await engine.start()
        logger.info(f"Engine ready for model {name!r}: {engine!r}")

    yield

    for engine in config.models.values():
        await engine.stop()
    logger.info("Engines stopped")


def create_app(config: ServerConfig | None = None) -> FastAPI:
    """Build the FastAPI application around an immutable configuration."""
    app = FastAPI(
        title="fmgate API",
        description="OpenAI-compatible API for foundation-model engines",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.server_config = config or build_server_config()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestError, _request_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(ResponseError, _response_error_handler)
    app.include_router(router)
    return app
