# SPDX-License-Identifier: Apache-2.0
"""
Utility functions for response serialization, tool calls and request logging.
"""

import json
import logging
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError

from ..engine.base import ToolInvocation
from ..errors import SerializationError
from .models import ChatCompletionRequest, FunctionCall, ToolCall, ToolCallDelta

logger = logging.getLogger(__name__)

# =============================================================================
# Serialization
# =============================================================================


def jsonify(obj: BaseModel | Any) -> str:
    """
    Serialize a response model (or plain JSON value) to a JSON string.

    Raises:
        SerializationError: If the payload cannot be represented as JSON.
    """
    try:
        if isinstance(obj, BaseModel):
            return obj.model_dump_json()
        return json.dumps(obj)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        logger.error(f"Failed to serialize response payload: {e}")
        raise SerializationError("Failed to serialize JSON for response.") from e


def sse_event(payload: str) -> str:
    """Frame one server-sent event."""
    return f"data: {payload}\n\n"


SSE_DONE = sse_event("[DONE]")

# =============================================================================
# Tool calls
# =============================================================================


def to_tool_call(invocation: ToolInvocation) -> ToolCall:
    """Convert an engine tool invocation to the wire shape."""
    return ToolCall(
        id=invocation.id,
        type="function",
        function=FunctionCall(name=invocation.name, arguments=invocation.arguments),
    )


def to_tool_call_delta(call: ToolCall, index: int) -> ToolCallDelta:
    """Position a tool call inside a streaming delta."""
    return ToolCallDelta(index=index, id=call.id, type=call.type, function=call.function)


# =============================================================================
# Logging helpers
# =============================================================================


def summarize_request(request: ChatCompletionRequest) -> str:
    """One-line request description for the access log."""
    if request.messages is not None:
        roles = [m.role for m in request.messages]
        total_chars = sum(len(m.content or "") for m in request.messages)
        body = f"msgs={len(roles)} roles={roles} total_chars={total_chars}"
    else:
        body = f"prompt_chars={len(request.prompt or '')}"
    response_format = request.response_format.type if request.response_format else None
    return (
        f"stream={bool(request.stream)} model={request.model!r} "
        f"max_tokens={request.max_tokens} temp={request.temperature} {body} "
        f"tools={len(request.tools or [])} response_format={response_format}"
    )
