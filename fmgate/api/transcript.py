# SPDX-License-Identifier: Apache-2.0
"""
Conversion of wire-level chat messages into an engine transcript.

All messages except the last become transcript entries; the last message
is the live turn and is handed to the engine as a plain prompt. Continuing
an in-progress assistant turn (assistant prefill) is not supported: a
trailing assistant message is sent as a prompt like any other.
"""

import json
import logging

from ..engine.transcript import (
    Instructions,
    Prompt,
    Response,
    TextSegment,
    ToolCallSegment,
    ToolDefinition,
    ToolResult,
    Transcript,
)
from ..errors import InvalidMessageRole
from .models import Message
from .models import ToolDefinition as RequestToolDefinition

logger = logging.getLogger(__name__)


def _input_schema_json(tool: RequestToolDefinition) -> str:
    if tool.function.parameters is None:
        return "{}"
    try:
        return json.dumps(tool.function.parameters)
    except (TypeError, ValueError) as e:
        logger.warning(
            f"Could not serialize parameters of tool {tool.function.name!r}: {e}"
        )
        return "{}"


def tool_definitions_from_request(
    tools: list[RequestToolDefinition] | None,
) -> tuple[ToolDefinition, ...]:
    """Describe request tools for the instructions entry of a transcript."""
    if not tools:
        return ()
    return tuple(
        ToolDefinition(
            name=tool.function.name,
            description=tool.function.description or "",
            input_schema=_input_schema_json(tool),
        )
        for tool in tools
    )


def _response_entry(message: Message) -> Response:
    segments: list[TextSegment | ToolCallSegment] = []
    if message.content:
        segments.append(TextSegment(message.content))
    for call in message.tool_calls or []:
        segments.append(
            ToolCallSegment(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments,
            )
        )
    if not segments:
        segments.append(TextSegment(""))
    return Response(segments=tuple(segments))


def build_transcript(
    messages: list[Message],
    tools: list[RequestToolDefinition] | None = None,
) -> Transcript:
    """
    Build the transcript for every message but the last.

    Raises:
        InvalidMessageRole: For an unknown role, or a tool message without
            a ``tool_call_id``. No partial transcript is returned.
    """
    definitions = tool_definitions_from_request(tools)
    entries = []
    for message in messages[:-1]:
        if message.role == "user":
            entries.append(Prompt(segments=(TextSegment(message.content or ""),)))
        elif message.role == "assistant":
            entries.append(_response_entry(message))
        elif message.role == "tool":
            if message.tool_call_id is None:
                raise InvalidMessageRole(
                    "A message with role 'tool' requires a `tool_call_id`."
                )
            entries.append(ToolResult(id=message.tool_call_id, content=message.content or ""))
        elif message.role == "system":
            entries.append(
                Instructions(
                    segments=(TextSegment(message.content or ""),),
                    tool_definitions=definitions,
                )
            )
        else:
            raise InvalidMessageRole()
    return Transcript(entries=tuple(entries))


def get_prompt(messages: list[Message]) -> str:
    """The live prompt is the last message's content (no assistant prefill)."""
    if not messages:
        return ""
    return messages[-1].content or ""
