# SPDX-License-Identifier: Apache-2.0
"""
Pydantic models for the OpenAI-compatible API.

These models define the request and response schemas for:
- Chat completions (``messages``) and plain completions (``prompt``),
  both served by ``POST /api/v1/chat/completions``
- Tool calling
- Structured output (``response_format`` with a JSON schema)
- Model listing
"""

import time
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

# =============================================================================
# Messages
# =============================================================================


class ContentPart(BaseModel):
    """A part of a list-form message content. Only text parts are supported."""

    type: str
    text: str | None = None


class FunctionCall(BaseModel):
    """A function call with name and arguments."""

    name: str
    arguments: str  # JSON string


class ToolCall(BaseModel):
    """A tool call made by the assistant."""

    id: str
    type: str = "function"
    function: FunctionCall


class ToolCallDelta(ToolCall):
    """A tool call inside a streaming delta, positioned by ``index``."""

    index: int


class Message(BaseModel):
    """
    A message in a chat conversation.

    Supports:
    - Simple text messages (role + content string)
    - Tool call messages (assistant with tool_calls, content may be null)
    - Tool response messages (role="tool" with tool_call_id)
    """

    role: str
    content: str | None = None
    name: str | None = None
    # For assistant messages with tool calls
    tool_calls: list[ToolCall] | None = None
    # For tool response messages (role="tool")
    tool_call_id: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _flatten_text_parts(cls, value: Any) -> Any:
        """Accept list-form content made only of text parts."""
        if not isinstance(value, list):
            return value
        texts = []
        for raw in value:
            part = ContentPart.model_validate(raw)
            if part.type != "text":
                raise ValueError(f"Unsupported content part type: {part.type!r}")
            texts.append(part.text or "")
        return "".join(texts)


# =============================================================================
# Tool Calling
# =============================================================================


class ToolFunction(BaseModel):
    """Function description inside a tool definition."""

    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


class ToolDefinition(BaseModel):
    """Definition of a tool that can be called by the model."""

    type: str = "function"
    function: ToolFunction


class ToolChoiceFunction(BaseModel):
    name: str


class ToolChoice(BaseModel):
    """Object form of ``tool_choice`` naming one function."""

    type: str = "function"
    function: ToolChoiceFunction | None = None


# =============================================================================
# Structured Output (JSON Schema)
# =============================================================================


class ResponseFormatJsonSchema(BaseModel):
    """JSON Schema definition for structured output."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str | None = None
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")
    strict: bool | None = None


class ResponseFormat(BaseModel):
    """
    Response format specification for structured output.

    Supports:
    - "text": Default text output (no structure enforcement)
    - "json_schema": Constrains generation to a specific schema
    """

    type: str = "text"
    json_schema: ResponseFormatJsonSchema | None = None


# =============================================================================
# Request
# =============================================================================


class ChatCompletionRequest(BaseModel):
    """
    Request for chat completion or plain completion.

    Exactly one of ``messages`` (chat mode) or ``prompt`` (completion mode)
    is used; ``messages`` wins when both are present.
    """

    messages: list[Message] | None = None
    prompt: str | None = None
    # If unspecified, the server default model is used
    model: str | None = None
    stream: bool | None = None
    # Generation options
    max_tokens: int | None = None
    temperature: float | None = None
    # Advanced sampling options
    seed: int | None = None
    top_p: float | None = None
    top_k: int | None = None
    # Tool calling
    tools: list[ToolDefinition] | None = None
    tool_choice: str | ToolChoice | None = None  # "auto", "none", "required" or object
    # Structured output
    response_format: ResponseFormat | None = None


# =============================================================================
# Responses
# =============================================================================


def _generation_id() -> str:
    return f"gen-{uuid.uuid4()}"


class AssistantMessage(BaseModel):
    """Response message from the assistant."""

    content: str | None = None
    role: str = "assistant"
    tool_calls: list[ToolCall] | None = None

    @model_serializer(mode="wrap")
    def _omit_missing_tool_calls(self, handler):
        data = handler(self)
        if data.get("tool_calls") is None:
            data.pop("tool_calls", None)
        return data


class ChatCompletionChoice(BaseModel):
    """A single choice in a chat-mode response."""

    index: int = 0
    finish_reason: str | None = None
    native_finish_reason: str | None = None
    message: AssistantMessage


class CompletionChoice(BaseModel):
    """A single choice in a completion-mode response."""

    index: int = 0
    finish_reason: str | None = None
    text: str | None = None


class ChatCompletionResponse(BaseModel):
    """Non-streaming response envelope."""

    id: str = Field(default_factory=_generation_id)
    object: str = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: list[ChatCompletionChoice] | list[CompletionChoice]


# =============================================================================
# Streaming (for SSE responses)
# =============================================================================


class ChatCompletionChunkDelta(BaseModel):
    """Delta content in a streaming chunk. Unset fields are omitted."""

    role: str = "assistant"
    content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None

    @model_serializer(mode="wrap")
    def _omit_none(self, handler):
        return {k: v for k, v in handler(self).items() if v is not None}


class ChatCompletionChunkChoice(BaseModel):
    """A single choice in a streaming chunk."""

    index: int = 0
    finish_reason: str | None = None
    native_finish_reason: str | None = None
    delta: ChatCompletionChunkDelta


class ChatCompletionChunk(BaseModel):
    """A streaming chunk."""

    id: str = Field(default_factory=_generation_id)
    object: str = "chat.completion.chunk"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: list[ChatCompletionChunkChoice]


# =============================================================================
# Models List
# =============================================================================


class ModelInfo(BaseModel):
    """Information about an available model."""

    object: str = "model"
    id: str


class ModelsResponse(BaseModel):
    """Response for listing models."""

    object: str = "list"
    data: list[ModelInfo]
