# SPDX-License-Identifier: Apache-2.0
"""Finish reasons and the classification of generation failures."""

import enum
import logging
from dataclasses import dataclass

from .api.models import ToolCall
from .engine.base import ExceededContextWindowSize, GenerationError, GuardrailViolation

logger = logging.getLogger(__name__)


class FinishReason(str, enum.Enum):
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"
    TOOL_CALLS = "tool_calls"


@dataclass
class SessionResponse:
    """
    One response unit: the whole answer, or one streaming chunk.

    ``finish_reason`` is None on every streaming chunk except the last.
    """

    content: str | None = None
    finish_reason: FinishReason | None = None
    tool_calls: list[ToolCall] | None = None


def _describe(error: BaseException) -> str:
    description = getattr(error, "description", None)
    if isinstance(description, str) and description:
        return description
    return str(error) or type(error).__name__


def classify_failure(error: BaseException) -> SessionResponse:
    """
    Fold an error raised during generation into a response.

    Context-window overflow becomes ``length`` and guardrail violations
    become ``content_filter``, both without content. Everything else is
    ``error``, with a human-readable message as the content so that clients
    reading only ``content`` (streaming included) still see what went wrong.
    """
    if isinstance(error, ExceededContextWindowSize):
        logger.warning(f"Generation stopped: context window exceeded ({_describe(error)})")
        return SessionResponse(finish_reason=FinishReason.LENGTH)
    if isinstance(error, GuardrailViolation):
        logger.warning(f"Generation stopped: guardrail violation ({_describe(error)})")
        return SessionResponse(finish_reason=FinishReason.CONTENT_FILTER)

    kind = "engine" if isinstance(error, GenerationError) else type(error).__name__
    message = f"Generation failed ({kind} error): {_describe(error)}"
    logger.warning(message)
    return SessionResponse(content=message, finish_reason=FinishReason.ERROR)
