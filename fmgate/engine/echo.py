# SPDX-License-Identifier: Apache-2.0
"""
Deterministic reference engine.

EchoEngine repeats the prompt back and, when a schema is given, produces
placeholder content that satisfies it (enum first value, lower bounds,
empty strings, one array element). It enforces a word-count context window
and an optional blocked-term guardrail so that every failure mode of the
engine interface can be exercised end to end without model weights.
"""

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator
from typing import Any

from . import register_engine
from .base import (
    BaseEngine,
    EngineResult,
    ExceededContextWindowSize,
    GenerationOptions,
    GuardrailViolation,
    ToolSpec,
)
from .content import GeneratedContent
from .schema import ARRAY, BOOLEAN, INTEGER, NUMBER, OBJECT, GenerationSchema
from .transcript import Instructions, Prompt, Response, ToolResult, Transcript

logger = logging.getLogger(__name__)

_WORD_PATTERN = re.compile(r"\S+\s*")


def placeholder_value(schema: GenerationSchema) -> Any:
    """Build the simplest JSON value that satisfies ``schema``."""
    if schema.kind == OBJECT:
        return {
            prop.name: placeholder_value(prop.schema)
            for prop in schema.properties
            if not prop.optional
        }
    if schema.kind == ARRAY:
        return [placeholder_value(schema.items)] if schema.items else []
    if schema.kind == BOOLEAN:
        return False
    if schema.kind in (INTEGER, NUMBER):
        zero = 0 if schema.kind == INTEGER else 0.0
        minimum = schema.guide("minimum")
        maximum = schema.guide("maximum")
        if minimum is not None and zero < minimum:
            return minimum
        if maximum is not None and zero > maximum:
            return maximum
        return zero
    choices = schema.guide("any_of")
    return choices[0] if choices else ""


def _transcript_words(transcript: Transcript | None) -> int:
    if transcript is None:
        return 0
    count = 0
    for entry in transcript:
        if isinstance(entry, (Instructions, Prompt)):
            count += len(entry.text.split())
        elif isinstance(entry, Response):
            count += len((entry.text or "").split())
        elif isinstance(entry, ToolResult):
            count += len(entry.content.split())
    return count


@register_engine("echo")
class EchoEngine(BaseEngine):
    """Engine that echoes its prompt."""

    def __init__(
        self,
        name: str = "echo",
        guardrails: str = "default",
        context_window: int = 4096,
        blocked_terms: list[str] | None = None,
        stream_delay: float = 0.0,
    ):
        super().__init__(name=name, guardrails=guardrails)
        self.context_window = context_window
        # Permissive guardrails never block
        self.blocked_terms = (
            [] if guardrails == "permissive" else [t.lower() for t in blocked_terms or []]
        )
        self.stream_delay = stream_delay

    def _check(self, prompt: str, transcript: Transcript | None) -> None:
        words = len(prompt.split()) + _transcript_words(transcript)
        if words > self.context_window:
            raise ExceededContextWindowSize(
                f"Prompt uses {words} words; context window is {self.context_window}"
            )
        lowered = prompt.lower()
        for term in self.blocked_terms:
            if term in lowered:
                raise GuardrailViolation(f"Blocked term in prompt: {term!r}")

    def _generate(
        self,
        prompt: str,
        options: GenerationOptions | None,
        schema: GenerationSchema | None,
    ) -> EngineResult:
        if schema is not None:
            value = placeholder_value(schema)
            return EngineResult(text=json.dumps(value), content=GeneratedContent(value))

        text = prompt
        limit = options.maximum_response_tokens if options else None
        if limit is not None:
            text = "".join(_WORD_PATTERN.findall(text)[:limit]).rstrip()
        return EngineResult(text=text)

    async def respond(
        self,
        prompt: str,
        *,
        transcript: Transcript | None = None,
        options: GenerationOptions | None = None,
        schema: GenerationSchema | None = None,
        tools: list[ToolSpec] | None = None,
    ) -> EngineResult:
        logger.debug(
            f"[echo] respond engine={self.name!r} prompt_chars={len(prompt)} "
            f"structured={schema is not None}"
        )
        self._check(prompt, transcript)
        return self._generate(prompt, options, schema)

    async def stream_response(
        self,
        prompt: str,
        *,
        transcript: Transcript | None = None,
        options: GenerationOptions | None = None,
        schema: GenerationSchema | None = None,
        tools: list[ToolSpec] | None = None,
    ) -> AsyncIterator[EngineResult]:
        self._check(prompt, transcript)

        if schema is not None:
            value = placeholder_value(schema)
            if not isinstance(value, dict) or not value:
                yield EngineResult(text=json.dumps(value), content=GeneratedContent(value))
                return
            # Structured snapshots grow one top-level property at a time
            partial: dict[str, Any] = {}
            for name, prop_value in value.items():
                partial[name] = prop_value
                yield EngineResult(
                    text=json.dumps(partial), content=GeneratedContent(dict(partial))
                )
                await asyncio.sleep(self.stream_delay)
            return

        result = self._generate(prompt, options, schema)
        snapshot = ""
        for word in _WORD_PATTERN.findall(result.text):
            snapshot += word
            yield EngineResult(text=snapshot)
            await asyncio.sleep(self.stream_delay)
