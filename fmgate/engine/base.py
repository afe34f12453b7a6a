# SPDX-License-Identifier: Apache-2.0
"""
Abstract engine interface.

An engine is an opaque text-generation capability. Given a prompt, an
optional transcript of earlier turns, generation options and an optional
constraint schema, it either returns one completed result (``respond``) or
yields a monotonically growing sequence of cumulative snapshots
(``stream_response``). Failures are reported with the small error taxonomy
defined here.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from .content import GeneratedContent
from .schema import GenerationSchema
from .transcript import Transcript

# =============================================================================
# Errors
# =============================================================================


class GenerationError(Exception):
    """Base class for errors reported by an engine."""

    @property
    def description(self) -> str:
        return str(self) or type(self).__name__


class ExceededContextWindowSize(GenerationError):
    """The prompt plus transcript does not fit in the model context."""


class GuardrailViolation(GenerationError):
    """The input or output was blocked by the model's safety guardrails."""


# =============================================================================
# Options
# =============================================================================


@dataclass(frozen=True)
class SamplingMode:
    """Random sampling strategy; ``None`` options mean the engine default."""

    kind: str  # "probability_threshold" or "top_k"
    value: float | int
    seed: int | None = None

    @classmethod
    def probability_threshold(
        cls, threshold: float, seed: int | None = None
    ) -> "SamplingMode":
        return cls("probability_threshold", threshold, seed)

    @classmethod
    def top_k(cls, k: int, seed: int | None = None) -> "SamplingMode":
        return cls("top_k", k, seed)


@dataclass(frozen=True)
class GenerationOptions:
    sampling: SamplingMode | None = None
    temperature: float | None = None
    maximum_response_tokens: int | None = None


# =============================================================================
# Tools and results
# =============================================================================


@dataclass(frozen=True)
class ToolSpec:
    """A tool the engine may invoke while generating."""

    name: str
    description: str = ""
    parameters: GenerationSchema | None = None


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call emitted by the engine."""

    id: str
    name: str
    arguments: str  # JSON string


@dataclass(frozen=True)
class EngineResult:
    """
    A completed result or a cumulative streaming snapshot.

    ``text`` is the raw generated text, ``content`` the structured content
    when a schema constrained generation, and ``tool_calls`` the tool
    invocations emitted so far (append-only across snapshots).
    """

    text: str = ""
    content: GeneratedContent | None = None
    tool_calls: tuple[ToolInvocation, ...] = field(default_factory=tuple)

    def structured_content(self) -> GeneratedContent:
        """
        The structured content, decoded from ``text`` when the engine did
        not supply it.

        Raises:
            ValueError: If ``text`` is not a JSON document.
        """
        if self.content is not None:
            return self.content
        return GeneratedContent.from_json(self.text)


# =============================================================================
# Engine
# =============================================================================


class BaseEngine(ABC):
    """Base class for generation engines."""

    def __init__(self, name: str = "engine", guardrails: str = "default"):
        self.name = name
        self.guardrails = guardrails

    async def start(self) -> None:
        """Acquire resources before the server accepts requests."""

    async def stop(self) -> None:
        """Release resources at shutdown."""

    @abstractmethod
    async def respond(
        self,
        prompt: str,
        *,
        transcript: Transcript | None = None,
        options: GenerationOptions | None = None,
        schema: GenerationSchema | None = None,
        tools: list[ToolSpec] | None = None,
    ) -> EngineResult:
        """Generate one complete result."""

    @abstractmethod
    def stream_response(
        self,
        prompt: str,
        *,
        transcript: Transcript | None = None,
        options: GenerationOptions | None = None,
        schema: GenerationSchema | None = None,
        tools: list[ToolSpec] | None = None,
    ) -> AsyncIterator[EngineResult]:
        """Yield cumulative snapshots of one generation."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, guardrails={self.guardrails!r})"
