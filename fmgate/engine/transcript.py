# SPDX-License-Identifier: Apache-2.0
"""
Engine transcript: the typed, ordered record of a conversation.

Unlike the wire-level message list, every entry here has a fixed type
(instructions, prompt, response, tool result) and carries segments rather
than a single content string.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TextSegment:
    content: str


@dataclass(frozen=True)
class ToolCallSegment:
    """A tool invocation made by the assistant in an earlier turn."""

    id: str
    name: str
    arguments: str  # raw JSON string, passed through untouched


Segment = TextSegment | ToolCallSegment


@dataclass(frozen=True)
class ToolDefinition:
    """A tool made known to the model through the instructions entry."""

    name: str
    description: str
    input_schema: str  # JSON string


@dataclass(frozen=True)
class Instructions:
    segments: tuple[Segment, ...]
    tool_definitions: tuple[ToolDefinition, ...] = ()

    @property
    def text(self) -> str:
        return "".join(s.content for s in self.segments if isinstance(s, TextSegment))


@dataclass(frozen=True)
class Prompt:
    segments: tuple[Segment, ...]

    @property
    def text(self) -> str:
        return "".join(s.content for s in self.segments if isinstance(s, TextSegment))


@dataclass(frozen=True)
class Response:
    segments: tuple[Segment, ...]

    @property
    def text(self) -> str | None:
        texts = [s.content for s in self.segments if isinstance(s, TextSegment)]
        return "".join(texts) if texts else None

    @property
    def tool_calls(self) -> tuple[ToolCallSegment, ...]:
        return tuple(s for s in self.segments if isinstance(s, ToolCallSegment))


@dataclass(frozen=True)
class ToolResult:
    id: str
    content: str


Entry = Instructions | Prompt | Response | ToolResult


@dataclass(frozen=True)
class Transcript:
    entries: tuple[Entry, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)
