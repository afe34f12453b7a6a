# SPDX-License-Identifier: Apache-2.0
"""Tests for converting chat messages into an engine transcript."""

import json

import pytest

from fmgate.api.models import Message, ToolDefinition, ToolFunction
from fmgate.api.transcript import build_transcript, get_prompt
from fmgate.engine.transcript import (
    Instructions,
    Prompt,
    Response,
    ToolCallSegment,
    ToolResult,
)
from fmgate.errors import InvalidMessageRole


def _tool(name="get_weather", parameters=None):
    return ToolDefinition(
        function=ToolFunction(name=name, description="Look up weather", parameters=parameters)
    )


class TestBuildTranscript:
    def test_last_message_is_excluded(self):
        messages = [
            Message(role="system", content="Be terse."),
            Message(role="user", content="Hi"),
            Message(role="assistant", content="Hello"),
        ]
        transcript = build_transcript(messages)
        assert len(transcript) == 2
        entries = list(transcript)
        assert isinstance(entries[0], Instructions)
        assert entries[0].text == "Be terse."
        assert isinstance(entries[1], Prompt)
        assert entries[1].text == "Hi"

    def test_single_message_gives_empty_transcript(self):
        assert len(build_transcript([Message(role="user", content="Hi")])) == 0

    def test_assistant_tool_calls_become_segments(self):
        messages = [
            Message(
                role="assistant",
                content=None,
                tool_calls=[
                    {
                        "id": "call_1",
                        "type": "function",
                        "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
                    }
                ],
            ),
            Message(role="tool", content="sunny", tool_call_id="call_1"),
            Message(role="user", content="Thanks"),
        ]
        entries = list(build_transcript(messages))
        response = entries[0]
        assert isinstance(response, Response)
        assert response.text is None
        assert response.tool_calls == (
            ToolCallSegment(id="call_1", name="get_weather", arguments='{"city": "Paris"}'),
        )
        assert entries[1] == ToolResult(id="call_1", content="sunny")

    def test_empty_assistant_message_keeps_one_text_segment(self):
        entries = list(
            build_transcript([Message(role="assistant"), Message(role="user", content="?")])
        )
        assert entries[0].text == ""

    def test_tool_message_without_id_is_rejected(self):
        messages = [
            Message(role="tool", content="sunny"),
            Message(role="user", content="Thanks"),
        ]
        with pytest.raises(InvalidMessageRole) as exc_info:
            build_transcript(messages)
        assert "tool_call_id" in exc_info.value.reason

    def test_unknown_role_is_rejected(self):
        messages = [
            Message(role="developer", content="x"),
            Message(role="user", content="Hi"),
        ]
        with pytest.raises(InvalidMessageRole):
            build_transcript(messages)

    def test_unknown_role_in_last_message_is_not_checked(self):
        # The live turn is only used as the prompt
        messages = [Message(role="user", content="a"), Message(role="narrator", content="b")]
        assert len(build_transcript(messages)) == 1

    def test_system_message_carries_tool_definitions(self):
        params = {"type": "object", "properties": {"city": {"type": "string"}}}
        messages = [
            Message(role="system", content="Use tools."),
            Message(role="user", content="Weather?"),
        ]
        transcript = build_transcript(messages, tools=[_tool(parameters=params), _tool("noop")])
        instructions = list(transcript)[0]
        assert [d.name for d in instructions.tool_definitions] == ["get_weather", "noop"]
        assert json.loads(instructions.tool_definitions[0].input_schema) == params
        assert instructions.tool_definitions[1].input_schema == "{}"


class TestGetPrompt:
    def test_prompt_is_last_message_content(self):
        messages = [Message(role="user", content="a"), Message(role="user", content="b")]
        assert get_prompt(messages) == "b"

    def test_missing_content_gives_empty_prompt(self):
        assert get_prompt([Message(role="user")]) == ""
        assert get_prompt([]) == ""

    def test_text_parts_are_flattened(self):
        message = Message(
            role="user",
            content=[{"type": "text", "text": "Hello, "}, {"type": "text", "text": "world"}],
        )
        assert get_prompt([message]) == "Hello, world"

    def test_non_text_parts_are_rejected(self):
        with pytest.raises(ValueError):
            Message(
                role="user",
                content=[{"type": "image_url", "image_url": {"url": "https://x/y.png"}}],
            )
