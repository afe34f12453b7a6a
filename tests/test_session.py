# SPDX-License-Identifier: Apache-2.0
"""Tests for building and running per-request sessions."""

import json

import pytest

from fmgate.api.models import ChatCompletionRequest
from fmgate.engine import (
    EngineResult,
    ExceededContextWindowSize,
    SamplingMode,
    ToolInvocation,
)
from fmgate.engine.content import GeneratedContent
from fmgate.errors import InvalidModel, NoPromptOrMessages, SchemaError
from fmgate.failures import FinishReason
from fmgate.session import build_generation_options, build_tool_specs, new_session

WEATHER_TOOL = {
    "type": "function",
    "function": {
        "name": "get_weather",
        "description": "Current weather",
        "parameters": {
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    },
}


def _request(**kwargs):
    kwargs.setdefault("messages", [{"role": "user", "content": "Hi"}])
    return ChatCompletionRequest.model_validate(kwargs)


class TestNewSession:
    def test_default_model_is_used(self, server_config):
        session = new_session(_request(), server_config)
        assert session.model_name == "base"
        assert session.engine is server_config.models["base"]
        assert session.is_chat is True
        assert session.prompt == "Hi"

    def test_named_model(self, server_config):
        session = new_session(_request(model="permissive"), server_config)
        assert session.engine is server_config.models["permissive"]

    def test_unknown_model_is_rejected(self, server_config):
        with pytest.raises(InvalidModel):
            new_session(_request(model="missing"), server_config)

    def test_prompt_mode(self, server_config):
        request = ChatCompletionRequest(prompt="Once upon a time")
        session = new_session(request, server_config)
        assert session.is_chat is False
        assert session.prompt == "Once upon a time"
        assert len(session.transcript) == 0

    def test_messages_win_over_prompt(self, server_config):
        session = new_session(_request(prompt="ignored"), server_config)
        assert session.is_chat is True
        assert session.prompt == "Hi"

    def test_neither_messages_nor_prompt(self, server_config):
        with pytest.raises(NoPromptOrMessages):
            new_session(ChatCompletionRequest(), server_config)

    def test_malformed_response_schema_is_rejected(self, server_config):
        request = _request(
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "answer", "schema": {"type": "object"}},
            }
        )
        with pytest.raises(SchemaError):
            new_session(request, server_config)

    def test_response_schema_is_named_after_format(self, server_config):
        request = _request(
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "answer",
                    "schema": {"type": "object", "properties": {"x": {"type": "integer"}}},
                },
            }
        )
        session = new_session(request, server_config)
        assert session.structured is True
        assert session.response_schema.name == "answer_schema"

    def test_unsupported_response_format_falls_back_to_text(self, server_config):
        session = new_session(_request(response_format={"type": "json_object"}), server_config)
        assert session.structured is False
        assert session.response_schema is None


class TestGenerationOptions:
    def test_top_p_wins_over_top_k(self):
        options = build_generation_options(_request(top_p=0.9, top_k=40, seed=7))
        assert options.sampling == SamplingMode.probability_threshold(0.9, seed=7)

    def test_top_k(self):
        options = build_generation_options(_request(top_k=40))
        assert options.sampling == SamplingMode.top_k(40)

    def test_defaults(self):
        options = build_generation_options(_request(max_tokens=12, temperature=0.2))
        assert options.sampling is None
        assert options.temperature == 0.2
        assert options.maximum_response_tokens == 12


class TestToolSpecs:
    def test_tools_are_converted(self):
        specs = build_tool_specs(_request(tools=[WEATHER_TOOL]))
        assert len(specs) == 1
        assert specs[0].name == "get_weather"
        assert specs[0].description == "Current weather"
        assert specs[0].parameters.name == "get_weather_parameters_schema"

    def test_tool_choice_none_disables_tools(self):
        assert build_tool_specs(_request(tools=[WEATHER_TOOL], tool_choice="none")) == []

    def test_named_tool_choice_narrows_catalogue(self):
        other = {"type": "function", "function": {"name": "noop"}}
        request = _request(
            tools=[WEATHER_TOOL, other],
            tool_choice={"type": "function", "function": {"name": "noop"}},
        )
        assert [spec.name for spec in build_tool_specs(request)] == ["noop"]

    def test_malformed_parameters_are_dropped(self):
        broken = {"type": "function", "function": {"name": "f", "parameters": {"type": "array"}}}
        specs = build_tool_specs(_request(tools=[broken]))
        assert specs[0].name == "f"
        assert specs[0].parameters is None


class TestGetResponse:
    @pytest.mark.asyncio
    async def test_text_response(self, server_config, scripted_engine):
        scripted_engine.result = EngineResult(text="Hello there")
        response = await new_session(_request(max_tokens=5), server_config).get_response()
        assert response.content == "Hello there"
        assert response.finish_reason is FinishReason.STOP
        call = scripted_engine.calls[0]
        assert call["prompt"] == "Hi"
        assert call["options"].maximum_response_tokens == 5
        assert call["schema"] is None
        assert call["tools"] is None

    @pytest.mark.asyncio
    async def test_tool_calls_response(self, server_config, scripted_engine):
        scripted_engine.result = EngineResult(
            text="  ",
            tool_calls=(ToolInvocation(id="call_1", name="get_weather", arguments='{"city": "Oslo"}'),),
        )
        response = await new_session(_request(tools=[WEATHER_TOOL]), server_config).get_response()
        assert response.finish_reason is FinishReason.TOOL_CALLS
        assert response.content is None
        assert response.tool_calls[0].function.name == "get_weather"
        assert [t.name for t in scripted_engine.calls[0]["tools"]] == ["get_weather"]

    @pytest.mark.asyncio
    async def test_structured_response(self, server_config, scripted_engine):
        scripted_engine.result = EngineResult(
            text='{"x": 3}', content=GeneratedContent({"x": 3, "extra": True})
        )
        request = _request(
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "answer",
                    "schema": {"type": "object", "properties": {"x": {"type": "integer"}}},
                },
            }
        )
        response = await new_session(request, server_config).get_response()
        assert json.loads(response.content) == {"x": 3}

    @pytest.mark.asyncio
    async def test_structured_response_from_text_only_result(self, server_config, scripted_engine):
        scripted_engine.result = EngineResult(text='{"x": 5, "y": "ignored"}')
        request = _request(
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "answer",
                    "schema": {"type": "object", "properties": {"x": {"type": "integer"}}},
                },
            }
        )
        response = await new_session(request, server_config).get_response()
        assert json.loads(response.content) == {"x": 5}

    @pytest.mark.asyncio
    async def test_engine_failure_is_classified(self, server_config, scripted_engine):
        scripted_engine.error = ExceededContextWindowSize("too long")
        response = await new_session(_request(), server_config).get_response()
        assert response.finish_reason is FinishReason.LENGTH
        assert response.content is None

    @pytest.mark.asyncio
    async def test_missing_response_schema_is_reported_lazily(self, server_config, scripted_engine):
        request = _request(
            response_format={"type": "json_schema", "json_schema": {"name": "answer"}}
        )
        session = new_session(request, server_config)
        response = await session.get_response()
        assert response.finish_reason is FinishReason.ERROR
        assert "schema" in response.content
        assert scripted_engine.calls == []


class TestStreamResponses:
    @pytest.mark.asyncio
    async def test_stream_chunks(self, server_config, scripted_engine):
        scripted_engine.snapshots = [EngineResult(text="Hel"), EngineResult(text="Hello")]
        session = new_session(_request(stream=True), server_config)
        chunks = [chunk async for chunk in session.stream_responses()]
        assert [c.content for c in chunks] == ["Hel", "lo", None]
        assert chunks[-1].finish_reason is FinishReason.STOP

    @pytest.mark.asyncio
    async def test_stream_missing_schema(self, server_config):
        request = _request(
            stream=True,
            response_format={"type": "json_schema", "json_schema": {"name": "answer"}},
        )
        chunks = [chunk async for chunk in new_session(request, server_config).stream_responses()]
        assert len(chunks) == 1
        assert chunks[0].finish_reason is FinishReason.ERROR

    @pytest.mark.asyncio
    async def test_closing_stream_releases_engine_stream(self, server_config, scripted_engine):
        scripted_engine.snapshots = [EngineResult(text="w" * (i + 1)) for i in range(50)]
        session = new_session(_request(stream=True), server_config)
        chunks = session.stream_responses()
        assert (await chunks.__anext__()).content == "w"
        await chunks.aclose()
        assert scripted_engine.stream_closed

    @pytest.mark.asyncio
    async def test_structured_stream_decodes_text_snapshots(self, server_config, scripted_engine):
        scripted_engine.snapshots = [EngineResult(text='{"x"'), EngineResult(text='{"x": 4}')]
        request = _request(
            stream=True,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "answer",
                    "schema": {"type": "object", "properties": {"x": {"type": "integer"}}},
                },
            },
        )
        chunks = [chunk async for chunk in new_session(request, server_config).stream_responses()]
        assert [c.content for c in chunks] == [None, '{"x": 4}', None]
        assert chunks[-1].finish_reason is FinishReason.STOP
