"""Unit tests — GeminiProvider with the SDK module patched out."""

from __future__ import annotations

import re
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from excel_agent.config import Settings
from excel_agent.protocol.models import TextChunk, ToolCallChunk
from excel_agent.providers.base import (
    ChatCompletionRequest,
    FinishReason,
    ProviderMessage,
    ProviderTool,
    ProviderToolCall,
)
from excel_agent.providers.gemini_provider import (
    GeminiProvider,
    _clean_schema,
    generate_call_id,
    map_finish_reason,
)


def _text_part(text: str) -> SimpleNamespace:
    return SimpleNamespace(text=text)


def _call_part(name: str, args: dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(function_call=SimpleNamespace(name=name, args=args))


def _response(parts: list[Any], finish: str = "STOP") -> SimpleNamespace:
    return SimpleNamespace(
        candidates=[
            SimpleNamespace(
                content=SimpleNamespace(parts=parts),
                finish_reason=SimpleNamespace(name=finish),
            )
        ],
        usage_metadata=SimpleNamespace(
            prompt_token_count=30, candidates_token_count=10, total_token_count=40
        ),
    )


async def _stream(*chunks: Any):
    for chunk in chunks:
        yield chunk


@pytest.fixture
def sdk() -> MagicMock:
    with patch(
        "excel_agent.providers.gemini_provider.genai", create=True
    ) as mock_genai, patch("excel_agent.providers.gemini_provider._AVAILABLE", True):
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(return_value=_response([_text_part("Hello")]))
        yield mock_genai


@pytest.fixture
def provider(sdk: MagicMock) -> GeminiProvider:
    return GeminiProvider(api_key="g-test", model_id="gemini-1.5-pro", settings=Settings())


def _request(**kwargs: Any) -> ChatCompletionRequest:
    return ChatCompletionRequest(
        messages=[
            ProviderMessage(role="system", content="sys"),
            ProviderMessage(role="user", content="Hi"),
        ],
        **kwargs,
    )


@pytest.mark.unit
class TestHelpers:
    def test_call_id_format(self) -> None:
        assert re.fullmatch(r"call_\d+_[a-z0-9]{9}", generate_call_id())

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("STOP", FinishReason.STOP),
            ("MAX_TOKENS", FinishReason.LENGTH),
            ("SAFETY", FinishReason.ERROR),
            ("RECITATION", FinishReason.ERROR),
            ("FINISH_REASON_UNSPECIFIED", FinishReason.STOP),
            (None, FinishReason.STOP),
        ],
    )
    def test_finish_reason_mapping(self, raw: str | None, expected: FinishReason) -> None:
        assert map_finish_reason(raw) is expected

    def test_finish_reason_enum_name(self) -> None:
        assert map_finish_reason(SimpleNamespace(name="MAX_TOKENS")) is FinishReason.LENGTH

    def test_clean_schema_strips_unsupported_keys(self) -> None:
        cleaned = _clean_schema(
            {
                "type": "object",
                "additionalProperties": True,
                "properties": {"n": {"type": "number", "default": 5}},
            }
        )
        assert cleaned == {"type": "object", "properties": {"n": {"type": "number"}}}


@pytest.mark.unit
class TestChat:
    async def test_configure_and_model_build(self, sdk: MagicMock, provider: GeminiProvider) -> None:
        await provider.chat(_request())
        sdk.configure.assert_called_once_with(api_key="g-test")
        args, kwargs = sdk.GenerativeModel.call_args
        assert args == ("gemini-1.5-pro",)
        assert kwargs["system_instruction"] == "sys"
        assert kwargs["generation_config"] == {"temperature": 0.7}
        assert "tools" not in kwargs

    async def test_max_tokens_passed_when_set(
        self, sdk: MagicMock, provider: GeminiProvider
    ) -> None:
        await provider.chat(_request(max_tokens=256))
        kwargs = sdk.GenerativeModel.call_args.kwargs
        assert kwargs["generation_config"]["max_output_tokens"] == 256

    async def test_tools_wrapped_in_function_declarations(
        self, sdk: MagicMock, provider: GeminiProvider
    ) -> None:
        tool = ProviderTool(
            name="getRangeValues",
            description="d",
            parameters={"type": "object", "properties": {"maxCells": {"type": "number", "default": 1000}}},
        )
        await provider.chat(_request(tools=[tool]))
        tools = sdk.GenerativeModel.call_args.kwargs["tools"]
        declaration = tools[0]["function_declarations"][0]
        assert declaration["name"] == "getRangeValues"
        assert declaration["parameters"]["properties"]["maxCells"] == {"type": "number"}

    async def test_text_and_usage(self, sdk: MagicMock, provider: GeminiProvider) -> None:
        response = await provider.chat(_request())
        assert response.content == "Hello"
        assert response.finish_reason is FinishReason.STOP
        assert response.usage is not None
        assert response.usage.total_tokens == 40

    async def test_function_calls_get_generated_ids(
        self, sdk: MagicMock, provider: GeminiProvider
    ) -> None:
        sdk.GenerativeModel.return_value.generate_content_async.return_value = _response(
            [_call_part("createSheet", {"name": "Summary"}), _call_part("getWorkbookSchema", {})]
        )
        response = await provider.chat(_request())
        assert response.content is None
        assert [c.name for c in response.tool_calls] == ["createSheet", "getWorkbookSchema"]
        assert response.tool_calls[0].parsed_arguments() == {"name": "Summary"}
        assert response.tool_calls[1].parsed_arguments() == {}
        assert response.tool_calls[0].id != response.tool_calls[1].id

    async def test_no_candidates_is_error(self, sdk: MagicMock, provider: GeminiProvider) -> None:
        sdk.GenerativeModel.return_value.generate_content_async.return_value = SimpleNamespace(
            candidates=[], usage_metadata=None
        )
        response = await provider.chat(_request())
        assert response.finish_reason is FinishReason.ERROR
        assert response.tool_calls == []


@pytest.mark.unit
class TestStreamChat:
    async def test_whole_calls_emitted(self, sdk: MagicMock, provider: GeminiProvider) -> None:
        sdk.GenerativeModel.return_value.generate_content_async.return_value = _stream(
            _response([_text_part("Working")]),
            SimpleNamespace(candidates=[]),
            _response([_call_part("createSheet", {"name": "Summary"})]),
        )
        chunks = [c async for c in provider.stream_chat(_request())]
        assert isinstance(chunks[0], TextChunk)
        assert isinstance(chunks[1], ToolCallChunk)
        assert chunks[1].args == {"name": "Summary"}
        assert chunks[1].call_id.startswith("call_")
        kwargs = sdk.GenerativeModel.return_value.generate_content_async.call_args.kwargs
        assert kwargs["stream"] is True


@pytest.mark.unit
class TestConvertMessages:
    def test_tool_results_routed_by_function_name(self, provider: GeminiProvider) -> None:
        system, contents = provider.convert_messages(
            [
                ProviderMessage(role="system", content="sys"),
                ProviderMessage(role="user", content="Go"),
                ProviderMessage(
                    role="assistant",
                    content="",
                    tool_calls=[
                        ProviderToolCall(id="c1", name="createSheet", arguments='{"name": "A"}'),
                        ProviderToolCall(id="c2", name="getWorkbookSchema", arguments=""),
                    ],
                ),
                ProviderMessage(role="tool", content='{"success": true}', tool_call_id="c1"),
                ProviderMessage(role="tool", content="not json", tool_call_id="c2"),
            ]
        )
        assert system == "sys"
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[1]["parts"][0] == {"function_call": {"name": "createSheet", "args": {"name": "A"}}}
        responses = [p["function_response"] for p in contents[2]["parts"]]
        assert responses[0] == {"name": "createSheet", "response": {"success": True}}
        assert responses[1] == {"name": "getWorkbookSchema", "response": {"result": "not json"}}

    def test_explicit_name_wins(self, provider: GeminiProvider) -> None:
        _, contents = provider.convert_messages(
            [ProviderMessage(role="tool", content="[1]", tool_call_id="x", name="getRangeValues")]
        )
        part = contents[0]["parts"][0]["function_response"]
        assert part == {"name": "getRangeValues", "response": {"result": [1]}}

    async def test_close_is_noop(self, provider: GeminiProvider) -> None:
        await provider.close()
