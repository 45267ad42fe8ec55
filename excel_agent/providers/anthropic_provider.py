"""Anthropic provider adapter.

Uses the ``anthropic`` SDK (``AsyncAnthropic``) and the Messages API.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from excel_agent.config import Settings, get_settings
from excel_agent.protocol.models import TextChunk
from excel_agent.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    FinishReason,
    LLMProvider,
    ProviderMessage,
    ProviderTool,
    ProviderToolCall,
    StreamChunk,
    ToolCallAccumulator,
    Usage,
)

try:
    import anthropic

    _AVAILABLE = True
except ImportError:
    _AVAILABLE = False


_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_CALLS,
    "max_tokens": FinishReason.LENGTH,
}


def map_stop_reason(reason: str | None) -> FinishReason:
    return _STOP_REASONS.get(reason or "", FinishReason.STOP)


class AnthropicProvider(LLMProvider):
    """Adapter for Claude models.

    Args:
        api_key:     Anthropic API key.
        model_id:    Model identifier (e.g. ``"claude-sonnet-4-20250514"``).
        temperature: Default sampling temperature for requests that set none.
        max_tokens:  Default output cap; the Messages API requires one.
    """

    provider_id = "anthropic"
    supports_tool_calling = True

    def __init__(
        self,
        api_key: str,
        model_id: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        if not _AVAILABLE:
            raise ImportError(
                "The 'anthropic' package is required for AnthropicProvider. "
                "Install with: pip install anthropic"
            )
        cfg = (settings or get_settings()).providers
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model_id = model_id
        self._temperature = temperature if temperature is not None else cfg.temperature
        self._max_tokens = max_tokens if max_tokens is not None else cfg.anthropic_max_tokens

    @property
    def model_id(self) -> str:
        return self._model_id

    # ------------------------------------------------------------------
    # LLMProvider
    # ------------------------------------------------------------------

    async def chat(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        response = await self._client.messages.create(**self._request_kwargs(request))

        text_parts: list[str] = []
        tool_calls: list[ProviderToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ProviderToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input))
                )

        usage = Usage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        return ChatCompletionResponse(
            content="".join(text_parts) or None,
            tool_calls=tool_calls,
            finish_reason=map_stop_reason(response.stop_reason),
            usage=usage,
        )

    async def stream_chat(self, request: ChatCompletionRequest) -> AsyncIterator[StreamChunk]:
        stream = await self._client.messages.create(**self._request_kwargs(request), stream=True)
        pending = ToolCallAccumulator()

        async for event in stream:
            if event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    pending.add(event.index, id=block.id, name=block.name)
            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    yield TextChunk(content=delta.text)
                elif delta.type == "input_json_delta":
                    pending.add(event.index, fragment=delta.partial_json)
            elif event.type == "content_block_stop":
                call = pending.finalize(event.index)
                if call is not None:
                    yield call

        for call in pending.finalize_all():
            yield call

    async def close(self) -> None:
        if hasattr(self._client, "close"):
            await self._client.close()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _request_kwargs(self, request: ChatCompletionRequest) -> dict[str, Any]:
        system, messages = self.convert_messages(request.messages)
        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "max_tokens": request.max_tokens if request.max_tokens is not None else self._max_tokens,
            "messages": messages,
            "temperature": (
                request.temperature if request.temperature is not None else self._temperature
            ),
        }
        if system:
            kwargs["system"] = system
        if request.tools:
            kwargs["tools"] = self.format_tool_definitions(request.tools)
        return kwargs

    def format_tool_definitions(self, tools: list[ProviderTool]) -> list[dict[str, Any]]:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in tools
        ]

    def convert_messages(
        self, messages: list[ProviderMessage]
    ) -> tuple[str, list[dict[str, Any]]]:
        """Split out the system prompt and convert the rest to Messages API form.

        Consecutive tool results are bundled into a single user message, as
        the API requires all results for one assistant turn together.
        """
        system = ""
        converted: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                system = msg.content
            elif msg.role == "user":
                converted.append({"role": "user", "content": msg.content})
            elif msg.role == "assistant":
                content: list[dict[str, Any]] = []
                if msg.content:
                    content.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls or []:
                    content.append(
                        {
                            "type": "tool_use",
                            "id": tc.id,
                            "name": tc.name,
                            "input": tc.parsed_arguments(),
                        }
                    )
                converted.append({"role": "assistant", "content": content})
            elif msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                previous = converted[-1] if converted else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})

        return system, converted
