"""OpenAI provider adapter.

Uses the ``openai`` SDK (``AsyncOpenAI``) and the Chat Completions API.
"""

from __future__ import annotations

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
    import openai

    _AVAILABLE = True
except ImportError:
    _AVAILABLE = False


_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
}


def map_finish_reason(reason: str | None) -> FinishReason:
    return _FINISH_REASONS.get(reason or "", FinishReason.STOP)


class OpenAIProvider(LLMProvider):
    """Adapter for OpenAI chat models.

    Args:
        api_key:     OpenAI API key.
        model_id:    Model identifier (e.g. ``"gpt-4o"``).
        temperature: Default sampling temperature for requests that set none.
        max_tokens:  Default output cap for requests that set none.
    """

    provider_id = "openai"
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
                "The 'openai' package is required for OpenAIProvider. "
                "Install with: pip install openai"
            )
        cfg = (settings or get_settings()).providers
        self._client = openai.AsyncOpenAI(api_key=api_key)
        self._model_id = model_id
        self._temperature = temperature if temperature is not None else cfg.temperature
        self._max_tokens = max_tokens if max_tokens is not None else cfg.openai_max_tokens

    @property
    def model_id(self) -> str:
        return self._model_id

    # ------------------------------------------------------------------
    # LLMProvider
    # ------------------------------------------------------------------

    async def chat(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        response = await self._client.chat.completions.create(**self._request_kwargs(request))

        choice = response.choices[0]
        message = choice.message
        tool_calls = [
            ProviderToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments)
            for tc in (message.tool_calls or [])
        ]
        usage = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return ChatCompletionResponse(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason=map_finish_reason(choice.finish_reason),
            usage=usage,
        )

    async def stream_chat(self, request: ChatCompletionRequest) -> AsyncIterator[StreamChunk]:
        stream = await self._client.chat.completions.create(
            **self._request_kwargs(request), stream=True
        )
        pending = ToolCallAccumulator()

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            if delta is not None and delta.content:
                yield TextChunk(content=delta.content)

            if delta is not None and delta.tool_calls:
                for tc in delta.tool_calls:
                    fn = tc.function
                    pending.add(
                        tc.index,
                        id=tc.id,
                        name=fn.name if fn else None,
                        fragment=fn.arguments if fn else None,
                    )

            if choice.finish_reason == "tool_calls":
                for call in pending.finalize_all():
                    yield call

        # Some compatible servers end the stream without a tool_calls finish reason.
        for call in pending.finalize_all():
            yield call

    async def close(self) -> None:
        if hasattr(self._client, "close"):
            await self._client.close()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _request_kwargs(self, request: ChatCompletionRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": self.convert_messages(request.messages),
            "temperature": (
                request.temperature if request.temperature is not None else self._temperature
            ),
            "max_tokens": request.max_tokens if request.max_tokens is not None else self._max_tokens,
        }
        if request.tools:
            kwargs["tools"] = self.format_tool_definitions(request.tools)
        return kwargs

    def format_tool_definitions(self, tools: list[ProviderTool]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in tools
        ]

    def convert_messages(self, messages: list[ProviderMessage]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "tool":
                converted.append(
                    {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
                )
            elif msg.role == "assistant" and msg.tool_calls:
                converted.append(
                    {
                        "role": "assistant",
                        "content": msg.content or None,
                        "tool_calls": [
                            {
                                "id": tc.id,
                                "type": "function",
                                "function": {"name": tc.name, "arguments": tc.arguments},
                            }
                            for tc in msg.tool_calls
                        ],
                    }
                )
            else:
                converted.append({"role": msg.role, "content": msg.content})
        return converted
