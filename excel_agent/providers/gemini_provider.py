"""Google Gemini provider adapter.

Uses the ``google-generativeai`` SDK.  Gemini does not assign ids to function
calls, so the adapter generates them; tool results are routed back by
function name.
"""

from __future__ import annotations

import json
import random
import string
import time
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from excel_agent.config import Settings, get_settings
from excel_agent.protocol.models import TextChunk, ToolCallChunk
from excel_agent.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    FinishReason,
    LLMProvider,
    ProviderMessage,
    ProviderTool,
    ProviderToolCall,
    StreamChunk,
    Usage,
)

try:
    import google.generativeai as genai

    _AVAILABLE = True
except ImportError:
    _AVAILABLE = False


_ERROR_REASONS = frozenset(
    {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "OTHER"}
)

# Schema keywords the Gemini function-declaration schema rejects.
_UNSUPPORTED_SCHEMA_KEYS = frozenset({"additionalProperties", "default"})

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_call_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"call_{int(time.time() * 1000)}_{suffix}"


def map_finish_reason(reason: Any) -> FinishReason:
    name = getattr(reason, "name", reason)
    name = str(name) if name is not None else ""
    if name == "STOP":
        return FinishReason.STOP
    if name == "MAX_TOKENS":
        return FinishReason.LENGTH
    if name in _ERROR_REASONS:
        return FinishReason.ERROR
    return FinishReason.STOP


def _to_plain(value: Any) -> Any:
    """Convert proto map/repeated composites to plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_to_plain(v) for v in value]
    return value


def _clean_schema(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {
            k: _clean_schema(v) for k, v in schema.items() if k not in _UNSUPPORTED_SCHEMA_KEYS
        }
    if isinstance(schema, list):
        return [_clean_schema(v) for v in schema]
    return schema


def _function_call(part: Any) -> Any | None:
    fc = getattr(part, "function_call", None)
    if fc is not None and getattr(fc, "name", ""):
        return fc
    return None


class GeminiProvider(LLMProvider):
    """Adapter for Gemini models.

    Args:
        api_key:     Google API key.
        model_id:    Model identifier (e.g. ``"gemini-1.5-pro"``).
        temperature: Default sampling temperature for requests that set none.
        max_tokens:  Output cap; None lets the model finish its response.
    """

    provider_id = "google"
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
                "The 'google-generativeai' package is required for GeminiProvider. "
                "Install with: pip install google-generativeai"
            )
        cfg = (settings or get_settings()).providers
        genai.configure(api_key=api_key)
        self._model_id = model_id
        self._temperature = temperature if temperature is not None else cfg.temperature
        self._max_tokens = max_tokens if max_tokens is not None else cfg.google_max_tokens

    @property
    def model_id(self) -> str:
        return self._model_id

    # ------------------------------------------------------------------
    # LLMProvider
    # ------------------------------------------------------------------

    async def chat(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        system, contents = self.convert_messages(request.messages)
        model = self._build_model(request, system)
        response = await model.generate_content_async(contents)

        candidates = list(response.candidates or [])
        if not candidates:
            return ChatCompletionResponse(finish_reason=FinishReason.ERROR)
        candidate = candidates[0]

        text_parts: list[str] = []
        tool_calls: list[ProviderToolCall] = []
        for part in candidate.content.parts:
            fc = _function_call(part)
            if fc is not None:
                tool_calls.append(
                    ProviderToolCall(
                        id=generate_call_id(),
                        name=fc.name,
                        arguments=json.dumps(_to_plain(fc.args) if fc.args else {}),
                    )
                )
            elif getattr(part, "text", ""):
                text_parts.append(part.text)

        usage = None
        meta = getattr(response, "usage_metadata", None)
        if meta is not None:
            usage = Usage(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
                total_tokens=meta.total_token_count or 0,
            )

        return ChatCompletionResponse(
            content="".join(text_parts) or None,
            tool_calls=tool_calls,
            finish_reason=map_finish_reason(candidate.finish_reason),
            usage=usage,
        )

    async def stream_chat(self, request: ChatCompletionRequest) -> AsyncIterator[StreamChunk]:
        system, contents = self.convert_messages(request.messages)
        model = self._build_model(request, system)
        response = await model.generate_content_async(contents, stream=True)

        async for chunk in response:
            candidates = list(chunk.candidates or [])
            if not candidates:
                continue
            for part in candidates[0].content.parts:
                fc = _function_call(part)
                if fc is not None:
                    # Gemini sends whole calls, never fragments.
                    yield ToolCallChunk(
                        call_id=generate_call_id(),
                        tool_name=fc.name,
                        args=_to_plain(fc.args) if fc.args else {},
                    )
                elif getattr(part, "text", ""):
                    yield TextChunk(content=part.text)

    async def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _build_model(self, request: ChatCompletionRequest, system: str) -> Any:
        config: dict[str, Any] = {
            "temperature": (
                request.temperature if request.temperature is not None else self._temperature
            ),
        }
        max_tokens = request.max_tokens if request.max_tokens is not None else self._max_tokens
        if max_tokens is not None:
            config["max_output_tokens"] = max_tokens

        kwargs: dict[str, Any] = {"generation_config": config}
        if system:
            kwargs["system_instruction"] = system
        if request.tools:
            kwargs["tools"] = self.format_tool_definitions(request.tools)
        return genai.GenerativeModel(self._model_id, **kwargs)

    def format_tool_definitions(self, tools: list[ProviderTool]) -> list[dict[str, Any]]:
        return [
            {
                "function_declarations": [
                    {
                        "name": t.name,
                        "description": t.description,
                        "parameters": _clean_schema(t.parameters),
                    }
                    for t in tools
                ]
            }
        ]

    def convert_messages(
        self, messages: list[ProviderMessage]
    ) -> tuple[str, list[dict[str, Any]]]:
        system = ""
        contents: list[dict[str, Any]] = []
        call_names: dict[str, str] = {}

        for msg in messages:
            if msg.role == "system":
                system = msg.content
            elif msg.role == "user":
                contents.append({"role": "user", "parts": [{"text": msg.content}]})
            elif msg.role == "assistant":
                parts: list[dict[str, Any]] = []
                if msg.content:
                    parts.append({"text": msg.content})
                for tc in msg.tool_calls or []:
                    call_names[tc.id] = tc.name
                    parts.append(
                        {"function_call": {"name": tc.name, "args": tc.parsed_arguments()}}
                    )
                contents.append({"role": "model", "parts": parts})
            elif msg.role == "tool":
                name = msg.name or call_names.get(msg.tool_call_id or "", "")
                try:
                    response = json.loads(msg.content)
                except (json.JSONDecodeError, TypeError):
                    response = {"result": msg.content}
                if not isinstance(response, dict):
                    response = {"result": response}
                part = {"function_response": {"name": name, "response": response}}

                previous = contents[-1] if contents else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and all("function_response" in p for p in previous["parts"])
                ):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})

        return system, contents
