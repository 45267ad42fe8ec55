"""Provider abstraction for the chat orchestrator.

Defines the ``LLMProvider`` ABC and the provider-agnostic data types that
decouple the orchestrator from any specific LLM SDK.  Each adapter converts
these to its SDK's native shapes and back.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from excel_agent.protocol.models import ErrorChunk, TextChunk, ToolCallChunk


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class FinishReason(str, Enum):
    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    ERROR = "error"


@dataclass
class ProviderToolCall:
    """A tool invocation as the model emitted it; ``arguments`` is raw JSON text."""

    id: str
    name: str
    arguments: str

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode ``arguments``. Raises ``ValueError`` on malformed JSON."""
        if not self.arguments:
            return {}
        parsed = json.loads(self.arguments)
        if not isinstance(parsed, dict):
            raise ValueError(f"Tool arguments must be a JSON object, got {type(parsed).__name__}")
        return parsed


@dataclass
class ProviderMessage:
    role: str  # system | user | assistant | tool
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[ProviderToolCall] | None = None


@dataclass
class ProviderTool:
    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ChatCompletionRequest:
    messages: list[ProviderMessage]
    tools: list[ProviderTool] | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatCompletionResponse:
    content: str | None = None
    tool_calls: list[ProviderToolCall] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: Usage | None = None


StreamChunk = Union[TextChunk, ToolCallChunk, ErrorChunk]


# ---------------------------------------------------------------------------
# Streaming tool-call reconstruction
# ---------------------------------------------------------------------------


@dataclass
class PendingToolCall:
    id: str = ""
    name: str = ""
    fragments: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Reassembles tool calls whose arguments arrive as JSON fragments.

    Keys are whatever the SDK uses to address a call in flight (the OpenAI
    delta index, the Anthropic content-block index).  A key is dropped once
    finalised, so the same call is never emitted twice.
    """

    def __init__(self) -> None:
        self._pending: dict[Any, PendingToolCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def add(
        self,
        key: Any,
        id: str | None = None,
        name: str | None = None,
        fragment: str | None = None,
    ) -> None:
        pending = self._pending.setdefault(key, PendingToolCall())
        if id:
            pending.id = id
        if name:
            pending.name = name
        if fragment:
            pending.fragments.append(fragment)

    def finalize(self, key: Any) -> ToolCallChunk | ErrorChunk | None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return None
        call = ProviderToolCall(
            id=pending.id, name=pending.name, arguments="".join(pending.fragments)
        )
        try:
            args = call.parsed_arguments()
        except ValueError as exc:
            return ErrorChunk(
                error=f"Failed to parse tool call arguments: {exc}",
                recoverable=True,
            )
        return ToolCallChunk(call_id=call.id, tool_name=call.name, args=args)

    def finalize_all(self) -> list[ToolCallChunk | ErrorChunk]:
        chunks = []
        for key in list(self._pending):
            chunk = self.finalize(key)
            if chunk is not None:
                chunks.append(chunk)
        return chunks


# ---------------------------------------------------------------------------
# ABC
# ---------------------------------------------------------------------------


class LLMProvider(ABC):
    """Abstract LLM provider adapter.

    Concrete implementations handle SDK-specific formatting: message
    conversion, tool schemas, finish-reason mapping and stream parsing.
    """

    provider_id: str = ""
    supports_tool_calling: bool = True

    @abstractmethod
    async def chat(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send the conversation and return the complete response."""
        ...

    @abstractmethod
    def stream_chat(self, request: ChatCompletionRequest) -> AsyncIterator[StreamChunk]:
        """Stream text and completed tool calls as they become available."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by the provider."""
        ...
