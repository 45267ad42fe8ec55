"""LLM provider adapters and the model catalog.

Exports
-------
- :class:`LLMProvider`        — Abstract adapter base class
- :class:`ModelCatalog`       — YAML + environment model catalog
- :func:`create_provider_adapter` — Adapter factory keyed by provider tag

SDK-backed adapters (``OpenAIProvider``, ``AnthropicProvider``,
``GeminiProvider``) live in their own modules and are imported lazily by the
registry.
"""

from excel_agent.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    FinishReason,
    LLMProvider,
    ProviderMessage,
    ProviderTool,
    ProviderToolCall,
    ToolCallAccumulator,
    Usage,
)
from excel_agent.providers.catalog import ModelCatalog, ModelInfo, ModelsResponse
from excel_agent.providers.registry import (
    ProviderTag,
    available_providers,
    create_provider_adapter,
    resolve_provider_tag,
)
from excel_agent.providers.schema import parameter_schema, tool_definitions_to_provider_tools

__all__ = [
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "FinishReason",
    "LLMProvider",
    "ModelCatalog",
    "ModelInfo",
    "ModelsResponse",
    "ProviderMessage",
    "ProviderTag",
    "ProviderTool",
    "ProviderToolCall",
    "ToolCallAccumulator",
    "Usage",
    "available_providers",
    "create_provider_adapter",
    "parameter_schema",
    "resolve_provider_tag",
    "tool_definitions_to_provider_tools",
]
