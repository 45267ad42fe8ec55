"""Provider registry — map a model's provider tag to its adapter.

Implementations are resolved lazily so an SDK is only imported when a model
that needs it is actually used.
"""

from __future__ import annotations

import importlib
import os
from enum import Enum
from typing import TYPE_CHECKING

from excel_agent.config import Settings, get_settings
from excel_agent.exceptions import UnsupportedProviderError
from excel_agent.logging import get_logger
from excel_agent.providers.base import LLMProvider

if TYPE_CHECKING:
    from excel_agent.providers.catalog import ModelInfo

log = get_logger(__name__)


class ProviderTag(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


# provider tag → (module_path, class_name)
_ADAPTERS: dict[ProviderTag, tuple[str, str]] = {
    ProviderTag.OPENAI: ("excel_agent.providers.openai_provider", "OpenAIProvider"),
    ProviderTag.ANTHROPIC: ("excel_agent.providers.anthropic_provider", "AnthropicProvider"),
    ProviderTag.GOOGLE: ("excel_agent.providers.gemini_provider", "GeminiProvider"),
}


def resolve_provider_tag(value: str | ProviderTag) -> ProviderTag:
    try:
        return ProviderTag(value)
    except ValueError:
        raise UnsupportedProviderError(str(value), [t.value for t in ProviderTag]) from None


def _env_key(tag: ProviderTag, settings: Settings) -> str:
    cfg = settings.providers
    return {
        ProviderTag.OPENAI: cfg.openai_env_key,
        ProviderTag.ANTHROPIC: cfg.anthropic_env_key,
        ProviderTag.GOOGLE: cfg.google_env_key,
    }[tag]


def available_providers(settings: Settings | None = None) -> list[str]:
    """Provider tags whose credential is present in the environment."""
    settings = settings or get_settings()
    return [tag.value for tag in ProviderTag if os.environ.get(_env_key(tag, settings))]


def create_provider_adapter(
    model: ModelInfo,
    settings: Settings | None = None,
) -> LLMProvider | None:
    """Build the adapter for *model*, or None when it cannot be constructed.

    Never raises: an unsupported tag, a missing credential and a missing SDK
    are each logged and reported as None.
    """
    settings = settings or get_settings()
    try:
        tag = resolve_provider_tag(model.provider)
    except UnsupportedProviderError as exc:
        log.error("unsupported_provider", model_id=model.id, provider=exc.provider)
        return None

    env_key = _env_key(tag, settings)
    api_key = os.environ.get(env_key)
    if not api_key:
        log.warning("provider_unavailable", model_id=model.id, provider=tag.value, env_key=env_key)
        return None

    module_path, class_name = _ADAPTERS[tag]
    try:
        cls = getattr(importlib.import_module(module_path), class_name)
        return cls(
            api_key=api_key,
            model_id=model.id,
            temperature=model.default_temperature,
            settings=settings,
        )
    except ImportError as exc:
        log.error("provider_sdk_missing", model_id=model.id, provider=tag.value, error=str(exc))
        return None
