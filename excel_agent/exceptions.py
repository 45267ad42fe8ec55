"""Excel Agent — Exception hierarchy.

All exceptions raised by the agent core inherit from ExcelAgentError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    ExcelAgentError
    ├── ConfigurationError
    ├── ProviderError
    │   ├── ProviderUnavailableError
    │   └── UnsupportedProviderError
    ├── ModelNotFoundError
    ├── PlanError
    │   └── PlanExtractionError
    ├── ToolError
    │   ├── ToolNotFoundError
    │   ├── ToolArgumentError
    │   └── ToolExecutionError
    └── LedgerError
        └── LedgerStoreError

Most of these never reach the caller of the chat orchestrator: provider and
tool failures are folded into ``ChatServiceResult`` / ``ToolResult`` values.
"""

from __future__ import annotations

from typing import Any


class ExcelAgentError(Exception):
    """Base exception for all Excel Agent errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


class ConfigurationError(ExcelAgentError):
    """A configuration file or environment override is invalid."""


# ---------------------------------------------------------------------------
# Providers and models
# ---------------------------------------------------------------------------


class ProviderError(ExcelAgentError):
    """Base for all LLM provider errors."""


class ProviderUnavailableError(ProviderError):
    """The provider cannot be constructed (missing credential or SDK)."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(
            f"Provider '{provider}' is unavailable: {reason}",
            context={"provider": provider, "reason": reason},
        )
        self.provider = provider
        self.reason = reason


class UnsupportedProviderError(ProviderError):
    """The provider tag is outside the supported enumeration."""

    def __init__(self, provider: str, supported: list[str] | None = None) -> None:
        supported = supported or []
        super().__init__(
            f"Unsupported provider '{provider}'. "
            f"Supported: {', '.join(supported) or '(none)'}",
            context={"provider": provider, "supported": supported},
        )
        self.provider = provider


class ModelNotFoundError(ExcelAgentError):
    """The requested model is not in the catalog or is disabled."""

    def __init__(self, model_id: str) -> None:
        super().__init__(
            f"Model not found or not enabled: {model_id}",
            context={"model_id": model_id},
        )
        self.model_id = model_id


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class PlanError(ExcelAgentError):
    """Base for plan handling errors."""


class PlanExtractionError(PlanError):
    """A single extraction strategy could not recover a plan payload."""

    def __init__(self, strategy: str, reason: str) -> None:
        super().__init__(
            f"Strategy '{strategy}' failed: {reason}",
            context={"strategy": strategy, "reason": reason},
        )
        self.strategy = strategy


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolError(ExcelAgentError):
    """Base for tool errors."""


class ToolNotFoundError(ToolError):
    """The requested tool is not in the catalog."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}", context={"tool_name": tool_name})
        self.tool_name = tool_name


class ToolArgumentError(ToolError):
    """Tool arguments failed validation against the tool's parameter model."""

    def __init__(self, tool_name: str, errors: list[dict[str, Any]] | None = None) -> None:
        errors = errors or []
        details = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in errors
        )
        super().__init__(
            f"Invalid arguments for '{tool_name}'" + (f": {details}" if details else ""),
            context={"tool_name": tool_name, "validation_errors": errors},
        )
        self.tool_name = tool_name
        self.errors = errors


class ToolExecutionError(ToolError):
    """The tool ran but the workbook operation failed."""

    def __init__(self, tool_name: str, cause: str) -> None:
        super().__init__(
            f"Tool '{tool_name}' failed: {cause}",
            context={"tool_name": tool_name, "cause": cause},
        )
        self.tool_name = tool_name
        self.cause = cause


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerError(ExcelAgentError):
    """Base for idempotency ledger errors."""


class LedgerStoreError(LedgerError):
    """The ledger database could not be opened or written."""
