"""Unit tests — exception hierarchy and messages."""

from __future__ import annotations

import pytest

from excel_agent.exceptions import (
    ExcelAgentError,
    LedgerError,
    LedgerStoreError,
    ModelNotFoundError,
    PlanError,
    PlanExtractionError,
    ProviderError,
    ProviderUnavailableError,
    ToolArgumentError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    UnsupportedProviderError,
)


@pytest.mark.unit
class TestHierarchy:
    @pytest.mark.parametrize(
        "exc, parent",
        [
            (ProviderUnavailableError("openai", "missing key"), ProviderError),
            (UnsupportedProviderError("mistral"), ProviderError),
            (PlanExtractionError("parse_whole_text", "bad json"), PlanError),
            (ToolNotFoundError("deleteSheet"), ToolError),
            (ToolArgumentError("writeRange"), ToolError),
            (ToolExecutionError("writeRange", "boom"), ToolError),
            (LedgerStoreError("locked"), LedgerError),
            (ModelNotFoundError("gpt-9"), ExcelAgentError),
        ],
    )
    def test_is_subclass(self, exc: ExcelAgentError, parent: type) -> None:
        assert isinstance(exc, parent)
        assert isinstance(exc, ExcelAgentError)


@pytest.mark.unit
class TestMessages:
    def test_unknown_tool_message(self) -> None:
        assert ToolNotFoundError("deleteSheet").message == "Unknown tool: deleteSheet"

    def test_unsupported_provider_lists_supported(self) -> None:
        exc = UnsupportedProviderError("mistral", ["openai", "anthropic", "google"])
        assert exc.provider == "mistral"
        assert "openai, anthropic, google" in exc.message

    def test_argument_error_includes_locations(self) -> None:
        exc = ToolArgumentError("writeRange", [{"loc": ["values"], "msg": "Field required"}])
        assert exc.message == "Invalid arguments for 'writeRange': values: Field required"
        assert exc.context["tool_name"] == "writeRange"

    def test_execution_error_message(self) -> None:
        exc = ToolExecutionError("createSheet", "Sheet 'X' not found.")
        assert exc.message == "Tool 'createSheet' failed: Sheet 'X' not found."

    def test_repr_includes_context(self) -> None:
        exc = ModelNotFoundError("gpt-9")
        assert "gpt-9" in repr(exc)
        assert str(exc) == "Model not found or not enabled: gpt-9"
