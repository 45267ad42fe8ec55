"""Unit tests — tool catalog and argument validation."""

from __future__ import annotations

import pytest

from excel_agent.exceptions import ToolArgumentError, ToolNotFoundError
from excel_agent.protocol.models import RiskLevel
from excel_agent.tools.catalog import (
    TOOL_DEFINITIONS,
    get_tool_definition,
    is_read_only,
    read_only_tool_names,
    tool_names,
)
from excel_agent.tools.params import (
    TOOL_ARGUMENT_MODELS,
    CreateChartArgs,
    FormatRangeArgs,
    validate_tool_args,
)


@pytest.mark.unit
class TestCatalog:
    def test_ten_tools_in_fixed_order(self) -> None:
        assert tool_names() == [
            "getWorkbookSchema",
            "getRangeValues",
            "createSheet",
            "ensureTable",
            "writeRange",
            "setFormula",
            "createChart",
            "createPivotTable",
            "formatRange",
            "addNamedRange",
        ]

    def test_names_are_unique(self) -> None:
        names = [t.name for t in TOOL_DEFINITIONS]
        assert len(names) == len(set(names))

    def test_read_only_tools(self) -> None:
        assert read_only_tool_names() == ["getWorkbookSchema", "getRangeValues"]
        assert is_read_only("getRangeValues")
        assert not is_read_only("writeRange")

    def test_unknown_tool_is_not_read_only(self) -> None:
        assert get_tool_definition("deleteSheet") is None
        assert not is_read_only("deleteSheet")

    def test_required_parameters(self) -> None:
        tool = get_tool_definition("writeRange")
        assert tool is not None
        assert tool.required_parameters == ["sheetName", "address", "values"]
        assert tool.risk_level is RiskLevel.WRITE

    def test_every_tool_has_an_argument_model(self) -> None:
        assert set(TOOL_ARGUMENT_MODELS) == set(tool_names())


@pytest.mark.unit
class TestValidateToolArgs:
    def test_camel_case_keys_accepted(self) -> None:
        args = validate_tool_args(
            "createChart",
            {"sheetName": "Sales", "sourceAddress": "A1:C5", "chartType": "pie"},
        )
        assert isinstance(args, CreateChartArgs)
        assert args.sheet_name == "Sales"
        assert args.width == 500
        assert args.height == 300

    def test_missing_required_raises(self) -> None:
        with pytest.raises(ToolArgumentError) as exc_info:
            validate_tool_args("writeRange", {"sheetName": "Sales", "address": "A1"})
        assert exc_info.value.tool_name == "writeRange"
        assert "values" in exc_info.value.message

    def test_unknown_chart_type_rejected(self) -> None:
        with pytest.raises(ToolArgumentError):
            validate_tool_args(
                "createChart",
                {"sheetName": "Sales", "sourceAddress": "A1:C5", "chartType": "radar"},
            )

    def test_unknown_tool_raises(self) -> None:
        with pytest.raises(ToolNotFoundError):
            validate_tool_args("deleteSheet", {})

    def test_none_args_use_defaults(self) -> None:
        args = validate_tool_args("getWorkbookSchema", None)
        assert args.include_charts is True

    def test_nested_format_spec(self) -> None:
        args = validate_tool_args(
            "formatRange",
            {
                "sheetName": "Sales",
                "address": "A1:C1",
                "format": {"bold": True, "borders": {"all": {"style": "thin"}}},
            },
        )
        assert isinstance(args, FormatRangeArgs)
        assert args.format.bold is True
        assert args.format.borders is not None
        assert args.format.borders.all is not None
