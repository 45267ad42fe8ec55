"""Tool catalog — the fixed capability surface exposed to the model.

Every operation the model may request is declared here with its risk level
and parameter list.  Provider adapters derive their function schemas from
this catalog, the prompt builder lists it, and the orchestrator consults it
to keep planning turns read-only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from excel_agent.protocol.models import RiskLevel


@dataclass(frozen=True)
class ToolParameter:
    """Description of a single tool parameter."""

    name: str
    type: str  # string, number, boolean, array, object
    description: str
    required: bool = False
    default: Any = None


@dataclass(frozen=True)
class ToolDefinition:
    """Description of a single tool."""

    name: str
    description: str
    risk_level: RiskLevel
    parameters: tuple[ToolParameter, ...] = field(default_factory=tuple)

    @property
    def required_parameters(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]


def _p(name: str, type: str, description: str, required: bool = False, default: Any = None) -> ToolParameter:
    return ToolParameter(name=name, type=type, description=description, required=required, default=default)


TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="getWorkbookSchema",
        description=(
            "Get the structure of the workbook including sheets, tables, named ranges, "
            "pivots, charts, and active selection."
        ),
        risk_level=RiskLevel.READ,
        parameters=(
            _p("includeFormulas", "boolean", "Include formula information", default=False),
            _p("includeCharts", "boolean", "Include chart information", default=True),
            _p("includePivots", "boolean", "Include pivot table information", default=True),
        ),
    ),
    ToolDefinition(
        name="getRangeValues",
        description="Read values from a range of cells. Use maxCells to limit large ranges.",
        risk_level=RiskLevel.READ,
        parameters=(
            _p("sheetName", "string", "Name of the worksheet", required=True),
            _p("address", "string", 'Cell address or range (e.g., "A1:D10")', required=True),
            _p("maxCells", "number", "Maximum cells to return (samples if exceeded)", default=1000),
        ),
    ),
    ToolDefinition(
        name="createSheet",
        description="Create a new worksheet in the workbook.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("name", "string", "Name for the new sheet", required=True),
            _p("position", "string", 'Position: "end", "beginning", or index number', default="end"),
        ),
    ),
    ToolDefinition(
        name="ensureTable",
        description="Create a table from a range, or return existing table if already defined.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("sheetName", "string", "Name of the worksheet", required=True),
            _p("addressOrUsedRange", "string", 'Range address or "usedRange"', required=True),
            _p("tableName", "string", "Name for the table", required=True),
            _p("hasHeaders", "boolean", "First row contains headers", default=True),
        ),
    ),
    ToolDefinition(
        name="writeRange",
        description="Write values to a range of cells. Values must be a 2D array.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("sheetName", "string", "Name of the worksheet", required=True),
            _p("address", "string", 'Starting cell address (e.g., "A1")', required=True),
            _p("values", "array", "2D array of values to write", required=True),
        ),
    ),
    ToolDefinition(
        name="setFormula",
        description="Set a formula in a cell or range.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("sheetName", "string", "Name of the worksheet", required=True),
            _p("address", "string", "Cell address", required=True),
            _p("formula", "string", "Formula starting with =", required=True),
        ),
    ),
    ToolDefinition(
        name="createChart",
        description="Create a chart from data in a range.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("sheetName", "string", "Sheet containing the data", required=True),
            _p("sourceAddress", "string", "Data range for the chart", required=True),
            _p("chartType", "string", 'Chart type (e.g., "columnClustered", "line", "pie")', required=True),
            _p("destinationAddress", "string", "Where to place the chart"),
            _p("title", "string", "Chart title"),
            _p("width", "number", "Chart width in pixels", default=500),
            _p("height", "number", "Chart height in pixels", default=300),
        ),
    ),
    ToolDefinition(
        name="createPivotTable",
        description="Create a pivot table from a data range or table.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("pivotName", "string", "Name for the pivot table", required=True),
            _p("sourceAddressOrTable", "string", "Source data range or table name", required=True),
            _p("destinationSheet", "string", "Sheet for the pivot table", required=True),
            _p("destinationCell", "string", "Cell address for pivot placement", required=True),
            _p("rows", "array", "Fields for row labels"),
            _p("columns", "array", "Fields for column labels"),
            _p("values", "array", "Value fields with summarization"),
            _p("filters", "array", "Filter fields"),
        ),
    ),
    ToolDefinition(
        name="formatRange",
        description="Apply formatting to a range of cells.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("sheetName", "string", "Name of the worksheet", required=True),
            _p("address", "string", "Cell or range address", required=True),
            _p("format", "object", "Format specification (bold, fontSize, colors, etc.)", required=True),
        ),
    ),
    ToolDefinition(
        name="addNamedRange",
        description="Create a named range for easy reference.",
        risk_level=RiskLevel.WRITE,
        parameters=(
            _p("name", "string", "Name for the range (must be valid Excel name)", required=True),
            _p("sheetName", "string", "Sheet containing the range", required=True),
            _p("address", "string", "Range address", required=True),
        ),
    ),
)

_BY_NAME: dict[str, ToolDefinition] = {t.name: t for t in TOOL_DEFINITIONS}


def get_tool_definition(name: str) -> ToolDefinition | None:
    return _BY_NAME.get(name)


def is_read_only(name: str) -> bool:
    """True only for catalog tools declared ``read``; unknown names are never read-only."""
    tool = _BY_NAME.get(name)
    return tool is not None and tool.risk_level is RiskLevel.READ


def tool_names() -> list[str]:
    return [t.name for t in TOOL_DEFINITIONS]


def read_only_tool_names() -> list[str]:
    return [t.name for t in TOOL_DEFINITIONS if t.risk_level is RiskLevel.READ]
