"""Typed argument models for the workbook tools.

Field names are snake_case in Python and accept the camelCase keys the model
emits (``sheetName``, ``addressOrUsedRange`` ...).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from excel_agent.exceptions import ToolArgumentError, ToolNotFoundError
from excel_agent.protocol.workbook import WireModel

ChartType = Literal[
    "columnClustered",
    "columnStacked",
    "barClustered",
    "barStacked",
    "line",
    "lineMarkers",
    "pie",
    "doughnut",
    "area",
    "scatter",
    "bubble",
]

SummarizeBy = Literal["sum", "count", "average", "max", "min"]


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


class GetWorkbookSchemaArgs(WireModel):
    include_formulas: bool = False
    include_charts: bool = True
    include_pivots: bool = True


class GetRangeValuesArgs(WireModel):
    sheet_name: str
    address: str = Field(description='Cell address or range, e.g. "A1:D10".')
    max_cells: int = Field(default=1000, ge=1)


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


class CreateSheetArgs(WireModel):
    name: str = Field(min_length=1, max_length=31)
    position: int | str = Field(default="end", description='"end", "beginning" or a 0-based index.')


class EnsureTableArgs(WireModel):
    sheet_name: str
    address_or_used_range: str
    table_name: str = Field(min_length=1)
    has_headers: bool = True


class WriteRangeArgs(WireModel):
    sheet_name: str
    address: str
    values: list[list[Any]] = Field(min_length=1)


class SetFormulaArgs(WireModel):
    sheet_name: str
    address: str
    formula: str


class CreateChartArgs(WireModel):
    sheet_name: str
    source_address: str
    chart_type: ChartType
    destination_address: str | None = None
    title: str | None = None
    width: float = Field(default=500, gt=0)
    height: float = Field(default=300, gt=0)


class PivotValueField(WireModel):
    field: str
    summarize_by: SummarizeBy = "sum"
    name: str | None = None


class CreatePivotTableArgs(WireModel):
    pivot_name: str = Field(min_length=1)
    source_address_or_table: str
    destination_sheet: str
    destination_cell: str
    rows: list[str] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    values: list[PivotValueField] = Field(default_factory=list)
    filters: list[str] = Field(default_factory=list)


class BorderStyle(WireModel):
    style: Literal["thin", "medium", "thick", "dashed", "dotted", "double"] = "thin"
    color: str | None = None


class BorderSpec(WireModel):
    top: BorderStyle | None = None
    bottom: BorderStyle | None = None
    left: BorderStyle | None = None
    right: BorderStyle | None = None
    all: BorderStyle | None = None


class FormatSpec(WireModel):
    bold: bool | None = None
    italic: bool | None = None
    underline: bool | None = None
    font_size: float | None = None
    font_color: str | None = None
    background_color: str | None = None
    number_format: str | None = None
    horizontal_alignment: Literal["left", "center", "right"] | None = None
    vertical_alignment: Literal["top", "middle", "bottom"] | None = None
    borders: BorderSpec | None = None
    wrap_text: bool | None = None


class FormatRangeArgs(WireModel):
    sheet_name: str
    address: str
    format: FormatSpec


class AddNamedRangeArgs(WireModel):
    name: str = Field(min_length=1)
    sheet_name: str
    address: str


TOOL_ARGUMENT_MODELS: dict[str, type[BaseModel]] = {
    "getWorkbookSchema": GetWorkbookSchemaArgs,
    "getRangeValues": GetRangeValuesArgs,
    "createSheet": CreateSheetArgs,
    "ensureTable": EnsureTableArgs,
    "writeRange": WriteRangeArgs,
    "setFormula": SetFormulaArgs,
    "createChart": CreateChartArgs,
    "createPivotTable": CreatePivotTableArgs,
    "formatRange": FormatRangeArgs,
    "addNamedRange": AddNamedRangeArgs,
}


def validate_tool_args(tool_name: str, args: dict[str, Any] | None) -> BaseModel:
    """Validate *args* against the tool's model.

    Raises:
        ToolNotFoundError:  *tool_name* has no argument model.
        ToolArgumentError:  *args* do not satisfy the model.
    """
    model = TOOL_ARGUMENT_MODELS.get(tool_name)
    if model is None:
        raise ToolNotFoundError(tool_name)
    try:
        return model.model_validate(args or {})
    except ValidationError as exc:
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in exc.errors()
        ]
        raise ToolArgumentError(tool_name, errors) from exc
