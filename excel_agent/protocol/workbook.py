"""Workbook description models shared by the prompt builder, tools and ledger."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with the UI: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TableInfo(WireModel):
    name: str
    address: str
    header_row: list[str] = Field(default_factory=list)
    row_count: int = 0


class ChartInfo(WireModel):
    name: str
    type: str
    data_range: str | None = None


class PivotTableInfo(WireModel):
    name: str
    source_range: str | None = None


class NamedRangeInfo(WireModel):
    name: str
    address: str
    sheet_name: str


class SheetSchema(WireModel):
    name: str
    used_range: str | None = None
    tables: list[TableInfo] = Field(default_factory=list)
    charts: list[ChartInfo] = Field(default_factory=list)
    pivot_tables: list[PivotTableInfo] = Field(default_factory=list)


class WorkbookSchema(WireModel):
    name: str
    sheets: list[SheetSchema] = Field(default_factory=list)
    named_ranges: list[NamedRangeInfo] = Field(default_factory=list)
    active_sheet: str
    active_selection: str | None = None

    def sheet_names(self) -> list[str]:
        return [s.name for s in self.sheets]


class RangeValues(WireModel):
    address: str
    values: list[list[Any]]
    row_count: int
    column_count: int
    sampled: bool = False
    total_cells: int
