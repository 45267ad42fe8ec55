"""openpyxl-backed workbook session.

Holds one workbook in memory for the duration of a conversation, exposes the
read-only views the ledger needs to verify artifacts, and builds the
``WorkbookSchema`` the prompt builder sends to the model.

Blocking openpyxl calls are made by the tool executor inside
``asyncio.to_thread`` while holding :attr:`ExcelWorkbook.lock`.
"""

from __future__ import annotations

import datetime
import threading
from pathlib import Path
from typing import Any

from excel_agent.logging import get_logger
from excel_agent.protocol.workbook import (
    ChartInfo,
    NamedRangeInfo,
    PivotTableInfo,
    SheetSchema,
    TableInfo,
    WorkbookSchema,
)

log = get_logger(__name__)

# Comment prefix marking a worksheet table as a materialised pivot summary.
PIVOT_SUMMARY_MARKER = "pivot:"


def split_address(address: str) -> tuple[str | None, str]:
    """``"'My Sheet'!A1:B2"`` → ``("My Sheet", "A1:B2")``; bare ranges keep sheet None."""
    if "!" in address:
        sheet, ref = address.rsplit("!", 1)
        return sheet.strip().strip("'"), ref.replace("$", "").strip()
    return None, address.replace("$", "").strip()


def to_json_value(value: Any) -> Any:
    """Convert a cell value to a JSON-safe Python type."""
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (int, float, bool, str)) or value is None:
        return value
    return str(value)


def chart_title(chart: Any) -> str | None:
    """Plain text of an openpyxl chart title, or None when untitled."""
    title = getattr(chart, "title", None)
    if title is None:
        return None
    if isinstance(title, str):
        return title
    try:
        paragraphs = title.tx.rich.p
    except AttributeError:
        return None
    text = "".join(run.t or "" for p in paragraphs for run in (p.r or []))
    return text or None


class ExcelWorkbook:
    """A workbook file opened for agent-driven editing.

    Args:
        path:   Location of the ``.xlsx`` file.
        create: Start from an empty workbook when *path* does not exist.
    """

    def __init__(self, path: Path | str, create: bool = False) -> None:
        self.path = Path(path).expanduser()
        self._create = create
        self._wb: Any = None
        self.lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> None:
        import openpyxl

        if self.path.exists():
            self._wb = openpyxl.load_workbook(str(self.path))
        elif self._create:
            self._wb = openpyxl.Workbook()
        else:
            raise FileNotFoundError(f"Workbook not found: {self.path}")
        log.debug("workbook_loaded", path=str(self.path), sheets=len(self._wb.sheetnames))

    def save(self, output_path: Path | str | None = None) -> Path:
        target = Path(output_path).expanduser() if output_path else self.path
        target.parent.mkdir(parents=True, exist_ok=True)
        self.wb.save(str(target))
        return target

    @property
    def wb(self) -> Any:
        if self._wb is None:
            self.load()
        return self._wb

    @property
    def name(self) -> str:
        return self.path.name

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def worksheet(self, sheet_name: str) -> Any:
        if sheet_name not in self.wb.sheetnames:
            raise KeyError(f"Sheet '{sheet_name}' not found.")
        return self.wb[sheet_name]

    def find_table(self, table_name: str) -> tuple[Any, Any] | None:
        """Return ``(worksheet, table)`` for a table anywhere in the workbook."""
        for ws in self.wb.worksheets:
            if table_name in ws.tables:
                return ws, ws.tables[table_name]
        return None

    def used_range(self, ws: Any) -> str | None:
        if ws.max_row == 1 and ws.max_column == 1 and ws.cell(row=1, column=1).value is None:
            return None
        return ws.dimensions

    # ------------------------------------------------------------------
    # ArtifactInspector
    # ------------------------------------------------------------------

    def sheet_names(self) -> list[str]:
        return list(self.wb.sheetnames)

    def chart_names(self) -> list[str]:
        # Untitled charts are numbered across the whole workbook, in sheet order.
        names: list[str] = []
        charts = (chart for ws in self.wb.worksheets for chart in ws._charts)
        for idx, chart in enumerate(charts, start=1):
            names.append(chart_title(chart) or f"Chart {idx}")
        return names

    def pivot_table_names(self) -> list[str]:
        names: list[str] = []
        for ws in self.wb.worksheets:
            names.extend(p.name for p in getattr(ws, "_pivots", []))
            names.extend(
                t.name
                for t in ws.tables.values()
                if (t.comment or "").startswith(PIVOT_SUMMARY_MARKER)
            )
        return names

    def table_names(self) -> list[str]:
        return [name for ws in self.wb.worksheets for name in ws.tables.keys()]

    def named_range_names(self) -> list[str]:
        return list(self.wb.defined_names.keys())

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def schema(self, include_charts: bool = True, include_pivots: bool = True) -> WorkbookSchema:
        from openpyxl.utils.cell import range_boundaries

        sheets: list[SheetSchema] = []
        for ws in self.wb.worksheets:
            sheet = SheetSchema(name=ws.title, used_range=self.used_range(ws))

            for table in ws.tables.values():
                comment = table.comment or ""
                if comment.startswith(PIVOT_SUMMARY_MARKER):
                    if include_pivots:
                        sheet.pivot_tables.append(
                            PivotTableInfo(
                                name=table.name,
                                source_range=comment[len(PIVOT_SUMMARY_MARKER):] or None,
                            )
                        )
                    continue
                min_col, min_row, max_col, max_row = range_boundaries(table.ref)
                has_header = bool(table.headerRowCount)
                header = (
                    [
                        str(ws.cell(row=min_row, column=c).value or "")
                        for c in range(min_col, max_col + 1)
                    ]
                    if has_header
                    else []
                )
                sheet.tables.append(
                    TableInfo(
                        name=table.name,
                        address=table.ref,
                        header_row=header,
                        row_count=max_row - min_row + 1 - (1 if has_header else 0),
                    )
                )

            if include_charts:
                for idx, chart in enumerate(ws._charts, start=1):
                    sheet.charts.append(
                        ChartInfo(name=chart_title(chart) or f"Chart {idx}", type=chart.tagname)
                    )

            if include_pivots:
                for pivot in getattr(ws, "_pivots", []):
                    sheet.pivot_tables.append(PivotTableInfo(name=pivot.name))

            sheets.append(sheet)

        named_ranges: list[NamedRangeInfo] = []
        for name, defined in self.wb.defined_names.items():
            attr_text = defined.attr_text or ""
            sheet_name, _ = split_address(attr_text)
            named_ranges.append(
                NamedRangeInfo(name=name, address=attr_text, sheet_name=sheet_name or "")
            )

        active = self.wb.active
        selection = active.sheet_view.selection if active is not None else None
        active_selection = str(selection[0].sqref) if selection and selection[0].sqref else None

        return WorkbookSchema(
            name=self.name,
            sheets=sheets,
            named_ranges=named_ranges,
            active_sheet=active.title if active is not None else "",
            active_selection=active_selection,
        )
