"""Tool executor boundary.

The orchestrator never touches a workbook: it emits tool calls and the
caller hands them to a :class:`ToolExecutor`.  :class:`WorkbookToolExecutor`
is the openpyxl implementation used by the CLI and the tests.

Every tool returns a :class:`ToolResult`; nothing raised inside a tool
escapes :meth:`ToolExecutor.execute`.
"""

from __future__ import annotations

import asyncio
import copy
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable

from excel_agent.exceptions import ToolError, ToolExecutionError, ToolNotFoundError
from excel_agent.ledger.naming import generate_unique_name
from excel_agent.logging import get_logger
from excel_agent.protocol.models import ToolResult
from excel_agent.protocol.workbook import WorkbookSchema
from excel_agent.tools.catalog import is_read_only
from excel_agent.tools.params import (
    AddNamedRangeArgs,
    BorderSpec,
    CreateChartArgs,
    CreatePivotTableArgs,
    CreateSheetArgs,
    EnsureTableArgs,
    FormatRangeArgs,
    GetRangeValuesArgs,
    GetWorkbookSchemaArgs,
    SetFormulaArgs,
    WriteRangeArgs,
    validate_tool_args,
)
from excel_agent.tools.workbook import (
    PIVOT_SUMMARY_MARKER,
    ExcelWorkbook,
    split_address,
    to_json_value,
)

log = get_logger(__name__)

_PIXELS_PER_CM = 96 / 2.54

_SUMMARY_LABELS = {
    "sum": "Sum",
    "count": "Count",
    "average": "Average",
    "max": "Max",
    "min": "Min",
}


def _snake(tool_name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", tool_name).lower()


def _bounds(ref: str) -> tuple[int, int, int, int]:
    """``'B2:D10'`` → (min_row, max_row, min_col, max_col)."""
    from openpyxl.utils.cell import range_boundaries

    min_col, min_row, max_col, max_row = range_boundaries(ref)
    return min_row, max_row, min_col, max_col


def _aggregate(values: list[Any], how: str) -> Any:
    if how == "count":
        return sum(1 for v in values if v not in (None, ""))
    numbers = [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]
    if how == "sum":
        return sum(numbers)
    if not numbers:
        return None
    if how == "average":
        return sum(numbers) / len(numbers)
    if how == "max":
        return max(numbers)
    return min(numbers)


class ToolExecutor(ABC):
    """Executes workbook tools on behalf of the caller."""

    @abstractmethod
    async def execute(self, tool_name: str, args: dict[str, Any]) -> ToolResult:
        """Run *tool_name*; failures are reported as ``success=False``."""

    @abstractmethod
    async def get_schema(self) -> WorkbookSchema:
        """Snapshot of the workbook structure for the next chat request."""


class WorkbookToolExecutor(ToolExecutor):
    """Runs the tool catalog against an :class:`ExcelWorkbook`.

    Args:
        workbook: The open workbook session.
        autosave: Save the file after every successful write tool.
    """

    def __init__(self, workbook: ExcelWorkbook, autosave: bool = True) -> None:
        self._workbook = workbook
        self._autosave = autosave

    @property
    def workbook(self) -> ExcelWorkbook:
        return self._workbook

    async def get_schema(self) -> WorkbookSchema:
        return await asyncio.to_thread(self._locked, self._workbook.schema)

    async def execute(self, tool_name: str, args: dict[str, Any]) -> ToolResult:
        handler: Callable[[Any], ToolResult] | None = getattr(
            self, f"_tool_{_snake(tool_name)}", None
        )
        try:
            if handler is None:
                raise ToolNotFoundError(tool_name)
            params = validate_tool_args(tool_name, args)
            result = await asyncio.to_thread(self._locked, self._run, tool_name, handler, params)
        except ToolError as exc:
            log.warning("tool_rejected", tool=tool_name, error=exc.message)
            return ToolResult(success=False, error=exc.message)
        except Exception as exc:
            log.warning("tool_failed", tool=tool_name, error=str(exc))
            return ToolResult(success=False, error=str(exc))

        log.info(
            "tool_executed",
            tool=tool_name,
            success=result.success,
            artifact_id=result.artifact_id,
        )
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _locked(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._workbook.lock:
            return fn(*args)

    def _run(self, tool_name: str, handler: Callable[[Any], ToolResult], params: Any) -> ToolResult:
        try:
            result = handler(params)
        except (KeyError, ValueError, TypeError) as exc:
            # KeyError wraps its message in quotes.
            cause = exc.args[0] if isinstance(exc, KeyError) and exc.args else str(exc)
            raise ToolExecutionError(tool_name, str(cause)) from exc
        if result.success and self._autosave and not is_read_only(tool_name):
            self._workbook.save()
        return result

    def _sheet_and_ref(self, sheet_name: str, address: str) -> tuple[Any, str]:
        prefixed, ref = split_address(address)
        return self._workbook.worksheet(prefixed or sheet_name), ref

    # ------------------------------------------------------------------
    # Read tools
    # ------------------------------------------------------------------

    def _tool_get_workbook_schema(self, args: GetWorkbookSchemaArgs) -> ToolResult:
        schema = self._workbook.schema(
            include_charts=args.include_charts,
            include_pivots=args.include_pivots,
        )
        return ToolResult(success=True, data=schema.to_wire())

    def _tool_get_range_values(self, args: GetRangeValuesArgs) -> ToolResult:
        ws, ref = self._sheet_and_ref(args.sheet_name, args.address)
        min_row, max_row, min_col, max_col = _bounds(ref)
        row_count = max_row - min_row + 1
        column_count = max_col - min_col + 1
        total_cells = row_count * column_count

        sampled = total_cells > args.max_cells
        read_rows = args.max_cells // column_count if sampled else row_count
        values = [
            [to_json_value(v) for v in row]
            for row in ws.iter_rows(
                min_row=min_row,
                max_row=min_row + read_rows - 1,
                min_col=min_col,
                max_col=max_col,
                values_only=True,
            )
        ] if read_rows > 0 else []

        return ToolResult(
            success=True,
            data={
                "address": ref,
                "values": values,
                "rowCount": row_count,
                "columnCount": column_count,
                "sampled": sampled,
                "totalCells": total_cells,
            },
        )

    # ------------------------------------------------------------------
    # Write tools
    # ------------------------------------------------------------------

    def _tool_create_sheet(self, args: CreateSheetArgs) -> ToolResult:
        wb = self._workbook.wb
        name = generate_unique_name(args.name, wb.sheetnames)

        position = args.position
        if position == "beginning":
            index: int | None = 0
        elif isinstance(position, int):
            index = position
        elif isinstance(position, str) and position.isdigit():
            index = int(position)
        else:
            index = None

        wb.create_sheet(title=name, index=index)
        return ToolResult(success=True, data={"sheetName": name}, artifact_id=name)

    def _tool_ensure_table(self, args: EnsureTableArgs) -> ToolResult:
        from openpyxl.worksheet.table import Table, TableColumn, TableStyleInfo

        existing = self._workbook.find_table(args.table_name)
        if existing is not None:
            ws, table = existing
            return ToolResult(
                success=True,
                data={
                    "tableName": table.name,
                    "address": f"{ws.title}!{table.ref}",
                    "alreadyExists": True,
                },
                artifact_id=table.name,
            )

        ws = self._workbook.worksheet(args.sheet_name)
        if args.address_or_used_range == "usedRange":
            ref = self._workbook.used_range(ws)
            if ref is None:
                raise ValueError(f"Sheet '{ws.title}' has no used range.")
        else:
            _, ref = split_address(args.address_or_used_range)

        taken = self._workbook.table_names() + self._workbook.named_range_names()
        name = generate_unique_name(args.table_name, taken)
        table = Table(displayName=name, ref=ref, headerRowCount=1 if args.has_headers else 0)
        if not args.has_headers:
            # No header cells to read names from on save.
            _, _, min_col, max_col = _bounds(ref)
            table.tableColumns = [
                TableColumn(id=i, name=f"Column{i}") for i in range(1, max_col - min_col + 2)
            ]
        table.tableStyleInfo = TableStyleInfo(name="TableStyleMedium2", showRowStripes=True)
        ws.add_table(table)

        return ToolResult(
            success=True,
            data={"tableName": name, "address": f"{ws.title}!{ref}"},
            artifact_id=name,
        )

    def _tool_write_range(self, args: WriteRangeArgs) -> ToolResult:
        from openpyxl.utils.cell import coordinate_to_tuple, get_column_letter

        ws, ref = self._sheet_and_ref(args.sheet_name, args.address)
        start_row, start_col = coordinate_to_tuple(ref.split(":")[0])

        col_count = max(len(row) for row in args.values)
        rows = [list(row) + [""] * (col_count - len(row)) for row in args.values]
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                ws.cell(row=start_row + r, column=start_col + c, value=value)

        end = f"{get_column_letter(start_col + col_count - 1)}{start_row + len(rows) - 1}"
        address = f"{get_column_letter(start_col)}{start_row}:{end}"
        return ToolResult(
            success=True,
            data={"address": address, "rowCount": len(rows), "colCount": col_count},
        )

    def _tool_set_formula(self, args: SetFormulaArgs) -> ToolResult:
        ws, ref = self._sheet_and_ref(args.sheet_name, args.address)
        min_row, max_row, min_col, max_col = _bounds(ref)
        for row in ws.iter_rows(min_row=min_row, max_row=max_row, min_col=min_col, max_col=max_col):
            for cell in row:
                cell.value = args.formula
        return ToolResult(success=True, data={"address": ref, "formula": args.formula})

    def _tool_create_chart(self, args: CreateChartArgs) -> ToolResult:
        from openpyxl.chart import (
            AreaChart,
            BarChart,
            BubbleChart,
            DoughnutChart,
            LineChart,
            PieChart,
            Reference,
            ScatterChart,
            Series,
        )
        from openpyxl.utils.cell import get_column_letter

        ws, ref = self._sheet_and_ref(args.sheet_name, args.source_address)
        min_row, max_row, min_col, max_col = _bounds(ref)

        existing = self._workbook.chart_names()
        name = generate_unique_name(args.title or f"Chart {len(existing) + 1}", existing)

        kind = args.chart_type
        if kind.startswith(("column", "bar")):
            chart: Any = BarChart()
            chart.type = "col" if kind.startswith("column") else "bar"
            if kind.endswith("Stacked"):
                chart.grouping = "stacked"
                chart.overlap = 100
            else:
                chart.grouping = "clustered"
        elif kind in ("line", "lineMarkers"):
            chart = LineChart()
        elif kind == "pie":
            chart = PieChart()
        elif kind == "doughnut":
            chart = DoughnutChart()
        elif kind == "area":
            chart = AreaChart()
        elif kind == "scatter":
            chart = ScatterChart()
        else:
            chart = BubbleChart()

        if kind == "scatter":
            # x = first column, y = remaining columns with header titles.
            x_ref = Reference(ws, min_col=min_col, min_row=min_row + 1, max_row=max_row)
            for col in range(min_col + 1, max_col + 1):
                y_ref = Reference(ws, min_col=col, min_row=min_row, max_row=max_row)
                chart.series.append(Series(y_ref, x_ref, title_from_data=True))
        elif kind == "bubble":
            if max_col - min_col < 2:
                raise ValueError("Bubble charts need x, y and size columns.")
            x_ref = Reference(ws, min_col=min_col, min_row=min_row + 1, max_row=max_row)
            y_ref = Reference(ws, min_col=min_col + 1, min_row=min_row + 1, max_row=max_row)
            size_ref = Reference(ws, min_col=min_col + 2, min_row=min_row + 1, max_row=max_row)
            chart.series.append(Series(values=y_ref, xvalues=x_ref, zvalues=size_ref))
        elif max_col > min_col:
            # First column holds categories, the rest are series.
            data_ref = Reference(
                ws, min_col=min_col + 1, min_row=min_row, max_col=max_col, max_row=max_row
            )
            chart.add_data(data_ref, titles_from_data=True)
            chart.set_categories(
                Reference(ws, min_col=min_col, min_row=min_row + 1, max_row=max_row)
            )
        else:
            header = ws.cell(row=min_row, column=min_col).value
            data_ref = Reference(ws, min_col=min_col, min_row=min_row, max_row=max_row)
            chart.add_data(data_ref, titles_from_data=isinstance(header, str))

        if kind == "lineMarkers":
            for series in chart.series:
                series.marker.symbol = "circle"

        chart.title = name
        chart.width = args.width / _PIXELS_PER_CM
        chart.height = args.height / _PIXELS_PER_CM

        if args.destination_address:
            _, dest = split_address(args.destination_address)
            anchor = dest.split(":")[0]
        else:
            anchor = f"{get_column_letter(max_col + 2)}{min_row}"
        ws.add_chart(chart, anchor)

        return ToolResult(
            success=True,
            data={"chartName": name, "chartType": kind, "dataRange": ref},
            artifact_id=name,
        )

    def _tool_create_pivot_table(self, args: CreatePivotTableArgs) -> ToolResult:
        from openpyxl.utils.cell import coordinate_to_tuple, get_column_letter
        from openpyxl.worksheet.table import Table, TableStyleInfo

        wb = self._workbook.wb
        located = self._workbook.find_table(args.source_address_or_table)
        if located is not None:
            source_ws, table = located
            source_ref = table.ref
        else:
            sheet, source_ref = split_address(args.source_address_or_table)
            source_ws = self._workbook.worksheet(sheet) if sheet else wb.worksheets[0]
        source = f"{source_ws.title}!{source_ref}"

        min_row, max_row, min_col, max_col = _bounds(source_ref)
        rows = list(
            source_ws.iter_rows(
                min_row=min_row, max_row=max_row, min_col=min_col, max_col=max_col, values_only=True
            )
        )
        if len(rows) < 2:
            raise ValueError(f"Source range '{source}' has no data rows.")
        headers = [str(h) if h is not None else "" for h in rows[0]]
        records = [dict(zip(headers, r)) for r in rows[1:]]

        skipped: list[str] = []
        group_fields = []
        for field in [*args.rows, *args.columns]:
            if field in headers:
                group_fields.append(field)
            else:
                skipped.append(field)
        value_fields = []
        for vf in args.values:
            if vf.field in headers:
                value_fields.append(vf)
            else:
                skipped.append(vf.field)

        groups: dict[tuple[Any, ...], list[dict[str, Any]]] = defaultdict(list)
        for record in records:
            groups[tuple(record.get(f) for f in group_fields)].append(record)

        if value_fields:
            value_headers = [
                vf.name or f"{_SUMMARY_LABELS[vf.summarize_by]} of {vf.field}" for vf in value_fields
            ]
        else:
            value_headers = ["Count"]

        output: list[list[Any]] = [[*group_fields, *value_headers]]
        for key in sorted(groups, key=lambda k: tuple("" if v is None else str(v) for v in k)):
            members = groups[key]
            if value_fields:
                aggregates = [
                    _aggregate([m.get(vf.field) for m in members], vf.summarize_by)
                    for vf in value_fields
                ]
            else:
                aggregates = [len(members)]
            output.append([*key, *aggregates])

        if args.destination_sheet in wb.sheetnames:
            dest_ws = wb[args.destination_sheet]
        else:
            dest_ws = wb.create_sheet(title=args.destination_sheet)
        _, dest_cell = split_address(args.destination_cell)
        start_row, start_col = coordinate_to_tuple(dest_cell.split(":")[0])
        for r, row in enumerate(output):
            for c, value in enumerate(row):
                dest_ws.cell(row=start_row + r, column=start_col + c, value=value)

        taken = (
            self._workbook.pivot_table_names()
            + self._workbook.table_names()
            + self._workbook.named_range_names()
        )
        name = generate_unique_name(args.pivot_name, taken)
        end_col = get_column_letter(start_col + len(output[0]) - 1)
        ref = f"{get_column_letter(start_col)}{start_row}:{end_col}{start_row + len(output) - 1}"
        summary = Table(displayName=name, ref=ref, comment=f"{PIVOT_SUMMARY_MARKER}{source}")
        summary.tableStyleInfo = TableStyleInfo(name="TableStyleLight9", showRowStripes=True)
        dest_ws.add_table(summary)

        data: dict[str, Any] = {
            "pivotName": name,
            "destinationSheet": dest_ws.title,
            "destinationCell": dest_cell,
        }
        if args.filters:
            data["filtersIgnored"] = list(args.filters)
        if skipped:
            data["skippedFields"] = skipped
        return ToolResult(success=True, data=data, artifact_id=name)

    def _tool_format_range(self, args: FormatRangeArgs) -> ToolResult:
        from openpyxl.styles import PatternFill

        ws, ref = self._sheet_and_ref(args.sheet_name, args.address)
        min_row, max_row, min_col, max_col = _bounds(ref)
        fmt = args.format

        font_kwargs: dict[str, Any] = {}
        if fmt.bold is not None:
            font_kwargs["bold"] = fmt.bold
        if fmt.italic is not None:
            font_kwargs["italic"] = fmt.italic
        if fmt.underline is not None:
            font_kwargs["underline"] = "single" if fmt.underline else None
        if fmt.font_size is not None:
            font_kwargs["size"] = fmt.font_size
        if fmt.font_color is not None:
            font_kwargs["color"] = fmt.font_color.lstrip("#")

        align_kwargs: dict[str, Any] = {}
        if fmt.horizontal_alignment is not None:
            align_kwargs["horizontal"] = fmt.horizontal_alignment
        if fmt.vertical_alignment is not None:
            align_kwargs["vertical"] = (
                "center" if fmt.vertical_alignment == "middle" else fmt.vertical_alignment
            )
        if fmt.wrap_text is not None:
            align_kwargs["wrap_text"] = fmt.wrap_text

        fill = None
        if fmt.background_color is not None:
            fill = PatternFill(fill_type="solid", fgColor=fmt.background_color.lstrip("#"))

        border = _build_border(fmt.borders) if fmt.borders else None

        for row in ws.iter_rows(min_row=min_row, max_row=max_row, min_col=min_col, max_col=max_col):
            for cell in row:
                if font_kwargs:
                    font = copy.copy(cell.font)
                    for key, value in font_kwargs.items():
                        setattr(font, key, value)
                    cell.font = font
                if align_kwargs:
                    alignment = copy.copy(cell.alignment)
                    for key, value in align_kwargs.items():
                        setattr(alignment, key, value)
                    cell.alignment = alignment
                if fill is not None:
                    cell.fill = fill
                if border is not None:
                    cell.border = border
                if fmt.number_format is not None:
                    cell.number_format = fmt.number_format

        applied = list(fmt.model_dump(by_alias=True, exclude_none=True).keys())
        return ToolResult(success=True, data={"address": ref, "formatsApplied": applied})

    def _tool_add_named_range(self, args: AddNamedRangeArgs) -> ToolResult:
        from openpyxl.utils.cell import absolute_coordinate, quote_sheetname
        from openpyxl.workbook.defined_name import DefinedName

        ws, ref = self._sheet_and_ref(args.sheet_name, args.address)
        taken = self._workbook.named_range_names() + self._workbook.table_names()
        name = generate_unique_name(args.name, taken)
        self._workbook.wb.defined_names.add(
            DefinedName(name, attr_text=f"{quote_sheetname(ws.title)}!{absolute_coordinate(ref)}")
        )
        return ToolResult(
            success=True,
            data={"name": name, "sheetName": ws.title, "address": ref},
            artifact_id=name,
        )


def _build_border(spec: BorderSpec) -> Any:
    from openpyxl.styles import Border, Side

    def side(style: Any) -> Any:
        if style is None:
            return None
        return Side(style=style.style, color=(style.color or "000000").lstrip("#"))

    default = spec.all
    return Border(
        top=side(spec.top or default),
        bottom=side(spec.bottom or default),
        left=side(spec.left or default),
        right=side(spec.right or default),
    )
