"""Workbook tool catalog, argument models and executors."""

from excel_agent.tools.catalog import (
    TOOL_DEFINITIONS,
    ToolDefinition,
    ToolParameter,
    get_tool_definition,
    is_read_only,
    read_only_tool_names,
    tool_names,
)
from excel_agent.tools.executor import ToolExecutor, WorkbookToolExecutor
from excel_agent.tools.params import TOOL_ARGUMENT_MODELS, validate_tool_args
from excel_agent.tools.workbook import ExcelWorkbook

__all__ = [
    "TOOL_ARGUMENT_MODELS",
    "TOOL_DEFINITIONS",
    "ExcelWorkbook",
    "ToolDefinition",
    "ToolExecutor",
    "ToolParameter",
    "WorkbookToolExecutor",
    "get_tool_definition",
    "is_read_only",
    "read_only_tool_names",
    "tool_names",
    "validate_tool_args",
]
