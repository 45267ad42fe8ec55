"""Shared pytest fixtures for the excel-agent test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from excel_agent.config import Settings, override_settings
from excel_agent.protocol.models import ChatMessage, ChatMode, ChatRequest, MessageRole
from excel_agent.protocol.workbook import SheetSchema, TableInfo, WorkbookSchema
from excel_agent.providers.catalog import ModelCatalog
from excel_agent.tools.workbook import ExcelWorkbook

SALES_ROWS: list[list[Any]] = [
    ["Region", "Product", "Revenue"],
    ["North", "Widget", 100],
    ["South", "Widget", 150],
    ["North", "Gadget", 200],
    ["South", "Gadget", 50],
]

CATALOG_YAML = """\
default_model_id: gpt-4o
models:
  - id: gpt-4o
    label: GPT-4o
    provider: openai
    family: gpt-4
  - id: claude-sonnet-4-20250514
    label: Claude Sonnet 4
    provider: anthropic
    family: claude-4
  - id: gemini-1.5-pro
    label: Gemini 1.5 Pro
    provider: google
    family: gemini-1.5
    default_temperature: 0.2
  - id: gpt-3.5-turbo
    label: GPT-3.5 Turbo
    provider: openai
    family: gpt-3.5
    enabled: false
"""


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        ledger={"db_path": str(tmp_path / "ledger.db")},
        logging={"level": "debug", "format": "console"},
    )
    override_settings(settings)
    return settings


@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    path = tmp_path / "models.yaml"
    path.write_text(CATALOG_YAML)
    return path


@pytest.fixture
def model_catalog(catalog_file: Path, test_settings: Settings) -> ModelCatalog:
    return ModelCatalog(path=catalog_file, environ={}, settings=test_settings)


# ---------------------------------------------------------------------------
# Workbooks
# ---------------------------------------------------------------------------


@pytest.fixture
def workbook_path(tmp_path: Path) -> Path:
    import openpyxl

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Sales"
    for row in SALES_ROWS:
        ws.append(row)
    wb.create_sheet("Notes")
    path = tmp_path / "report.xlsx"
    wb.save(str(path))
    return path


@pytest.fixture
def excel_workbook(workbook_path: Path) -> ExcelWorkbook:
    workbook = ExcelWorkbook(workbook_path)
    workbook.load()
    return workbook


@pytest.fixture
def sample_schema() -> WorkbookSchema:
    return WorkbookSchema(
        name="report.xlsx",
        sheets=[
            SheetSchema(
                name="Sales",
                used_range="A1:C5",
                tables=[
                    TableInfo(
                        name="SalesTable",
                        address="A1:C5",
                        header_row=["Region", "Product", "Revenue"],
                        row_count=4,
                    )
                ],
            ),
            SheetSchema(name="Notes"),
        ],
        active_sheet="Sales",
        active_selection="A1",
    )


@pytest.fixture
def chat_request(sample_schema: WorkbookSchema) -> ChatRequest:
    return ChatRequest(
        model_id="gpt-4o",
        messages=[ChatMessage(id="m1", role=MessageRole.USER, content="Summarise revenue by region")],
        workbook_schema=sample_schema,
        mode=ChatMode.PLAN,
    )
