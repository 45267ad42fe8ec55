"""Unit tests — excel-agent CLI."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml
from rich.console import Console
from typer.testing import CliRunner

from excel_agent.cli.commands import catalog, chat, ledger
from excel_agent.cli.main import app
from excel_agent.ledger.fingerprint import fingerprint_schema
from excel_agent.ledger.models import LedgerActionType
from excel_agent.ledger.store import LedgerStore
from excel_agent.orchestration.runner import ConversationTurn
from excel_agent.protocol.models import ExecutionPlan, PlanExecutionResult, PlanStep
from excel_agent.tools.workbook import ExcelWorkbook

runner = CliRunner()

PLAN = ExecutionPlan(
    id="plan_cli",
    description="Add a summary sheet",
    steps=[
        PlanStep(id="step_1", description="Create Summary", tool_name="createSheet",
                 args={"name": "Summary"}),
    ],
)


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    for module in (catalog, chat, ledger):
        monkeypatch.setattr(module, "console", Console(width=200))


@pytest.fixture
def config_file(tmp_path: Path, catalog_file: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "ledger": {"db_path": str(tmp_path / "cli-ledger.db")},
                "models": {"catalog_path": str(catalog_file)},
                "logging": {"level": "warning"},
            }
        )
    )
    return path


def _invoke(config_file: Path, *args: str, **kwargs):
    return runner.invoke(app, ["--config", str(config_file), *args], **kwargs)


@pytest.mark.unit
class TestMainCLI:
    def test_help_exits_zero(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])
        assert result.exit_code in (0, 2)
        assert result.output is not None

    @pytest.mark.parametrize("command", ["models", "tools", "schema", "plan", "run", "ledger"])
    def test_subcommand_help(self, command: str) -> None:
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


@pytest.mark.unit
class TestCatalogCommands:
    def test_tools(self, config_file: Path) -> None:
        result = _invoke(config_file, "tools")
        assert result.exit_code == 0
        assert "createSheet" in result.output
        assert "destructive" in result.output or "write" in result.output

    def test_models_marks_default(self, config_file: Path) -> None:
        result = _invoke(config_file, "models")
        assert result.exit_code == 0
        assert "gpt-4o (default)" in result.output
        assert "gpt-3.5-turbo" not in result.output

    def test_models_all_includes_disabled(self, config_file: Path) -> None:
        result = _invoke(config_file, "models", "--all")
        assert result.exit_code == 0
        assert "gpt-3.5-turbo" in result.output

    def test_models_bad_catalog(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text(yaml.safe_dump({"models": {"catalog_path": str(tmp_path / "none.yaml")}}))
        result = _invoke(config, "models")
        assert result.exit_code == 1


@pytest.mark.unit
class TestSchemaCommand:
    def test_prints_wire_schema(self, config_file: Path, workbook_path: Path) -> None:
        result = _invoke(config_file, "schema", str(workbook_path))
        assert result.exit_code == 0
        assert '"usedRange": "A1:C5"' in result.output
        assert "Notes" in result.output

    def test_missing_workbook(self, config_file: Path, tmp_path: Path) -> None:
        result = _invoke(config_file, "schema", str(tmp_path / "nope.xlsx"))
        assert result.exit_code == 1
        assert "Workbook not found" in result.output


@pytest.mark.unit
class TestPlanCommand:
    def test_unknown_model(self, config_file: Path, workbook_path: Path) -> None:
        result = _invoke(config_file, "plan", str(workbook_path), "Summarise", "-m", "gpt-9")
        assert result.exit_code == 1
        assert "Model not found or not enabled: gpt-9" in result.output

    def test_prints_plan(self, config_file: Path, workbook_path: Path) -> None:
        with patch("excel_agent.cli.commands.chat.ConversationRunner") as runner_cls:
            runner_cls.return_value.send = AsyncMock(return_value=ConversationTurn(plan=PLAN))
            result = _invoke(config_file, "plan", str(workbook_path), "Summarise")

        assert result.exit_code == 0
        assert "plan_cli" in result.output
        assert "Create Summary" in result.output
        request = runner_cls.return_value.send.await_args.args[0]
        assert request.model_id == "gpt-4o"
        assert request.workbook_schema.name == "report.xlsx"

    def test_failed_turn_exits_one(self, config_file: Path, workbook_path: Path) -> None:
        turn = ConversationTurn(success=False, errors=["Failed to create provider adapter"])
        with patch("excel_agent.cli.commands.chat.ConversationRunner") as runner_cls:
            runner_cls.return_value.send = AsyncMock(return_value=turn)
            result = _invoke(config_file, "plan", str(workbook_path), "Summarise")
        assert result.exit_code == 1
        assert "Failed to create provider adapter" in result.output


@pytest.mark.unit
class TestRunCommand:
    def _runner_mock(self, success: bool = True) -> MagicMock:
        mock = MagicMock()
        mock.send = AsyncMock(return_value=ConversationTurn(plan=PLAN))
        mock.apply_plan = AsyncMock(
            return_value=PlanExecutionResult(
                plan_id="plan_cli",
                success=success,
                completed_steps=1 if success else 0,
                total_steps=1,
                summary="Plan executed successfully!" if success else "Step failed: Create Summary - boom",
                duration=12.0,
            )
        )
        return mock

    def test_apply_with_yes(self, config_file: Path, workbook_path: Path) -> None:
        mock = self._runner_mock()
        with patch("excel_agent.cli.commands.chat.ConversationRunner", return_value=mock):
            result = _invoke(config_file, "run", str(workbook_path), "Summarise", "--yes")

        assert result.exit_code == 0
        assert "Plan executed successfully!" in result.output
        assert "1/1 steps" in result.output
        mock.apply_plan.assert_awaited_once()

    def test_declined(self, config_file: Path, workbook_path: Path) -> None:
        mock = self._runner_mock()
        with patch("excel_agent.cli.commands.chat.ConversationRunner", return_value=mock):
            result = _invoke(config_file, "run", str(workbook_path), "Summarise", input="n\n")

        assert result.exit_code == 0
        assert "Aborted." in result.output
        mock.apply_plan.assert_not_awaited()

    def test_failed_apply_exits_one(self, config_file: Path, workbook_path: Path) -> None:
        mock = self._runner_mock(success=False)
        with patch("excel_agent.cli.commands.chat.ConversationRunner", return_value=mock):
            result = _invoke(config_file, "run", str(workbook_path), "Summarise", "-y")
        assert result.exit_code == 1
        assert "Step failed" in result.output

    def test_create_new_workbook(self, config_file: Path, tmp_path: Path) -> None:
        target = tmp_path / "new.xlsx"
        mock = self._runner_mock()
        with patch("excel_agent.cli.commands.chat.ConversationRunner", return_value=mock):
            result = _invoke(config_file, "run", str(target), "Build a model", "--create", "-y")
        assert result.exit_code == 0
        assert target.exists()


@pytest.mark.unit
class TestLedgerCommands:
    def _seed(self, db_path: Path, workbook_path: Path) -> str:
        fingerprint = fingerprint_schema(ExcelWorkbook(workbook_path).schema()).computed

        async def seed() -> None:
            async with LedgerStore(db_path) as store:
                await store.record_entry(
                    workbook_fingerprint=fingerprint,
                    action_type=LedgerActionType.CREATE_SHEET,
                    normalized_args='{"name":"Summary"}',
                    artifact_id="Summary",
                    artifact_name="Summary",
                )

        asyncio.run(seed())
        return fingerprint

    def test_list_empty(self, config_file: Path, workbook_path: Path) -> None:
        result = _invoke(config_file, "ledger", "list", str(workbook_path))
        assert result.exit_code == 0
        assert "Ledger: report.xlsx:" in result.output

    def test_list_and_purge(self, config_file: Path, workbook_path: Path, tmp_path: Path) -> None:
        self._seed(tmp_path / "cli-ledger.db", workbook_path)

        listed = _invoke(config_file, "ledger", "list", str(workbook_path))
        assert listed.exit_code == 0
        assert "createSheet" in listed.output
        assert "Summary" in listed.output

        purged = _invoke(config_file, "ledger", "purge", str(workbook_path))
        assert purged.exit_code == 0
        assert "Removed 1 ledger entries." in purged.output

    def test_missing_workbook(self, config_file: Path, tmp_path: Path) -> None:
        result = _invoke(config_file, "ledger", "list", str(tmp_path / "nope.xlsx"))
        assert result.exit_code == 1
