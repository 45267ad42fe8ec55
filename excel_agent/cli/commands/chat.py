"""CLI — Plan and apply chat turns against a local workbook."""

from __future__ import annotations

import asyncio
import json
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from excel_agent.config import Settings, get_settings
from excel_agent.exceptions import ExcelAgentError, ModelNotFoundError
from excel_agent.ledger.store import LedgerStore
from excel_agent.orchestration.chat import ChatOrchestrator
from excel_agent.orchestration.runner import ConversationRunner, ConversationTurn
from excel_agent.protocol.models import (
    ChatMessage,
    ChatMode,
    ChatRequest,
    ContextScope,
    ExecutionPlan,
    MessageRole,
)
from excel_agent.providers.catalog import ModelCatalog
from excel_agent.tools.executor import WorkbookToolExecutor
from excel_agent.tools.workbook import ExcelWorkbook

console = Console()


def _open_workbook(path: Path, create: bool = False) -> ExcelWorkbook:
    workbook = ExcelWorkbook(path, create=create)
    try:
        workbook.load()
    except Exception as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    return workbook


def _resolve_model(models: ModelCatalog, model_id: str | None) -> str:
    if model_id:
        if models.get_model_by_id(model_id) is None:
            raise ModelNotFoundError(model_id)
        return model_id
    default = models.get_enabled_models().default_model_id
    if default is None:
        console.print("[red]Error: no enabled models in the catalog.[/red]")
        raise typer.Exit(1)
    return default


def _request(
    model_id: str,
    prompt: str,
    workbook: ExcelWorkbook,
    scope: ContextScope | None = None,
) -> ChatRequest:
    return ChatRequest(
        model_id=model_id,
        messages=[ChatMessage(id=str(uuid.uuid4()), role=MessageRole.USER, content=prompt)],
        workbook_schema=workbook.schema(),
        mode=ChatMode.PLAN,
        context_scope=scope,
    )


def _print_plan(plan: ExecutionPlan) -> None:
    console.print(f"[bold]Plan:[/bold] {plan.id}")
    console.print(plan.description)

    table = Table(title="Steps")
    table.add_column("ID", style="cyan")
    table.add_column("Tool")
    table.add_column("Risk")
    table.add_column("Description")

    for step in plan.steps:
        table.add_row(step.id, step.tool_name, step.risk_level.value, step.description)
    console.print(table)


def _print_turn(turn: ConversationTurn) -> None:
    for error in turn.errors:
        console.print(f"[red]Error: {error}[/red]")
    if turn.plan is not None:
        _print_plan(turn.plan)
    elif turn.message:
        console.print(turn.message)


async def _plan_turn(
    settings: Settings, request: ChatRequest, workbook: ExcelWorkbook
) -> ConversationTurn:
    orchestrator = ChatOrchestrator(ModelCatalog(settings=settings), settings=settings)
    executor = WorkbookToolExecutor(workbook, autosave=False)
    runner = ConversationRunner(orchestrator, executor, settings=settings)
    return await runner.send(request)


async def _plan_and_apply(
    settings: Settings, request: ChatRequest, workbook: ExcelWorkbook, assume_yes: bool
) -> bool:
    orchestrator = ChatOrchestrator(ModelCatalog(settings=settings), settings=settings)
    executor = WorkbookToolExecutor(workbook)

    async with LedgerStore(settings.ledger.db_path) as ledger:
        runner = ConversationRunner(orchestrator, executor, ledger, settings=settings)
        turn = await runner.send(request)
        _print_turn(turn)
        if not turn.success or turn.plan is None:
            return turn.success

        if not assume_yes and not typer.confirm("Apply this plan?"):
            console.print("Aborted.")
            return True

        result = await runner.apply_plan(turn.plan, request)

    workbook.save()
    style = "green" if result.success else "red"
    console.print(f"[{style}]{result.summary}[/{style}]")
    console.print(
        f"{result.completed_steps}/{result.total_steps} steps in {result.duration:.0f} ms"
    )
    return result.success


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def show_schema(
    workbook_path: Path = typer.Argument(help="Path to the .xlsx workbook."),
) -> None:
    """Print the workbook schema the model sees."""
    workbook = _open_workbook(workbook_path)
    console.print(Syntax(json.dumps(workbook.schema().to_wire(), indent=2), "json"))


def plan(
    workbook_path: Path = typer.Argument(help="Path to the .xlsx workbook."),
    prompt: str = typer.Argument(help="What to build or change."),
    model: str | None = typer.Option(None, "--model", "-m", help="Model ID."),
    scope: ContextScope | None = typer.Option(None, "--scope", help="Context scope."),
) -> None:
    """Ask the model for a plan without changing the workbook."""
    settings = get_settings()
    workbook = _open_workbook(workbook_path)
    try:
        model_id = _resolve_model(ModelCatalog(settings=settings), model)
        request = _request(model_id, prompt, workbook, scope)
        turn = asyncio.run(_plan_turn(settings, request, workbook))
    except ExcelAgentError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)

    _print_turn(turn)
    if not turn.success:
        raise typer.Exit(1)


def run(
    workbook_path: Path = typer.Argument(help="Path to the .xlsx workbook."),
    prompt: str = typer.Argument(help="What to build or change."),
    model: str | None = typer.Option(None, "--model", "-m", help="Model ID."),
    create: bool = typer.Option(False, "--create", help="Create the workbook if missing."),
    assume_yes: bool = typer.Option(False, "--yes", "-y", help="Apply without asking."),
) -> None:
    """Plan, confirm, apply and save."""
    settings = get_settings()
    workbook = _open_workbook(workbook_path, create=create)
    try:
        model_id = _resolve_model(ModelCatalog(settings=settings), model)
        request = _request(model_id, prompt, workbook)
        ok = asyncio.run(_plan_and_apply(settings, request, workbook, assume_yes))
    except ExcelAgentError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)

    if not ok:
        raise typer.Exit(1)
