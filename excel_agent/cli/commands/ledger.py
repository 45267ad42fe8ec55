"""CLI — Idempotency ledger inspection."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from excel_agent.config import get_settings
from excel_agent.ledger.fingerprint import fingerprint_schema
from excel_agent.ledger.models import LedgerEntry
from excel_agent.ledger.store import LedgerStore
from excel_agent.tools.workbook import ExcelWorkbook

app = typer.Typer(help="Inspect and purge recorded artifact creations.")
console = Console()


def _fingerprint(workbook_path: Path) -> str:
    try:
        return fingerprint_schema(ExcelWorkbook(workbook_path).schema()).computed
    except Exception as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)


async def _entries(fingerprint: str) -> list[LedgerEntry]:
    async with LedgerStore(get_settings().ledger.db_path) as store:
        return await store.entries_for_workbook(fingerprint)


async def _purge(fingerprint: str) -> int:
    async with LedgerStore(get_settings().ledger.db_path) as store:
        return await store.purge_workbook(fingerprint)


@app.command("list")
def list_entries(
    workbook_path: Path = typer.Argument(help="Path to the .xlsx workbook."),
) -> None:
    """List ledger entries for the workbook's current fingerprint."""
    fingerprint = _fingerprint(workbook_path)
    entries = asyncio.run(_entries(fingerprint))

    table = Table(title=f"Ledger: {fingerprint}")
    table.add_column("ID", style="cyan")
    table.add_column("Action")
    table.add_column("Artifact")
    table.add_column("Created")

    for entry in entries:
        table.add_row(
            entry.id,
            entry.action_type.value,
            entry.artifact_name,
            datetime.fromtimestamp(entry.created_at / 1000).isoformat(timespec="seconds"),
        )
    console.print(table)


@app.command("purge")
def purge_entries(
    workbook_path: Path = typer.Argument(help="Path to the .xlsx workbook."),
) -> None:
    """Delete every ledger entry for the workbook's current fingerprint."""
    fingerprint = _fingerprint(workbook_path)
    removed = asyncio.run(_purge(fingerprint))
    console.print(f"[green]Removed {removed} ledger entries.[/green]")
