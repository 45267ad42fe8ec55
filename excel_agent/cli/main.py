"""excel-agent CLI — Entry point.

Usage:
    excel-agent models
    excel-agent tools
    excel-agent schema <workbook.xlsx>
    excel-agent plan <workbook.xlsx> "<prompt>"
    excel-agent run <workbook.xlsx> "<prompt>" [--yes]
    excel-agent ledger list <workbook.xlsx>
    excel-agent ledger purge <workbook.xlsx>
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from excel_agent.cli.commands import catalog, chat, ledger
from excel_agent.config import Settings, override_settings
from excel_agent.logging import configure_logging

app = typer.Typer(
    name="excel-agent",
    help="excel-agent — Plan and apply LLM-driven edits to Excel workbooks.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.command("models")(catalog.list_models)
app.command("tools")(catalog.list_tools)
app.command("schema")(chat.show_schema)
app.command("plan")(chat.plan)
app.command("run")(chat.run)
app.add_typer(ledger.app, name="ledger")


@app.callback()
def main_callback(
    config: Path | None = typer.Option(None, "--config", help="YAML config file."),
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level."),
) -> None:
    settings = Settings.load(config)
    override_settings(settings)
    configure_logging(
        level=log_level or settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )


if __name__ == "__main__":
    app()
