"""CLI — Model and tool catalog listings."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from excel_agent.config import get_settings
from excel_agent.exceptions import ConfigurationError
from excel_agent.protocol.models import RiskLevel
from excel_agent.providers.catalog import ModelCatalog
from excel_agent.tools.catalog import TOOL_DEFINITIONS

console = Console()

_RISK_STYLES = {
    RiskLevel.READ: "green",
    RiskLevel.WRITE: "yellow",
    RiskLevel.DESTRUCTIVE: "red",
}


def list_models(
    all_models: bool = typer.Option(False, "--all", help="Include disabled models."),
) -> None:
    """List the models the agent may use."""
    try:
        models_catalog = ModelCatalog(settings=get_settings())
    except ConfigurationError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)

    enabled = models_catalog.get_enabled_models()
    models = models_catalog.get_all_models() if all_models else enabled.models

    table = Table(title="Models")
    table.add_column("ID", style="cyan")
    table.add_column("Label")
    table.add_column("Provider")
    table.add_column("Tools")
    table.add_column("Enabled")

    for m in models:
        model_id = m.id
        if m.id == enabled.default_model_id:
            model_id += " [bold](default)[/bold]"
        table.add_row(
            model_id,
            m.label,
            m.provider.value,
            "yes" if m.supports_tool_calling else "no",
            "yes" if m.enabled else "[red]no[/red]",
        )
    console.print(table)


def list_tools() -> None:
    """List the workbook tools the model can call."""
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Risk")
    table.add_column("Required")
    table.add_column("Description")

    for tool in TOOL_DEFINITIONS:
        style = _RISK_STYLES[tool.risk_level]
        table.add_row(
            tool.name,
            f"[{style}]{tool.risk_level.value}[/{style}]",
            ", ".join(tool.required_parameters),
            tool.description,
        )
    console.print(table)
