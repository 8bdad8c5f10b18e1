"""BudgetCalc CLI.

Commands:
- init: Initialize database schema
- resolve: Convert a measured area/length into purchasable packages
- enrich: Price and resolve a JSON file of line items (optionally persist)
- summary: Budget totals from a JSON file or a stored project
- conflicts: Check AI narrative or a blueprint estimate against ground truth
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from budgetcalc.budget.repository import save_enriched_items, save_raw_items, summarize_project
from budgetcalc.config import get_config
from budgetcalc.conflicts.detector import compare_estimates, detect_conflicts
from budgetcalc.core.logging import configure_logging
from budgetcalc.db.connection import close_db, get_engine, get_session
from budgetcalc.db.models import Base
from budgetcalc.enrichment.engine import enrich_line_items
from budgetcalc.errors import BudgetCalcError
from budgetcalc.financials.aggregator import citation_stats, compute_financial_summary
from budgetcalc.models import ConflictSeverity, FinancialSummary, LineItem, parse_line_items, utcnow
from budgetcalc.quantity.resolver import resolve_quantity

app = typer.Typer(
    name="budgetcalc",
    help="BudgetCalc - budget reconciliation & provenance for construction estimates",
    no_args_is_help=True,
)

console = Console()

_SEVERITY_STYLE = {
    ConflictSeverity.CRITICAL: "bold red",
    ConflictSeverity.MODERATE: "yellow",
    ConflictSeverity.MINOR: "dim",
}


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    configure_logging(log_level)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        engine = get_engine()
        async with engine.begin() as conn:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
                await conn.run_sync(Base.metadata.drop_all)
            console.print("[green]Creating tables...[/green]")
            await conn.run_sync(Base.metadata.create_all)
        await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def resolve(
    material: str = typer.Argument(..., help="Material name, e.g. 'Laminate flooring'"),
    value: str = typer.Argument(..., help="Measured amount"),
    unit: str = typer.Option("sq ft", "--unit", "-u", help="Unit of the measured amount"),
    waste: str | None = typer.Option(None, "--waste", help="Waste percent (default from config)"),
):
    """Convert a measured area/length into purchasable packages."""
    try:
        result = resolve_quantity(
            material, unit, Decimal(value), Decimal(waste) if waste is not None else None
        )
    except (BudgetCalcError, ArithmeticError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    if not result.success:
        console.print(f"[yellow]⚠[/yellow] {result.error_message} - manual quantity required")
        raise typer.Exit(2)

    console.print(f"[bold]{material}[/bold]: {result.gross_quantity} {result.resolved_unit}")
    console.print(f"  {result.calculation_trace}", style="dim")
    if result.fallback_unit_price is not None:
        console.print(f"  Default price: ${result.fallback_unit_price}/{result.resolved_unit}")


@app.command()
def enrich(
    file_path: Path = typer.Argument(..., help="JSON file with a list of line items"),
    work_type: str | None = typer.Option(None, "--work-type", "-w", help="Template work type"),
    area: str | None = typer.Option(None, "--area", help="Confirmed project area (sq ft)"),
    output: Path | None = typer.Option(None, "--out", "-o", help="Write enriched items as JSON"),
    project_id: str | None = typer.Option(None, "--project", help="Persist to this project"),
):
    """Price and resolve a JSON file of line items."""
    raw = _load_items(file_path)
    read_at = utcnow()
    items = enrich_line_items(
        raw, template=work_type, confirmed_area=Decimal(area) if area else None
    )

    _print_items(items)
    stats = citation_stats(items)
    console.print("Citations: " + ", ".join(f"{source}={count}" for source, count in stats.items()))

    if output:
        output.write_text(
            json.dumps([item.model_dump(mode="json") for item in items], indent=2)
        )
        console.print(f"\n[green]✓[/green] Enriched items saved to: {output}")

    if project_id:
        async def _save():
            async with get_session() as session:
                await save_raw_items(session, project_id, raw)
                result = await save_enriched_items(session, project_id, items, read_at)
            await close_db()
            return result

        result = asyncio.run(_save())
        console.print(f"[green]✓[/green] {len(result.saved)} items saved to project {project_id}")
        for conflict in result.conflicts:
            console.print(f"  [yellow]⚠[/yellow] skipped: {conflict}")


@app.command()
def summary(
    file_path: Path | None = typer.Argument(None, help="JSON file with a list of line items"),
    project_id: str | None = typer.Option(None, "--project", help="Stored project ID"),
    labor: str = typer.Option("0", "--labor", help="Labor cost"),
    other: str = typer.Option("0", "--other", help="Other cost"),
    tax_rate: str | None = typer.Option(None, "--tax-rate", help="Tax rate (default from config)"),
):
    """Show budget totals for a JSON file or a stored project."""
    if file_path is None and project_id is None:
        console.print("[red]Error: give a line-item file or --project[/red]")
        raise typer.Exit(1)

    try:
        if file_path is not None:
            items = enrich_line_items(_load_items(file_path))
            result = compute_financial_summary(
                items,
                labor_cost=Decimal(labor),
                other_cost=Decimal(other),
                tax_rate=Decimal(tax_rate) if tax_rate is not None else None,
                data_source="raw",
            )
        else:
            async def _summary():
                async with get_session() as session:
                    result = await summarize_project(session, project_id)
                await close_db()
                return result

            result = asyncio.run(_summary())
    except (BudgetCalcError, ArithmeticError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    _print_summary(result)


@app.command()
def conflicts(
    narrative: Path | None = typer.Option(None, "--narrative", help="AI narrative text file"),
    area: float | None = typer.Option(None, "--area", help="Ground-truth area (sq ft)"),
    photo: Path | None = typer.Option(None, "--photo", help="Photo estimate JSON"),
    blueprint: Path | None = typer.Option(None, "--blueprint", help="Blueprint analysis JSON"),
):
    """Check AI narrative (or a blueprint estimate) against ground truth."""
    alerts = []
    if narrative is not None:
        alerts += detect_conflicts(narrative.read_text(), {"area": area} if area else None)
    if photo is not None and blueprint is not None:
        alerts += compare_estimates(_load_json(photo), _load_json(blueprint))

    if not alerts:
        console.print("[green]✓[/green] No conflicts detected")
        return

    table = Table(title="Conflicts")
    table.add_column("Type", style="cyan")
    table.add_column("Claimed", justify="right")
    table.add_column("Ground truth", justify="right")
    table.add_column("Deviation", justify="right")
    table.add_column("Severity")
    for alert in alerts:
        table.add_row(
            alert.type,
            f"{alert.claimed_value:,.2f}",
            f"{alert.ground_truth_value:,.2f}",
            f"{alert.deviation_percent:.1f}%",
            f"[{_SEVERITY_STYLE[alert.severity]}]{alert.severity.value}[/]",
        )
    console.print(table)


def _load_json(path: Path) -> Any:
    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        console.print(f"[red]Error: {path} is not valid JSON: {exc}[/red]")
        raise typer.Exit(1)


def _load_items(path: Path) -> list[LineItem]:
    payload = _load_json(path)
    if isinstance(payload, dict):
        payload = payload.get("materials") or payload.get("items") or []
    try:
        return parse_line_items(payload)
    except BudgetCalcError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)


def _print_items(items: list[LineItem]) -> None:
    table = Table(title="Line Items")
    table.add_column("Citation", style="cyan")
    table.add_column("Item")
    table.add_column("Qty", justify="right")
    table.add_column("Unit")
    table.add_column("Unit price", justify="right")
    table.add_column("Total", justify="right", style="green")
    for item in items:
        table.add_row(
            item.citation_id or "",
            item.name,
            f"{item.quantity.normalize():f}",
            item.unit,
            f"{item.unit_price:,.2f}",
            f"{item.total_price or 0:,.2f}",
        )
    console.print(table)


def _print_summary(result: FinancialSummary) -> None:
    currency = get_config().estimating.currency
    table = Table(title=f"Budget Summary ({currency}, source: {result.data_source})")
    table.add_column("Metric", style="cyan")
    table.add_column("Amount", justify="right", style="green")

    table.add_row("Materials", f"${result.material_cost:,.2f}")
    table.add_row("Labor", f"${result.labor_cost:,.2f}")
    table.add_row("Other", f"${result.other_cost:,.2f}")
    table.add_row("Subtotal", f"${result.subtotal:,.2f}")
    table.add_row(f"Tax ({result.tax_rate * 100:.0f}%)", f"${result.tax_amount:,.2f}")
    table.add_row("[bold]Grand total[/bold]", f"[bold]${result.grand_total:,.2f}[/bold]")
    if result.approved_grand_total is not None:
        table.add_row("Approved budget", f"${result.approved_grand_total:,.2f}")
    console.print(table)

    if result.pending_change:
        pending = result.pending_change
        console.print(
            f"[yellow]Pending change[/yellow] by {pending.requested_by} on {pending.item_name}: "
            f"{pending.delta:+,.2f} → proposed ${pending.proposed_grand_total:,.2f}"
        )
    if result.is_draft:
        console.print("[dim]Draft budget (not finalized)[/dim]")


if __name__ == "__main__":
    app()
