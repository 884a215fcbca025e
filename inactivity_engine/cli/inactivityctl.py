#!/usr/bin/env python3
"""
Inactivity Control CLI - Command Line Interface for the Inactivity Engine.

Provides commands for listing lifecycle stages, previewing candidates,
running stages against the directory, and viewing the audit trail.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..audit import AuditLogger
from ..config import EngineSettings, load_settings
from ..connectors import (
    BaseDirectoryConnector,
    DirectoryError,
    MockDirectoryConnector,
    get_connector_class,
)
from ..engine import FilterPipeline, LicenseCatalogError, RetrievalError, load_product_names
from ..models import Candidate, FilterCounts, StageRunResult
from ..workflows import InactivityWorkflow

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()


def setup_logging(verbose: bool = False):
    """Configure process-wide logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


class InactivityController:
    """Main controller for Inactivity Engine operations."""

    def __init__(self, config_path: Optional[str] = None, mock_mode: bool = False,
                 mock_data: Optional[str] = None):
        """Initialize the controller."""
        self.mock_mode = mock_mode
        self.mock_data = Path(mock_data) if mock_data else None
        self.settings: EngineSettings = load_settings(config_path)

    def build_connector(self) -> BaseDirectoryConnector:
        """Create the directory connector for the selected mode."""
        if self.mock_mode:
            if self.mock_data:
                with open(self.mock_data, encoding="utf-8") as f:
                    return MockDirectoryConnector.from_snapshot(json.load(f))
            return MockDirectoryConnector()

        connector_class = get_connector_class(mock=False)
        return connector_class(self.settings.connector.model_dump())


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Path to configuration file (YAML or JSON)')
@click.option('--mock/--real', default=False, help='Use the in-memory mock directory or Microsoft Graph')
@click.option('--mock-data', type=click.Path(exists=True), help='JSON directory snapshot for mock mode')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config, mock, mock_data, verbose):
    """Inactivity Engine Control CLI - inactive identity lifecycle automation"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    try:
        ctx.obj['controller'] = InactivityController(config, mock, mock_data)
    except (ValueError, OSError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def stages(ctx):
    """List configured lifecycle stages."""
    settings = ctx.obj['controller'].settings

    table = Table(title=f"Lifecycle Stages ({len(settings.stages)})")
    table.add_column("Stage", style="cyan")
    table.add_column("Kind", style="green")
    table.add_column("Enabled", style="yellow")
    table.add_column("Threshold", style="magenta")
    table.add_column("Action", style="red")
    table.add_column("Target Group", style="blue")

    for name in settings.stage_names():
        stage = settings.stages[name]
        table.add_row(
            name,
            stage.kind.value,
            stage.enabled_state.value,
            f"{stage.threshold_days} days",
            stage.action.value,
            stage.target_group or "-",
        )

    console.print(table)


@cli.command()
@click.argument('stage_name')
@click.option('--limit', default=50, help='Maximum number of candidates to show')
@click.pass_context
def candidates(ctx, stage_name, limit):
    """Preview the candidates of a stage without acting on them."""
    controller = ctx.obj['controller']

    try:
        stage = controller.settings.get_stage(stage_name)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        sys.exit(1)

    try:
        with controller.build_connector() as connector:
            pipeline = FilterPipeline(
                connector,
                stage,
                product_names=load_product_names(controller.settings.sku_names_file),
                catalog_failure_policy=controller.settings.license_catalog_failure,
            )
            result = pipeline.run()
    except (DirectoryError, RetrievalError, LicenseCatalogError) as e:
        console.print(f"[red]✗ Stage '{stage_name}' failed: {e}[/red]")
        sys.exit(1)

    display_counts(result.counts, result.retrieval_strategy)
    display_candidates(result.candidates, limit)
    for warning in result.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")


@cli.command()
@click.argument('stage_name')
@click.option('--dry-run/--live', default=True, help='Report only (default) or mutate the directory')
@click.option('--export', 'export_format', type=click.Choice(['csv', 'json']), help='Export candidates')
@click.pass_context
def run(ctx, stage_name, dry_run, export_format):
    """Run a lifecycle stage."""
    controller = ctx.obj['controller']

    try:
        stage = controller.settings.get_stage(stage_name)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        sys.exit(1)

    console.print(f"[blue]Running stage '{stage_name}' (action={stage.action.value}, "
                  f"{'dry run' if dry_run else 'LIVE'})[/blue]")

    workflow = InactivityWorkflow(controller.settings, controller.build_connector())
    try:
        result = workflow.execute(stage, dry_run=dry_run, export_format=export_format)
    except (DirectoryError, RetrievalError, LicenseCatalogError) as e:
        console.print(f"[red]✗ Stage '{stage_name}' failed: {e}[/red]")
        logger.exception("Stage run failed")
        sys.exit(1)

    display_run_result(result)


@cli.command()
@click.option('--account-id', help='Filter by account ID')
@click.option('--run-id', help='Filter by run ID')
@click.option('--limit', default=50, help='Maximum number of records to show')
@click.pass_context
def audit_trail(ctx, account_id, run_id, limit):
    """Show the audit trail of lifecycle actions."""
    settings = ctx.obj['controller'].settings
    if not settings.audit_dir:
        console.print("[yellow]No audit_dir configured[/yellow]")
        return

    records = AuditLogger(settings.audit_dir).get_events(account_id=account_id, run_id=run_id, limit=limit)
    if not records:
        console.print("[yellow]No audit records found[/yellow]")
        return

    table = Table(title=f"Audit Trail ({len(records)})")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Stage", style="green")
    table.add_column("Action", style="magenta")
    table.add_column("Account", style="blue")
    table.add_column("Dry Run", style="yellow")
    table.add_column("Success", style="red")

    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.stage,
            record.action,
            record.principal_name or record.account_id,
            "yes" if record.dry_run else "no",
            "✓" if record.success else "✗",
        )

    console.print(table)


def display_counts(counts: FilterCounts, strategy: Optional[str]):
    """Display the per-step filter counts."""
    table = Table(title=f"Filter Pipeline ({strategy or 'n/a'} filter)")
    table.add_column("Step", style="cyan")
    table.add_column("Count", style="magenta")

    for field_name, value in counts.model_dump().items():
        table.add_row(field_name.replace("_", " ").capitalize(), str(value))

    console.print(table)


def display_candidates(candidates: list, limit: int = 50):
    """Display the candidate list."""
    if not candidates:
        console.print("[green]No candidates[/green]")
        return

    table = Table(title=f"Candidates ({len(candidates)})")
    table.add_column("Principal Name", style="cyan")
    table.add_column("Display Name", style="green")
    table.add_column("Department", style="yellow")
    table.add_column("Last Activity", style="magenta")
    table.add_column("Days Inactive", style="red")
    table.add_column("Licenses", style="blue")

    for candidate in candidates[:limit]:
        table.add_row(*_candidate_row(candidate))

    console.print(table)
    if len(candidates) > limit:
        console.print(f"[dim]... {len(candidates) - limit} more[/dim]")


def _candidate_row(candidate: Candidate):
    account = candidate.account
    return (
        account.user_principal_name,
        account.display_name,
        account.department or "-",
        candidate.last_activity.strftime("%Y-%m-%d") if candidate.last_activity else "never",
        str(candidate.inactive_days) if candidate.inactive_days is not None else "-",
        ", ".join(candidate.license_names) or "-",
    )


def display_run_result(result: StageRunResult):
    """Display stage run results."""
    if result.error_count:
        console.print(f"[yellow]✓ Stage completed with {result.error_count} errors[/yellow]")
    else:
        console.print("[green]✓ Stage completed successfully[/green]")

    if result.context:
        console.print(Panel.fit(
            f"[bold blue]{result.context.tenant_name or result.context.tenant_id}[/bold blue]\n"
            f"Run {result.run_id}"
        ))

    display_counts(result.counts, result.retrieval_strategy)

    table = Table(title="Stage Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Stage", result.stage)
    table.add_row("Dry Run", str(result.dry_run))
    table.add_row("Started", result.started_at.strftime("%Y-%m-%d %H:%M:%S"))
    table.add_row("Completed", result.completed_at.strftime("%Y-%m-%d %H:%M:%S") if result.completed_at else "N/A")
    if result.actuation:
        table.add_row("Action", result.actuation.action.value)
        table.add_row("Succeeded", str(result.actuation.succeeded))
        table.add_row("Failed", str(result.actuation.failed))
    if result.group_sync and not result.group_sync.skipped:
        table.add_row("Target Group", result.group_sync.group_name)
        table.add_row("Members Removed", str(result.group_sync.removed))
        table.add_row("Members Added", str(result.group_sync.added))
        table.add_row("Membership Failures",
                      str(result.group_sync.failed_to_remove + result.group_sync.failed_to_add))
    if result.report_path:
        table.add_row("Report", result.report_path)

    console.print(table)

    failures = []
    if result.actuation:
        failures.extend(result.actuation.failures)
    if result.group_sync:
        failures.extend(result.group_sync.failures)
    if failures:
        console.print("[red]Errors:[/red]")
        for failure in failures:
            console.print(f"  - {failure.operation} {failure.principal_name or failure.item_id}: {failure.error}")

    for warning in result.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
