"""
CLI interface for Query Cost Sync.

Provides the analysis, patch and report inspection commands.
"""

import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from query_cost_sync.client.oracle import CostOracleClient, build_endpoint
from query_cost_sync.config.loader import SyncConfig, load_config
from query_cost_sync.core.errors import ArtifactSourceError, ReportFormatError
from query_cost_sync.core.parser import ArtifactParser
from query_cost_sync.core.patcher import PatchOutcome, apply_report
from query_cost_sync.core.pipeline import AnalysisResult, CostAnalyzer, run_analysis
from query_cost_sync.storage.backups import BackupStore
from query_cost_sync.storage.models import Classification
from query_cost_sync.storage.report import read_report, write_report

app = typer.Typer()
console = Console()

# Per-artifact failures are reported, never escalated to the exit code
EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_STATUS_STYLES = {
    Classification.MATCH: "green",
    Classification.UNDERESTIMATED: "red",
    Classification.OVERESTIMATED: "yellow",
    Classification.EXTRACTION_FAILED: "magenta",
    Classification.QUERY_FAILED: "magenta",
    Classification.PROCESSING_ERROR: "magenta",
}

_OUTCOME_STYLES = {
    PatchOutcome.PATCHED: "green",
    PatchOutcome.WOULD_PATCH: "cyan",
    PatchOutcome.ALREADY_APPLIED: "dim",
    PatchOutcome.NOT_APPLICABLE: "dim",
    PatchOutcome.STALE_PRECONDITION: "yellow",
    PatchOutcome.PATCH_FAILED: "red",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config_or_exit(config_path: Optional[str]) -> SyncConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _run_analysis(
    config: SyncConfig,
    directory: Optional[str],
    base_url: Optional[str],
    token: Optional[str],
) -> AnalysisResult:
    base = base_url or config.oracle.base_url
    if not base:
        console.print("[red]Error:[/] no cost service URL configured (use --base-url)")
        sys.exit(EXIT_CODE_FAIL)

    credential = config.credential(token)
    if not credential:
        console.print(
            f"[red]Error:[/] no access token (set {config.oracle.credential_env} or use --token)"
        )
        sys.exit(EXIT_CODE_FAIL)

    oracle = CostOracleClient(
        endpoint=build_endpoint(base, config.oracle.api_version, config.oracle.path),
        credential=credential,
        credential_header=config.oracle.credential_header,
        timeout=config.oracle.timeout,
    )
    analyzer = CostAnalyzer(
        oracle=oracle,
        parser=ArtifactParser(config.artifacts.cost_accessor),
        placeholders=config.placeholders,
        allow_unresolved=config.allow_unresolved_placeholders,
        delay=config.oracle.delay,
    )
    try:
        return run_analysis(
            directory or config.artifacts.directory,
            analyzer,
            pattern=config.artifacts.pattern,
            recursive=config.artifacts.recursive,
            workers=config.oracle.workers,
        )
    except ArtifactSourceError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        oracle.close()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Query Cost Sync CLI."""
    _configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        console.print("Query Cost Sync - Use --help to see available commands")


@app.command()
def analyze(
    directory: Optional[str] = typer.Option(
        None, "--dir", "-d", help="Artifact directory to scan"
    ),
    report: Optional[str] = typer.Option(
        None, "--report", "-r", help="Report file to write"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration"
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Cost service base URL"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", help="Access token (defaults to the configured env variable)"
    ),
):
    """
    Compare declared query costs against the cost service and write a report.

    Artifacts are never modified by this command. Run `patch` afterwards to
    apply the report.
    """
    config = _load_config_or_exit(config_path)
    result = _run_analysis(config, directory, base_url, token)

    try:
        report_path = write_report(result.records, report or config.report_path)
    except OSError as e:
        console.print(f"[red]Error writing report:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    _display_analysis_result(result)
    console.print(f"\nReport written to [bold]{report_path}[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def check(
    directory: Optional[str] = typer.Option(
        None, "--dir", "-d", help="Artifact directory to scan"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration"
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Cost service base URL"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", help="Access token (defaults to the configured env variable)"
    ),
    fail_on_drift: bool = typer.Option(
        False, "--fail-on-drift", help="Exit with error code if any artifact is underestimated"
    ),
):
    """Run the analysis without writing a report, for CI use."""
    config = _load_config_or_exit(config_path)
    result = _run_analysis(config, directory, base_url, token)
    _display_analysis_result(result)

    if fail_on_drift and result.count(Classification.UNDERESTIMATED):
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def patch(
    report: Optional[str] = typer.Option(
        None, "--report", "-r", help="Report file produced by `analyze`"
    ),
    directory: Optional[str] = typer.Option(
        None, "--dir", "-d", help="Artifact directory the report refers to"
    ),
    backup_dir: Optional[str] = typer.Option(
        None, "--backup-dir", "-b", help="Directory for pre-patch backups"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Check preconditions without writing anything"
    ),
):
    """
    Rewrite declared costs for under- and overestimated artifacts.

    Every artifact is checked against the report before it is touched and
    backed up first; a failed write is rolled back from the backup.
    """
    config = _load_config_or_exit(config_path)
    try:
        records = read_report(report or config.report_path)
    except ReportFormatError as e:
        console.print(f"[red]Error reading report:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    backups = BackupStore(backup_dir or config.backup_dir)
    summary = apply_report(
        records,
        directory or config.artifacts.directory,
        backups,
        accessor=config.artifacts.cost_accessor,
        dry_run=dry_run,
    )

    table = Table(title="Patch Result" + (" (dry run)" if dry_run else ""))
    table.add_column("File")
    table.add_column("Outcome")
    table.add_column("Detail")
    for result in summary.results:
        style = _OUTCOME_STYLES[result.outcome]
        table.add_row(result.file_name, f"[{style}]{result.outcome.value}[/]", result.message)
    console.print(table)

    if backups.records:
        console.print(f"\nBackups written to [bold]{backups.run_dir}[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def show(
    report: Optional[str] = typer.Option(
        None, "--report", "-r", help="Report file to display"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration"
    ),
):
    """Display an existing report."""
    config = _load_config_or_exit(config_path)
    try:
        records = read_report(report or config.report_path)
    except ReportFormatError as e:
        console.print(f"[red]Error reading report:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_analysis_result(AnalysisResult(records=records))
    sys.exit(EXIT_CODE_PASS)


def _display_analysis_result(result: AnalysisResult) -> None:
    """Display report rows followed by a per-status summary."""
    console.print("\n[bold]Query Cost Report[/bold]")

    if not result.records:
        console.print("\n[dim]No artifacts found.[/]")
        return

    table = Table()
    table.add_column("FileName")
    table.add_column("ExpectedCost", justify="right")
    table.add_column("ActualCost", justify="right")
    table.add_column("Status")
    table.add_column("Difference", justify="right")
    for record in result.records:
        style = _STATUS_STYLES[record.classification]
        table.add_row(
            record.file_name,
            str(record.expected_cost),
            str(record.actual_cost),
            f"[{style}]{record.classification.label}[/]",
            _format_difference(record.difference),
        )
    console.print(table)

    console.print("\n[bold]Summary[/bold]")
    for classification, count in result.counts().items():
        if count:
            console.print(f"{classification.label}: {count}")
    console.print(f"Total: {len(result.records)}")


def _format_difference(difference) -> str:
    """Format a delta with an explicit sign."""
    if isinstance(difference, int):
        return f"{'+' if difference > 0 else ''}{difference}"
    return str(difference)


if __name__ == "__main__":
    app()
