"""CLI entry point for Report Extractor.

Extracts structured fields from text reports against JSON schemas using an
LLM endpoint, with adaptive concurrency and rate limiting.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .clients import create_caller, get_available_providers, is_valid_provider
from .core.config import ExtractorConfig, get_config, load_app_config
from .core.config_store import get_config_store
from .core.errors import ConfigError, format_api_error, is_auth_error
from .extraction import (
    ExtractionExecutor,
    ExtractionTask,
    build_extraction_tasks,
    count_extraction_progress,
    get_missing_info,
    update_report_with_extraction,
)
from .orchestration import AdaptiveRateLimiter, ConcurrencyScheduler, TerminationReason
from .output import ResultStore, load_report_file
from .types.reports import AppConfig, Report

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# CLI app
app = typer.Typer(
    name="report-extractor",
    help="Report Extractor - Extract structured fields from reports with LLMs",
    add_completion=False,
)

console = Console()

REPORT_SUFFIXES = {".txt", ".md"}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"report-extractor version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        help="Show version and exit",
    ),
) -> None:
    """Report Extractor - Extract structured fields from reports with LLMs."""
    pass


def _validate_provider_option(value: Optional[str]) -> Optional[str]:
    """Reject unknown provider names early."""
    if value and not is_valid_provider(value.lower()):
        raise typer.BadParameter(f"Unknown provider: {value}")
    return value


def _resolve_config(
    provider: Optional[str],
    model: Optional[str],
    base_url: Optional[str] = None,
) -> ExtractorConfig:
    """Environment config with CLI overrides and remembered defaults."""
    try:
        config = get_config(provider)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)
    store = get_config_store()

    if base_url:
        config.base_url = base_url
    if model:
        config.model = model
    elif not config.model:
        config.model = store.get_last_model(config.provider) or ""

    return config


def _exit_on_config_errors(config: ExtractorConfig) -> None:
    errors = config.validate()
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        console.print("\nPlease set environment variables or create a .env file.")
        raise typer.Exit(1)


def _collect_report_paths(paths: list[Path]) -> list[Path]:
    """Expand directories into the report files they contain."""
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(
                sorted(p for p in path.iterdir() if p.suffix.lower() in REPORT_SUFFIXES)
            )
        else:
            files.append(path)
    return files


@app.command()
def run(
    reports: list[Path] = typer.Argument(
        ...,
        help="Report text files or directories containing them",
    ),
    config_file: Path = typer.Option(
        Path("config.json"),
        "--config",
        "-c",
        help="Application config with systemPrompt and schemaFiles",
    ),
    output_dir: Path = typer.Option(
        Path("./extractions"),
        "--output-dir",
        "-o",
        help="Output directory (previous results here are resumed)",
    ),
    provider: Optional[str] = typer.Option(
        None,
        "--provider",
        "-p",
        help="LLM provider: openai or gemini",
        callback=_validate_provider_option,
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Model name",
    ),
    max_concurrency: Optional[int] = typer.Option(
        None,
        "--max-concurrency",
        help="Upper bound on concurrent calls",
    ),
    requests_per_minute: Optional[int] = typer.Option(
        None,
        "--rpm",
        help="Maximum requests per minute",
    ),
    reset: bool = typer.Option(
        False,
        "--reset",
        help="Discard stored extractions before running",
    ),
    write_csv: bool = typer.Option(
        True,
        "--csv/--no-csv",
        help="Also write results.csv",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """Run extraction for every report against every schema."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = _resolve_config(provider, model)
    if max_concurrency is not None:
        config.max_concurrency = max_concurrency
    if requests_per_minute is not None:
        config.max_requests_per_minute = requests_per_minute
    _exit_on_config_errors(config)

    app_config: Optional[AppConfig] = None
    try:
        app_config = load_app_config(config_file)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")

    report_files = _collect_report_paths(reports)
    try:
        loaded = [load_report_file(path) for path in report_files]
    except OSError as e:
        console.print(f"[red]Failed to read report: {e}[/red]")
        raise typer.Exit(1)

    missing = get_missing_info(config, app_config, loaded)
    if missing:
        console.print("[red]Missing information:[/red]")
        for item in missing:
            console.print(f"  - {item}")
        raise typer.Exit(1)

    store = ResultStore(output_dir)

    if reset:
        store.clear_extractions()
    elif store.has_extractions and store.last_model and store.last_model != config.model:
        console.print(
            f"[yellow]Stored results in {output_dir} were produced by "
            f"{store.last_model}, not {config.model}.[/yellow]"
        )
        console.print("Use --reset to discard them, or choose another --output-dir.")
        raise typer.Exit(1)

    stored_reports = store.add_reports(loaded)

    reason = asyncio.run(run_extraction(config, app_config, stored_reports, store, write_csv))

    get_config_store().remember_selection(config.provider, config.model)

    if reason == TerminationReason.AUTH_ERROR:
        raise typer.Exit(1)


async def run_extraction(
    config: ExtractorConfig,
    app_config: AppConfig,
    reports: list[Report],
    store: ResultStore,
    write_csv: bool = True,
) -> Optional[TerminationReason]:
    """Run extraction with progress display.

    Returns:
        Why the run was terminated early, or None if it completed.
    """
    schema_count = len(app_config.schema_files)
    tasks = build_extraction_tasks(
        reports, app_config.schema_files, app_config.system_prompt, config.model
    )
    progress_state = count_extraction_progress(reports, schema_count)
    completed_reports = progress_state.completed_reports

    console.print("\n[bold]Report Extraction[/bold]")
    console.print(f"Model: {config.model} ({config.provider})")
    console.print(f"Reports: {len(reports)}, schemas: {schema_count}")
    console.print(
        f"Tasks: {len(tasks)} pending, {progress_state.completed_tasks} already done"
    )
    console.print()

    if not tasks:
        console.print("All schemas for all reports are already extracted.")
        _write_results(store, write_csv)
        return None

    rate_limiter = AdaptiveRateLimiter(
        max_requests_per_window=config.max_requests_per_minute,
        min_backoff=config.min_backoff,
        max_backoff=config.max_backoff,
        rate_limit_min_backoff=config.rate_limit_min_backoff,
        max_rate_limit_errors=config.max_rate_limit_errors,
    )
    caller = create_caller(config, on_headers=rate_limiter.update_from_headers)

    scheduler: ConcurrencyScheduler[ExtractionTask]
    executor = ExtractionExecutor(caller, is_terminated=lambda: scheduler.is_terminated)
    scheduler = ConcurrencyScheduler(
        executor,
        initial_concurrency=config.initial_concurrency,
        max_concurrency=config.max_concurrency,
        rate_limiter=rate_limiter,
        task_timeout=config.task_timeout,
    )

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, scheduler.terminate)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl-C will abort immediately")

    store.start_run(config.provider, config.model)
    total = len(tasks) + progress_state.completed_tasks

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task(
            f"Reports complete: {completed_reports}/{len(reports)}",
            total=total,
            completed=progress_state.completed_tasks,
        )

        async def on_task_done(task: ExtractionTask, result, error) -> None:
            nonlocal completed_reports

            if error is not None and is_auth_error(error):
                scheduler.terminate(TerminationReason.AUTH_ERROR)
                console.print(f"[red]{format_api_error(error)}[/red]")
                return

            update_report_with_extraction(task.report, task.schema_id, result, error)
            store.save()

            if error is not None:
                console.print(f"[yellow]{task.label}: {format_api_error(error)}[/yellow]")
                if rate_limiter.should_terminate_early:
                    scheduler.terminate(TerminationReason.RATE_LIMITED)
            else:
                counts = progress_state.report_task_counts
                counts[task.report.id] = counts.get(task.report.id, 0) + 1
                if counts[task.report.id] == schema_count:
                    completed_reports += 1

            progress.update(
                bar,
                advance=1,
                description=f"Reports complete: {completed_reports}/{len(reports)}",
            )

        try:
            await scheduler.run(tasks, on_task_done)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass

            reason = scheduler.termination_reason
            store.finish_run(
                termination_reason=reason.value if reason else None,
                tasks_total=scheduler.stats.tasks_dispatched,
                tasks_failed=scheduler.stats.tasks_failed,
            )
            _write_results(store, write_csv)

    _print_summary(scheduler, store)
    return scheduler.termination_reason


def _write_results(store: ResultStore, write_csv: bool) -> None:
    store.save()
    if write_csv:
        store.export_csv()


def _print_summary(scheduler: ConcurrencyScheduler, store: ResultStore) -> None:
    stats = scheduler.stats

    console.print()
    table = Table(title="Extraction Summary")
    table.add_column("Report", style="cyan")
    table.add_column("Schemas extracted", justify="right")

    for report in store.reports:
        table.add_row(report.name, str(report.extracted_count))

    console.print(table)

    console.print()
    console.print(f"[bold]Tasks dispatched:[/bold] {stats.tasks_dispatched}")
    console.print(f"[bold]Failed:[/bold] {stats.tasks_failed}")
    console.print(f"[bold]Batches:[/bold] {stats.batches}")
    console.print(f"[bold]Duration:[/bold] {stats.duration_seconds:.1f}s")
    console.print(f"[bold]Output:[/bold] {store.output_dir}")

    reason = scheduler.termination_reason
    if reason == TerminationReason.RATE_LIMITED:
        console.print(
            "\n[red]Extraction terminated early due to rate limiting.[/red] "
            "Run again later to resume, or lower --rpm."
        )
    elif reason == TerminationReason.USER:
        console.print("\n[yellow]Extraction stopped. Run again to resume.[/yellow]")


@app.command()
def check(
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="LLM provider", callback=_validate_provider_option
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="API base URL"),
) -> None:
    """Check configuration and credentials."""
    config = _resolve_config(provider, None, base_url)

    console.print("[bold]Configuration Check[/bold]\n")
    _exit_on_config_errors(config)

    console.print(f"[green]Provider:[/green] {config.provider}")
    console.print(f"[green]Base URL:[/green] {config.base_url}")
    console.print(f"[green]API key:[/green] {config.api_key[:8]}...")
    if config.model:
        console.print(f"[green]Model:[/green] {config.model}")

    console.print("\n[bold]Testing authentication...[/bold]")
    caller = create_caller(config)
    with console.status("Authenticating..."):
        valid = asyncio.run(caller.validate_credentials())

    if not valid:
        console.print("[red]Your API key is invalid. Please re-enter a valid key.[/red]")
        raise typer.Exit(1)

    console.print("[green]Authentication successful![/green]")


@app.command()
def models(
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="LLM provider", callback=_validate_provider_option
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="API base URL"),
) -> None:
    """List models available to the configured credentials."""
    config = _resolve_config(provider, None, base_url)
    _exit_on_config_errors(config)

    caller = create_caller(config)
    try:
        available = asyncio.run(caller.list_models())
    except Exception as e:
        console.print(f"[red]Failed to list models:[/red] {format_api_error(e)}")
        raise typer.Exit(1)

    preferred = set(caller.preferred_models())
    table = Table(title=f"{caller.display_name} Models")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Preferred", justify="center")

    for info in available:
        table.add_row(info.id, info.display_name, "*" if info.id in preferred else "")

    console.print(table)


@app.command()
def providers() -> None:
    """List supported providers."""
    table = Table(title="Available Providers")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Description")

    for entry in get_available_providers():
        table.add_row(entry["id"], entry["name"], entry["description"])

    console.print(table)


if __name__ == "__main__":
    app()
