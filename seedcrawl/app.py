"""Typer CLI entrypoint for seedcrawl."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

import typer
import yaml
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, ScheduleConfig, ScheduleType, SourceConfig
from .logging_conf import available_source_logs, configure_logging, log_dir, tail_log
from .models import RunSummary
from .service import CrawlService

app = typer.Typer(
    help="seedcrawl command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
source_app = typer.Typer(
    name="source",
    help="Inspect configured sources",
    no_args_is_help=True,
    rich_markup_mode=None,
)
dedup_app = typer.Typer(
    name="dedup",
    help="Inspect or reset the dedup index",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Browse log files",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    service: CrawlService


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    service = CrawlService.from_repository(repository)
    return AppState(repository=repository, service=service)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _format_schedule(schedule: ScheduleConfig) -> str:
    data = schedule.value
    label = schedule.type.value
    if data in (None, "", [], {}):
        return label
    if schedule.type is ScheduleType.CRON:
        return f"cron ({data})"
    if schedule.type is ScheduleType.INTERVAL:
        return f"interval ({data}s)" if isinstance(data, (int, float)) else f"interval ({data})"
    return f"{label} ({data})"


def _render_sources_table(sources: Sequence[SourceConfig], defaults: Iterable[str]) -> Table:
    default_names = set(defaults)
    table = Table(
        title=f"Sources · {len(sources)} configured",
        box=box.SIMPLE_HEAD,
        show_lines=False,
    )
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Adapter", style="magenta")
    table.add_column("Base URL", overflow="fold")
    table.add_column("Delay (s)", style="yellow", justify="right")
    table.add_column("Max pages", justify="right")
    table.add_column("Enabled", style="green")
    table.add_column("Default", style="green")
    for source in sources:
        table.add_row(
            source.source_name,
            source.adapter,
            source.base_url,
            "-" if source.min_delay is None else f"{source.min_delay:g}",
            "-" if source.max_pages is None else str(source.max_pages),
            "yes" if source.enabled else "no",
            "yes" if source.source_name in default_names else "",
        )
    return table


def _render_summary_table(summary: RunSummary) -> Table:
    table = Table(
        title=f"Run {summary.run_id[:8]} · {summary.status.value} · {summary.total_duration_ms} ms",
        box=box.SIMPLE_HEAD,
    )
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Pages", justify="right")
    table.add_column("Candidates", justify="right")
    table.add_column("Accepted", style="green", justify="right")
    table.add_column("Duplicates", style="yellow", justify="right")
    table.add_column("Rejected", style="red", justify="right")
    table.add_column("Status", style="magenta", overflow="fold")
    for outcome in summary.per_source:
        if outcome.cancelled:
            status = "cancelled"
        elif outcome.success:
            status = "ok"
        else:
            status = f"failed: {outcome.error}"
        table.add_row(
            outcome.source_name,
            f"{outcome.pages_fetched}/{outcome.pages_fetched + outcome.pages_failed}",
            str(outcome.candidate_count),
            str(outcome.accepted_count),
            str(outcome.duplicate_count),
            str(outcome.rejected_count + outcome.sink_rejected_count),
            status,
        )
    table.add_row(
        "total",
        "",
        str(summary.total_candidates),
        str(summary.total_accepted),
        str(summary.total_duplicates),
        "",
        summary.fault or summary.status.value,
    )
    return table


def _render_jobs_table(jobs: Iterable[dict[str, Any]]) -> Table:
    table = Table(title="Scheduled jobs", box=box.SIMPLE_HEAD)
    table.add_column("Job ID", style="cyan", no_wrap=True)
    table.add_column("Next run", style="green")
    table.add_column("Trigger", style="magenta", overflow="fold")
    for job in jobs:
        table.add_row(
            str(job.get("id", "-")),
            str(job.get("next_run_time", "-")),
            str(job.get("trigger", "-")),
        )
    return table


app.add_typer(source_app, name="source", help="List or show source definitions")
app.add_typer(dedup_app, name="dedup", help="Dedup index statistics and reset")
app.add_typer(log_app, name="log", help="List or tail log files")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="Run a crawl now and print its summary.")
def run(
    ctx: typer.Context,
    sources: Optional[list[str]] = typer.Argument(None, help="Source names (defaults to the configured set)."),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Listing pages per source."),
    query: Optional[str] = typer.Option(None, "--query", help="Search term; omit to crawl latest listings."),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON.", is_flag=True),
    quiet: bool = typer.Option(False, "--quiet", help="Print a one-line summary only.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    options: dict[str, Any] = {}
    if max_pages is not None:
        options["maxPages"] = max_pages
    if query is not None:
        options["query"] = query
    try:
        summary = state.service.manual_run({"sources": list(sources or []), "options": options})
    except ValidationError as exc:
        console.print(f"Invalid run request: {exc.errors()[0]['msg']}", style="red")
        raise typer.Exit(code=2)
    if as_json:
        typer.echo(json.dumps(summary.to_dict(), ensure_ascii=False))
    elif quiet:
        console.print(
            f"{summary.status.value}: candidates {summary.total_candidates}, "
            f"accepted {summary.total_accepted}, duplicates {summary.total_duplicates}"
        )
    else:
        console.print(_render_summary_table(summary))
    raise typer.Exit(code=0)


@app.command("serve", help="Start the scheduler and block until interrupted.")
def serve(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = state.repository.load_global_config()
    state.service.start_schedule()
    console.print(
        f"Scheduler running: {_format_schedule(config.schedule)} for {', '.join(config.default_sources)}.",
        style="green",
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping scheduler.", style="yellow")
    finally:
        state.service.close()


@app.command("status", help="Show recent runs, per-source totals and health.")
def status(
    ctx: typer.Context,
    limit: int = typer.Option(5, "--limit", help="Number of recent runs to show."),
    as_json: bool = typer.Option(False, "--json", help="Print the status as JSON.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    report = state.service.status(limit=limit)
    if as_json:
        typer.echo(json.dumps(report, ensure_ascii=False, default=str))
        return

    runs = Table(title=f"Recent runs · {len(report['runs'])}", box=box.SIMPLE_HEAD)
    runs.add_column("Run", style="cyan", no_wrap=True)
    runs.add_column("Started", style="green")
    runs.add_column("Status", style="magenta")
    runs.add_column("Accepted", justify="right")
    runs.add_column("Duplicates", justify="right")
    for entry in report["runs"]:
        totals = entry.get("totals", {})
        runs.add_row(
            str(entry.get("run_id", "-"))[:8],
            str(entry.get("started_at", "-")),
            str(entry.get("status", "-")),
            str(totals.get("accepted", 0)),
            str(totals.get("duplicates", 0)),
        )
    console.print(runs)

    stats = Table(title="Per-source totals", box=box.SIMPLE_HEAD)
    stats.add_column("Source", style="cyan", no_wrap=True)
    stats.add_column("Runs", justify="right")
    stats.add_column("Failures", style="red", justify="right")
    stats.add_column("Accepted", style="green", justify="right")
    stats.add_column("Last error", overflow="fold")
    for row in report["sources"]:
        stats.add_row(
            row["source_name"],
            str(row["runs"]),
            str(row["failures"]),
            str(row["accepted"]),
            row.get("last_error") or "",
        )
    console.print(stats)

    health = report["health"]
    dedup = report["dedup"]
    console.print(
        f"dedup: {health['dedup_store']} ({dedup.get('backend')}, {dedup.get('entries', 0)} entries)"
        f" · sink: {health['sink']} · last run: {health['last_run_at'] or 'never'}",
        style="dim",
    )
    if not health["dedup_durable"]:
        console.print("dedup store is in-memory; history is lost on restart.", style="yellow")
    if report["jobs"]:
        console.print(_render_jobs_table(report["jobs"]))


@source_app.command("list", help="List built-in and file-based sources.")
def source_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    sources = state.repository.list_sources()
    if not sources:
        console.print("No sources configured.", style="yellow")
        raise typer.Exit(code=0)
    defaults = state.repository.load_global_config().default_sources
    console.print(_render_sources_table(sources, defaults))


@source_app.command("show", help="Print one source definition as YAML.")
def source_show(ctx: typer.Context, name: str = typer.Argument(..., help="Source name.")) -> None:
    state = _get_state(ctx)
    try:
        config = state.repository.load_source(name)
    except FileNotFoundError:
        console.print(f"Unknown source `{name}`.", style="red")
        raise typer.Exit(code=1)
    typer.echo(
        yaml.safe_dump(
            json.loads(config.model_dump_json(exclude_none=True)),
            allow_unicode=True,
            sort_keys=False,
        )
    )


@dedup_app.command("stats", help="Show dedup index statistics.")
def dedup_stats(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    stats = state.service.dedup.stats()
    table = Table(title="Dedup index", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green", overflow="fold")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)


@dedup_app.command("reset", help="Forget every fingerprint so all records count as new again.")
def dedup_reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    if not yes:
        confirm = typer.confirm("Clear the dedup index?", default=False)
        if not confirm:
            console.print("Reset cancelled.", style="yellow")
            raise typer.Exit(code=0)
    state.service.dedup.reset()
    console.print("Dedup index cleared.", style="green")


@log_app.command("list", help="List per-source log files.")
def log_list() -> None:
    logs = list(available_source_logs())
    console.print("Log files:", style="cyan")
    if not logs:
        console.print("No source logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the last lines of a log file.")
def log_show(
    name: Optional[str] = typer.Option(None, "--source", help="Source name (global log when omitted)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
) -> None:
    base_dir = log_dir()
    path = base_dir / "sources" / f"{name}.log" if name else base_dir / "crawler.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("Log is empty.", style="dim")
        return
    header = f"{'Source log' if name else 'Global log'} · last {len(lines)} lines"
    console.print(header, style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
