"""CLI interface for tacklepub."""

import json
import logging
import time
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from tacklepub.config import TacklepubConfig, load_config, merge_cli_overrides
from tacklepub.content.models import PageType
from tacklepub.content.schema import parse_document
from tacklepub.content.store import DocumentStore
from tacklepub.errors import QualityGateBlocked, TacklepubError, ValidationError
from tacklepub.index.audit import audit_drift
from tacklepub.index.store import ContentIndexStore
from tacklepub.ledger.store import TopicLedger
from tacklepub.locking import IndexLock
from tacklepub.metrics import MetricsRecorder
from tacklepub.publish.coordinator import PublishCoordinator
from tacklepub.quality.gate import run_quality_gate
from tacklepub.scheduler import JobScheduler, JobStatus

app = typer.Typer(
    name="tacklepub",
    help="Publish generated content into the flat-file document store.",
)
index_app = typer.Typer(help="Inspect and repair the content index.")
lock_app = typer.Typer(help="Inspect or clear the index lock.")
jobs_app = typer.Typer(help="Manage the publish job queue.")
app.add_typer(index_app, name="index")
app.add_typer(lock_app, name="lock")
app.add_typer(jobs_app, name="jobs")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from tacklepub import __version__

        console.print(f"tacklepub {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    root: Annotated[
        Optional[Path],
        typer.Option("--root", "-r", help="Content root (holds documents/ and system/)."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .tacklepub.toml file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Tacklepub - crash-safe publishing for generated content."""
    _setup_logging(verbose)
    config = load_config(config_path)
    ctx.obj = merge_cli_overrides(config, root=root)


def _config(ctx: typer.Context) -> TacklepubConfig:
    return ctx.obj if isinstance(ctx.obj, TacklepubConfig) else TacklepubConfig()


def _read_json_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Error:[/red] Could not read {path}: {exc}")
        raise typer.Exit(1) from None


def _fail(exc: TacklepubError) -> None:
    console.print(f"[red]Error ({exc.code}):[/red] {exc}")
    if isinstance(exc, QualityGateBlocked):
        for reason in exc.reasons:
            console.print(f"  - {reason}")
    elif isinstance(exc, ValidationError):
        for problem in exc.errors:
            console.print(f"  - {problem}")
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


@app.command(name="publish")
def publish_cmd(
    ctx: typer.Context,
    file: Annotated[
        Path,
        typer.Argument(help="Document JSON file to publish.", exists=True, dir_okay=False),
    ],
) -> None:
    """Publish one document: gate, file, ledger and index."""
    coordinator = PublishCoordinator(_config(ctx))
    try:
        result = coordinator.publish(_read_json_file(file))
    except TacklepubError as exc:
        _fail(exc)
        return

    if result.skipped:
        console.print(f"[yellow]Already published:[/yellow] {result.route_path}")
        return

    console.print(f"[green]Published[/green] {result.route_path} ({result.state})")
    console.print(f"  File: {result.file_path}")
    for warning in result.warnings:
        console.print(f"  [yellow]Warning:[/yellow] {warning}")
    for link in result.link_suggestions:
        console.print(f"  Link: {link.url} - {link.title}")


@app.command(name="gate")
def gate_cmd(
    ctx: typer.Context,
    file: Annotated[
        Path,
        typer.Argument(help="Document JSON file to check.", exists=True, dir_okay=False),
    ],
) -> None:
    """Run the quality gate on a document without publishing it."""
    try:
        doc = parse_document(_read_json_file(file))
    except ValidationError as exc:
        _fail(exc)
        return

    result = run_quality_gate(doc, _config(ctx).quality)
    for error in result.errors:
        console.print(f"[red]BLOCK[/red] {error}")
    for warning in result.warnings:
        console.print(f"[yellow]WARN[/yellow]  {warning}")

    if result.blocked:
        console.print(f"[red]Quality gate failed for {doc.slug}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Quality gate passed for {doc.slug}[/green]")


# ---------------------------------------------------------------------------
# Index maintenance
# ---------------------------------------------------------------------------


@index_app.command(name="rebuild")
def index_rebuild_cmd(ctx: typer.Context) -> None:
    """Rebuild the content index from the document files."""
    store = _config(ctx).store
    index = ContentIndexStore(store)
    try:
        stats = index.rebuild_and_save()
    except TacklepubError as exc:
        _fail(exc)
        return

    console.print(f"[green]Rebuilt index from {stats.total_files} file(s)[/green]")
    console.print(f"  Valid:       {stats.valid}")
    console.print(f"  Drafts:      {stats.drafts}")
    console.print(f"  Invalid:     {stats.invalid}")
    console.print(f"  Quarantined: {stats.quarantined}")
    for error in stats.errors:
        console.print(f"  [yellow]{error.file_path}[/yellow]: {error.reason}")


@index_app.command(name="audit")
def index_audit_cmd(
    ctx: typer.Context,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the full report as JSON."),
    ] = False,
) -> None:
    """Report drift between the index, the document files and the ledger."""
    store = _config(ctx).store
    documents = DocumentStore(store)
    lock = IndexLock(store)
    try:
        report = audit_drift(
            ContentIndexStore(store, lock, documents=documents).load(),
            documents,
            TopicLedger(store, lock),
        )
    except TacklepubError as exc:
        _fail(exc)
        return

    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        table = Table(title="Index drift")
        table.add_column("Check")
        table.add_column("Count", justify="right")
        for name, count in report.summary.model_dump().items():
            table.add_row(name.replace("_", " "), str(count))
        console.print(table)

    if report.has_drift:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Lock
# ---------------------------------------------------------------------------


@lock_app.command(name="status")
def lock_status_cmd(ctx: typer.Context) -> None:
    """Show who holds the index lock."""
    lock = IndexLock(_config(ctx).store)
    record = lock.read()
    if record is None:
        if lock.is_locked():
            console.print("[yellow]Lock file present but unreadable[/yellow]")
        else:
            console.print("[green]Unlocked[/green]")
        return

    age = record.age_seconds(time.time())
    stale = age > lock.config.stale_threshold
    console.print(f"Locked by {record.process_id} ({record.lock_id})")
    console.print(f"  Created: {record.created_at} ({age:.0f}s ago)")
    if stale:
        console.print("  [yellow]Stale: will be reclaimed by the next acquirer[/yellow]")


@lock_app.command(name="release")
def lock_release_cmd(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", help="Delete the lock regardless of its owner."),
    ] = False,
) -> None:
    """Forcibly release the index lock."""
    if not force:
        console.print("[red]Error:[/red] Refusing to release a lock we do not own without --force")
        raise typer.Exit(1)

    store = _config(ctx).store
    if IndexLock(store, MetricsRecorder(store)).force_release():
        console.print("[green]Lock released[/green]")
    else:
        console.print("[yellow]No lock to release[/yellow]")


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def _scheduler(ctx: typer.Context) -> JobScheduler:
    config = _config(ctx)
    return JobScheduler(config.store, config.pipeline)


@jobs_app.command(name="add")
def jobs_add_cmd(
    ctx: typer.Context,
    page_type: Annotated[PageType, typer.Argument(help="Page type of the job.")],
    topic_key: Annotated[str, typer.Argument(help="Topic key, e.g. species::redfish::global.")],
    priority: Annotated[
        Optional[int],
        typer.Option("--priority", "-p", min=1, max=10, help="Override the computed priority."),
    ] = None,
) -> None:
    """Queue a publish job."""
    try:
        job = _scheduler(ctx).add_job(page_type, topic_key, priority=priority)
    except TacklepubError as exc:
        _fail(exc)
        return
    console.print(f"[green]Queued[/green] {job.job_id} ({job.topic_key}, priority {job.priority})")


@jobs_app.command(name="list")
def jobs_list_cmd(
    ctx: typer.Context,
    status: Annotated[
        Optional[JobStatus],
        typer.Option("--status", "-s", help="Only show jobs with this status."),
    ] = None,
) -> None:
    """List queued jobs."""
    try:
        jobs = _scheduler(ctx).list_jobs(status)
    except TacklepubError as exc:
        _fail(exc)
        return

    if not jobs:
        console.print("[yellow]No jobs found.[/yellow]")
        return

    table = Table(title=f"Jobs ({len(jobs)})")
    table.add_column("ID", style="dim")
    table.add_column("Topic")
    table.add_column("Status")
    table.add_column("Priority", justify="right")
    table.add_column("Attempts", justify="right")
    for job in jobs:
        table.add_row(
            job.job_id[:8],
            job.topic_key,
            job.status,
            str(job.priority),
            f"{job.attempts}/{job.max_attempts}",
        )
    console.print(table)


@jobs_app.command(name="next")
def jobs_next_cmd(ctx: typer.Context) -> None:
    """Show the job that would run next, and whether today's cap allows it."""
    scheduler = _scheduler(ctx)
    try:
        job = scheduler.get_next_job()
        published = scheduler.published_today()
        halted = scheduler.should_halt()
    except TacklepubError as exc:
        _fail(exc)
        return

    if job is None:
        console.print("[yellow]No pending jobs.[/yellow]")
    else:
        console.print(f"Next: {job.job_id} {job.topic_key} (priority {job.priority})")

    cap = scheduler.pipeline.daily_publish_cap
    console.print(f"Published today: {published}/{cap}")
    if published >= cap:
        console.print("[yellow]Daily cap reached[/yellow]")
    if halted:
        console.print("[red]Circuit breaker open: too many consecutive failures[/red]")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


@app.command(name="metrics")
def metrics_cmd(ctx: typer.Context) -> None:
    """Show publish, revalidation and lock metrics."""
    recorder = MetricsRecorder(_config(ctx).store)
    publish = recorder.load_publish_metrics()
    locks = recorder.load_lock_metrics()
    summary = publish.summary

    console.print("[bold]Publishing[/bold]")
    console.print(f"  Attempts:    {summary.total_attempts}")
    console.print(f"  Successes:   {summary.total_successes}")
    console.print(f"  Skipped:     {summary.total_skipped}")
    console.print(f"  Failures:    {summary.total_failures}")
    console.print(f"  Quarantined: {summary.total_quarantined}")
    console.print(f"  Avg time:    {summary.average_publish_time_ms:.1f} ms")

    failures = {k: v for k, v in publish.failures.items() if v}
    if failures:
        console.print("[bold]Failures by category[/bold]")
        for category, count in sorted(failures.items()):
            console.print(f"  {category}: {count}")

    reval = publish.revalidation
    console.print("[bold]Revalidation[/bold]")
    console.print(f"  {reval.total_successes}/{reval.total_attempts} succeeded")

    console.print("[bold]Lock cleanups[/bold]")
    console.print(f"  Total: {locks.total_cleanups}")
