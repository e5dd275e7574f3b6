"""
Typer CLI for the Apollo research pipeline.

Commands:
    apollo db init                    - Create catalog and job tables
    apollo research submit TOPIC      - Queue a research job (--run to run it now)
    apollo research run JOB_ID        - Run one queued job in the foreground
    apollo research worker            - Poll for queued jobs until interrupted
    apollo research status JOB_ID     - Show a job's status and progress
    apollo research list              - List jobs, newest first
    apollo research cancel JOB_ID     - Cancel a job that has not finished
    apollo research assemble DIR      - Assemble a working directory to JSON
    apollo research ingest FILE       - Ingest a curriculum JSON file
    apollo research pool-summary      - Print or write the knowledge pool summary

Usage:
    apollo --help
    apollo research submit "Go concurrency" --run
    apollo research worker
"""

from __future__ import annotations

import json
import threading
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from apollo.logging_setup import configure_logging

app = typer.Typer(
    help="Apollo: agent-driven curriculum research pipeline",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Apollo research pipeline CLI."""
    configure_logging(get_settings(), level="DEBUG" if verbose else None)


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily builds the pipeline so commands that never touch the agent or the
    database do not pay for it.
    """

    def __init__(self):
        self.settings = get_settings()
        self._session_factory = None
        self._repo = None
        self._orchestrator = None
        self._service = None

    @property
    def session_factory(self):
        if self._session_factory is None:
            from apollo.db.database import get_session_factory

            self._session_factory = get_session_factory()
        return self._session_factory

    @property
    def repo(self):
        if self._repo is None:
            from apollo.research.jobs import SqlResearchJobRepository

            self._repo = SqlResearchJobRepository(self.session_factory)
        return self._repo

    @property
    def pool(self):
        from apollo.research.pool import PoolSummaryBuilder

        return PoolSummaryBuilder(self.session_factory)

    @property
    def ingester(self):
        from apollo.research.ingest import CurriculumIngester

        return CurriculumIngester(self.session_factory)

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from apollo.research.agent import ClaudeCliRunner
            from apollo.research.orchestrator import ResearchOrchestrator

            agent = ClaudeCliRunner(
                binary_path=self.settings.claude_code_path,
                max_output_tokens=self.settings.research_max_output_tokens,
                poll_interval=self.settings.agent_poll_interval,
            )
            self._orchestrator = ResearchOrchestrator.from_settings(
                self.settings,
                agent=agent,
                pool=self.pool,
                ingester=self.ingester,
                repo=self.repo,
            )
        return self._orchestrator

    @property
    def service(self):
        if self._service is None:
            from apollo.research.service import ResearchService

            self._service = ResearchService(self.repo, self._orchestrator)
        return self._service


def _build_context() -> CLIContext:
    return CLIContext()


def _print_job(job) -> None:
    table = Table(title=f"Research Job {job.id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Topic", job.root_topic)
    if job.current_topic != job.root_topic:
        table.add_row("Current topic", job.current_topic)
    table.add_row("Status", job.status)
    if job.progress:
        p = job.progress
        description = p.pass_descriptions.get(p.current_pass, "")
        table.add_row("Pass", f"{p.current_pass}/{p.total_passes} {description}".rstrip())
        if p.modules_completed or p.concepts_found:
            table.add_row("Modules", str(p.modules_completed))
            table.add_row("Concepts", str(p.concepts_found))
    if job.error:
        table.add_row("Error", f"[red]{job.error}[/red]")
    table.add_row("Created", str(job.created_at or "-"))
    table.add_row("Started", str(job.started_at or "-"))
    table.add_row("Completed", str(job.completed_at or "-"))
    console.print(table)


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database operations")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Create catalog, job and search-index tables."""
    from apollo.db.database import init_db

    settings = get_settings()
    init_db()
    location = settings.database_url.split("///", 1)[-1] if settings.is_sqlite() else "server"
    rprint(f"[green]✓[/green] Database initialized ({location})")


# ========================================
# RESEARCH COMMANDS
# ========================================

research_app = typer.Typer(help="Research jobs and curriculum ingestion")
app.add_typer(research_app, name="research")


@research_app.command("submit")
def research_submit(
    topic: str = typer.Argument(..., help="Topic to research"),
    run: bool = typer.Option(False, "--run", help="Run the job immediately in the foreground"),
) -> None:
    """Queue a research job for TOPIC."""
    ctx = _build_context()
    try:
        job = ctx.service.submit(topic)
    except ValueError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    rprint(f"[green]✓[/green] Queued job [bold]{job.id}[/bold] for '{job.root_topic}'")
    if run:
        research_run(job.id)


def _run_job_in_thread(orchestrator, job_id: str, stop) -> None:
    """
    Run ``job_id`` on a worker thread and wait for it.

    Ctrl+C cancels ``stop`` and waits for the job to wind down, so the agent
    process is killed and the job is recorded as cancelled. Errors from the
    job are re-raised in the calling thread.
    """
    outcome: dict[str, Exception] = {}

    def target() -> None:
        try:
            orchestrator.run_job(job_id, parent=stop)
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=target, name=f"research-job-{job_id}", daemon=True)
    thread.start()
    try:
        while thread.is_alive():
            thread.join(timeout=1.0)
    except KeyboardInterrupt:
        stop.cancel()
        thread.join()
        raise

    if "error" in outcome:
        raise outcome["error"]


@research_app.command("run")
def research_run(
    job_id: str = typer.Argument(..., help="Job id"),
) -> None:
    """Run one job through the full pipeline in the foreground."""
    from apollo.research.cancellation import CancelToken
    from apollo.research.jobs import JobNotFoundError
    from apollo.research.orchestrator import JobAlreadyRunningError, PipelineError

    ctx = _build_context()
    stop = CancelToken()
    try:
        _run_job_in_thread(ctx.orchestrator, job_id, stop)
    except KeyboardInterrupt:
        rprint(f"\n[yellow]Interrupted; job {job_id} is {ctx.repo.get_job(job_id).status}[/yellow]")
        raise typer.Exit(code=130)
    except (JobNotFoundError, JobAlreadyRunningError) as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    except PipelineError as e:
        rprint(f"[red]✗[/red] Job failed: {e}")
        raise typer.Exit(code=1)

    _print_job(ctx.repo.get_job(job_id))


@research_app.command("worker")
def research_worker() -> None:
    """Process queued jobs one at a time until interrupted (Ctrl+C)."""
    from apollo.research.cancellation import CancelToken

    ctx = _build_context()
    orchestrator = ctx.orchestrator
    interval = ctx.settings.research_poll_interval
    stop = CancelToken()

    def watch_cancellations() -> None:
        while not stop.wait(timeout=interval):
            orchestrator.reconcile_cancellations()

    worker = threading.Thread(target=orchestrator.start, args=(stop,), name="research-worker", daemon=True)
    watcher = threading.Thread(target=watch_cancellations, name="research-cancel-watch", daemon=True)
    worker.start()
    watcher.start()

    rprint(f"[cyan]Research worker running[/cyan] (poll interval {interval}s). Ctrl+C to stop.")
    try:
        while worker.is_alive():
            worker.join(timeout=1.0)
    except KeyboardInterrupt:
        rprint("\n[yellow]Stopping research worker...[/yellow]")
        stop.cancel()
        worker.join()
    stop.cancel()
    watcher.join(timeout=interval)


@research_app.command("status")
def research_status(
    job_id: str = typer.Argument(..., help="Job id"),
) -> None:
    """Show a job's status and progress."""
    from apollo.research.jobs import JobNotFoundError

    ctx = _build_context()
    try:
        job = ctx.service.get(job_id)
    except JobNotFoundError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    _print_job(job)


@research_app.command("list")
def research_list(
    page: int = typer.Option(1, "--page", help="Page number"),
    per_page: int = typer.Option(20, "--per-page", help="Jobs per page"),
) -> None:
    """List research jobs, newest first."""
    ctx = _build_context()
    result = ctx.service.list(page, per_page)

    table = Table(title=f"Research Jobs (page {result.page}, {result.total} total)")
    table.add_column("ID", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Status")
    table.add_column("Pass", justify="right")
    table.add_column("Created")

    status_styles = {"published": "green", "failed": "red", "cancelled": "yellow"}
    for job in result.items:
        style = status_styles.get(job.status, "white")
        current_pass = f"{job.progress.current_pass}/{job.progress.total_passes}" if job.progress else "-"
        table.add_row(
            job.id,
            job.root_topic,
            f"[{style}]{job.status}[/{style}]",
            current_pass,
            str(job.created_at or "-"),
        )
    console.print(table)


@research_app.command("cancel")
def research_cancel(
    job_id: str = typer.Argument(..., help="Job id"),
) -> None:
    """Cancel a job that has not finished."""
    from apollo.research.jobs import JobNotFoundError
    from apollo.research.service import JobStateError

    ctx = _build_context()
    try:
        job = ctx.service.cancel_job(job_id)
    except (JobNotFoundError, JobStateError) as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    rprint(f"[yellow]Job {job.id} cancelled[/yellow]")


@research_app.command("assemble")
def research_assemble(
    work_dir: Path = typer.Argument(..., help="Research working directory"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Write JSON here instead of stdout"),
) -> None:
    """Assemble and validate a working directory into curriculum JSON."""
    from apollo.research.assembler import AssemblyError, assemble_from_dir

    try:
        curriculum = assemble_from_dir(work_dir)
    except AssemblyError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    data = json.dumps(json.loads(curriculum.to_json()), indent=2)
    if out:
        out.write_text(data, encoding="utf-8")
        lessons = sum(len(m.lessons) for m in curriculum.modules)
        rprint(f"[green]✓[/green] {curriculum.id}: {len(curriculum.modules)} modules, {lessons} lessons -> {out}")
    else:
        console.print_json(data)


@research_app.command("ingest")
def research_ingest(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Curriculum JSON file"),
) -> None:
    """Validate and ingest a curriculum JSON file into the catalog."""
    from apollo.research.ingest import IngestionError

    ctx = _build_context()
    try:
        result = ctx.ingester.ingest_with_result(file.read_bytes())
    except IngestionError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="Ingestion Results", show_header=True)
    table.add_column("Entity", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Modules", str(result.modules_created))
    table.add_row("Lessons", str(result.lessons_created))
    table.add_row("Concepts", str(result.concepts_created))
    table.add_row("Concept references", str(result.references_created))
    table.add_row("Prerequisites linked", str(result.prerequisites_linked))
    table.add_row("Related topics linked", str(result.relations_linked))
    table.add_row("Expansions queued", str(result.expansions_queued))
    console.print(table)
    logger.info(f"Ingested {file}")


@research_app.command("pool-summary")
def research_pool_summary(
    out: Path | None = typer.Option(None, "--out", "-o", help="Directory to write the summary into"),
) -> None:
    """Print the knowledge pool summary, or write it into a directory."""
    ctx = _build_context()
    if out:
        out.mkdir(parents=True, exist_ok=True)
        path = ctx.pool.write_to_dir(out)
        rprint(f"[green]✓[/green] Wrote {path}")
    else:
        console.print_json(ctx.pool.build().decode("utf-8"))


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
