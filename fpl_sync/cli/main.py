"""Typer CLI entry point.

    fpl-sync serve                      run the API, workers and cron triggers
    fpl-sync init-db                    create database tables
    fpl-sync sync fixtures --scope 12   run one sync job in the foreground
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

# Load .env file before anything else
load_dotenv()

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from fpl_sync import __version__
from fpl_sync.api.routers.entities import coerce_scopes
from fpl_sync.config import get_settings
from fpl_sync.container import Container
from fpl_sync.db import create_engine, init_database
from fpl_sync.entities import REGISTRY
from fpl_sync.errors import SyncError
from fpl_sync.jobs import COORDINATOR_TAG, JobSource, JobStatus, SyncJob
from fpl_sync.monitoring import configure_logging

cli = typer.Typer(
    name="fpl-sync",
    help="""Fantasy Premier League data synchronization backend.

QUICK START:
  fpl-sync init-db
  fpl-sync sync events
  fpl-sync sync fixtures --scope 12
  fpl-sync serve --port 8000
""",
    add_completion=False,
)

# Disable colors if NO_COLOR env var is set (standard convention)
console = Console(no_color=os.getenv("NO_COLOR") is not None)

_STATUS_STYLES = {
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    JobStatus.ACTIVE: "yellow",
    JobStatus.PENDING: "dim",
}


@cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes (development)"),
):
    """Start the API server with sync workers and periodic triggers."""
    uvicorn.run(
        "fpl_sync.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@cli.command("init-db")
def init_db():
    """Create all tables (idempotent)."""
    settings = get_settings()
    configure_logging(settings.environment)

    async def _run() -> None:
        engine = create_engine(settings)
        try:
            await init_database(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    console.print("[green]Database tables created.[/green]")


@cli.command()
def sync(
    kind: str = typer.Argument(..., help=f"Entity kind: {', '.join(REGISTRY)}"),
    scope: str | None = typer.Option(None, "--scope", "-s", help="Event id, tournament id or ISO date"),
    secondary_scope: str | None = typer.Option(None, "--secondary-scope", "-t", help="Tournament id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log output"),
):
    """Run one sync job (and any cascaded children) in the foreground.

    \b
    EXAMPLES:
      fpl-sync sync events
      fpl-sync sync player_stats --scope 12
      fpl-sync sync player_values --scope 2025-09-14
      fpl-sync sync tournament_event_results --scope 12      # every tournament
      fpl-sync sync tournament_event_results -s 12 -t 314    # one tournament
    """
    spec = REGISTRY.get(kind)
    if spec is None:
        console.print(f"[red]Unknown kind {kind!r}.[/red] Choose one of: {', '.join(REGISTRY)}")
        raise typer.Exit(code=2)

    try:
        scope_value, secondary_value = coerce_scopes(spec, scope, secondary_scope, allow_secondary_only=True)
    except SyncError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=2) from e

    settings = get_settings()
    configure_logging(settings.environment, level=logging.INFO if verbose else logging.WARNING)

    jobs = asyncio.run(_run_sync(settings, kind, scope_value, secondary_value, spec.secondary_scope_field))
    _print_jobs(jobs)
    if any(job.status is JobStatus.FAILED for job in jobs):
        raise typer.Exit(code=1)


@cli.command()
def version():
    """Show version information."""
    console.print(f"fpl-sync version {__version__}")


async def _run_sync(settings, kind, scope, secondary_scope, secondary_field) -> list[SyncJob]:
    container = Container.build(settings)
    await container.start(workers=True, cron=False)
    try:
        tag = COORDINATOR_TAG if secondary_field and secondary_scope is None else None
        container.scheduler.enqueue(kind, scope, secondary_scope, source=JobSource.MANUAL, tag=tag)
        await container.scheduler.join()
        return container.scheduler.jobs()
    finally:
        await container.close()


def _print_jobs(jobs: list[SyncJob]) -> None:
    table = Table(title="Sync jobs")
    table.add_column("Job", style="cyan")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Result")

    for job in jobs:
        style = _STATUS_STYLES[job.status]
        if job.status is JobStatus.FAILED:
            detail = (job.error or {}).get("message", "")
        elif isinstance(job.result, dict):
            detail = ", ".join(f"{k}={v}" for k, v in job.result.items() if k in ("status", "count", "tally"))
            if "children" in job.result:
                detail = f"cascaded {len(job.result['children'])} job(s)"
        else:
            detail = ""
        table.add_row(job.id, f"[{style}]{job.status.value}[/{style}]", str(job.attempts), detail)

    console.print(table)


if __name__ == "__main__":
    cli()
