# chat_archiver/cli.py
"""
Command line for database upkeep, config checks and one-off scrapes.

Run ``chat-archiver --help`` for the list of commands.
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from chat_archiver.config import ChannelDirectory, settings
from chat_archiver.errors import ArchiverError

app = typer.Typer(
    name="chat-archiver",
    help="Archive chat channel history and rebuild reply threads",
    no_args_is_help=True,
)

console = Console()


def _store():
    from chat_archiver.dependencies import get_store

    return get_store()


def _orchestrator():
    from chat_archiver.controllers.scrape_controller import ScrapeOrchestrator
    from chat_archiver.services.sources.factory import build_source

    store = _store()
    store.initialize()
    return ScrapeOrchestrator(
        store, ChannelDirectory.load(settings.channels_file), lambda: build_source(settings), settings
    )


def _setup_logging():
    logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


@app.command("init-db")
def init_db() -> None:
    """Create the database tables if they do not exist."""
    console.print(f"Database: {settings.database_url}")
    _store().initialize()
    console.print("[green]✓ Tables ready: servers, channels, messages, scrape_jobs[/green]")


@app.command("reset-db")
def reset_db(
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation"),
) -> None:
    """Drop every table and create the schema again. All archived data is lost."""
    if not yes:
        typer.confirm(f"Delete all data in {settings.database_url}?", abort=True)
    _store().reset()
    console.print("[green]✓ Database reset[/green]")


@app.command("validate-config")
def validate_config(
    path: Optional[str] = typer.Argument(None, help="Channel file (defaults to CHANNELS_FILE)"),
) -> None:
    """Check that the channel directory file loads and has no duplicate ids."""
    path = path or settings.channels_file
    try:
        directory = ChannelDirectory.load(path)
    except ArchiverError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    channels = sum(len(server.channels) for server in directory.servers)
    console.print(f"[green]✓ {path}: {len(directory.servers)} server(s), {channels} channel(s)[/green]")


@app.command()
def scrape(
    channel_id: str = typer.Argument(..., help="Channel to scrape, as listed in the channel file"),
    scrape_type: str = typer.Option("full", "--type", help="full or incremental"),
) -> None:
    """Run one scrape job in the foreground."""
    _setup_logging()
    if scrape_type not in ("full", "incremental"):
        console.print("[red]--type must be 'full' or 'incremental'[/red]")
        raise typer.Exit(code=2)

    try:
        job = asyncio.run(_orchestrator().start_job(channel_id, scrape_type))
    except ArchiverError as e:
        console.print(f"[red]✗ Scrape failed: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Job {job.id} {job.status}: {job.messages_scraped} new message(s)[/green]")


@app.command()
def resume(
    job_id: int = typer.Argument(..., help="Interrupted job to pick up again"),
) -> None:
    """Resume an interrupted job and run it in the foreground."""
    _setup_logging()
    try:
        job = asyncio.run(_orchestrator().resume_and_execute(job_id))
    except ArchiverError as e:
        console.print(f"[red]✗ Resume failed: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Job {job.id} (resumed from {job.resumed_from_job_id}) {job.status}: "
                  f"{job.messages_scraped} new message(s)[/green]")


@app.command("recover-jobs")
def recover_jobs() -> None:
    """Mark jobs left 'running' by a stopped process as interrupted. Run while no worker is scraping."""
    store = _store()
    store.initialize()
    count = store.mark_stale_jobs_interrupted()
    console.print(f"[green]✓ {count} stale job(s) marked interrupted[/green]")


@app.command()
def jobs(
    status: Optional[str] = typer.Option(None, help="Only show jobs with this status"),
) -> None:
    """List scrape jobs, newest first."""
    table = Table("id", "channel", "type", "status", "messages", "started", "error")
    for job in _store().get_jobs(status):
        table.add_row(
            str(job.id), job.channel_id, job.scrape_type, job.status,
            str(job.messages_scraped), str(job.started_at or ""), job.error_message or "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
