"""CLI for Ephemera.

Commands:
    init-db          - Create database tables
    sweep            - Purge every record whose lifecycle has ended
    show <slug>      - Show a record's metadata and lifecycle state
    list             - List live records
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ephemera.config import settings
from ephemera.db import init_db, make_engine
from ephemera.dependencies import Services, build_default_services
from ephemera.records import ObjectRecord
from ephemera.utils.time import utcnow

app = typer.Typer(
    name="ephemera",
    help="Ephemera — expiring, password-gated, limited-download file links",
    no_args_is_help=True,
)
console = Console()


def run_async(coro):
    """Run an async coroutine in sync context."""
    return asyncio.run(coro)


async def _with_services(fn):
    services = await build_default_services()
    try:
        return await fn(services)
    finally:
        await services.close()


def _limit_label(record: ObjectRecord) -> str:
    limit = record.consumption_limit
    return f"{record.download_count}/{limit}" if limit is not None else f"{record.download_count}/∞"


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("init-db")
def init_db_command() -> None:
    """Create the metadata tables."""

    async def _run() -> None:
        engine = make_engine()
        try:
            await init_db(engine)
        finally:
            await engine.dispose()

    run_async(_run())
    console.print("[green]Database initialized[/green]")


@app.command()
def sweep() -> None:
    """Purge expired and exhausted records, then report counts."""

    async def _run(services: Services):
        return await services.sweeper.sweep()

    report = run_async(_with_services(_run))

    table = Table(title="Sweep")
    table.add_column("Scanned", justify="right")
    table.add_column("Purged", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(str(report.scanned), str(report.purged), str(report.failed))
    console.print(table)

    if report.failed_slugs:
        console.print(f"[yellow]Will retry next sweep:[/yellow] {', '.join(report.failed_slugs)}")
        raise typer.Exit(code=1)


@app.command()
def show(slug: Annotated[str, typer.Argument(help="Public slug")]) -> None:
    """Show a record's metadata and lifecycle state."""

    async def _run(services: Services):
        return await services.store.get(slug)

    record = run_async(_with_services(_run))
    if record is None:
        console.print(f"[red]No live record for {slug}[/red]")
        raise typer.Exit(code=1)

    now = utcnow()
    lines = [
        f"[bold]State:[/bold] {record.state(now).value}",
        f"[bold]File:[/bold] {record.original_name} ({record.size} bytes, {record.mime_type or 'unknown type'})",
        f"[bold]Storage key:[/bold] {record.storage_key}",
        f"[bold]Created:[/bold] {record.created_at.isoformat()}",
        f"[bold]Expires:[/bold] {record.expires_at.isoformat()}",
        f"[bold]Password:[/bold] {'yes' if record.requires_password else 'no'}",
        f"[bold]Downloads:[/bold] {_limit_label(record)}"
        + (" (one-time)" if record.one_time_download else ""),
    ]
    if record.purge_after is not None:
        lines.append(f"[bold]Purge after:[/bold] {record.purge_after.isoformat()}")
    console.print(Panel("\n".join(lines), title=slug))


@app.command("list")
def list_records() -> None:
    """List live records, oldest first."""

    async def _run(services: Services):
        return await services.store.list_all()

    records = run_async(_with_services(_run))
    if not records:
        console.print("[dim]No live records[/dim]")
        return

    now = utcnow()
    table = Table(title=f"Records ({len(records)})")
    table.add_column("Slug", style="cyan")
    table.add_column("File")
    table.add_column("Size", justify="right")
    table.add_column("State")
    table.add_column("Downloads", justify="right")
    table.add_column("Expires")
    for record in records:
        table.add_row(
            record.slug,
            record.original_name,
            str(record.size),
            record.state(now).value,
            _limit_label(record),
            record.expires_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


if __name__ == "__main__":
    app()
