"""Command line interface for the calculation sync service."""

from datetime import datetime
from typing import Annotated, Optional

import cyclopts
import httpx
from rich.console import Console
from rich.table import Table

from calcsync.client import SyncClient
from calcsync.sync import SyncError
from calcsync.sync.timeutil import from_millis

console = Console()

app = cyclopts.App(
    name="calcsync",
    help="Multi-device sync service for calculation records and parameter sets",
)


def _format_time(value: str) -> str:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
    except (AttributeError, ValueError):
        return str(value)


def _log_table(title: str, logs: list[dict]) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Time")
    table.add_column("Device", style="cyan")
    table.add_column("Type")
    table.add_column("Records", justify="right")
    table.add_column("Status")
    table.add_column("Error", overflow="fold")

    for log in logs:
        status = log.get("status", "")
        style = "green" if status == "success" else "red"
        table.add_row(
            _format_time(log.get("syncTime", "")),
            log.get("deviceId", ""),
            log.get("syncType", ""),
            str(log.get("recordCount", 0)),
            f"[{style}]{status}[/{style}]",
            log.get("errorMessage") or "",
        )
    return table


@app.command
def serve(
    host: Optional[str] = None,
    port: Optional[int] = None,
    log_level: Optional[str] = None,
    reload: bool = False,
):
    """Start the sync API server.

    Defaults come from the service settings (HOST, PORT, LOG_LEVEL).
    """
    import uvicorn

    from calcsync.server.config import Settings

    settings = Settings()
    host = host or settings.host
    port = port or settings.port
    log_level = (log_level or settings.log_level).lower()

    console.print(f"[green]Starting calcsync on {host}:{port}[/green]")
    uvicorn.run(
        "calcsync.server.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


@app.command(name="init-db")
def init_db():
    """Create the database tables if they do not exist."""
    from calcsync.models import init_database
    from calcsync.models.base import DATABASE_URL

    init_database()
    console.print(f"[green]Database ready:[/green] {DATABASE_URL}")
    return 0


@app.command
def logs(
    url: Annotated[str, cyclopts.Parameter(help="Sync service URL")],
    token: Annotated[str, cyclopts.Parameter(help="Bearer token")],
    device_id: Annotated[
        Optional[str], cyclopts.Parameter(help="Only show this device")
    ] = None,
    page: int = 1,
    page_size: Optional[int] = None,
):
    """Show the sync log of the authenticated user."""
    try:
        with SyncClient(url, token) as client:
            body = client.get_sync_logs(
                device_id=device_id, page=page, page_size=page_size
            )
    except (SyncError, httpx.HTTPError) as e:
        console.print(f"[red]Failed to fetch sync logs: {e}[/red]")
        return 1

    if not body["logs"]:
        console.print("[yellow]No sync logs found.[/yellow]")
        return 0

    console.print(_log_table("Sync Logs", body["logs"]))
    console.print(
        f"[dim]Page {body['currentPage']} of {body['totalPages']} "
        f"({body['totalCount']} entries)[/dim]"
    )
    return 0


@app.command
def status(
    url: Annotated[str, cyclopts.Parameter(help="Sync service URL")],
    token: Annotated[str, cyclopts.Parameter(help="Bearer token")],
):
    """Show the most recent syncs and the server time."""
    try:
        with SyncClient(url, token) as client:
            body = client.get_sync_status()
    except (SyncError, httpx.HTTPError) as e:
        console.print(f"[red]Failed to fetch sync status: {e}[/red]")
        return 1

    server_time = from_millis(body["serverTimestamp"])
    console.print(f"Server time: {server_time:%Y-%m-%d %H:%M:%S} UTC")

    if not body["recentSyncs"]:
        console.print("[yellow]No syncs recorded yet.[/yellow]")
        return 0

    console.print(_log_table("Recent Syncs", body["recentSyncs"]))
    return 0


if __name__ == "__main__":
    app()
