"""
Cron entry points, meant to be run by an external scheduler.

  creatoros cron publish-scheduled --secret …  # publish every due scheduled post
  creatoros cron sync-analytics    --secret …  # refresh metrics of published posts

Both commands require the shared cron secret (``--secret`` or CRON_SECRET)
and print a JSON summary; they exit non-zero only when the secret is wrong.
"""

from __future__ import annotations

import json
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console

from src.publish.errors import NotAuthorized

console = Console()
app = typer.Typer(help="Scheduled jobs (publish sweep, analytics sweep).")

_SECRET_OPTION = typer.Option(
    None, "--secret", envvar="CRON_SECRET", help="Shared cron secret", show_default=False
)


@app.command("publish-scheduled")
def publish_scheduled(secret: Optional[str] = _SECRET_OPTION) -> None:
    """Publish every scheduled post whose time has come."""
    from src.publish.scheduler import get_runner

    try:
        summary = get_runner().run(secret)
    except NotAuthorized as exc:
        rprint(f"[red]✗ {exc.message}[/red]")
        raise typer.Exit(1)
    console.print_json(json.dumps(summary.to_dict()))


@app.command("sync-analytics")
def sync_analytics(
    secret: Optional[str] = _SECRET_OPTION,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Max published posts to scan"),
) -> None:
    """Refresh analytics of published posts older than the batch freshness window."""
    from src.publish.analytics import get_syncer
    from src.publish.scheduler import get_runner

    try:
        get_runner().verify_secret(secret)
    except NotAuthorized as exc:
        rprint(f"[red]✗ {exc.message}[/red]")
        raise typer.Exit(1)
    summary = get_syncer().sync_all(limit=limit)
    console.print_json(json.dumps(summary.to_dict()))
