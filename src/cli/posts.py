"""
Post CLI commands.

  creatoros posts create  --title … --content … [--media-url …] [--platforms …] [--at …]
  creatoros posts list    [--status …] [--page …]
  creatoros posts show    <post-id> [--refresh]
  creatoros posts edit    <post-id> [--title …] [--at …] [--status draft|scheduled]
  creatoros posts delete  <post-id>
  creatoros posts publish <post-id>
  creatoros posts sync    <post-id> [--force]
  creatoros posts stats

Every command acts on behalf of the user given by ``--user`` (or the
CREATOROS_USER environment variable).
"""

from __future__ import annotations

import datetime as dt
from typing import NoReturn, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.cli.accounts import require_user
from src.content.models import MediaType, Post, PostStatus, parse_platforms
from src.content.service import PostService
from src.publish.errors import PublishError

console = Console()
app = typer.Typer(help="Create, publish and inspect posts.")

_USER_OPTION = typer.Option(..., "--user", "-u", envvar="CREATOROS_USER", help="Owner e-mail")

_STATUS_COLORS = {
    "draft": "white",
    "scheduled": "yellow",
    "published": "green",
    "failed": "red",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fail(exc: PublishError) -> NoReturn:
    rprint(f"[red]✗ {exc.message}[/red] [dim]({exc.code})[/dim]")
    raise typer.Exit(1)


def _parse_when(value: Optional[str]) -> Optional[dt.datetime]:
    if not value:
        return None
    try:
        when = dt.datetime.fromisoformat(value)
    except ValueError:
        rprint(f"[red]Invalid date/time:[/red] {value!r} (use ISO 8601, e.g. 2026-03-01T10:00)")
        raise typer.Exit(1)
    return when if when.tzinfo else when.replace(tzinfo=dt.timezone.utc)


def _format_dt(value: Optional[dt.datetime]) -> str:
    if value is None:
        return "—"
    return value.strftime("%d/%m/%Y %H:%M")


def _show_post(post: Post) -> None:
    color = _STATUS_COLORS.get(post.status.value, "white")
    lines = [
        post.content,
        "",
        f"[dim]media:[/dim] {post.media_type.value} {post.media_url or ''}",
        f"[dim]scheduled:[/dim] {_format_dt(post.scheduled_for)}   "
        f"[dim]published:[/dim] {_format_dt(post.published_at)}",
    ]
    for label, value in (
        ("snapchat", post.snapchat_post_id),
        ("instagram", post.instagram_post_id),
        ("youtube", post.youtube_video_id),
    ):
        if value:
            lines.append(f"[dim]{label} id:[/dim] {value}")
    if post.error:
        lines.append(f"[red]error:[/red] {post.error.message} ({post.error.code})")

    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold]{post.title}[/bold]  [{color}][{post.status.value}][/{color}]",
            subtitle=f"[dim]{post.id} · {post.target}[/dim]",
            border_style="cyan",
            expand=False,
        )
    )

    a = post.analytics
    if a.last_synced:
        table = Table(title=f"📊 Analytics (synced {_format_dt(a.last_synced)})", show_lines=False)
        table.add_column("Platform", style="cyan", width=12)
        table.add_column("Metric", width=14)
        table.add_column("Value", justify="right", width=10)
        for platform, metrics in (("instagram", a.instagram), ("youtube", a.youtube)):
            for name, value in metrics.model_dump().items():
                table.add_row(platform, name, f"{value:,}")
        console.print(table)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


@app.command()
def create(
    user_email: str = _USER_OPTION,
    title: str = typer.Option(..., "--title", "-t"),
    content: str = typer.Option(..., "--content", "-c"),
    media_url: Optional[str] = typer.Option(None, "--media-url", help="Public URL of the image/video"),
    media_type: MediaType = typer.Option(MediaType.NONE, "--media-type", help="image | video | none"),
    platforms: str = typer.Option(
        "snapchat", "--platforms", "-p", help="e.g. snapchat, instagram+youtube, all"
    ),
    at: Optional[str] = typer.Option(None, "--at", help="Schedule for (ISO 8601, UTC if no offset)"),
) -> None:
    """Create a draft (or a scheduled post with --at)."""
    user = require_user(user_email)
    try:
        targets = parse_platforms(platforms)
    except ValueError as exc:
        rprint(f"[red]Invalid platforms:[/red] {exc}")
        raise typer.Exit(1)

    post = PostService().create_post(
        user,
        title,
        content,
        media_url=media_url,
        media_type=media_type,
        platforms=targets,
        scheduled_for=_parse_when(at),
    )
    rprint(f"[green]✓ Post created[/green] [bold]{post.id}[/bold] ({post.status.value}, {post.target})")


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@app.command("list")
def list_posts(
    user_email: str = _USER_OPTION,
    status: Optional[PostStatus] = typer.Option(None, "--status", "-s"),
    page: int = typer.Option(1, "--page"),
    per_page: int = typer.Option(10, "--per-page", "-n"),
) -> None:
    """List your posts, newest first."""
    user = require_user(user_email)
    result = PostService().list_for_owner(user, status=status, page=page, per_page=per_page)

    if not result.posts:
        rprint("[yellow]No posts found.[/yellow]")
        return

    table = Table(
        title=f"📝 Posts · page {result.page}/{max(result.total_pages, 1)} ({result.total} total)",
        show_lines=False,
    )
    table.add_column("ID", style="dim", width=10)
    table.add_column("Status", width=10)
    table.add_column("Platforms", style="cyan", width=20)
    table.add_column("Title", width=40)
    table.add_column("Scheduled (UTC)", width=18)

    for p in result.posts:
        table.add_row(
            p.id,
            Text(p.status.value, style=_STATUS_COLORS.get(p.status.value, "white")),
            p.target,
            p.title[:40],
            _format_dt(p.scheduled_for),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@app.command()
def show(
    post_id: str = typer.Argument(..., help="Post ID"),
    user_email: str = _USER_OPTION,
    refresh: bool = typer.Option(False, "--refresh", help="Force an analytics sync first."),
) -> None:
    """Show a post; analytics are refreshed when stale."""
    user = require_user(user_email)
    try:
        post = PostService().get_with_analytics(user, post_id, force=refresh)
    except PublishError as exc:
        _fail(exc)
    _show_post(post)


# ---------------------------------------------------------------------------
# edit
# ---------------------------------------------------------------------------


@app.command()
def edit(
    post_id: str = typer.Argument(..., help="Post ID"),
    user_email: str = _USER_OPTION,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    content: Optional[str] = typer.Option(None, "--content", "-c"),
    media_url: Optional[str] = typer.Option(None, "--media-url"),
    media_type: Optional[MediaType] = typer.Option(None, "--media-type"),
    platforms: Optional[str] = typer.Option(None, "--platforms", "-p"),
    at: Optional[str] = typer.Option(None, "--at", help="Reschedule (moves the post to scheduled)"),
    status: Optional[PostStatus] = typer.Option(None, "--status", help="draft | scheduled"),
) -> None:
    """Edit a post that has not been published."""
    user = require_user(user_email)
    try:
        post = PostService().update_post(
            user,
            post_id,
            status=status,
            title=title,
            content=content,
            media_url=media_url,
            media_type=media_type,
            platforms=platforms,
            scheduled_for=_parse_when(at),
        )
    except PublishError as exc:
        _fail(exc)
    rprint(f"[green]✓ Post {post.id} updated[/green] ({post.status.value})")


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


@app.command()
def delete(
    post_id: str = typer.Argument(..., help="Post ID"),
    user_email: str = _USER_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Delete a post (its YouTube video is removed when possible)."""
    user = require_user(user_email)
    if not yes:
        typer.confirm(f"Delete post {post_id}?", abort=True)
    try:
        PostService().delete_post(user, post_id)
    except PublishError as exc:
        _fail(exc)
    rprint(f"[green]✓ Post {post_id} deleted[/green]")


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


@app.command()
def publish(
    post_id: str = typer.Argument(..., help="Post ID"),
    user_email: str = _USER_OPTION,
) -> None:
    """Publish a draft or scheduled post to all its platforms now."""
    user = require_user(user_email)
    try:
        report = PostService().publish_post(user, post_id)
    except PublishError as exc:
        _fail(exc)

    for outcome in report.outcomes:
        if outcome.success:
            rprint(f"  [green]✓ {outcome.platform.value}[/green]  id={outcome.post_id}")
        else:
            rprint(f"  [red]✗ {outcome.platform.value}[/red]  {outcome.error} [dim]({outcome.code})[/dim]")

    color = "green" if report.succeeded else "red"
    rprint(f"\n[{color}]{report.message}[/{color}]")
    if not report.succeeded:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


@app.command()
def stats(user_email: str = _USER_OPTION) -> None:
    """Dashboard totals: posts per status, recent reach, monthly usage."""
    user = require_user(user_email)
    s = PostService().dashboard(user)

    table = Table(title="📈 Dashboard", show_header=False)
    table.add_column("Metric", style="cyan", width=24)
    table.add_column("Value", justify="right", width=12)
    for label, value in (
        ("Total posts", s.total),
        ("Published", s.published),
        ("Scheduled", s.scheduled),
        ("Drafts", s.drafts),
        ("Failed", s.failed),
        ("Views (last 10)", s.total_views),
        ("Impressions (last 10)", s.total_impressions),
        ("Posts this month", s.posts_this_month),
    ):
        table.add_row(label, f"{value:,}")
    console.print(table)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    post_id: str = typer.Argument(..., help="Post ID"),
    user_email: str = _USER_OPTION,
    force: bool = typer.Option(False, "--force", help="Sync even if analytics are fresh."),
) -> None:
    """Pull the latest platform metrics for one published post."""
    from src.publish.analytics import get_syncer

    user = require_user(user_email)
    service = PostService()
    try:
        post = service.get_for_owner(user, post_id)
        get_syncer().sync(post, user, force=force)
    except PublishError as exc:
        _fail(exc)
    _show_post(post)
