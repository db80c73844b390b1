"""
Account CLI commands.

  creatoros accounts create  <email> [--plan …]  # register a user
  creatoros accounts link    <email> <platform> --token …  # store a platform credential
  creatoros accounts status  <email>  # plan, usage, connections
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from src.accounts.models import UNLIMITED, AccountCredential, Plan, User
from src.accounts.storage import get_user_store
from src.content.models import PLATFORM_ORDER, Platform, utcnow

console = Console()
app = typer.Typer(help="Manage users and connected platform accounts.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def require_user(email: str) -> User:
    user = get_user_store().get_by_email(email)
    if user is None:
        rprint(f"[red]User not found:[/red] {email}")
        raise typer.Exit(1)
    return user


def _format_dt(value: Optional[dt.datetime]) -> str:
    if value is None:
        return "—"
    return value.strftime("%d/%m/%Y %H:%M")


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


@app.command()
def create(
    email: str = typer.Argument(..., help="Login e-mail"),
    name: str = typer.Option("", "--name", help="Display name"),
    plan: Plan = typer.Option(Plan.FREE, "--plan", help="free | pro | business"),
) -> None:
    """Register a new user."""
    store = get_user_store()
    if store.get_by_email(email) is not None:
        rprint(f"[red]A user with e-mail {email} already exists.[/red]")
        raise typer.Exit(1)
    user = User(email=email, name=name, plan=plan)
    store.save(user)
    rprint(f"[green]✓ Created user[/green] [bold]{user.id}[/bold] ({email}, {plan.value})")


# ---------------------------------------------------------------------------
# link
# ---------------------------------------------------------------------------


@app.command()
def link(
    email: str = typer.Argument(..., help="User e-mail"),
    platform: Platform = typer.Argument(..., help="snapchat | instagram | youtube"),
    access_token: str = typer.Option(..., "--token", help="OAuth access token"),
    refresh_token: Optional[str] = typer.Option(None, "--refresh-token"),
    expires_in: int = typer.Option(3600, "--expires-in", help="Seconds until the token expires"),
    ad_account_id: Optional[str] = typer.Option(None, "--ad-account", help="Snapchat ad account id"),
    business_account_id: Optional[str] = typer.Option(
        None, "--business-account", help="Instagram business account id"
    ),
    page_id: Optional[str] = typer.Option(None, "--page", help="Facebook page id"),
    channel_id: Optional[str] = typer.Option(None, "--channel", help="YouTube channel id"),
) -> None:
    """Store a credential obtained from a platform's OAuth flow."""
    user = require_user(email)
    credential = AccountCredential(
        is_connected=True,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=utcnow() + dt.timedelta(seconds=expires_in),
        ad_account_id=ad_account_id,
        business_account_id=business_account_id,
        page_id=page_id,
        channel_id=channel_id,
    )
    get_user_store().update_credential(user.id, platform, credential)
    rprint(f"[green]✓ {platform.value} connected for {email}[/green]")


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@app.command()
def status(email: str = typer.Argument(..., help="User e-mail")) -> None:
    """Show plan, monthly usage and platform connections."""
    user = require_user(email)
    limits = user.limits
    usage = user.usage.rolled_over()
    ceiling = "∞" if limits.posts_per_month == UNLIMITED else str(limits.posts_per_month)

    rprint(
        f"[bold]{user.email}[/bold]  plan=[cyan]{user.plan.value}[/cyan]  "
        f"posts this month: {usage.posts_this_month}/{ceiling}  "
        f"analytics: {'yes' if limits.analytics else 'no'}"
    )

    table = Table(title="🔗 Connected accounts", show_lines=False)
    table.add_column("Platform", style="cyan", width=12)
    table.add_column("Connected", width=10)
    table.add_column("Token expires (UTC)", width=20)
    table.add_column("Account", style="dim", width=24)

    for platform in PLATFORM_ORDER:
        cred = user.account_for(platform)
        account = cred.ad_account_id or cred.business_account_id or cred.channel_id or "—"
        table.add_row(
            platform.value,
            "[green]yes[/green]" if cred.is_connected else "[red]no[/red]",
            _format_dt(cred.expires_at) if cred.is_connected else "—",
            account,
        )

    console.print(table)
