"""
Main CLI entry point.
Usage: creatoros [COMMAND]
"""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from config.settings import settings
from src.cli.accounts import app as accounts_app
from src.cli.cron import app as cron_app
from src.cli.posts import app as posts_app

app = typer.Typer(
    name="creatoros",
    help="📣 Creator OS: publish one post to Snapchat, Instagram and YouTube",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="DEBUG | INFO | WARNING | ERROR (default: settings.log_level)"
    ),
) -> None:
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
    settings.ensure_output_dirs()


# Register sub-apps
app.add_typer(posts_app, name="posts", help="📝 Create, publish and inspect posts")
app.add_typer(accounts_app, name="accounts", help="🔗 Users and connected platform accounts")
app.add_typer(cron_app, name="cron", help="⏰ Scheduled publish and analytics sweeps")


if __name__ == "__main__":
    app()
