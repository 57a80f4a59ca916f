"""
reposync CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import typer
from rich.console import Console

from reposync import __version__
from reposync.cli import run, validate
from reposync.core.config.env import load_layered_env

app = typer.Typer(
    name="reposync",
    help="Keep files in sync across GitHub repositories",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"reposync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """
    reposync - sync files from this repository to others.

    Copies files and directories into target repositories and opens (or
    refreshes) a pull request in each one.

    Quick Start:
        reposync validate            # Check .github/sync.yml
        reposync run --dry-run       # Try it without pushing
        reposync run                 # Sync and open PRs
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env()

    ctx.obj = {"debug": debug}


app.command(name="run")(run.run)
app.command(name="validate")(validate.validate)


def cli_main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "cli_main"]
