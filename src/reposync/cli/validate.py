"""
reposync CLI - validate command.

Parses the sync configuration without touching any repository.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from reposync.cli.errors import ExitCode, print_config_error
from reposync.core.config import ConfigError, get_env, load_sync_config

console = Console()

DEFAULT_CONFIG_PATH = ".github/sync.yml"


def validate(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Sync config file (defaults to INLINE_CONFIG or CONFIG_PATH)",
    ),
) -> None:
    """
    Validate the sync configuration and list targets and file rules.

    Examples:
        reposync validate
        reposync validate -c .github/sync.yml
    """
    try:
        if config is not None:
            text = config.read_text()
        elif inline := get_env("INLINE_CONFIG"):
            text = inline
        else:
            text = Path(get_env("CONFIG_PATH") or DEFAULT_CONFIG_PATH).read_text()
        groups = load_sync_config(text)
    except ConfigError as e:
        print_config_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR) from e
    except OSError as e:
        print_config_error(f"Cannot read sync config: {e}")
        raise typer.Exit(ExitCode.USER_ERROR) from e

    table = Table(title="Sync Targets")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch")
    table.add_column("Source")
    table.add_column("Destination")
    table.add_column("Options", style="dim")

    for group in groups:
        for rule in group.files:
            options = []
            if not rule.replace:
                options.append("no-replace")
            if rule.is_template:
                options.append("template")
            if rule.delete_orphaned:
                options.append("delete-orphaned")
            if rule.exclude:
                options.append(f"exclude={len(rule.exclude)}")
            table.add_row(group.repo.slug, group.repo.branch, rule.source, rule.dest, ", ".join(options))

    console.print(table)
    console.print(
        f"[green]✓[/green] {len(groups)} target(s), "
        f"{sum(len(g.files) for g in groups)} file rule(s)"
    )
