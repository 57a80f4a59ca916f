"""
reposync CLI - run command.

Loads settings and the sync configuration, syncs every target and reports
the results.
"""

import json
import logging
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from reposync.cli.errors import ExitCode, exit_code_for, print_config_error, print_target_failures
from reposync.core.config import ConfigError, load_settings, load_sync_config, read_sync_config
from reposync.core.github import GitHubClient, SourceEvent
from reposync.core.sync import RepoSyncStatus, RunResult, SyncRunner

console = Console()

_STATUS_STYLE = {
    RepoSyncStatus.SYNCED: "[green]synced[/green]",
    RepoSyncStatus.UP_TO_DATE: "[dim]up to date[/dim]",
    RepoSyncStatus.DRY_RUN: "[yellow]dry run[/yellow]",
    RepoSyncStatus.FAILED: "[red]failed[/red]",
}


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for the run.

    Args:
        debug: If True, enable DEBUG level logging (every git command and API call)
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _flag(value: bool) -> bool | None:
    # Unset flags must not override the environment
    return True if value else None


def write_action_output(result: RunResult) -> None:
    """Expose the PR URLs as the ``pull_request_urls`` step output on GitHub Actions."""
    output_path = os.environ.get("GITHUB_OUTPUT")
    if not output_path:
        return
    with open(output_path, "a", encoding="utf-8") as f:
        f.write(f"pull_request_urls={json.dumps(result.pull_request_urls)}\n")


def print_results(result: RunResult) -> None:
    """Print a table of per-target results and the PR URLs."""
    table = Table(title="Sync Results")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch")
    table.add_column("Status")
    table.add_column("Commits", justify="right")
    table.add_column("Pull Request")

    for item in result.results:
        table.add_row(
            item.repo.slug,
            item.repo.branch,
            _STATUS_STYLE[item.status],
            str(item.commits),
            item.pull_request_url or (item.error or ""),
        )

    console.print(table)

    if result.pull_request_urls:
        console.print("\n[bold]Pull requests:[/bold]")
        for url in result.pull_request_urls:
            console.print(f"  {url}")


def run(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Sync config file (overrides CONFIG_PATH and INLINE_CONFIG)",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Materialize and commit locally, but push nothing",
    ),
    skip_pr: bool = typer.Option(
        False,
        "--skip-pr",
        help="Push to the target branch instead of opening a PR",
    ),
    skip_cleanup: bool = typer.Option(
        False,
        "--skip-cleanup",
        help="Keep the temporary working directory",
    ),
    tmp_dir: str | None = typer.Option(
        None,
        "--tmp-dir",
        help="Working directory for clones",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging",
    ),
) -> None:
    """
    Sync files to every configured target repository.

    Settings come from the environment (GH_PAT, GITHUB_REPOSITORY, ...),
    optionally with the INPUT_ prefix used by GitHub Actions.

    Examples:
        reposync run                          # Sync using .github/sync.yml
        reposync run --dry-run --skip-cleanup # Inspect the result locally
        reposync run -c sync.yml --skip-pr    # Push directly to target branches
    """
    debug = debug or bool((ctx.obj or {}).get("debug"))
    setup_logging(debug)

    try:
        settings = load_settings(
            overrides={
                "dry_run": _flag(dry_run),
                "skip_pr": _flag(skip_pr),
                "skip_cleanup": _flag(skip_cleanup),
                "tmp_dir": tmp_dir,
            }
        )
        if config is not None:
            groups = load_sync_config(config.read_text())
        else:
            groups = read_sync_config(settings)
    except ConfigError as e:
        print_config_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR) from e
    except OSError as e:
        print_config_error(f"Cannot read {config}: {e}")
        raise typer.Exit(ExitCode.USER_ERROR) from e

    if not groups:
        console.print("[yellow]No target repositories configured.[/yellow]")
        raise typer.Exit(ExitCode.SUCCESS)

    console.print(
        f"[blue]Syncing {len(groups)} repositor{'y' if len(groups) == 1 else 'ies'} "
        f"from {settings.source_repository}...[/blue]"
    )

    try:
        with GitHubClient.from_settings(settings) as github:
            runner = SyncRunner(settings, groups, github, event=SourceEvent.from_env())
            result = runner.run()
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(ExitCode.SIGINT)

    print_results(result)
    write_action_output(result)

    if not result.success:
        print_target_failures(result)
        raise typer.Exit(exit_code_for(result))
