"""
Error output and exit codes for the reposync CLI.

Errors go to stderr so that stdout stays usable for the results table.
"""

from enum import IntEnum

from rich.console import Console

from reposync.core.sync.models import RunResult

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    """At least one target failed to sync."""

    USER_ERROR = 2
    """Settings or sync configuration are invalid."""

    SIGINT = 130


def exit_code_for(result: RunResult) -> ExitCode:
    return ExitCode.SUCCESS if result.success else ExitCode.GENERAL_ERROR


def print_error(problem: str, *, reason: str | None = None, solution: str | None = None) -> None:
    """
    Print an error with an optional cause and a suggested fix.

    Example:
        >>> print_error(
        ...     "Invalid configuration",
        ...     reason="Invalid repository 'acme', expected [host/]user/repo[@branch]",
        ...     solution="reposync validate --config .github/sync.yml",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")
    if reason:
        console.print(f"[dim]{reason}[/dim]")
    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_config_error(reason: str) -> None:
    print_error(
        "Invalid configuration",
        reason=reason,
        solution="reposync validate --config <path>",
    )


def print_target_failures(result: RunResult) -> None:
    """List the targets that failed and why."""
    failures = result.failures
    if not failures:
        return
    console.print(f"[red]{len(failures)} target(s) failed[/red]")
    for item in failures:
        console.print(f"  [cyan]{item.repo.slug}@{item.repo.branch}[/cyan]: {item.error}")
    console.print("[dim]Re-run with --debug to see every git command and API call.[/dim]")
