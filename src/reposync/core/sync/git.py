"""
Thin wrapper around the git CLI.

Commands are run with argv lists (never through a shell) in a working
directory. Output is trimmed unless raw bytes are requested, which is what
blob content needs.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Literal, overload

logger = logging.getLogger(__name__)

# Credentials embedded in clone/push URLs must not end up in logs or errors
_URL_CREDENTIALS = re.compile(r"(https?://)[^/@\s]+@")


def redact(text: str) -> str:
    """Hide credentials embedded in URLs."""
    return _URL_CREDENTIALS.sub(r"\1***@", text)


class GitError(Exception):
    """Exception raised when a git operation fails."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class GitRunner:
    """
    Runs git commands in a fixed working directory.

    Example:
        >>> git = GitRunner(Path("/tmp/clone"))
        >>> git.run(["rev-parse", "HEAD"])
        'e3b0c44...'
    """

    def __init__(self, cwd: Path | None = None, timeout: float = 300.0) -> None:
        """
        Initialize the runner.

        Args:
            cwd: Working directory for commands (defaults to the process cwd)
            timeout: Seconds before a command is aborted
        """
        self.cwd = cwd
        self.timeout = timeout

    @overload
    def run(self, args: list[str], *, raw: Literal[False] = ...) -> str: ...

    @overload
    def run(self, args: list[str], *, raw: Literal[True]) -> bytes: ...

    def run(self, args: list[str], *, raw: bool = False) -> str | bytes:
        """
        Run a git command and return its stdout.

        Args:
            args: Git command arguments (without "git" prefix)
            raw: Return stdout as untrimmed bytes

        Returns:
            Trimmed stdout, or raw bytes when ``raw`` is set

        Raises:
            GitError: If the command exits non-zero, times out or git is missing
        """
        cmd = ["git", *args]
        safe_cmd = [redact(arg) for arg in cmd]
        printable = " ".join(safe_cmd)
        logger.debug("EXEC: %s IN %s", printable, self.cwd)

        try:
            result = subprocess.run(
                cmd,
                cwd=self.cwd,
                capture_output=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitError(f"Git command timed out: {printable}", command=safe_cmd) from e
        except FileNotFoundError as e:
            raise GitError("git not found in PATH", command=safe_cmd) from e

        if result.returncode != 0:
            stderr = redact(result.stderr.decode(errors="replace").strip())
            raise GitError(
                f"Git command failed: {printable}" + (f": {stderr}" if stderr else ""),
                command=safe_cmd,
                stderr=stderr,
            )

        if raw:
            return result.stdout
        return result.stdout.decode(errors="replace").strip()

    def succeeds(self, args: list[str]) -> bool:
        """Run a command and report whether it exited zero."""
        try:
            self.run(args)
            return True
        except GitError:
            return False
