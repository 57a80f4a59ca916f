"""Layered ``.env`` loading for local runs.

On GitHub Actions every input arrives as an environment variable. Locally the
same variables can be kept in ``.env`` files, merged in this order (later
wins):

    user file     ~/.config/reposync/.env (or $XDG_CONFIG_HOME/reposync/.env)
    project files <project>/.env, <project>/.env.local

The merged values only fill gaps: a variable already present in the process
environment is never replaced.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, MutableMapping

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

PROJECT_ENV_FILES = (".env", ".env.local")


def user_env_file() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / "reposync" / ".env"


def _merge_files(paths: Iterable[Path], into: dict[str, str]) -> None:
    for path in paths:
        path = Path(path)
        if not path.is_file():
            continue
        logger.debug("Reading environment file %s", path)
        into.update({k: v for k, v in dotenv_values(path).items() if k and v is not None})


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
    environ: MutableMapping[str, str] | None = None,
) -> dict[str, str]:
    """Fill the environment from user and project ``.env`` files.

    Args:
        project_dir: Directory holding the project files (defaults to cwd)
        user_env_paths: User files to read instead of the default one
        project_env_paths: Project files to read instead of the defaults
        environ: Mapping to fill (defaults to ``os.environ``)

    Returns:
        The variables that were set
    """
    if environ is None:
        environ = os.environ
    if user_env_paths is None:
        user_env_paths = [user_env_file()]
    if project_env_paths is None:
        base = project_dir or Path.cwd()
        project_env_paths = [base / name for name in PROJECT_ENV_FILES]

    merged: dict[str, str] = {}
    _merge_files(user_env_paths, merged)
    _merge_files(project_env_paths, merged)

    applied = {k: v for k, v in merged.items() if k not in environ}
    environ.update(applied)
    return applied
