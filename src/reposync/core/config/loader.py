"""
Settings and sync configuration loading.

Settings precedence (highest to lowest):
    1. Explicit overrides (CLI flags)
    2. Environment variables, plain or with the Actions ``INPUT_`` prefix
    3. Project / user ``.env`` files (see ``env.load_layered_env``)
    4. Model defaults

The sync configuration is a YAML document mapping target repositories to
the files that should be synced into them.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from .models import ConfigError, FileRule, RepoTarget, SyncGroup, SyncSettings, split_lines

_BOOL_TRUE = ("true", "1", "yes", "on")
_BOOL_FALSE = ("false", "0", "no", "off", "")

# setting name -> env var name (looked up as-is and with INPUT_ prefix)
_ENV_STRINGS = {
    "config_path": "CONFIG_PATH",
    "inline_config": "INLINE_CONFIG",
    "pr_body": "PR_BODY",
    "commit_prefix": "COMMIT_PREFIX",
    "commit_body": "COMMIT_BODY",
    "git_email": "GIT_EMAIL",
    "git_username": "GIT_USERNAME",
    "tmp_dir": "TMP_DIR",
    "branch_prefix": "BRANCH_PREFIX",
    "source_repository": "GITHUB_REPOSITORY",
    "server_url": "GITHUB_SERVER_URL",
    "api_url": "GITHUB_API_URL",
    "run_id": "GITHUB_RUN_ID",
}

_ENV_BOOLS = {
    "is_fine_grained": "IS_FINE_GRAINED",
    "commit_each_file": "COMMIT_EACH_FILE",
    "dry_run": "DRY_RUN",
    "skip_cleanup": "SKIP_CLEANUP",
    "overwrite_existing_pr": "OVERWRITE_EXISTING_PR",
    "original_message": "ORIGINAL_MESSAGE",
    "commit_as_pr_title": "COMMIT_AS_PR_TITLE",
    "skip_pr": "SKIP_PR",
}

_ENV_LISTS = {
    "assignees": "ASSIGNEES",
    "reviewers": "REVIEWERS",
    "team_reviewers": "TEAM_REVIEWERS",
}


def get_env(name: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Look up an input from the environment.

    The ``INPUT_<NAME>`` form set by GitHub Actions wins over the plain name.
    Empty values count as unset.

    Args:
        name: Variable name without prefix
        env: Environment mapping (defaults to os.environ)

    Returns:
        The value, or None if unset or empty
    """
    if env is None:
        env = os.environ
    for key in (f"INPUT_{name}", name):
        value = env.get(key)
        if value is not None and value.strip() != "":
            return value
    return None


def parse_bool(value: str, name: str = "value") -> bool:
    """
    Parse a boolean input.

    Raises:
        ConfigError: If the value is not a recognized boolean
    """
    lowered = value.strip().lower()
    if lowered in _BOOL_TRUE:
        return True
    if lowered in _BOOL_FALSE:
        return False
    raise ConfigError(f"Invalid boolean for {name}: '{value}'")


def parse_list(value: str) -> list[str]:
    """Parse a comma or newline separated list, dropping blanks."""
    items: list[str] = []
    for line in value.splitlines():
        items.extend(part.strip() for part in line.split(","))
    return [item for item in items if item]


def load_settings(
    overrides: Optional[dict[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> SyncSettings:
    """
    Build SyncSettings from the environment.

    Args:
        overrides: Values that take precedence over the environment
                   (None values are ignored)
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated SyncSettings

    Raises:
        ConfigError: If no token is configured or a value is invalid
    """
    values: dict[str, Any] = {}

    pat = get_env("GH_PAT", env)
    installation_token = get_env("GH_INSTALLATION_TOKEN", env)
    if pat:
        values["token"] = pat
    elif installation_token:
        values["token"] = installation_token
        values["is_installation_token"] = True

    for field_name, var in _ENV_STRINGS.items():
        if (value := get_env(var, env)) is not None:
            values[field_name] = value

    for field_name, var in _ENV_BOOLS.items():
        if (value := get_env(var, env)) is not None:
            values[field_name] = parse_bool(value, var)

    for field_name, var in _ENV_LISTS.items():
        if (value := get_env(var, env)) is not None:
            values[field_name] = parse_list(value)

    # PR_LABELS=false turns labelling off entirely
    if (labels := get_env("PR_LABELS", env)) is not None:
        if labels.strip().lower() == "false":
            values["pr_labels"] = []
        else:
            values["pr_labels"] = parse_list(labels)

    if (fork := get_env("FORK", env)) is not None and fork.strip().lower() != "false":
        values["fork"] = fork.strip()

    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})

    if "token" not in values:
        raise ConfigError("No token configured. Set GH_PAT or GH_INSTALLATION_TOKEN.")
    if "source_repository" not in values:
        raise ConfigError("GITHUB_REPOSITORY is not set (expected owner/name).")

    try:
        return SyncSettings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


def _parse_file_entry(entry: Any) -> FileRule:
    """Parse one entry of a ``files`` list."""
    if isinstance(entry, str):
        source, _, dest = entry.partition(":")
        entry = {"source": source.strip(), "dest": dest.strip() or None}

    if not isinstance(entry, dict) or not entry.get("source"):
        raise ConfigError(f"File entry has no source: {entry!r}")

    data = dict(entry)
    source = str(data["source"])
    data["source"] = source
    data["dest"] = str(data.get("dest") or source)

    # Excludes may be written relative to the repository root
    exclude = split_lines(data.get("exclude"))
    prefix = source.rstrip("/") + "/"
    data["exclude"] = [e[len(prefix):] if e.startswith(prefix) else e for e in exclude]

    try:
        return FileRule.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid file entry for '{source}': {e}") from e


def _parse_files(files: Any, where: str) -> list[FileRule]:
    if not isinstance(files, list):
        raise ConfigError(f"'files' for {where} must be a list")
    return [_parse_file_entry(entry) for entry in files]


def _parse_repos(repos: Any) -> list[RepoTarget]:
    if isinstance(repos, str):
        specs = parse_list(repos)
    elif isinstance(repos, list):
        specs = [str(r) for r in repos]
    else:
        raise ConfigError(f"'repos' must be a string or list, got {type(repos).__name__}")
    return [RepoTarget.from_spec(spec) for spec in specs]


def load_sync_config(text: str) -> list[SyncGroup]:
    """
    Parse a sync configuration document.

    Supports top-level ``owner/repo[@branch]: [files...]`` entries and
    ``group`` entries (a mapping or list of mappings with ``repos`` and
    ``files``). Rules for the same repository and branch are merged into one
    group, in the order they appear.

    Args:
        text: YAML document

    Returns:
        One SyncGroup per target repository and branch

    Raises:
        ConfigError: If the YAML is malformed or entries are invalid

    Example:
        >>> groups = load_sync_config("acme/tools:\\n  - LICENSE\\n")
        >>> groups[0].repo.slug, groups[0].files[0].dest
        ('acme/tools', 'LICENSE')
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse sync config: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Sync config must be a mapping of repositories to files")

    merged: dict[str, SyncGroup] = {}

    def add(repo: RepoTarget, files: list[FileRule]) -> None:
        if repo.unique_name in merged:
            merged[repo.unique_name].files.extend(files)
        else:
            merged[repo.unique_name] = SyncGroup(repo=repo, files=list(files))

    for key, value in data.items():
        if key == "group":
            groups = value if isinstance(value, list) else [value]
            for group in groups:
                if not isinstance(group, dict) or "repos" not in group:
                    raise ConfigError("Each group needs 'repos' and 'files'")
                files = _parse_files(group.get("files", []), "group")
                for repo in _parse_repos(group["repos"]):
                    add(repo, files)
        else:
            add(RepoTarget.from_spec(str(key)), _parse_files(value, str(key)))

    return list(merged.values())


def read_sync_config(settings: SyncSettings, project_dir: Optional[Path] = None) -> list[SyncGroup]:
    """
    Load the sync configuration named by the settings.

    Inline YAML wins over the config file.

    Raises:
        ConfigError: If the file is missing or invalid
    """
    if settings.inline_config:
        return load_sync_config(settings.inline_config)

    path = Path(settings.config_path)
    if not path.is_absolute():
        path = (project_dir or Path.cwd()) / path
    if not path.exists():
        raise ConfigError(f"Sync config not found: {path}")

    return load_sync_config(path.read_text())
