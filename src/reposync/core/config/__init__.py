"""
Configuration models and loading.

Run settings come from the environment (with layered .env files); the sync
configuration is a YAML document of target repositories and file rules.
"""

from .env import load_layered_env
from .loader import (
    get_env,
    load_settings,
    load_sync_config,
    parse_bool,
    parse_list,
    read_sync_config,
)
from .models import (
    DEFAULT_BRANCH,
    SOURCE_REPO_PLACEHOLDER,
    ConfigError,
    FileRule,
    RepoTarget,
    SyncGroup,
    SyncSettings,
)

__all__ = [
    # Models
    "ConfigError",
    "DEFAULT_BRANCH",
    "FileRule",
    "RepoTarget",
    "SOURCE_REPO_PLACEHOLDER",
    "SyncGroup",
    "SyncSettings",
    # Loader functions
    "get_env",
    "load_layered_env",
    "load_settings",
    "load_sync_config",
    "parse_bool",
    "parse_list",
    "read_sync_config",
]
