"""
reposync - keep files in sync across GitHub repositories

Copies, renders or prunes files from a source repository into target
repositories and opens (or updates) a pull request with the result.
"""

__version__ = "1.0.0"

# Re-export core models for convenience
from reposync.core.config.models import FileRule, RepoTarget, SyncSettings

__all__ = ["FileRule", "RepoTarget", "SyncSettings", "__version__"]
