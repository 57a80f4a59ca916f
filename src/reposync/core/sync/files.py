"""
File materialization for sync rules.

Applies one FileRule to a working directory: copy (with include/exclude
filtering and the no-clobber option), render templates, and remove files
that disappeared from a synced source directory.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Callable
from pathlib import Path

from reposync.core.config.models import FileRule
from reposync.core.sync import templates

logger = logging.getLogger(__name__)

METADATA_DIR = ".git"


def walk(directory: str | Path) -> list[str]:
    """
    List every file below a directory.

    Depth-first, entries sorted by name at each level. Paths are relative
    to ``directory`` and use forward slashes.

    Args:
        directory: Directory to list

    Returns:
        Relative file paths (directories themselves are not listed)
    """
    root = Path(directory)
    files: list[str] = []

    def _walk(current: Path, prefix: str) -> None:
        for entry in sorted(current.iterdir(), key=lambda p: p.name):
            relative = f"{prefix}{entry.name}"
            if entry.is_dir():
                _walk(entry, f"{relative}/")
            else:
                files.append(relative)

    _walk(root, "")
    return files


def is_excluded(path: str, exclude: list[str]) -> bool:
    """
    Check a source-relative path against a rule's exclude list.

    An entry matches the path itself or, as a directory, any ancestor of it.
    """
    if not exclude:
        return False
    if path in exclude:
        return True
    parts = path.split("/")
    ancestors = {"/".join(parts[:i]) + "/" for i in range(1, len(parts))}
    return any(entry.rstrip("/") + "/" in ancestors for entry in exclude)


def _matches_any(path: str, patterns: list[str]) -> str | None:
    for pattern in patterns:
        if re.search(pattern, path):
            return pattern
    return None


def build_filter(rule: FileRule, dest_root: Path) -> Callable[[str], bool]:
    """
    Build the per-path filter for a rule.

    The returned predicate takes a source-relative path and decides whether
    it is copied to ``dest_root / path``. Checks, in order: no-clobber,
    exclude list, exclude patterns, include patterns.
    """

    def include(path: str) -> bool:
        if not rule.replace:
            target = dest_root / path
            if target.is_dir():
                logger.debug("Destination %s is an existing directory", target)
                return True
            if target.exists():
                logger.debug("File %s already exists and 'replace' is false", target)
                return False

        if is_excluded(path, rule.exclude):
            logger.debug("Excluding %s: listed in exclude", path)
            return False

        if pattern := _matches_any(path, rule.exclude_file_patterns):
            logger.debug("Excluding %s: matches excludeFilePattern %s", path, pattern)
            return False

        if rule.include_file_patterns and not _matches_any(path, rule.include_file_patterns):
            logger.debug("Excluding %s: matches no includeFilePattern", path)
            return False

        return True

    return include


def _copy_file(source: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, dest)


def materialize(source: str | Path, dest: str | Path, is_directory: bool, rule: FileRule) -> None:
    """
    Apply one sync rule.

    Args:
        source: Source file or directory
        dest: Destination file or directory inside the working copy
        is_directory: Whether ``source`` is a directory
        rule: The rule being applied

    Raises:
        OSError: If the source cannot be read or the destination written
    """
    source = Path(source)
    dest = Path(dest)

    if is_directory:
        include = build_filter(rule, dest)
        for path in walk(source):
            if not include(path):
                continue
            if rule.is_template:
                logger.debug("Render %s to %s", source / path, dest / path)
                templates.write(source / path, dest / path, rule.template)
            else:
                logger.debug("Copy %s to %s", source / path, dest / path)
                _copy_file(source / path, dest / path)
    else:
        include = build_filter(rule, dest.parent)
        if include(dest.name):
            if rule.is_template:
                logger.debug("Render %s to %s", source, dest)
                templates.write(source, dest, rule.template)
            else:
                logger.debug("Copy %s to %s", source, dest)
                _copy_file(source, dest)

    if is_directory and rule.delete_orphaned:
        delete_orphaned(source, dest, rule)


def delete_orphaned(source: str | Path, dest: str | Path, rule: FileRule) -> list[str]:
    """
    Remove destination files that have no counterpart in the source.

    Excluded paths and anything inside the git metadata directory are
    kept. Nothing is deleted when ``dest`` itself lies inside the metadata
    directory.

    Returns:
        Relative paths that were removed
    """
    source = Path(source)
    dest = Path(dest)

    if METADATA_DIR in dest.parts:
        logger.debug("Skipping orphan cleanup inside %s", dest)
        return []
    if not dest.is_dir():
        return []

    source_files = set(walk(source))
    removed: list[str] = []

    for path in walk(dest):
        if path == METADATA_DIR or path.startswith(f"{METADATA_DIR}/"):
            continue
        if path in source_files:
            continue

        if is_excluded(path, rule.exclude):
            logger.debug("Keeping orphaned file %s: excluded", path)
            continue

        logger.debug("Removing orphaned file %s", dest / path)
        (dest / path).unlink()
        removed.append(path)

    return removed
