"""
Parsers for git diff output.

Two formats are handled:
- unified diffs (``git diff`` locally, or the compare API in diff format),
  turned into a mapping of file path to diff body;
- ``git diff-tree -r`` raw listings, turned into TreeDiffEntry rows.

Git C-quotes paths with special or non-ASCII characters
(``"caf\\303\\251.txt"``); both parsers return the real path.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

DELETED_MODE = "000000"

_NEW_FILE_PREFIX = "+++"
_OLD_FILE_PREFIX = "---"

_C_ESCAPES = {
    b"a": b"\a",
    b"b": b"\b",
    b"f": b"\f",
    b"n": b"\n",
    b"r": b"\r",
    b"t": b"\t",
    b"v": b"\v",
    b'"': b'"',
    b"\\": b"\\",
}
_C_ESCAPE = re.compile(rb"\\([0-7]{3}|.)", re.DOTALL)


class TreeDiffEntry(BaseModel):
    """One changed blob between two tree objects."""

    new_mode: str = Field(..., description="Mode in the newer tree ('000000' when deleted)")
    previous_mode: str = Field(..., description="Mode in the older tree")
    new_blob: str = Field(..., description="Blob id in the newer tree")
    previous_blob: str = Field(..., description="Blob id in the older tree")
    change: str = Field(..., description="Change code (A, M, D, ...)")
    path: str = Field(..., description="Repository-relative path")

    model_config = ConfigDict(frozen=True)

    @property
    def is_deletion(self) -> bool:
        return self.new_mode == DELETED_MODE


def unquote_path(path: str) -> str:
    """
    Undo git's C-style path quoting.

    Unquoted paths are returned as they are. Octal escapes are UTF-8 bytes.

    Example:
        >>> unquote_path('"caf\\\\303\\\\251.txt"')
        'café.txt'
    """
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path

    def replace(match: re.Match[bytes]) -> bytes:
        escape = match.group(1)
        if len(escape) == 3:
            return bytes([int(escape, 8)])
        return _C_ESCAPES.get(escape, escape)

    raw = _C_ESCAPE.sub(replace, path[1:-1].encode("utf-8"))
    return raw.decode("utf-8", errors="replace")


def _header_path(line: str) -> str:
    # '+++ b/path', '+++ "b/quoted"', '--- a/path'
    return unquote_path(line[4:].rstrip("\t"))[2:]


def parse_unified_diff(text: str) -> dict[str, str]:
    """
    Split a unified diff into per-file bodies.

    Segments without a ``+++`` header line (binary files) are skipped: they
    have no textual diff to compare. Deleted files are keyed by their old
    path from the ``---`` line.

    Args:
        text: Output of ``git diff`` or the compare API

    Returns:
        Mapping of path to diff body (everything after the header), in diff order

    Example:
        >>> parse_unified_diff("diff --git a/x b/x\\n--- a/x\\n+++ b/x\\n@@ -1 +1 @@\\n-a\\n+b")
        {'x': '@@ -1 +1 @@\\n-a\\n+b'}
    """
    result: dict[str, str] = {}

    # File contents are always indented in a diff, so this marker is unambiguous
    for segment in f"\n{text}".split("\ndiff --git")[1:]:
        lines = segment.split("\n")
        header_index = next(
            (i for i, line in enumerate(lines) if line.startswith(_NEW_FILE_PREFIX)),
            -1,
        )
        if header_index == -1:
            continue

        header = lines[header_index]
        if header.startswith(f"{_NEW_FILE_PREFIX} /dev/null"):
            # The file was removed, use its old name
            old_header = lines[header_index - 1] if header_index > 0 else ""
            if not old_header.startswith(_OLD_FILE_PREFIX):
                continue
            path = _header_path(old_header)
        else:
            path = _header_path(header)

        result[path] = "\n".join(lines[header_index + 1 :]).strip()

    return result


def filter_changes(changes: dict[str, str], source: str) -> list[str]:
    """
    Diff bodies for a source path.

    A source ending in ``/`` is a directory and matches every path below it.
    """
    if source.endswith("/"):
        return [body for path, body in changes.items() if path.startswith(source)]
    return [changes[source]] if source in changes else []


def _tree_diff_entry(meta: str, path: str, line: str) -> TreeDiffEntry:
    fields = meta.lstrip(":").split()
    if len(fields) != 5 or not path:
        raise ValueError(f"Malformed diff-tree line: {line!r}")
    new_mode, previous_mode, new_blob, previous_blob, change = fields
    return TreeDiffEntry(
        new_mode=new_mode,
        previous_mode=previous_mode,
        new_blob=new_blob,
        previous_blob=previous_blob,
        change=change,
        path=path,
    )


def parse_tree_diff(text: str) -> list[TreeDiffEntry]:
    """
    Parse ``git diff-tree -r [-z] <tree> <parent-tree>`` output.

    Each record is ``:<mode> <mode> <blob> <blob> <change>`` followed by the
    path: after a tab (quoted by git when needed), or as its own
    NUL-terminated field with ``-z``. With the newer tree given first, the
    first mode/blob pair describes the newer side.

    Example:
        >>> parse_tree_diff(":100644 100644 abc123 def456 M\\tfoo/bar.txt")[0].path
        'foo/bar.txt'
    """
    if "\0" in text:
        fields = text.strip("\n").split("\0")
        if fields and fields[-1] == "":
            fields.pop()
        if len(fields) % 2:
            raise ValueError(f"Malformed diff-tree -z output: {text!r}")
        return [
            _tree_diff_entry(meta.strip(), path, f"{meta}\t{path}")
            for meta, path in zip(fields[::2], fields[1::2])
        ]

    entries: list[TreeDiffEntry] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue

        meta, _, path = line.partition("\t")
        if not path:
            # No tab: the path is the last whitespace-separated field
            meta, _, path = meta.rpartition(" ")
        entries.append(_tree_diff_entry(meta, unquote_path(path), line))

    return entries
