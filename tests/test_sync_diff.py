"""Tests for unified diff and diff-tree parsing."""

import pytest

from reposync.core.sync.diff import (
    DELETED_MODE,
    filter_changes,
    parse_tree_diff,
    parse_unified_diff,
    unquote_path,
)

UNIFIED_DIFF = """diff --git a/README.md b/README.md
index 83db48f..bf269f4 100644
--- a/README.md
+++ b/README.md
@@ -1 +1 @@
-# Old
+# New
diff --git a/logo.png b/logo.png
index 1234567..89abcde 100644
Binary files a/logo.png and b/logo.png differ
diff --git a/workflows/ci.yml b/workflows/ci.yml
new file mode 100644
index 0000000..e69de29
--- /dev/null
+++ b/workflows/ci.yml
@@ -0,0 +1 @@
+name: ci
diff --git a/old.txt b/old.txt
deleted file mode 100644
index e69de29..0000000
--- a/old.txt
+++ /dev/null
@@ -1 +0,0 @@
-gone
"""


class TestParseUnifiedDiff:
    """Tests for parse_unified_diff."""

    def test_text_files_only(self) -> None:
        changes = parse_unified_diff(UNIFIED_DIFF)

        assert list(changes) == ["README.md", "workflows/ci.yml", "old.txt"]
        assert "logo.png" not in changes

    def test_body_starts_after_header(self) -> None:
        changes = parse_unified_diff(UNIFIED_DIFF)

        assert changes["README.md"] == "@@ -1 +1 @@\n-# Old\n+# New"
        assert changes["workflows/ci.yml"] == "@@ -0,0 +1 @@\n+name: ci"

    def test_deleted_file_uses_old_path(self) -> None:
        changes = parse_unified_diff(UNIFIED_DIFF)

        assert changes["old.txt"] == "@@ -1 +0,0 @@\n-gone"

    def test_empty(self) -> None:
        assert parse_unified_diff("") == {}

    def test_local_and_remote_diffs_compare_equal(self) -> None:
        # Same change seen from the source push and the target working tree
        remote = "diff --git a/src/ci.yml b/src/ci.yml\nindex 1..2 100644\n--- a/src/ci.yml\n+++ b/src/ci.yml\n@@ -1 +1 @@\n-a\n+b\n"
        local = "diff --git a/.github/ci.yml b/.github/ci.yml\nindex 3..4 100644\n--- a/.github/ci.yml\n+++ b/.github/ci.yml\n@@ -1 +1 @@\n-a\n+b\n"

        assert list(parse_unified_diff(remote).values()) == list(parse_unified_diff(local).values())

    def test_quoted_non_ascii_path(self) -> None:
        text = (
            'diff --git "a/caf\\303\\251.txt" "b/caf\\303\\251.txt"\n'
            "index 1..2 100644\n"
            '--- "a/caf\\303\\251.txt"\n'
            '+++ "b/caf\\303\\251.txt"\n'
            "@@ -1 +1 @@\n-a\n+b\n"
        )

        assert parse_unified_diff(text) == {"café.txt": "@@ -1 +1 @@\n-a\n+b"}

    def test_quoted_deleted_path(self) -> None:
        text = 'diff --git "a/tab\\there" "b/tab\\there"\n--- "a/tab\\there"\n+++ /dev/null\n@@ -1 +0,0 @@\n-x\n'

        assert list(parse_unified_diff(text)) == ["tab\there"]


class TestFilterChanges:
    """Tests for filter_changes."""

    CHANGES = {
        "workflows/ci.yml": "ci",
        "workflows/lint.yml": "lint",
        "workflows-extra/x.yml": "x",
        "README.md": "readme",
    }

    def test_single_file(self) -> None:
        assert filter_changes(self.CHANGES, "README.md") == ["readme"]

    def test_missing_file(self) -> None:
        assert filter_changes(self.CHANGES, "LICENSE") == []

    def test_directory_prefix(self) -> None:
        assert filter_changes(self.CHANGES, "workflows/") == ["ci", "lint"]


class TestUnquotePath:
    """Tests for unquote_path."""

    def test_plain_path_unchanged(self) -> None:
        assert unquote_path("docs/my file.md") == "docs/my file.md"

    def test_octal_utf8(self) -> None:
        assert unquote_path('"caf\\303\\251.txt"') == "café.txt"

    def test_named_escapes(self) -> None:
        assert unquote_path('"a\\"b\\\\c\\td"') == 'a"b\\c\td'


class TestParseTreeDiff:
    """Tests for parse_tree_diff."""

    def test_single_line(self) -> None:
        entries = parse_tree_diff("  :100644 100644 abc123 def456 M\tfoo/bar.txt\n")

        assert len(entries) == 1
        entry = entries[0]
        assert entry.new_mode == "100644"
        assert entry.previous_mode == "100644"
        assert entry.new_blob == "abc123"
        assert entry.previous_blob == "def456"
        assert entry.change == "M"
        assert entry.path == "foo/bar.txt"
        assert entry.is_deletion is False

    def test_deletion(self) -> None:
        text = ":000000 100644 0000000000000000000000000000000000000000 e69de29bb2d1d6434b8b29ae775ad8c2e48c5391 A\ty.txt"

        entry = parse_tree_diff(text)[0]

        assert entry.new_mode == DELETED_MODE
        assert entry.is_deletion is True

    def test_multiple_lines_and_blanks(self) -> None:
        text = ":100644 100644 a1 b1 M\tx.txt\n\n:100755 100644 a2 b2 M\tbin/run.sh\n"

        entries = parse_tree_diff(text)

        assert [e.path for e in entries] == ["x.txt", "bin/run.sh"]
        assert entries[1].new_mode == "100755"

    def test_path_with_spaces(self) -> None:
        entry = parse_tree_diff(":100644 100644 a1 b1 M\tdocs/my file.md")[0]

        assert entry.path == "docs/my file.md"

    def test_malformed(self) -> None:
        with pytest.raises(ValueError, match="Malformed"):
            parse_tree_diff(":100644 abc M\tx.txt")

    def test_quoted_path(self) -> None:
        entry = parse_tree_diff(':100644 100644 a1 b1 M\t"caf\\303\\251.txt"')[0]

        assert entry.path == "café.txt"

    def test_nul_separated(self) -> None:
        text = ":100644 100644 a1 b1 M\0café.txt\0:000000 100644 0000 b2 A\0dir/with space.txt\0"

        entries = parse_tree_diff(text)

        assert [e.path for e in entries] == ["café.txt", "dir/with space.txt"]
        assert entries[0].change == "M"
        assert entries[1].is_deletion is True

    def test_nul_separated_missing_path(self) -> None:
        with pytest.raises(ValueError, match="Malformed"):
            parse_tree_diff(":100644 100644 a1 b1 M\0")
