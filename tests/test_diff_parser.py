"""Tests for unified diff parsing."""
from gitfilehistory.diff_parser import (
    iter_diff_lines,
    parse_diff,
    parse_hunk_header,
    side_by_side_indices,
    side_by_side_rows,
)
from gitfilehistory.models import (
    Addition,
    BinaryMarker,
    Context,
    Deletion,
    DiffContent,
    FileHeader,
    HunkHeader,
)

SAMPLE = """diff --git a/A.txt b/A.txt
index 1111111..2222222 100644
--- a/A.txt
+++ b/A.txt
@@ -3,4 +3,4 @@ def helper():
 line 3
 line 4
-line 5
+line 5 edited
 line 6
\\ No newline at end of file
"""


class TestHunkHeader:
    def test_full_header(self):
        hunk = parse_hunk_header("@@ -3,4 +3,5 @@ def helper():")
        assert hunk == HunkHeader(3, 4, 3, 5, "def helper():")

    def test_omitted_counts_default_to_one(self):
        hunk = parse_hunk_header("@@ -5 +5 @@")
        assert (hunk.old_count, hunk.new_count) == (1, 1)
        assert hunk.label == ""

    def test_not_a_hunk(self):
        assert parse_hunk_header("@@ garbage") is None


class TestParseDiff:
    def test_classifies_by_marker(self):
        content = parse_diff(SAMPLE)
        kinds = [type(line) for line in content.lines]
        assert kinds == [
            FileHeader,
            FileHeader,
            FileHeader,
            FileHeader,
            HunkHeader,
            Context,
            Context,
            Deletion,
            Addition,
            Context,
            Context,
        ]
        assert content.lines[7].text == "line 5"
        assert content.lines[8].text == "line 5 edited"
        assert content.lines[-1].raw == "\\ No newline at end of file"
        assert (content.additions, content.deletions) == (1, 1)

    def test_marker_lines_inside_header_are_headers(self):
        content = parse_diff(SAMPLE)
        assert content.lines[2] == FileHeader("--- a/A.txt")
        assert content.lines[3] == FileHeader("+++ b/A.txt")

    def test_empty_output(self):
        content = parse_diff("")
        assert content.is_empty
        assert not content.truncated

    def test_blank_line_inside_hunk_is_context(self):
        text = "@@ -1,3 +1,3 @@\n a\n\n b\n"
        lines = list(iter_diff_lines(text))
        assert lines[2] == Context("")

    def test_binary_marker_skips_rest_of_section(self):
        text = (
            "diff --git a/img.png b/img.png\n"
            "index abc1234..def5678 100644\n"
            "Binary files a/img.png and b/img.png differ\n"
            "garbage that must not be classified\n"
            "diff --git a/A.txt b/A.txt\n"
            "@@ -1 +1 @@\n"
            "-x\n"
            "+y\n"
        )
        content = parse_diff(text)
        markers = [line for line in content.lines if isinstance(line, BinaryMarker)]
        assert len(markers) == 1
        assert markers[0].blob == "abc1234..def5678"
        assert content.is_binary
        assert not any(getattr(line, "text", "").startswith("garbage") for line in content.lines)
        assert content.additions == 1

    def test_truncation_counts_remaining(self):
        text = "@@ -0,0 +1,9999 @@\n" + "".join(f"+row {i}\n" for i in range(9999))
        content = parse_diff(text, max_lines=2000)
        assert len(content) == 2000
        assert content.remaining == 8000
        assert content.truncated

    def test_under_cap_not_truncated(self):
        content = parse_diff(SAMPLE, max_lines=2000)
        assert content.remaining == 0


class TestChangeNavigation:
    def _content(self):
        return DiffContent(
            lines=(
                HunkHeader(1, 5, 1, 5),
                Context("a"),
                Deletion("b"),
                Addition("B"),
                Context("c"),
                Addition("d"),
                Context("e"),
            )
        )

    def test_change_starts(self):
        assert self._content().change_starts == (2, 5)

    def test_next_change(self):
        content = self._content()
        assert content.next_change(0) == 2
        assert content.next_change(2) == 5
        assert content.next_change(5) is None

    def test_previous_change(self):
        content = self._content()
        assert content.previous_change(6) == 5
        assert content.previous_change(5) == 2
        assert content.previous_change(2) is None


def test_side_by_side_pairs_deletions_with_additions():
    content = DiffContent(
        lines=(
            HunkHeader(1, 3, 1, 2),
            Deletion("old 1"),
            Deletion("old 2"),
            Addition("new 1"),
            Context("same"),
        )
    )
    rows = side_by_side_rows(content)
    assert rows[0] == (content.lines[0], content.lines[0])
    assert rows[1] == (Deletion("old 1"), Addition("new 1"))
    assert rows[2] == (Deletion("old 2"), None)
    assert rows[3] == (Context("same"), Context("same"))


def test_side_by_side_indices_point_into_lines():
    content = DiffContent(
        lines=(
            HunkHeader(1, 2, 1, 3),
            Addition("only new 1"),
            Addition("only new 2"),
            Deletion("gone"),
            Context("same"),
        )
    )
    assert side_by_side_indices(content) == [(0, 0), (None, 1), (None, 2), (3, None), (4, 4)]
