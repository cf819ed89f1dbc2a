"""Tests for diff search."""
from gitfilehistory.models import Addition, Context, Deletion, DiffContent, FileHeader, HunkHeader, SearchMatch
from gitfilehistory.search import SearchEngine, SearchIndex, SearchStatus


def _content():
    return DiffContent(
        lines=(
            FileHeader("diff --git a/foo.txt b/foo.txt"),
            HunkHeader(1, 6, 1, 6),
            Addition("foo bar"),
            Context("beta"),
            Deletion("foo"),
            Context("gamma"),
            Addition("FOO"),
        )
    )


class TestSearchIndex:
    def test_headers_are_not_searched(self):
        idx = SearchIndex(_content(), "foo")
        idx.ensure_complete()
        assert [m.line_index for m in idx.matches] == [2, 4, 6]

    def test_next_wraps_around(self):
        idx = SearchIndex(_content(), "foo")
        idx.ensure_complete()
        assert [idx.next().line_index for _ in range(4)] == [2, 4, 6, 2]

    def test_previous_wraps_around(self):
        idx = SearchIndex(_content(), "foo")
        idx.ensure_complete()
        idx.next()
        assert idx.previous().line_index == 6
        assert idx.previous().line_index == 4

    def test_case_sensitive(self):
        idx = SearchIndex(_content(), "FOO", case_sensitive=True)
        idx.ensure_complete()
        assert idx.matches == [SearchMatch(6, 0, 3)]

    def test_offsets_are_into_line_text(self):
        idx = SearchIndex(DiffContent(lines=(Addition("foo foo"),)), "foo")
        idx.ensure_complete()
        assert idx.matches == [SearchMatch(0, 0, 3), SearchMatch(0, 4, 7)]

    def test_regex(self):
        idx = SearchIndex(_content(), r"ga+m", regex=True)
        idx.ensure_complete()
        assert idx.matches == [SearchMatch(5, 0, 3)]

    def test_literal_by_default(self):
        idx = SearchIndex(DiffContent(lines=(Context("a.b"), Context("axb"))), "a.b")
        idx.ensure_complete()
        assert [m.line_index for m in idx.matches] == [0]

    def test_invalid_regex_has_no_matches(self):
        idx = SearchIndex(_content(), "(", regex=True)
        assert idx.status == SearchStatus.NO_MATCHES
        assert idx.error
        assert idx.next() is None

    def test_no_matches(self):
        idx = SearchIndex(_content(), "zzz")
        idx.ensure_complete()
        assert idx.status == SearchStatus.NO_MATCHES
        assert idx.next() is None

    def test_position(self):
        idx = SearchIndex(_content(), "foo")
        idx.ensure_complete()
        idx.next()
        idx.next()
        assert idx.position() == (2, 3)

    def test_empty_content(self):
        idx = SearchIndex(DiffContent(), "foo")
        assert idx.status == SearchStatus.NO_MATCHES
        assert idx.next() is None


class TestSearchEngine:
    def test_small_content_is_indexed_at_once(self):
        idx = SearchEngine(incremental_threshold=100).index(_content(), "foo")
        assert idx.complete
        assert idx.status == SearchStatus.MATCHES

    def test_large_content_is_indexed_lazily(self):
        lines = tuple(Addition("needle") if i % 1000 == 500 else Context(f"line {i}") for i in range(10000))
        engine = SearchEngine(incremental_threshold=5000, lookahead=500)
        idx = engine.index(DiffContent(lines=lines), "needle", viewport=(0, 50))
        assert idx.chunk_count == 20
        assert idx.indexed_chunks == 2
        assert not idx.complete
        assert idx.status == SearchStatus.MATCHES
        assert idx.next().line_index == 500
        assert idx.next().line_index == 1500
        assert idx.indexed_chunks == 4

    def test_lazy_index_pending_then_found(self):
        lines = tuple(Context(f"line {i}") for i in range(5999)) + (Addition("needle"),)
        engine = SearchEngine(incremental_threshold=5000, lookahead=500)
        idx = engine.index(DiffContent(lines=lines), "needle", viewport=(0, 10))
        assert idx.status == SearchStatus.PENDING
        assert idx.next().line_index == 5999
        assert idx.status == SearchStatus.MATCHES

    def test_lazy_index_wraps_from_viewport(self):
        lines = tuple(Addition("needle") if i == 100 else Context(f"line {i}") for i in range(8000))
        engine = SearchEngine(incremental_threshold=5000, lookahead=500)
        idx = engine.index(DiffContent(lines=lines), "needle", viewport=(6000, 40))
        assert idx.status == SearchStatus.PENDING
        assert idx.next().line_index == 100
