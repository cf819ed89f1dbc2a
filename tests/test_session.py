"""End-to-end tests of a browsing session against real repositories."""
import pytest

from gitfilehistory.app import GitFileHistoryApp, main
from gitfilehistory.config import Settings
from gitfilehistory.errors import ConfigError
from gitfilehistory.models import Addition, CompareTarget, DiffContent, FileHeader
from gitfilehistory.search import SearchStatus
from gitfilehistory.session import STATUS_EMPTY, STATUS_READY, HistorySession

from .conftest import FILE_LINES


@pytest.fixture
def session_for(renamed_repo):
    builder, _ = renamed_repo
    sessions = []

    def make(path="B.txt", **settings):
        settings.setdefault("debounce", 0.0)
        session = HistorySession(builder.repository, str(builder.root / path), Settings(**settings))
        sessions.append(session)
        return session

    yield make
    for session in sessions:
        session.close()


def _content(session) -> DiffContent:
    delivery = session.wait(timeout=10)
    assert delivery is not None and delivery.ok, delivery
    assert isinstance(delivery.result, DiffContent)
    return delivery.result


def test_load_selects_newest_commit(session_for, renamed_repo):
    _, (c1, c2, c3, c4) = renamed_repo
    session = session_for()
    session.load()
    content = _content(session)
    assert Addition("line 11") in content.lines
    snap = session.snapshot()
    assert snap.status == STATUS_READY
    assert [c.commit_id for c in snap.commits] == [c4, c3, c2, c1]
    assert snap.delivery.fingerprint.target == CompareTarget.parent(c3)


def test_selecting_commit_before_rename_uses_old_path(session_for):
    session = session_for()
    session.load()
    session.select(2)
    content = _content(session)
    assert session.delivery.fingerprint.path == "A.txt"
    assert Addition("line 5 edited") in content.lines


def test_rename_commit_shows_rename_headers(session_for):
    session = session_for()
    session.load()
    session.select(1)
    content = _content(session)
    headers = [line.text for line in content.lines if isinstance(line, FileHeader)]
    assert "rename from A.txt" in headers
    assert "rename to B.txt" in headers


def test_root_commit_is_all_additions(session_for):
    session = session_for()
    session.load()
    session.select(99)
    assert session.selected_index == 3
    content = _content(session)
    assert content.additions == len(FILE_LINES)
    assert content.deletions == 0


def test_reselecting_is_served_from_cache(session_for):
    session = session_for()
    session.load()
    _content(session)
    session.select(1)
    _content(session)
    session.select(0)
    assert session.snapshot().status == STATUS_READY
    assert session.cache.stats()["hits"] >= 1


def test_range_compare_and_cancel(session_for, renamed_repo):
    _, (c1, c2, c3, c4) = renamed_repo
    session = session_for()
    session.load()
    session.select(3)
    assert session.toggle_mark() is None
    session.select(0)
    session.toggle_mark()
    content = _content(session)
    fp = session.delivery.fingerprint
    assert fp.commit_id == c4
    assert fp.target == CompareTarget.commit(c1)
    assert Addition("line 11") in content.lines
    assert Addition("line 5 edited") in content.lines
    assert session.snapshot().marks == (c1, c4)

    session.cancel_marks()
    _content(session)
    assert session.delivery.fingerprint.target == CompareTarget.parent(c3)
    assert session.snapshot().marks == ()


def test_cycle_parent_ignores_non_merges(session_for):
    session = session_for()
    session.load()
    assert session.cycle_parent() is None


def test_search_and_navigation(session_for):
    session = session_for(context_lines=10)
    session.load()
    _content(session)
    assert session.search_index is None
    assert session.search("line") == SearchStatus.MATCHES
    first = session.next_match()
    second = session.next_match()
    assert first.line_index < second.line_index
    assert session.previous_match() == first
    assert session.snapshot().search_status == SearchStatus.MATCHES
    assert session.search("no such text") == SearchStatus.NO_MATCHES
    session.clear_search()
    assert session.snapshot().search_status == SearchStatus.NOT_SEARCHED


def test_search_is_dropped_when_content_changes(session_for):
    session = session_for()
    session.load()
    _content(session)
    session.search("line")
    session.select(1)
    _content(session)
    assert session.next_match() is None
    assert session.snapshot().search_status == SearchStatus.NOT_SEARCHED


def test_change_navigation(session_for):
    session = session_for()
    session.load()
    content = _content(session)
    first = session.next_change(0)
    assert first is not None
    assert isinstance(content.lines[first], Addition)
    assert session.previous_change(first) is None


def test_context_lines_change_refetches(session_for):
    session = session_for()
    session.load()
    _content(session)
    session.set_context_lines(0)
    content = _content(session)
    assert session.delivery.fingerprint.context_lines == 0
    assert len(content.lines) < 12
    with pytest.raises(ConfigError):
        session.set_context_lines(101)


def test_working_tree_changes_appear_after_refresh(session_for, renamed_repo):
    builder, _ = renamed_repo
    session = session_for()
    session.load()
    _content(session)
    builder.write("B.txt", FILE_LINES + ["line 11", "uncommitted"])
    session.refresh()
    assert session.commits[0].is_working_tree
    content = _content(session)
    assert Addition("uncommitted") in content.lines


def test_follow_toggle(session_for):
    session = session_for()
    session.load()
    assert len(session.commits) == 4
    session.set_follow(False)
    assert len(session.commits) == 2
    session.set_follow(True)
    assert len(session.commits) == 4


def test_deleted_file_history(session_for, renamed_repo):
    builder, (c1, c2, c3, c4) = renamed_repo
    builder.rm("B.txt")
    c5 = builder.commit("delete B")
    session = session_for()
    session.load()
    assert [c.commit_id for c in session.commits] == [c5, c4, c3, c2, c1]
    resolver = session.history.resolver
    assert [resolver.resolve(c) for c in (c5, c4, c3, c2, c1)] == ["B.txt", "B.txt", "B.txt", "A.txt", "A.txt"]
    content = _content(session)
    assert content.additions == 0
    assert content.deletions == len(FILE_LINES) + 1


def test_untracked_file_has_empty_history(session_for, renamed_repo):
    builder, _ = renamed_repo
    builder.write("new.txt", ["fresh"])
    session = session_for("new.txt", show_working_tree=False)
    session.load()
    snap = session.snapshot()
    assert snap.status == STATUS_EMPTY
    assert snap.delivery is None


def test_open_discovers_repository(renamed_repo):
    builder, _ = renamed_repo
    session = HistorySession.open(str(builder.root / "B.txt"), Settings(debounce=0.0))
    try:
        assert session.file_path == "B.txt"
        assert len(session.commits) == 4
    finally:
        session.close()


def test_open_deleted_file(renamed_repo):
    builder, _ = renamed_repo
    builder.rm("B.txt")
    builder.commit("delete B")
    session = HistorySession.open(str(builder.root / "B.txt"), Settings(debounce=0.0))
    try:
        assert session.file_path == "B.txt"
        assert len(session.commits) == 5
    finally:
        session.close()


def test_main_accepts_deleted_file(renamed_repo, monkeypatch):
    builder, _ = renamed_repo
    builder.rm("B.txt")
    builder.commit("delete B")
    opened = []
    monkeypatch.setattr(GitFileHistoryApp, "run", lambda self: opened.append(self.session))
    assert main([str(builder.root / "B.txt")]) == 0
    assert [s.file_path for s in opened] == ["B.txt"]
    opened[0].close()


def test_context_change_keeps_selected_commit_when_range_is_marked(session_for, renamed_repo):
    _, (c1, c2, c3, c4) = renamed_repo
    session = session_for()
    session.load()
    session.select(3)
    session.toggle_mark()
    session.select(0)
    session.toggle_mark()
    _content(session)
    session.select(2)
    _content(session)
    assert session.delivery.fingerprint.commit_id == c2
    session.set_context_lines(4)
    _content(session)
    fp = session.delivery.fingerprint
    assert fp.commit_id == c2
    assert fp.target == CompareTarget.parent(c1)
    assert fp.context_lines == 4
    assert session.snapshot().marks == (c1, c4)


def test_context_change_rebuilds_shown_range(session_for, renamed_repo):
    _, (c1, c2, c3, c4) = renamed_repo
    session = session_for()
    session.load()
    session.select(3)
    session.toggle_mark()
    session.select(0)
    session.toggle_mark()
    _content(session)
    session.set_context_lines(5)
    _content(session)
    fp = session.delivery.fingerprint
    assert (fp.commit_id, fp.target, fp.context_lines) == (c4, CompareTarget.commit(c1), 5)


def test_unmarking_shown_range_returns_to_own_diff(session_for, renamed_repo):
    _, (c1, c2, c3, c4) = renamed_repo
    session = session_for()
    session.load()
    session.select(3)
    session.toggle_mark()
    session.select(0)
    session.toggle_mark()
    _content(session)
    assert session.toggle_mark() is not None
    _content(session)
    assert session.delivery.fingerprint.target == CompareTarget.parent(c3)
    assert session.snapshot().marks == (c1,)
