"""Tests for history loading against real repositories."""
import pytest

from gitfilehistory.errors import GitCommandError, NotARepository, RepositoryQueryFailed
from gitfilehistory.git import WT_BOTH, WT_MODIFIED, WT_STAGED, GitRepository
from gitfilehistory.history import HistoryBuilder, parse_log_line
from gitfilehistory.models import WORKING_TREE

from .conftest import FILE_LINES


class TestParseLogLine:
    def test_fields(self):
        line = "\x00".join(["a" * 40, "aaaaaaa", "Jo Dev", "2024-01-02 03:04:05", "b" * 40 + " " + "c" * 40, "merge it"])
        commit_id, short_id, author, date, parents, subject = parse_log_line(line)
        assert commit_id == "a" * 40
        assert author == "Jo Dev"
        assert parents == ("b" * 40, "c" * 40)
        assert subject == "merge it"

    def test_root_commit_has_no_parents(self):
        line = "\x00".join(["a" * 40, "aaaaaaa", "Jo", "2024-01-02 03:04:05", "", "initial"])
        assert parse_log_line(line)[4] == ()

    def test_malformed(self):
        assert parse_log_line("not a log line") is None


class TestHistoryBuilder:
    def test_follow_lists_commits_across_rename(self, renamed_repo):
        builder, (c1, c2, c3, c4) = renamed_repo
        history = HistoryBuilder(builder.repository).load("B.txt")
        assert [c.commit_id for c in history.commits] == [c4, c3, c2, c1]
        assert history.commits[1].rename is not None
        assert history.commits[1].rename.old_path == "A.txt"
        assert history.commits[1].rename.new_path == "B.txt"
        assert history.resolver.resolve(c2) == "A.txt"
        assert history.commits[-1].is_root
        assert history.commits[0].parents == (c3,)

    def test_without_follow_stops_at_rename(self, renamed_repo):
        builder, (c1, c2, c3, c4) = renamed_repo
        history = HistoryBuilder(builder.repository).load("B.txt", follow=False)
        assert [c.commit_id for c in history.commits] == [c4, c3]
        assert all(c.rename is None for c in history.commits)

    def test_index_of_and_get(self, renamed_repo):
        builder, (c1, c2, c3, c4) = renamed_repo
        history = HistoryBuilder(builder.repository).load("B.txt")
        assert history.index_of(c2) == 2
        assert history.get(c3).subject == "rename A to B"
        assert history.get("0" * 40) is None
        with pytest.raises(KeyError):
            history.index_of("0" * 40)

    def test_untracked_path_has_empty_history(self, renamed_repo):
        builder, _ = renamed_repo
        history = HistoryBuilder(builder.repository).load("nothing.txt")
        assert len(history) == 0

    def test_working_tree_entry(self, renamed_repo):
        builder, commits = renamed_repo
        builder.write("B.txt", FILE_LINES + ["uncommitted"])
        history = HistoryBuilder(builder.repository).load("B.txt")
        top = history.commits[0]
        assert top.commit_id == WORKING_TREE
        assert top.subject == WT_MODIFIED
        assert top.parents == (commits[-1],)
        assert len(history) == 5

    def test_working_tree_staged_and_modified(self, renamed_repo):
        builder, _ = renamed_repo
        builder.write("B.txt", FILE_LINES + ["staged"])
        builder.git("add", "B.txt")
        assert HistoryBuilder(builder.repository).load("B.txt").commits[0].subject == WT_STAGED
        builder.write("B.txt", FILE_LINES + ["staged", "and more"])
        assert HistoryBuilder(builder.repository).load("B.txt").commits[0].subject == WT_BOTH

    def test_working_tree_entry_can_be_disabled(self, renamed_repo):
        builder, _ = renamed_repo
        builder.write("B.txt", ["changed"])
        history = HistoryBuilder(builder.repository).load("B.txt", include_working_tree=False)
        assert not history.commits[0].is_working_tree


def test_not_a_repository(tmp_path):
    with pytest.raises(NotARepository):
        GitRepository.discover(str(tmp_path))


class _FailingRepo:
    root = "/nowhere"

    def __init__(self, stderr):
        self.stderr = stderr

    def log(self, path, follow=True, first_parent=False):
        raise GitCommandError(["git", "log"], 128, self.stderr)


def test_log_failure_raises_repository_query_failed():
    with pytest.raises(RepositoryQueryFailed) as exc:
        HistoryBuilder(_FailingRepo("fatal: bad revision 'HEAD'\n")).load("B.txt")
    assert exc.value.diagnostic.startswith("fatal: bad revision")


def test_log_failure_outside_repository():
    with pytest.raises(NotARepository):
        HistoryBuilder(_FailingRepo("fatal: not a git repository (or any of the parent directories)")).load("B.txt")
