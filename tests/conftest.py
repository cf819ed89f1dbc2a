"""Pytest configuration and fixtures for gitfilehistory tests."""
from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from gitfilehistory.git import GitRepository

FILE_LINES = [f"line {i}" for i in range(1, 11)]


def _run_git(*args: str, cwd: Path) -> str:
    """Run git command safely without shell=True."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


class RepoBuilder:
    """Small helper that writes files and records commits in a real repository."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def git(self, *args: str) -> str:
        return _run_git(*args, cwd=self.root)

    def write(self, path: str, lines) -> None:
        full = self.root / path
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text("\n".join(lines) + "\n")

    def commit(self, message: str) -> str:
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD").strip()

    def mv(self, old: str, new: str) -> None:
        self.git("mv", old, new)

    def rm(self, path: str) -> None:
        self.git("rm", "-q", path)

    @property
    def repository(self) -> GitRepository:
        return GitRepository.discover(str(self.root))


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """An empty repository with a committer identity configured."""
    root = tmp_path / "repo"
    root.mkdir()
    _run_git("init", "-q", "-b", "main", cwd=root)
    _run_git("config", "user.email", "test@test.com", cwd=root)
    _run_git("config", "user.name", "Test", cwd=root)
    _run_git("config", "commit.gpgsign", "false", cwd=root)
    return RepoBuilder(root)


@pytest.fixture
def renamed_repo(repo_builder: RepoBuilder):
    """add A.txt -> edit -> rename to B.txt -> edit.

    Returns the builder and the commit ids, oldest first.
    """
    b = repo_builder
    b.write("A.txt", FILE_LINES)
    c1 = b.commit("add A")
    b.write("A.txt", FILE_LINES[:4] + ["line 5 edited"] + FILE_LINES[5:])
    c2 = b.commit("edit A")
    b.mv("A.txt", "B.txt")
    c3 = b.commit("rename A to B")
    b.write("B.txt", FILE_LINES[:4] + ["line 5 edited"] + FILE_LINES[5:] + ["line 11"])
    c4 = b.commit("edit B")
    return b, [c1, c2, c3, c4]
