"""Version-control query interface.

Text queries (log, diff, show) run the git executable; repository discovery,
object lookups and working-tree status go through pygit2.
"""
from __future__ import annotations

import logging
import os
import subprocess
import traceback
from typing import Optional, Sequence

import pygit2

from .errors import GitCommandError, NotARepository

logger = logging.getLogger(__name__)

# git log format: full id, short id, author, date, parents, subject
LOG_FIELD_SEP = "\x00"
LOG_FORMAT = "%H%x00%h%x00%an%x00%ad%x00%P%x00%s"
LOG_DATE_FORMAT = "format:%Y-%m-%d %H:%M:%S"

WT_MODIFIED = "Modified"
WT_STAGED = "Staged"
WT_BOTH = "Modified + Staged"


class GitRepository:
    """A working tree plus the git commands the history engine needs."""

    def __init__(self, root: str, git: str = "git") -> None:
        self.root = os.path.abspath(root)
        self.git = git
        self._repo: Optional[pygit2.Repository] = None

    @classmethod
    def discover(cls, path: str) -> "GitRepository":
        """Find the repository containing path, or raise NotARepository."""
        start = os.path.abspath(path)
        # the file may be deleted from the working tree; start at the nearest existing directory
        while not os.path.isdir(start):
            parent = os.path.dirname(start)
            if parent == start:
                break
            start = parent
        try:
            gitdir = pygit2.discover_repository(start)
        except Exception as e:
            logger.debug(f"GitRepository.discover: exception: {e}")
            logger.debug(traceback.format_exc())
            gitdir = None
        if not gitdir:
            raise NotARepository(path)
        repo = pygit2.Repository(gitdir)
        if not repo.workdir:
            # bare repositories have no files to follow
            raise NotARepository(path)
        instance = cls(repo.workdir)
        instance._repo = repo
        logger.debug(f"GitRepository.discover: root={instance.root}")
        return instance

    @property
    def repo(self) -> pygit2.Repository:
        if self._repo is None:
            self._repo = pygit2.Repository(self.root)
        return self._repo

    def relpath(self, path: str) -> str:
        """Repository-relative, slash separated form of path."""
        full = path if os.path.isabs(path) else os.path.join(os.getcwd(), path)
        rel = os.path.relpath(os.path.realpath(full), os.path.realpath(self.root))
        if rel.startswith(".."):
            # already relative to the root, e.g. a path taken from history
            rel = path
        return rel.replace(os.sep, "/")

    def run(self, args: Sequence[str], ok_codes: Sequence[int] = (0,)) -> str:
        """Run git in the repository root and return stdout."""
        cmd = [self.git, *args]
        logger.debug(f"GitRepository.run: {' '.join(cmd)}")
        try:
            proc = subprocess.run(cmd, cwd=self.root, capture_output=True, text=True, errors="replace")
        except OSError as e:
            raise GitCommandError(cmd, -1, str(e)) from e
        if proc.returncode not in ok_codes:
            raise GitCommandError(cmd, proc.returncode, proc.stderr or proc.stdout or "")
        return proc.stdout

    # history queries

    def log(self, path: str, follow: bool = True, first_parent: bool = False) -> list[str]:
        """Raw NUL separated commit lines for path, newest first."""
        args = ["log"]
        if follow:
            args.append("--follow")
        if first_parent:
            args.append("--first-parent")
        args += [f"--format={LOG_FORMAT}", f"--date={LOG_DATE_FORMAT}", "--", path]
        return [line for line in self.run(args).splitlines() if line]

    def status_history(self, path: str, first_parent: bool = False) -> list[str]:
        """Raw `--name-status` lines, one commit id line before each status block."""
        args = ["log", "--follow", "--name-status", "--format=%H"]
        if first_parent:
            args.append("--first-parent")
        args += ["--", path]
        return [line for line in self.run(args).splitlines() if line]

    def parents(self, commit_id: str) -> list[str]:
        out = self.run(["rev-list", "--parents", "-n1", commit_id])
        parts = out.split()
        return parts[1:]

    def head(self) -> Optional[str]:
        try:
            return str(self.repo.head.target)
        except Exception as e:
            # unborn branch
            logger.debug(f"GitRepository.head: exception: {e}")
            return None

    def path_exists_at(self, commit_id: str, path: str) -> bool:
        try:
            commit = self.repo.revparse_single(commit_id).peel(pygit2.Commit)
        except (KeyError, ValueError, pygit2.GitError) as e:
            logger.debug(f"GitRepository.path_exists_at: cannot resolve {commit_id}: {e}")
            return False
        try:
            commit.tree[path]
        except KeyError:
            return False
        return True

    def path_exists_in_working_tree(self, path: str) -> bool:
        return os.path.exists(os.path.join(self.root, path))

    def working_tree_status(self, path: str) -> Optional[str]:
        """Status text for uncommitted changes to path, None when clean."""
        try:
            flags = self.repo.status_file(path)
        except KeyError:
            return None
        except Exception as e:
            logger.debug(f"GitRepository.working_tree_status: exception: {e}")
            logger.debug(traceback.format_exc())
            return None
        staged = flags & (
            pygit2.GIT_STATUS_INDEX_NEW
            | pygit2.GIT_STATUS_INDEX_MODIFIED
            | pygit2.GIT_STATUS_INDEX_DELETED
            | pygit2.GIT_STATUS_INDEX_RENAMED
        )
        modified = flags & (
            pygit2.GIT_STATUS_WT_MODIFIED
            | pygit2.GIT_STATUS_WT_DELETED
            | pygit2.GIT_STATUS_WT_RENAMED
        )
        if staged and modified:
            return WT_BOTH
        if staged:
            return WT_STAGED
        if modified:
            return WT_MODIFIED
        return None

    # diff queries

    def diff(self, base: str, target: str, paths: Sequence[str], context_lines: int) -> str:
        return self.run(
            ["diff", f"--unified={context_lines}", "--find-renames", base, target, "--", *paths]
        )

    def show_root(self, commit_id: str, paths: Sequence[str], context_lines: int) -> str:
        """Patch of a root commit, i.e. against the empty tree."""
        return self.run(
            ["show", "--patch", "--format=", f"--unified={context_lines}", commit_id, "--", *paths]
        )

    def diff_working_tree(self, commit_id: str, paths: Sequence[str], context_lines: int) -> str:
        return self.run(
            ["diff", f"--unified={context_lines}", "--find-renames", commit_id, "--", *paths]
        )

    def diff_new_file(self, path: str, context_lines: int) -> str:
        """Whole working-tree file as additions; exit status 1 means "differs"."""
        return self.run(
            ["diff", "--no-index", f"--unified={context_lines}", "--", os.devnull, path],
            ok_codes=(0, 1),
        )

    # commit details

    def branches_containing(self, commit_id: str) -> list[str]:
        out = self.run(["branch", "--contains", commit_id, "--format=%(refname:short)"])
        return [line.strip() for line in out.splitlines() if line.strip() and not line.startswith("(")]

    def tags_at(self, commit_id: str) -> list[str]:
        out = self.run(["tag", "--points-at", commit_id])
        return [line.strip() for line in out.splitlines() if line.strip()]

    def stat(self, commit_id: str) -> str:
        return self.run(["show", "--stat", "--format=", commit_id])
