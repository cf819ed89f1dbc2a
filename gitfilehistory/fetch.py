"""Diff fetch pipeline: pick what to compare, run git, parse the result."""
from __future__ import annotations

import logging
from typing import Optional

from .diff_parser import parse_diff
from .errors import CommandFailed, GitCommandError
from .git import GitRepository
from .history import History
from .models import (
    WORKING_TREE,
    CompareTarget,
    DiffFingerprint,
    FetchResult,
    NotFoundAtCommit,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 3
DEFAULT_MAX_LINES = 20000

# stderr fragments git prints when a path or revision is missing
_MISSING_MARKERS = ("does not exist", "pathspec", "exists on disk, but not in")


class DiffFetchPipeline:
    """Maps commits to fingerprints and fingerprints to parsed diffs.

    fetch() only reads repository state and the read-only History, so it is
    safe to call from worker threads.
    """

    def __init__(
        self,
        repo: GitRepository,
        history: History,
        context_lines: int = DEFAULT_CONTEXT_LINES,
        max_lines: Optional[int] = DEFAULT_MAX_LINES,
    ) -> None:
        self.repo = repo
        self.history = history
        self.context_lines = context_lines
        self.max_lines = max_lines

    def fingerprint_for(self, commit_id: str, parent_index: int = 0) -> DiffFingerprint:
        """Fingerprint for the change a single commit introduced.

        A merge is compared with its first parent unless parent_index picks
        another one; a root commit is compared with the empty tree. The
        working-tree entry is compared with HEAD.
        """
        path = self.history.resolver.resolve(commit_id)
        record = self.history.get(commit_id)
        if record is not None and record.is_working_tree:
            head = record.parents[0] if record.parents else WORKING_TREE
            return DiffFingerprint(head, CompareTarget.working(), self.context_lines, path)
        parents = record.parents if record is not None else ()
        if not parents:
            target = CompareTarget.parent(None)
        else:
            target = CompareTarget.parent(parents[parent_index % len(parents)])
        return DiffFingerprint(commit_id, target, self.context_lines, path)

    def range_fingerprint(self, first_id: str, second_id: str) -> DiffFingerprint:
        """Fingerprint comparing two history entries, always older..newer."""
        first = self.history.index_of(first_id)
        second = self.history.index_of(second_id)
        if first == second:
            raise ValueError("range compare needs two different commits")
        # the list is newest first: the larger index is the older commit
        older, newer = (first_id, second_id) if first > second else (second_id, first_id)
        if newer == WORKING_TREE:
            return DiffFingerprint(
                older, CompareTarget.working(), self.context_lines, self.history.resolver.resolve(WORKING_TREE)
            )
        return DiffFingerprint(
            newer, CompareTarget.commit(older), self.context_lines, self.history.resolver.resolve(newer)
        )

    def pathspec(self, fp: DiffFingerprint) -> list[str]:
        """Paths passed to git: the resolved path plus the path on the older side if it differs."""
        paths = [fp.path]
        other: Optional[str] = None
        target = fp.target
        if target.kind == CompareTarget.PARENT and target.ref is not None:
            record = self.history.get(fp.commit_id)
            if record is not None and record.rename is not None and record.rename.new_path == fp.path:
                other = record.rename.old_path
        elif target.kind == CompareTarget.COMMIT:
            other = self.history.resolver.resolve(target.ref)
        elif target.kind == CompareTarget.WORKING and self.history.get(fp.commit_id) is not None:
            other = self.history.resolver.resolve(fp.commit_id)
        if other and other not in paths:
            paths.append(other)
        return paths

    def _exists_at(self, commit_id: str, paths: list[str]) -> bool:
        return any(self.repo.path_exists_at(commit_id, p) for p in paths)

    def fetch(self, fp: DiffFingerprint) -> FetchResult:
        """Run the diff for fp and parse it.

        Returns NotFoundAtCommit when the path exists on neither side of the
        comparison. Raises CommandFailed when git fails for another reason.
        """
        paths = self.pathspec(fp)
        target = fp.target
        ctx = fp.context_lines
        logger.debug(f"DiffFetchPipeline.fetch: {fp.describe()} paths={paths}")
        try:
            if target.kind == CompareTarget.WORKING:
                if fp.commit_id != WORKING_TREE and self._exists_at(fp.commit_id, paths):
                    raw = self.repo.diff_working_tree(fp.commit_id, paths, ctx)
                elif self.repo.path_exists_in_working_tree(fp.path):
                    raw = self.repo.diff_new_file(fp.path, ctx)
                else:
                    return NotFoundAtCommit(WORKING_TREE, fp.path)
            elif target.is_empty_tree:
                if not self._exists_at(fp.commit_id, paths):
                    return NotFoundAtCommit(fp.commit_id, fp.path)
                raw = self.repo.show_root(fp.commit_id, paths, ctx)
            else:
                base = target.ref
                if not self._exists_at(fp.commit_id, paths) and not self._exists_at(base, paths):
                    return NotFoundAtCommit(fp.commit_id, fp.path)
                raw = self.repo.diff(base, fp.commit_id, paths, ctx)
        except GitCommandError as e:
            if any(marker in e.stderr for marker in _MISSING_MARKERS):
                logger.debug(f"DiffFetchPipeline.fetch: path missing: {e.stderr.strip()}")
                return NotFoundAtCommit(fp.commit_id, fp.path)
            logger.debug(f"DiffFetchPipeline.fetch: git failed: {e.stderr.strip()}")
            raise CommandFailed(e.stderr) from e
        return parse_diff(raw, self.max_lines)
