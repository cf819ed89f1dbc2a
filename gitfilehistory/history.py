"""Build the newest-first commit list for one file."""
from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import Optional

from .errors import GitCommandError, NotARepository, RepositoryQueryFailed
from .git import LOG_FIELD_SEP, GitRepository
from .models import CommitRecord
from .renames import RENAME_THRESHOLD, RenameResolver, build_rename_table

logger = logging.getLogger(__name__)


def parse_log_line(line: str) -> Optional[tuple[str, str, str, str, tuple[str, ...], str]]:
    """Split one `git log` line produced with LOG_FORMAT.

    Returns (commit_id, short_id, author, date, parents, subject), or None
    when the line does not have the expected fields.
    """
    parts = line.split(LOG_FIELD_SEP)
    if len(parts) < 6 or not parts[0]:
        return None
    commit_id, short_id, author, date, parents = parts[:5]
    # a subject containing NUL is not possible, but keep whatever follows
    subject = LOG_FIELD_SEP.join(parts[5:])
    return commit_id, short_id, author, date, tuple(parents.split()), subject


@dataclass(frozen=True)
class History:
    """Commit list plus the rename resolver built with it.

    Read-only once built; safe to share with worker threads.
    """

    file_path: str
    commits: tuple[CommitRecord, ...]
    resolver: RenameResolver
    follow: bool = True
    first_parent: bool = False

    def __len__(self) -> int:
        return len(self.commits)

    def index_of(self, commit_id: str) -> int:
        for idx, commit in enumerate(self.commits):
            if commit.commit_id == commit_id:
                return idx
        raise KeyError(commit_id)

    def get(self, commit_id: str) -> Optional[CommitRecord]:
        for commit in self.commits:
            if commit.commit_id == commit_id:
                return commit
        return None


class HistoryBuilder:
    """Runs the log and rename queries for a file and pairs their results."""

    def __init__(self, repo: GitRepository, rename_threshold: int = RENAME_THRESHOLD) -> None:
        self.repo = repo
        self.rename_threshold = rename_threshold

    def load(
        self,
        file_path: str,
        follow: bool = True,
        first_parent: bool = False,
        include_working_tree: bool = True,
    ) -> History:
        """Load the history of file_path.

        With follow disabled only commits touching the literal path are
        listed and no rename descriptors are attached. An empty history is
        valid. A failing log query raises RepositoryQueryFailed.
        """
        try:
            raw = self.repo.log(file_path, follow=follow, first_parent=first_parent)
        except GitCommandError as e:
            logger.debug(f"HistoryBuilder.load: log failed: {e.stderr}")
            if "not a git repository" in e.stderr.lower():
                raise NotARepository(self.repo.root) from e
            raise RepositoryQueryFailed(e.stderr) from e

        entries = []
        for line in raw:
            parsed = parse_log_line(line)
            if parsed is None:
                logger.debug(f"HistoryBuilder.load: skipping malformed log line {line!r}")
                continue
            entries.append(parsed)

        table = {}
        if follow and entries:
            try:
                status = self.repo.status_history(file_path, first_parent=first_parent)
                table = build_rename_table(status, self.rename_threshold)
            except GitCommandError as e:
                # history is still usable without rename data
                logger.debug(f"HistoryBuilder.load: status history failed: {e.stderr}")
                logger.debug(traceback.format_exc())
                table = {}

        commits = [
            CommitRecord(
                commit_id=commit_id,
                short_id=short_id,
                author=author,
                date=date,
                subject=subject,
                rename=table.get(commit_id),
                parents=parents,
            )
            for commit_id, short_id, author, date, parents, subject in entries
        ]

        if include_working_tree:
            status_text = self.repo.working_tree_status(file_path)
            if status_text:
                commits.insert(0, CommitRecord.working_tree(status_text, head=self.repo.head()))

        resolver = RenameResolver(file_path, [c.commit_id for c in commits], table)
        logger.debug(
            f"HistoryBuilder.load: {file_path}: {len(commits)} commits, {len(table)} renames "
            f"(follow={follow}, first_parent={first_parent})"
        )
        return History(
            file_path=file_path,
            commits=tuple(commits),
            resolver=resolver,
            follow=follow,
            first_parent=first_parent,
        )
