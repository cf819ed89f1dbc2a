"""Extra commit metadata shown in the commit info popup."""
from __future__ import annotations

import logging
import re
import traceback
from dataclasses import dataclass, field
from typing import Optional

from .errors import GitCommandError
from .git import GitRepository

logger = logging.getLogger(__name__)

_STAT_PART_RE = re.compile(r"(\d+) (file|insertion|deletion)")


@dataclass(frozen=True)
class CommitStats:
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0


@dataclass(frozen=True)
class CommitDetails:
    commit_id: str
    parents: tuple[str, ...] = ()
    branches: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    stats: Optional[CommitStats] = None
    errors: tuple[str, ...] = field(default=())


def parse_stat_summary(text: str) -> Optional[CommitStats]:
    """Parse the "N files changed, X insertions(+), Y deletions(-)" summary line."""
    for line in reversed(text.splitlines()):
        if "changed" not in line:
            continue
        values = {"file": 0, "insertion": 0, "deletion": 0}
        for count, kind in _STAT_PART_RE.findall(line):
            values[kind] = int(count)
        return CommitStats(values["file"], values["insertion"], values["deletion"])
    return None


def load_commit_details(repo: GitRepository, commit_id: str) -> CommitDetails:
    """Collect parents, branches, tags and diffstat; failed queries leave fields empty."""
    errors = []
    parents: tuple[str, ...] = ()
    branches: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    stats = None
    try:
        parents = tuple(repo.parents(commit_id))
    except GitCommandError as e:
        logger.debug(f"load_commit_details: parents: exception: {e}")
        errors.append(e.stderr.strip())
    try:
        branches = tuple(repo.branches_containing(commit_id))
    except GitCommandError as e:
        logger.debug(f"load_commit_details: branches: exception: {e}")
        errors.append(e.stderr.strip())
    try:
        tags = tuple(repo.tags_at(commit_id))
    except GitCommandError as e:
        logger.debug(f"load_commit_details: tags: exception: {e}")
        errors.append(e.stderr.strip())
    try:
        stats = parse_stat_summary(repo.stat(commit_id))
    except GitCommandError as e:
        logger.debug(f"load_commit_details: stat: exception: {e}")
        logger.debug(traceback.format_exc())
        errors.append(e.stderr.strip())
    return CommitDetails(commit_id, parents, branches, tags, stats, tuple(errors))
