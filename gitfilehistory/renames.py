"""Rename tracking: which path a followed file had at each commit."""
from __future__ import annotations

import logging
import re
import threading
from typing import Iterable, Mapping, Optional, Sequence

from .errors import PathUnresolved
from .models import WORKING_TREE, RenameDescriptor

logger = logging.getLogger(__name__)

# git's own default for --find-renames
RENAME_THRESHOLD = 50

_COMMIT_LINE_RE = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")
_RENAME_STATUS_RE = re.compile(r"^R(\d{1,3})$")

RenameTable = Mapping[str, RenameDescriptor]


def build_rename_table(status_lines: Iterable[str], threshold: int = RENAME_THRESHOLD) -> dict[str, RenameDescriptor]:
    """Build commit id -> RenameDescriptor from `git log --name-status --format=%H` lines.

    A rename line `R<score>\\told\\tnew` at or above threshold produces a
    descriptor for the commit whose id line precedes it. Malformed rename
    lines are skipped, so that commit keeps the previously known path.
    """
    table: dict[str, RenameDescriptor] = {}
    current: Optional[str] = None
    for line in status_lines:
        line = line.rstrip("\n")
        if not line:
            continue
        if _COMMIT_LINE_RE.match(line):
            current = line
            continue
        if not line.startswith("R"):
            continue
        parts = line.split("\t")
        m = _RENAME_STATUS_RE.match(parts[0])
        if current is None or not m or len(parts) != 3 or not parts[1] or not parts[2]:
            logger.debug(f"build_rename_table: skipping malformed rename record {line!r}")
            continue
        score = int(m.group(1))
        if score > 100:
            logger.debug(f"build_rename_table: skipping rename with score {score}: {line!r}")
            continue
        if score < threshold:
            continue
        if current in table:
            logger.debug(f"build_rename_table: second rename for {current}, keeping the first")
            continue
        table[current] = RenameDescriptor(old_path=parts[1], new_path=parts[2], similarity=score)
    return table


class RenameResolver:
    """Resolve the path of the followed file at any commit of the history.

    commit_ids is the history order, newest first. The walk starts from
    file_path at the newest commit; a rename descriptor whose new path is the
    tracked path switches the tracked path to the old path for every older
    commit. When branches disagree the most recent record wins.
    """

    def __init__(self, file_path: str, commit_ids: Sequence[str], table: Optional[RenameTable] = None) -> None:
        self.file_path = file_path
        self.commit_ids = tuple(commit_ids)
        self.table: RenameTable = dict(table or {})
        self._paths: Optional[dict[str, str]] = None
        self._lock = threading.Lock()

    def _walk(self) -> dict[str, str]:
        paths: dict[str, str] = {}
        tracked = self.file_path
        for commit_id in self.commit_ids:
            desc = self.table.get(commit_id)
            if desc is not None and desc.new_path == tracked and desc.old_path == desc.new_path:
                logger.debug(f"RenameResolver._walk: self rename at {commit_id}, stopping")
                break
            paths[commit_id] = tracked
            if desc is not None and desc.new_path == tracked:
                tracked = desc.old_path
        return paths

    def resolve(self, commit_id: str) -> str:
        """Path valid at commit_id; raises PathUnresolved outside the history."""
        if commit_id == WORKING_TREE:
            return self.file_path
        if self._paths is None:
            with self._lock:
                if self._paths is None:
                    self._paths = self._walk()
        path = self._paths.get(commit_id)
        if path is not None:
            return path
        if commit_id in self.commit_ids:
            raise PathUnresolved(commit_id, "rename chain loops back on itself")
        raise PathUnresolved(commit_id, "commit is not part of the loaded history")

    def renamed_paths(self) -> list[str]:
        """Every path the file had, newest first."""
        seen = [self.file_path]
        for commit_id in self.commit_ids:
            try:
                path = self.resolve(commit_id)
            except PathUnresolved:
                break
            if path != seen[-1]:
                seen.append(path)
        return seen
