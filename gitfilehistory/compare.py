"""Range compare mode: up to two marked commits diffed against each other."""
from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class RangeCompare:
    """Holds zero, one or two marked commit ids.

    Marks survive normal navigation and are only cleared by cancel().
    """

    def __init__(self) -> None:
        self.first: Optional[str] = None
        self.second: Optional[str] = None

    @property
    def marks(self) -> tuple[str, ...]:
        return tuple(m for m in (self.first, self.second) if m is not None)

    @property
    def active(self) -> bool:
        """True when two commits are marked."""
        return self.first is not None and self.second is not None

    def is_marked(self, commit_id: str) -> bool:
        return commit_id in self.marks

    def toggle(self, commit_id: str) -> Optional[tuple[str, str]]:
        """Mark or unmark commit_id.

        Returns the (first, second) pair when two commits end up marked.
        Marking a third commit replaces the second mark.
        """
        if commit_id == self.first:
            self.first, self.second = self.second, None
        elif commit_id == self.second:
            self.second = None
        elif self.first is None:
            self.first = commit_id
        else:
            self.second = commit_id
        logger.debug(f"RangeCompare.toggle: {commit_id[:7]} -> marks={self.marks}")
        if self.active:
            return self.first, self.second
        return None

    def cancel(self) -> None:
        self.first = None
        self.second = None
