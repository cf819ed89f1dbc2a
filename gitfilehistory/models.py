"""Data model shared by the history, diff, cache and search components.

Every value here is immutable once constructed so it can be handed across
threads and to the presentation layer without copying.
"""
from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Optional, Union

# Pseudo commit id used for uncommitted changes in the working tree
WORKING_TREE = "WORKING_TREE"


@dataclass(frozen=True)
class RenameDescriptor:
    old_path: str
    new_path: str
    similarity: int


@dataclass(frozen=True)
class CommitRecord:
    """One entry of the file's history, newest first in the history list."""

    commit_id: str
    short_id: str
    author: str
    date: str
    subject: str
    rename: Optional[RenameDescriptor] = None
    parents: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return not self.parents and not self.is_working_tree

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def is_working_tree(self) -> bool:
        return self.commit_id == WORKING_TREE

    @classmethod
    def working_tree(cls, status_text: str, head: Optional[str] = None) -> "CommitRecord":
        """Build the pseudo record shown above the newest commit."""
        return cls(
            commit_id=WORKING_TREE,
            short_id="WT",
            author="Working tree",
            date="",
            subject=status_text,
            parents=(head,) if head else (),
        )


@dataclass(frozen=True)
class CompareTarget:
    """What a commit is diffed against.

    kind is one of "parent", "commit" or "working_tree". A "parent" target
    with no ref means the empty tree (root commit).
    """

    kind: str
    ref: Optional[str] = None

    PARENT = "parent"
    COMMIT = "commit"
    WORKING = "working_tree"

    @classmethod
    def parent(cls, ref: Optional[str]) -> "CompareTarget":
        return cls(cls.PARENT, ref)

    @classmethod
    def commit(cls, ref: str) -> "CompareTarget":
        return cls(cls.COMMIT, ref)

    @classmethod
    def working(cls) -> "CompareTarget":
        return cls(cls.WORKING, None)

    @property
    def is_empty_tree(self) -> bool:
        return self.kind == self.PARENT and self.ref is None

    def describe(self) -> str:
        if self.kind == self.WORKING:
            return "working tree"
        if self.is_empty_tree:
            return "empty tree"
        return self.ref[:7]


@dataclass(frozen=True)
class DiffFingerprint:
    """Identity of one diff computation; equal fingerprints are the same request."""

    commit_id: str
    target: CompareTarget
    context_lines: int
    path: str

    def describe(self) -> str:
        head = "working tree" if self.commit_id == WORKING_TREE else self.commit_id[:7]
        if self.target.kind == CompareTarget.COMMIT:
            return f"{self.target.describe()}..{head} {self.path}"
        return f"{head} vs {self.target.describe()} {self.path}"


# Diff line variants. text never includes the leading diff marker.


@dataclass(frozen=True)
class FileHeader:
    text: str

    @property
    def raw(self) -> str:
        return self.text


@dataclass(frozen=True)
class HunkHeader:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    label: str = ""

    @property
    def raw(self) -> str:
        head = f"@@ -{self.old_start},{self.old_count} +{self.new_start},{self.new_count} @@"
        return f"{head} {self.label}" if self.label else head


@dataclass(frozen=True)
class Addition:
    text: str

    @property
    def raw(self) -> str:
        return "+" + self.text


@dataclass(frozen=True)
class Deletion:
    text: str

    @property
    def raw(self) -> str:
        return "-" + self.text


@dataclass(frozen=True)
class Context:
    text: str

    @property
    def raw(self) -> str:
        # "\ No newline at end of file" is kept verbatim
        if self.text.startswith("\\"):
            return self.text
        return " " + self.text


@dataclass(frozen=True)
class BinaryMarker:
    detail: str = "Binary files differ"
    blob: Optional[str] = None

    @property
    def raw(self) -> str:
        return self.detail


DiffLine = Union[FileHeader, HunkHeader, Addition, Deletion, Context, BinaryMarker]

CONTENT_LINE_TYPES = (Addition, Deletion, Context)
CHANGE_LINE_TYPES = (Addition, Deletion)


@dataclass(frozen=True)
class DiffContent:
    """Parsed diff. remaining > 0 means the output was cut at the line cap."""

    lines: tuple[DiffLine, ...] = ()
    remaining: int = 0
    change_starts: tuple[int, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        starts = []
        previous_changed = False
        for idx, line in enumerate(self.lines):
            changed = isinstance(line, CHANGE_LINE_TYPES)
            if changed and not previous_changed:
                starts.append(idx)
            previous_changed = changed
        object.__setattr__(self, "change_starts", tuple(starts))

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def truncated(self) -> bool:
        return self.remaining > 0

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def is_binary(self) -> bool:
        return any(isinstance(line, BinaryMarker) for line in self.lines)

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines if isinstance(line, Addition))

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if isinstance(line, Deletion))

    def next_change(self, line_index: int) -> Optional[int]:
        """Start of the first change block after line_index."""
        pos = bisect.bisect_right(self.change_starts, line_index)
        if pos < len(self.change_starts):
            return self.change_starts[pos]
        return None

    def previous_change(self, line_index: int) -> Optional[int]:
        """Start of the last change block before line_index."""
        pos = bisect.bisect_left(self.change_starts, line_index)
        if pos > 0:
            return self.change_starts[pos - 1]
        return None


@dataclass(frozen=True)
class NotFoundAtCommit:
    """The tracked path does not exist at the commit (a valid, cacheable result)."""

    commit_id: str
    path: str

    def describe(self) -> str:
        return f"{self.path} is not present at {self.commit_id[:7]}"


FetchResult = Union[DiffContent, NotFoundAtCommit]


@dataclass(frozen=True)
class FetchRequest:
    fingerprint: Optional[DiffFingerprint]
    generation: int


@dataclass(frozen=True)
class SearchMatch:
    line_index: int
    start: int
    end: int
