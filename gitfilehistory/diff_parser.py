"""Turn raw unified diff text into structured DiffContent."""
from __future__ import annotations

import io
import itertools
import logging
import re
from typing import Iterator, Optional

from .models import (
    Addition,
    BinaryMarker,
    Context,
    Deletion,
    DiffContent,
    DiffLine,
    FileHeader,
    HunkHeader,
)

logger = logging.getLogger(__name__)

HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@ ?(.*)$")
BINARY_PREFIXES = ("Binary files ", "GIT binary patch")
FILE_START_PREFIXES = ("diff --git", "diff --cc", "diff --combined")


def parse_hunk_header(line: str) -> Optional[HunkHeader]:
    """Parse `@@ -a[,b] +c[,d] @@ label`; omitted counts default to 1."""
    m = HUNK_RE.match(line)
    if not m:
        return None
    old_start, old_count, new_start, new_count, label = m.groups()
    return HunkHeader(
        old_start=int(old_start),
        old_count=int(old_count) if old_count is not None else 1,
        new_start=int(new_start),
        new_count=int(new_count) if new_count is not None else 1,
        label=label or "",
    )


def _iter_raw_lines(text: str) -> Iterator[str]:
    for line in io.StringIO(text):
        yield line[:-1] if line.endswith("\n") else line


def iter_diff_lines(text: str) -> Iterator[DiffLine]:
    """Classify each line of a unified diff by its leading marker.

    Lines before the first hunk of a file section are headers. A binary
    marker ends classification for the rest of that file section.
    """
    in_hunk = False
    skipping_binary = False
    blob: Optional[str] = None
    for raw in _iter_raw_lines(text):
        if raw.startswith(FILE_START_PREFIXES):
            in_hunk = False
            skipping_binary = False
            blob = None
            yield FileHeader(raw)
            continue
        if skipping_binary:
            continue
        if not in_hunk and raw.startswith(BINARY_PREFIXES):
            skipping_binary = True
            yield BinaryMarker(detail=raw, blob=blob)
            continue
        if raw.startswith("@@"):
            hunk = parse_hunk_header(raw)
            if hunk is not None:
                in_hunk = True
                yield hunk
                continue
            logger.debug(f"iter_diff_lines: unparsable hunk header {raw!r}")
        if in_hunk:
            if raw.startswith("+"):
                yield Addition(raw[1:])
            elif raw.startswith("-"):
                yield Deletion(raw[1:])
            elif raw.startswith(" "):
                yield Context(raw[1:])
            elif raw.startswith("\\") or raw == "":
                yield Context(raw)
            else:
                in_hunk = False
                yield FileHeader(raw)
            continue
        if not raw:
            continue
        if raw.startswith("index "):
            parts = raw.split()
            if len(parts) >= 2:
                blob = parts[1]
        yield FileHeader(raw)


def parse_diff(text: str, max_lines: Optional[int] = None) -> DiffContent:
    """Parse diff text, keeping at most max_lines classified lines.

    Lines past the cap are counted but not stored.
    """
    lines = iter_diff_lines(text)
    if max_lines is None:
        return DiffContent(lines=tuple(lines))
    kept = tuple(itertools.islice(lines, max_lines))
    remaining = sum(1 for _ in lines)
    if remaining:
        logger.debug(f"parse_diff: truncated at {max_lines} lines, {remaining} remaining")
    return DiffContent(lines=kept, remaining=remaining)


def side_by_side_indices(content: DiffContent) -> list[tuple[Optional[int], Optional[int]]]:
    """Line-indexed dual rendering: (old side, new side) indices into content.lines per row.

    Headers and context appear on both sides. A run of deletions followed by
    additions is paired row by row, the shorter side padded with None.
    """
    rows: list[tuple[Optional[int], Optional[int]]] = []
    deleted: list[int] = []
    added: list[int] = []

    def flush() -> None:
        rows.extend(itertools.zip_longest(deleted, added))
        deleted.clear()
        added.clear()

    for idx, line in enumerate(content.lines):
        if isinstance(line, Deletion):
            if added:
                flush()
            deleted.append(idx)
        elif isinstance(line, Addition):
            added.append(idx)
        else:
            flush()
            rows.append((idx, idx))
    flush()
    return rows


def side_by_side_rows(content: DiffContent) -> list[tuple[Optional[DiffLine], Optional[DiffLine]]]:
    """Same pairing as side_by_side_indices, with the lines themselves."""

    def line_at(idx: Optional[int]) -> Optional[DiffLine]:
        return content.lines[idx] if idx is not None else None

    return [(line_at(old), line_at(new)) for old, new in side_by_side_indices(content)]
