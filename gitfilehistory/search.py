"""In-diff search with cyclic next/previous navigation.

Large diffs are indexed lazily in fixed-size chunks: the viewport plus a
lookahead window first, the rest as navigation reaches it.
"""
from __future__ import annotations

import enum
import logging
import math
import re
from typing import Optional

from .models import CONTENT_LINE_TYPES, DiffContent, SearchMatch

logger = logging.getLogger(__name__)

DEFAULT_INCREMENTAL_THRESHOLD = 5000
DEFAULT_LOOKAHEAD = 500


class SearchStatus(enum.Enum):
    NOT_SEARCHED = "not_searched"
    PENDING = "pending"
    NO_MATCHES = "no_matches"
    MATCHES = "matches"


class SearchIndex:
    """Matches of one pattern in one DiffContent.

    Only addition, deletion and context lines are searched; offsets are into
    the line text (without the diff marker). An index is never patched: a
    new pattern or new content gets a new index.
    """

    def __init__(
        self,
        content: DiffContent,
        pattern: str,
        case_sensitive: bool = False,
        regex: bool = False,
        chunk_size: Optional[int] = None,
        anchor: int = 0,
    ) -> None:
        self.content = content
        self.pattern = pattern
        self.case_sensitive = case_sensitive
        self.anchor = anchor
        self.error: Optional[str] = None
        self.current: Optional[SearchMatch] = None
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            self._regex: Optional[re.Pattern] = re.compile(pattern if regex else re.escape(pattern), flags)
        except re.error as e:
            logger.debug(f"SearchIndex: invalid pattern {pattern!r}: {e}")
            self._regex = None
            self.error = str(e)
        total = len(content.lines)
        self.chunk_size = max(1, chunk_size or total or 1)
        self.chunk_count = math.ceil(total / self.chunk_size) if total else 0
        self._chunks: dict[int, list[SearchMatch]] = {}

    def _scan_chunk(self, chunk: int) -> list[SearchMatch]:
        found = self._chunks.get(chunk)
        if found is not None:
            return found
        found = []
        lines = self.content.lines
        start = chunk * self.chunk_size
        for line_index in range(start, min(start + self.chunk_size, len(lines))):
            line = lines[line_index]
            if not isinstance(line, CONTENT_LINE_TYPES):
                continue
            for m in self._regex.finditer(line.text):
                if m.end() > m.start():
                    found.append(SearchMatch(line_index, m.start(), m.end()))
        self._chunks[chunk] = found
        return found

    def ensure(self, first_line: int, last_line: int) -> None:
        """Index every chunk overlapping lines [first_line, last_line)."""
        if self._regex is None or not self.chunk_count:
            return
        first = max(0, first_line) // self.chunk_size
        last = min(self.chunk_count - 1, max(first_line, last_line - 1) // self.chunk_size)
        for chunk in range(first, last + 1):
            self._scan_chunk(chunk)

    def ensure_complete(self) -> None:
        if self._regex is None:
            return
        for chunk in range(self.chunk_count):
            self._scan_chunk(chunk)

    @property
    def complete(self) -> bool:
        return self._regex is None or len(self._chunks) == self.chunk_count

    @property
    def indexed_chunks(self) -> int:
        return len(self._chunks)

    @property
    def matches(self) -> list[SearchMatch]:
        """Matches found so far, in document order."""
        return [m for chunk in sorted(self._chunks) for m in self._chunks[chunk]]

    @property
    def status(self) -> SearchStatus:
        if self._regex is None:
            return SearchStatus.NO_MATCHES
        if any(self._chunks.values()):
            return SearchStatus.MATCHES
        if self.complete:
            return SearchStatus.NO_MATCHES
        return SearchStatus.PENDING

    def position(self) -> Optional[tuple[int, int]]:
        """1-based position of the current match and total, once fully indexed."""
        if self.current is None or not self.complete:
            return None
        found = self.matches
        return found.index(self.current) + 1, len(found)

    def _origin(self) -> tuple[int, int]:
        if self.current is not None:
            return self.current.line_index, self.current.start
        return self.anchor, -1

    def next(self) -> Optional[SearchMatch]:
        """Move to the next match after the current one, wrapping at the end."""
        if self._regex is None or not self.chunk_count:
            return None
        origin = self._origin()
        first_chunk = min(origin[0] // self.chunk_size, self.chunk_count - 1)
        for step in range(self.chunk_count + 1):
            chunk = (first_chunk + step) % self.chunk_count
            for m in self._scan_chunk(chunk):
                key = (m.line_index, m.start)
                if step == 0 and key <= origin:
                    continue
                if step == self.chunk_count and key > origin:
                    break
                self.current = m
                return m
        return None

    def previous(self) -> Optional[SearchMatch]:
        """Move to the match before the current one, wrapping at the start."""
        if self._regex is None or not self.chunk_count:
            return None
        origin = self._origin()
        first_chunk = min(origin[0] // self.chunk_size, self.chunk_count - 1)
        for step in range(self.chunk_count + 1):
            chunk = (first_chunk - step) % self.chunk_count
            for m in reversed(self._scan_chunk(chunk)):
                key = (m.line_index, m.start)
                if step == 0 and key >= origin:
                    continue
                if step == self.chunk_count and key < origin:
                    break
                self.current = m
                return m
        return None


class SearchEngine:
    """Builds search indexes, switching to lazy indexing for large diffs."""

    def __init__(
        self,
        incremental_threshold: int = DEFAULT_INCREMENTAL_THRESHOLD,
        lookahead: int = DEFAULT_LOOKAHEAD,
    ) -> None:
        self.incremental_threshold = incremental_threshold
        self.lookahead = lookahead

    def index(
        self,
        content: DiffContent,
        pattern: str,
        case_sensitive: bool = False,
        regex: bool = False,
        viewport: tuple[int, int] = (0, 0),
    ) -> SearchIndex:
        """Index pattern in content; viewport is (first visible line, height)."""
        start, height = viewport
        if len(content.lines) > self.incremental_threshold:
            idx = SearchIndex(content, pattern, case_sensitive, regex, chunk_size=self.lookahead, anchor=start)
            idx.ensure(start, start + height + self.lookahead)
            logger.debug(
                f"SearchEngine.index: incremental, {idx.indexed_chunks}/{idx.chunk_count} chunks indexed"
            )
        else:
            idx = SearchIndex(content, pattern, case_sensitive, regex, anchor=start)
            idx.ensure_complete()
        return idx
