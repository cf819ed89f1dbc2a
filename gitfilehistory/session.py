"""Session state for browsing one file's history.

The session is the single owner of mutable state: the selection, the marks,
the parent choice for merges and the search index. Components it calls
only get read access to the History.
"""
from __future__ import annotations

import dataclasses
import logging
import traceback
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Optional

from .cache import DiffCache
from .compare import RangeCompare
from .config import Settings
from .errors import HistoryError
from .fetch import DiffFetchPipeline
from .git import GitRepository
from .history import History, HistoryBuilder
from .models import CommitRecord, DiffContent, DiffFingerprint, FetchResult, SearchMatch
from .scheduler import ERROR, Delivery, FetchScheduler
from .search import SearchEngine, SearchIndex, SearchStatus

logger = logging.getLogger(__name__)

STATUS_EMPTY = "empty"
STATUS_LOADING = "loading"
STATUS_READY = "ready"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session for the presentation layer."""

    file_path: str
    commits: tuple[CommitRecord, ...]
    selected_index: int
    parent_index: int
    marks: tuple[str, ...]
    status: str
    delivery: Optional[Delivery]
    search_status: SearchStatus
    search_matches: tuple[SearchMatch, ...]
    current_match: Optional[SearchMatch]
    cache_stats: dict

    @property
    def content(self) -> Optional[DiffContent]:
        if self.delivery is not None and isinstance(self.delivery.result, DiffContent):
            return self.delivery.result
        return None


class HistorySession:
    """Browse the history of one file: select commits, compare, search."""

    def __init__(
        self,
        repo: GitRepository,
        file_path: str,
        settings: Optional[Settings] = None,
        on_update: Optional[Callable[[Delivery], None]] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.repo = repo
        self.settings = settings or Settings()
        self.file_path = repo.relpath(file_path)
        self.on_update = on_update
        self.builder = HistoryBuilder(repo)
        self.cache = DiffCache(self.settings.cache_capacity)
        self.search_engine = SearchEngine(
            incremental_threshold=self.settings.search_incremental_threshold,
            lookahead=self.settings.search_lookahead,
        )
        self.range = RangeCompare()
        self.history: Optional[History] = None
        self.pipeline: Optional[DiffFetchPipeline] = None
        self.selected_index = 0
        self.parent_index = 0
        # True while the diff pane shows the marked range rather than the selected commit
        self.showing_range = False
        self._search: Optional[SearchIndex] = None
        self._search_generation: Optional[int] = None
        self.scheduler = FetchScheduler(
            self._fetch,
            self.cache,
            debounce=self.settings.debounce,
            on_delivered=self._on_delivered,
            executor=executor,
        )

    @classmethod
    def open(cls, path: str, settings: Optional[Settings] = None, **kwargs) -> "HistorySession":
        """Discover the repository containing path and load its history."""
        repo = GitRepository.discover(path)
        session = cls(repo, path, settings, **kwargs)
        session.load()
        return session

    # loading

    def _fetch(self, fp: DiffFingerprint) -> FetchResult:
        pipeline = self.pipeline
        if pipeline is None:
            raise HistoryError("history is not loaded")
        return pipeline.fetch(fp)

    def load(self) -> History:
        """(Re)build the commit list and rename table, then show the newest commit."""
        history = self.builder.load(
            self.file_path,
            follow=self.settings.follow_renames,
            first_parent=self.settings.first_parent,
            include_working_tree=self.settings.show_working_tree,
        )
        self.history = history
        self.pipeline = DiffFetchPipeline(
            self.repo,
            history,
            context_lines=self.settings.context_lines,
            max_lines=self.settings.max_diff_lines,
        )
        self.selected_index = 0
        self.parent_index = 0
        self.range.cancel()
        self.clear_search()
        if history.commits:
            self.select(0)
        return history

    def refresh(self) -> History:
        """Reload history from the repository, dropping every cached diff."""
        self.cache.clear()
        self.scheduler.reset()
        return self.load()

    def set_follow(self, follow: bool) -> History:
        self.settings.follow_renames = follow
        return self.refresh()

    def set_first_parent(self, first_parent: bool) -> History:
        self.settings.first_parent = first_parent
        return self.refresh()

    def set_context_lines(self, context_lines: int) -> Optional[int]:
        """Change the context size and refetch; raises ConfigError when out of range."""
        self.settings = dataclasses.replace(self.settings, context_lines=context_lines)
        if self.pipeline is not None:
            self.pipeline.context_lines = context_lines
        return self._reschedule()

    # selection

    @property
    def commits(self) -> tuple[CommitRecord, ...]:
        return self.history.commits if self.history is not None else ()

    @property
    def selected(self) -> Optional[CommitRecord]:
        if 0 <= self.selected_index < len(self.commits):
            return self.commits[self.selected_index]
        return None

    def _schedule(self, build: Callable[[], DiffFingerprint]) -> int:
        try:
            fp = build()
        except (HistoryError, ValueError, KeyError) as e:
            logger.debug(f"HistorySession._schedule: cannot build fingerprint: {e}")
            logger.debug(traceback.format_exc())
            error = e if isinstance(e, HistoryError) else HistoryError(str(e))
            return self.scheduler.report(None, error)
        return self.scheduler.select(fp)

    def select(self, index: int) -> Optional[int]:
        """Select the commit at index and schedule its diff; returns the generation."""
        if not self.commits:
            return None
        index = max(0, min(index, len(self.commits) - 1))
        self.selected_index = index
        self.parent_index = 0
        self.showing_range = False
        commit = self.commits[index]
        return self._schedule(lambda: self.pipeline.fingerprint_for(commit.commit_id))

    def move(self, delta: int) -> Optional[int]:
        return self.select(self.selected_index + delta)

    def cycle_parent(self) -> Optional[int]:
        """Compare a merge commit with its next parent."""
        commit = self.selected
        if commit is None or not commit.is_merge:
            return None
        self.parent_index = (self.parent_index + 1) % len(commit.parents)
        self.showing_range = False
        parent_index = self.parent_index
        return self._schedule(lambda: self.pipeline.fingerprint_for(commit.commit_id, parent_index))

    def _reschedule(self) -> Optional[int]:
        commit = self.selected
        if commit is None:
            return None
        if self.showing_range and self.range.active:
            first, second = self.range.first, self.range.second
            return self._schedule(lambda: self.pipeline.range_fingerprint(first, second))
        parent_index = self.parent_index
        return self._schedule(lambda: self.pipeline.fingerprint_for(commit.commit_id, parent_index))

    # range compare

    def toggle_mark(self) -> Optional[int]:
        """Mark/unmark the selected commit.

        Two marks schedule a range diff. Unmarking one of them while the range
        is shown goes back to the selected commit's own diff.
        """
        commit = self.selected
        if commit is None:
            return None
        was_showing = self.showing_range and self.range.active
        pair = self.range.toggle(commit.commit_id)
        if pair is not None:
            self.showing_range = True
            return self._schedule(lambda: self.pipeline.range_fingerprint(*pair))
        if was_showing:
            return self.select(self.selected_index)
        return None

    def cancel_marks(self) -> Optional[int]:
        """Clear marks and go back to the selected commit's own diff."""
        had_range = self.showing_range and self.range.active
        self.range.cancel()
        if had_range:
            return self.select(self.selected_index)
        return None

    # delivered content

    def _on_delivered(self, delivery: Delivery) -> None:
        if delivery.status == ERROR:
            logger.debug(f"HistorySession._on_delivered: generation {delivery.generation} error: {delivery.error}")
        if self.on_update is not None:
            self.on_update(delivery)

    @property
    def delivery(self) -> Optional[Delivery]:
        return self.scheduler.snapshot().delivered

    def current_content(self) -> Optional[DiffContent]:
        delivery = self.delivery
        if delivery is not None and isinstance(delivery.result, DiffContent):
            return delivery.result
        return None

    def wait(self, timeout: Optional[float] = None) -> Optional[Delivery]:
        """Block until the latest selection is delivered."""
        return self.scheduler.wait(timeout=timeout)

    def next_change(self, line_index: int) -> Optional[int]:
        content = self.current_content()
        return content.next_change(line_index) if content is not None else None

    def previous_change(self, line_index: int) -> Optional[int]:
        content = self.current_content()
        return content.previous_change(line_index) if content is not None else None

    # search

    @property
    def search_index(self) -> Optional[SearchIndex]:
        """The search index, unless the delivered content changed since it was built."""
        delivery = self.delivery
        if self._search is None or delivery is None or delivery.generation != self._search_generation:
            return None
        return self._search

    def search(
        self,
        pattern: str,
        case_sensitive: bool = False,
        regex: bool = False,
        viewport: tuple[int, int] = (0, 0),
    ) -> SearchStatus:
        if not pattern:
            self.clear_search()
            return SearchStatus.NOT_SEARCHED
        delivery = self.delivery
        content = self.current_content()
        if content is None:
            self.clear_search()
            return SearchStatus.NOT_SEARCHED
        self._search = self.search_engine.index(content, pattern, case_sensitive, regex, viewport)
        self._search_generation = delivery.generation
        return self._search.status

    def next_match(self) -> Optional[SearchMatch]:
        idx = self.search_index
        return idx.next() if idx is not None else None

    def previous_match(self) -> Optional[SearchMatch]:
        idx = self.search_index
        return idx.previous() if idx is not None else None

    def clear_search(self) -> None:
        self._search = None
        self._search_generation = None

    # presentation

    def snapshot(self) -> SessionSnapshot:
        sched = self.scheduler.snapshot()
        delivery = sched.delivered
        if not self.commits:
            status = STATUS_EMPTY
        elif sched.loading:
            status = STATUS_LOADING
        elif delivery is not None and delivery.status == ERROR:
            status = STATUS_ERROR
        elif delivery is not None:
            status = STATUS_READY
        else:
            status = STATUS_LOADING
        idx = self.search_index
        if idx is None:
            search_status, matches, current = SearchStatus.NOT_SEARCHED, (), None
        else:
            search_status, matches, current = idx.status, tuple(idx.matches), idx.current
        return SessionSnapshot(
            file_path=self.file_path,
            commits=self.commits,
            selected_index=self.selected_index,
            parent_index=self.parent_index,
            marks=self.range.marks,
            status=status,
            delivery=delivery,
            search_status=search_status,
            search_matches=matches,
            current_match=current,
            cache_stats=self.cache.stats(),
        )

    def close(self) -> None:
        self.scheduler.shutdown()
