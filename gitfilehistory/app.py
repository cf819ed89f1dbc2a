#!/usr/bin/env python3
"""
Git File History TUI
"""
from __future__ import annotations

import argparse
import logging
import sys
import threading
import traceback
from typing import Optional

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, Label, ListItem, ListView, Static

from .config import DEFAULT_LOG_FILE, Settings, configure_logging
from .details import load_commit_details
from .diff_parser import side_by_side_indices
from .errors import ConfigError, HistoryError, NotARepository
from .git import GitRepository
from .models import DiffContent, NotFoundAtCommit
from .render import (
    SIDE_SEPARATOR,
    comparing_header,
    render_commit,
    render_line,
    render_help,
    render_not_found,
    render_side_by_side,
    search_summary,
    truncation_notice,
)
from .scheduler import Delivery
from .session import STATUS_ERROR, STATUS_LOADING, HistorySession

logger = logging.getLogger(__name__)

FOOTER_HISTORY = "q(uit)  ↑ ↓  m(ark)  Esc  p(arent)  f(ollow)  F(irst-parent)  r(efresh)  i(nfo)  ?help  → diff"
FOOTER_DIFF = "q(uit)  ↑ ↓  /search  n/N  [ ]  +/- context  s(ide-by-side)  c(olor)  ?help  ← history"


class _MessageModal(ModalScreen):
    """Modal that shows a message and closes on any key."""

    def __init__(self, message: str, title: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self.message = message
        self.title_text = title

    def compose(self) -> ComposeResult:
        """Title in bold, then the message."""
        text = Text()
        if self.title_text:
            text.append(self.title_text + "\n\n", style="bold")
        text.append(self.message)
        yield Static(text, id="modal-msg")

    def on_key(self, event: events.Key) -> None:
        """Any key closes the modal."""
        event.stop()
        self.app.pop_screen()


HELP_TEXT = """
Git File History
================

Browse every commit that touched one file, newest first, following renames.
Older commits are diffed under the name the file had at the time.

History column
--------------
- Up / Down: select a commit; its diff loads in the background
- m: mark the commit; two marks compare the marked range (older..newer)
- Esc: clear the search, or else clear the marks
- p: compare a merge commit with its next parent
- f: toggle following renames
- F: toggle first-parent history
- r: reload history and drop cached diffs
- i: commit details (branches, tags, stats)
- Right: move to the diff column

Diff column
-----------
- /: search the diff; prefix the text with re: for a regular expression
- n / N: next / previous match
- ] / [: next / previous change
- + / -: more / fewer context lines
- s: toggle side-by-side view
- c: toggle colors
- Left: back to the history column

Anywhere
--------
- ? or h: this help; any of Esc, q, ? or h closes it
- q: quit
"""

HELP_SCROLL_KEYS = ("up", "down", "pageup", "pagedown", "home", "end")


class HelpList(ListView):
    """Key reference, rendered from HELP_TEXT."""

    def on_mount(self) -> None:
        """Populate help content."""
        for row in render_help(HELP_TEXT):
            self.append(ListItem(Label(row)))


class _HelpModal(ModalScreen):
    """Full-screen help; closes on Esc, q, ? or h."""

    def compose(self) -> ComposeResult:
        """A single scrollable help list."""
        yield HelpList(id="help")

    def on_key(self, event: events.Key) -> None:
        """Let scrolling keys through to the list and close on Esc, q, ? or h."""
        if event.key in HELP_SCROLL_KEYS:
            return
        event.stop()
        if event.key in ("escape", "q", "question_mark", "?", "h"):
            self.app.pop_screen()


class HistoryList(ListView):
    """Commits that touched the file, newest first."""

    def populate(self, session: HistorySession) -> None:
        """Rebuild the rows from the session's commit list and select the current commit."""
        self.clear()
        snap = session.snapshot()
        if not snap.commits:
            self.append(ListItem(Label(Text(f" No git history for {snap.file_path}"))))
            return
        for commit in snap.commits:
            self.append(ListItem(Label(self._row(session, commit))))
        self.index = snap.selected_index

    @staticmethod
    def _row(session: HistorySession, commit) -> Text:
        """Rendered row for commit, with its mark and merge parent choice."""
        parent_index = session.parent_index if session.selected is commit else 0
        return render_commit(commit, session.range.is_marked(commit.commit_id), parent_index)

    def refresh_rows(self, session: HistorySession) -> None:
        """Re-render labels in place (marks, parent choice)."""
        for item, commit in zip(self.children, session.commits):
            try:
                item.query_one(Label).update(self._row(session, commit))
            except Exception as e:
                logger.debug(f"HistoryList.refresh_rows: exception: {e}")
                logger.debug(traceback.format_exc())


class DiffList(ListView):
    """Diff of the selected commit (or marked range). Row 0 is the header.

    In side-by-side mode each row pairs an old line with a new line, so rows
    and DiffContent.lines no longer line up; _row_pairs keeps the (old, new)
    line indices shown on each row.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.side_by_side = False
        self._row_pairs: list[tuple[Optional[int], Optional[int]]] = []

    def show_loading(self) -> None:
        """Placeholder while the selected diff is fetched."""
        self.clear()
        self._row_pairs = []
        self.append(ListItem(Label(Text("Loading...", style="dim italic"))))

    def show_delivery(self, delivery: Delivery, colorize: bool, session: HistorySession) -> None:
        """Render a delivered diff, error or not-found notice, keeping the highlighted row."""
        keep = self.index
        self.clear()
        self._row_pairs = []
        self.append(ListItem(Label(comparing_header(delivery.fingerprint))))
        if not delivery.ok:
            self.append(ListItem(Label(Text(str(delivery.error), style="bold red"))))
            return
        result = delivery.result
        if isinstance(result, NotFoundAtCommit):
            self.append(ListItem(Label(render_not_found(result))))
            return
        if isinstance(result, DiffContent):
            if result.is_empty:
                self.append(ListItem(Label(Text("No changes to this file", style="dim"))))
                return
            snap = session.snapshot()
            by_line: dict[int, list] = {}
            for m in snap.search_matches:
                by_line.setdefault(m.line_index, []).append(m)
            if self.side_by_side:
                self._append_side_by_side(result, colorize, by_line, snap.current_match)
            else:
                for idx, line in enumerate(result.lines):
                    text = render_line(line, colorize, by_line.get(idx, ()), snap.current_match)
                    self.append(ListItem(Label(text)))
                    self._row_pairs.append((idx, idx))
            notice = truncation_notice(result)
            if notice is not None:
                self.append(ListItem(Label(notice)))
        if keep is not None and keep < len(self.children):
            self.index = keep

    def _append_side_by_side(self, content: DiffContent, colorize: bool, by_line: dict, current) -> None:
        """Append one row per (old, new) pair, each half sized to the column."""
        width = (self.scrollable_content_region.width - len(SIDE_SEPARATOR)) // 2
        for old, new in side_by_side_indices(content):
            text = render_side_by_side(
                content.lines[old] if old is not None else None,
                content.lines[new] if new is not None else None,
                width,
                colorize,
                by_line.get(old, ()) if old is not None else (),
                by_line.get(new, ()) if new is not None else (),
                current,
            )
            self.append(ListItem(Label(text)))
            self._row_pairs.append((old, new))

    def _row_for(self, line_index: int) -> Optional[int]:
        """Row showing line_index, or the first row past it."""
        for row, pair in enumerate(self._row_pairs):
            if line_index in pair:
                return row
        for row, pair in enumerate(self._row_pairs):
            if max(i for i in pair if i is not None) >= line_index:
                return row
        return None

    @property
    def line_index(self) -> int:
        """Index into DiffContent.lines of the highlighted row."""
        if not self._row_pairs:
            return 0
        row = min(max(0, (self.index or 0) - 1), len(self._row_pairs) - 1)
        old, new = self._row_pairs[row]
        return new if new is not None else old

    def goto_line(self, line_index: Optional[int]) -> None:
        """Highlight the row for a DiffContent line index; None is ignored."""
        if line_index is None:
            return
        row = self._row_for(line_index)
        if row is not None:
            self.index = row + 1


class GitFileHistoryApp(App):
    """Two-column browser for the history of one file: History and Diff."""

    TITLE = "Git File History"
    CSS = """
App {
    overflow: hidden;
    scrollbar-size: 0 0;
}
#title {
    height: 1;
    padding: 0 1;
    width: 100%;
    text-align: center;
}
#history-column {
    width: 35%;
}
#diff-column {
    width: 65%;
}
#history {
    border: heavy #555555;
    scrollbar-size-vertical: 1;
}
#diff {
    border: heavy #555555;
    scrollbar-size-vertical: 1;
}
#search {
    display: none;
}
#help {
    border: heavy #555555;
    padding: 0 1;
}
#status {
    height: 1;
    padding: 0 1;
}
#footer {
    height: 1;
    padding: 0 1;
    text-align: left;
}
"""

    BINDINGS = [("q", "quit", "Quit")]

    def __init__(self, session: HistorySession, **kwargs) -> None:
        super().__init__(**kwargs)
        self.session = session
        self.colorize_diff = session.settings.colorize
        self._ui_thread: Optional[int] = None
        self._last_delivery: Optional[Delivery] = None

    def compose(self) -> ComposeResult:
        """Title, the History and Diff columns, search input, status and footer."""
        with Vertical(id="root"):
            yield Label(Text(f"{self.TITLE}: {self.session.file_path}", style="bold"), id="title")
            with Horizontal(id="main"):
                with Vertical(id="history-column"):
                    yield Label(Text("History", style="bold"), id="history-title")
                    yield HistoryList(id="history")
                with Vertical(id="diff-column"):
                    yield Label(Text("Diff", style="bold"), id="diff-title")
                    yield DiffList(id="diff")
            yield Input(placeholder="search (prefix re: for a regex)", id="search")
            yield Label(Text(""), id="status")
            yield Label(Text(FOOTER_HISTORY, style="bold"), id="footer")

    def on_mount(self) -> None:
        """Load history on the UI thread and focus the History column."""
        self._ui_thread = threading.get_ident()
        self.session.on_update = self._on_update
        self._reload(self.session.load)
        self.query_one("#history", HistoryList).focus()

    # session plumbing

    def _on_update(self, delivery: Delivery) -> None:
        """Route a delivery to the UI thread.

        Deliveries come from fetch workers, or synchronously on a cache hit.
        """
        if threading.get_ident() == self._ui_thread:
            self._show_delivery(delivery)
        else:
            self.call_from_thread(self._show_delivery, delivery)

    def _show_delivery(self, delivery: Delivery) -> None:
        """Show delivery unless a newer selection has replaced it."""
        current = self.session.delivery
        if current is None or current.generation != delivery.generation:
            return
        self._last_delivery = delivery
        self.query_one("#diff", DiffList).show_delivery(delivery, self.colorize_diff, self.session)
        self._update_status()

    def _redraw_diff(self) -> None:
        """Re-render the last delivery (colors, search highlights, layout)."""
        if self._last_delivery is not None:
            self.query_one("#diff", DiffList).show_delivery(self._last_delivery, self.colorize_diff, self.session)

    def _reload(self, action) -> None:
        """Run a history (re)load, reporting failures in a modal."""
        try:
            action()
        except HistoryError as e:
            logger.debug(f"GitFileHistoryApp._reload: exception: {e}")
            logger.debug(traceback.format_exc())
            self.push_screen(_MessageModal(str(e), title="Cannot load history"))
        self.query_one("#history", HistoryList).populate(self.session)
        self._after_schedule()

    def _after_schedule(self) -> None:
        """Refresh the panes after the session scheduled a new diff."""
        snap = self.session.snapshot()
        if snap.status == STATUS_LOADING:
            self.query_one("#diff", DiffList).show_loading()
        self.query_one("#history", HistoryList).refresh_rows(self.session)
        self._update_status()

    def _update_status(self) -> None:
        """Status line: load state, marks, search position and view options."""
        snap = self.session.snapshot()
        parts = [snap.status]
        if snap.marks:
            parts.append("marked " + ", ".join(m[:7] for m in snap.marks))
        idx = self.session.search_index
        summary = search_summary(snap.search_status, idx.position() if idx else None, len(snap.search_matches))
        if summary:
            parts.append(summary)
        parts.append(f"context {self.session.settings.context_lines}")
        if not self.session.settings.follow_renames:
            parts.append("no-follow")
        if self.session.settings.first_parent:
            parts.append("first-parent")
        if self.query_one("#diff", DiffList).side_by_side:
            parts.append("side-by-side")
        style = "bold red" if snap.status == STATUS_ERROR else "dim"
        self.query_one("#status", Label).update(Text("  ".join(parts), style=style))

    # events

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        """Moving through the History column selects that commit."""
        if not isinstance(event.list_view, HistoryList):
            return
        index = event.list_view.index
        if index is None or index == self.session.selected_index and self._last_delivery is not None:
            return
        self.session.select(index)
        self._after_schedule()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Run the search typed in the search input and jump to the first match."""
        pattern = event.value
        regex = pattern.startswith("re:")
        if regex:
            pattern = pattern[3:]
        diff = self.query_one("#diff", DiffList)
        height = diff.scrollable_content_region.height
        self.session.search(pattern, regex=regex, viewport=(diff.line_index, height))
        event.input.styles.display = "none"
        diff.goto_line(self._line_of(self.session.next_match()))
        self._redraw_diff()
        diff.focus()
        self._update_status()

    @staticmethod
    def _line_of(match) -> Optional[int]:
        """Line index of a match, or None."""
        return match.line_index if match is not None else None

    def on_key(self, event: events.Key) -> None:
        """Key handling for both columns; see HELP_TEXT."""
        key = event.key
        logger.debug(f"GitFileHistoryApp.on_key: key={key}")
        if isinstance(self.screen, ModalScreen):
            return
        search = self.query_one("#search", Input)
        if search.has_focus:
            if key == "escape":
                event.stop()
                search.styles.display = "none"
                self.query_one("#diff", DiffList).focus()
            return
        history = self.query_one("#history", HistoryList)
        diff = self.query_one("#diff", DiffList)
        try:
            if key in ("q", "Q"):
                event.stop()
                self.exit()
            elif key == "ctrl+p":
                event.stop()
            elif key == "right" and history.has_focus:
                event.stop()
                diff.focus()
                self.query_one("#footer", Label).update(Text(FOOTER_DIFF, style="bold"))
            elif key == "left" and diff.has_focus:
                event.stop()
                history.focus()
                self.query_one("#footer", Label).update(Text(FOOTER_HISTORY, style="bold"))
            elif key == "m":
                event.stop()
                self.session.toggle_mark()
                self._after_schedule()
            elif key == "escape":
                event.stop()
                if self.session.search_index is not None:
                    self.session.clear_search()
                    self._redraw_diff()
                    self._update_status()
                else:
                    self.session.cancel_marks()
                    self._after_schedule()
            elif key == "p":
                event.stop()
                self.session.cycle_parent()
                self._after_schedule()
            elif key == "f":
                event.stop()
                self._reload(lambda: self.session.set_follow(not self.session.settings.follow_renames))
            elif key == "F":
                event.stop()
                self._reload(lambda: self.session.set_first_parent(not self.session.settings.first_parent))
            elif key == "r":
                event.stop()
                self._reload(self.session.refresh)
            elif key == "i":
                event.stop()
                self._show_details()
            elif key in ("slash", "/"):
                event.stop()
                search.styles.display = "block"
                search.value = ""
                search.focus()
            elif key == "n":
                event.stop()
                diff.goto_line(self._line_of(self.session.next_match()))
                self._redraw_diff()
                self._update_status()
            elif key == "N":
                event.stop()
                diff.goto_line(self._line_of(self.session.previous_match()))
                self._redraw_diff()
                self._update_status()
            elif key in ("right_square_bracket", "]"):
                event.stop()
                diff.goto_line(self.session.next_change(diff.line_index))
            elif key in ("left_square_bracket", "["):
                event.stop()
                diff.goto_line(self.session.previous_change(diff.line_index))
            elif key in ("plus", "+", "minus", "-"):
                event.stop()
                delta = 1 if key in ("plus", "+") else -1
                self.session.set_context_lines(self.session.settings.context_lines + delta)
                self._after_schedule()
            elif key in ("s", "S"):
                event.stop()
                line = diff.line_index
                diff.side_by_side = not diff.side_by_side
                self._redraw_diff()
                diff.goto_line(line)
                self._update_status()
            elif key in ("question_mark", "?", "h", "H"):
                event.stop()
                self.push_screen(_HelpModal())
            elif key in ("c", "C"):
                event.stop()
                self.colorize_diff = not self.colorize_diff
                self._redraw_diff()
        except ConfigError as e:
            logger.debug(f"GitFileHistoryApp.on_key: {e}")
            self.query_one("#status", Label).update(Text(str(e), style="yellow"))
        except Exception as e:
            logger.debug(f"GitFileHistoryApp.on_key: exception: {e}")
            logger.debug(traceback.format_exc())
            self.push_screen(_MessageModal(str(e), title="Error"))

    def _show_details(self) -> None:
        """Modal with branches, tags and stats of the selected commit."""
        commit = self.session.selected
        if commit is None or commit.is_working_tree:
            return
        details = load_commit_details(self.session.repo, commit.commit_id)
        lines = [
            f"commit   {commit.commit_id}",
            f"author   {commit.author}",
            f"date     {commit.date}",
            f"parents  {' '.join(p[:7] for p in details.parents) or '(root)'}",
            f"branches {', '.join(details.branches) or '-'}",
            f"tags     {', '.join(details.tags) or '-'}",
        ]
        if details.stats is not None:
            s = details.stats
            lines.append(f"stats    {s.files_changed} files, +{s.insertions} -{s.deletions}")
        if commit.rename is not None:
            lines.append(f"renamed  {commit.rename.old_path} -> {commit.rename.new_path} ({commit.rename.similarity}%)")
        lines.append("")
        lines.append(commit.subject)
        lines.extend(details.errors)
        self.push_screen(_MessageModal("\n".join(lines), title="Commit"))

    def on_unmount(self) -> None:
        """Stop the fetch workers."""
        self.session.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gitfilehistory", description="Browse the git history of one file.")
    parser.add_argument("file", help="File whose history to browse")
    parser.add_argument("-C", "--repo", dest="repo", default=None, help="Start repository discovery here")
    parser.add_argument(
        "-L", "--lines", dest="context_lines", type=int, default=3, help="Context lines around changes (0-100)"
    )
    parser.add_argument("--first-parent", action="store_true", help="Follow only the first parent of merges")
    parser.add_argument("--no-follow", action="store_true", help="Do not follow renames")
    parser.add_argument("--cache-size", type=int, default=50, help="Number of diffs kept in memory")
    parser.add_argument("--max-lines", type=int, default=20000, help="Diff line cap, 0 for no cap")
    parser.add_argument("--no-color", action="store_true", help="Do not colorize diffs")
    parser.add_argument("--debug", action="store_true", help="Write a debug log")
    parser.add_argument("--log-file", default=None, help=f"Debug log path (default {DEFAULT_LOG_FILE})")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point: parse CLI args, open the repository and run the Textual app."""
    args = build_parser().parse_args(argv)
    configure_logging(args.debug, args.log_file)
    try:
        settings = Settings.from_args(args)
        repo = GitRepository.discover(args.repo or args.file)
        session = HistorySession(repo, args.file, settings)
    except (ConfigError, NotARepository) as e:
        print(f"gitfilehistory: {e}", file=sys.stderr)
        return 2
    GitFileHistoryApp(session).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
