"""Rich text rendering of history rows, diff lines and status messages."""
from __future__ import annotations

from typing import Iterable, Optional

from rich.text import Text

from .models import (
    Addition,
    BinaryMarker,
    CommitRecord,
    Context,
    Deletion,
    DiffContent,
    DiffFingerprint,
    DiffLine,
    FileHeader,
    HunkHeader,
    NotFoundAtCommit,
    SearchMatch,
)
from .search import SearchStatus

MARK = "✓"
MATCH_STYLE = "black on yellow"
CURRENT_MATCH_STYLE = "black on bright_yellow bold"
SIDE_SEPARATOR = " │ "
MIN_SIDE_WIDTH = 10


def line_style(line: DiffLine) -> str:
    """Style for a diff line, git colors."""
    if isinstance(line, FileHeader):
        if line.text.startswith("+++") or line.text.startswith("---"):
            return "bold white"
        return "bold"
    if isinstance(line, Addition):
        return "green"
    if isinstance(line, Deletion):
        return "red"
    if isinstance(line, HunkHeader):
        return "cyan"
    if isinstance(line, BinaryMarker):
        return "bold magenta"
    return ""


def render_line(
    line: DiffLine,
    colorize: bool = True,
    matches: Iterable[SearchMatch] = (),
    current: Optional[SearchMatch] = None,
) -> Text:
    """Render one diff line with its marker; match offsets are shifted past the marker."""
    raw = line.raw
    text = Text(raw, style=line_style(line) if colorize else "")
    # Context lines starting with "\" have no marker column
    offset = 1 if isinstance(line, (Addition, Deletion)) or (
        isinstance(line, Context) and not line.text.startswith("\\")
    ) else 0
    for m in matches:
        style = CURRENT_MATCH_STYLE if m == current else MATCH_STYLE
        text.stylize(style, m.start + offset, m.end + offset)
    return text


def render_commit(commit: CommitRecord, marked: bool = False, parent_index: int = 0) -> Text:
    """One row of the history list."""
    text = Text()
    text.append(MARK if marked else " ", style="bold green")
    text.append(" ")
    if commit.is_working_tree:
        text.append(f"{commit.short_id:<7}", style="bold yellow")
        text.append(f" {commit.subject}", style="yellow")
        return text
    text.append(commit.short_id, style="yellow")
    text.append(f" {commit.date}", style="dim")
    text.append(f" {commit.author}", style="cyan")
    if commit.is_merge:
        text.append(f" [merge {parent_index + 1}/{len(commit.parents)}]", style="magenta")
    if commit.rename is not None:
        text.append(f" [{commit.rename.old_path} -> {commit.rename.new_path}]", style="bold blue")
    text.append(f" {commit.subject}")
    return text


def render_side_by_side(
    old: Optional[DiffLine],
    new: Optional[DiffLine],
    width: int,
    colorize: bool = True,
    old_matches: Iterable[SearchMatch] = (),
    new_matches: Iterable[SearchMatch] = (),
    current: Optional[SearchMatch] = None,
) -> Text:
    """One side-by-side row: the old line and the new line, each padded or cut to width."""
    width = max(width, MIN_SIDE_WIDTH)
    row = Text()
    for side, (line, matches) in enumerate(((old, old_matches), (new, new_matches))):
        half = render_line(line, colorize, matches, current) if line is not None else Text()
        half.truncate(width, pad=True)
        if side:
            row.append(SIDE_SEPARATOR, style="dim")
        row.append_text(half)
    return row


def comparing_header(fp: Optional[DiffFingerprint]) -> Text:
    if fp is None:
        return Text("Comparing: -", style="bold")
    return Text(f"Comparing: {fp.describe()}", style="bold")


def render_not_found(result: NotFoundAtCommit) -> Text:
    return Text(result.describe(), style="italic yellow")


def truncation_notice(content: DiffContent) -> Optional[Text]:
    if not content.truncated:
        return None
    return Text(f"... {content.remaining} more lines not shown", style="dim italic")


def search_summary(status: SearchStatus, position: Optional[tuple[int, int]], found: int) -> str:
    """Footer text for the search state."""
    if status == SearchStatus.NOT_SEARCHED:
        return ""
    if status == SearchStatus.NO_MATCHES:
        return "no matches"
    if status == SearchStatus.PENDING:
        return "searching..."
    if position is not None:
        return f"match {position[0]}/{position[1]}"
    return f"{found}+ matches"


def render_help(text: str) -> list[Text]:
    """Help rows from a plain listing.

    A line underlined with "==" is the title, one underlined with "--" is a
    heading, and lines starting with "-" are bullets.
    """
    lines = text.strip("\n").split("\n")
    rows: list[Text] = []
    skip = False
    for i, line in enumerate(lines):
        if skip:
            skip = False
            continue
        underline = lines[i + 1] if i + 1 < len(lines) else ""
        if underline.startswith("=="):
            rows.append(Text(line.strip(), style="bold", justify="center"))
            skip = True
        elif underline.startswith("--"):
            rows.append(Text(line.strip(), style="bold underline"))
            skip = True
        elif line.lstrip().startswith("- "):
            indent = len(line) - len(line.lstrip())
            rows.append(Text(" " * indent + "◉ " + line.lstrip()[2:]))
        elif line.strip() == "" and rows and rows[-1].plain == "":
            continue
        else:
            rows.append(Text(line))
    return rows
