"""Runtime settings and logging setup."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .cache import DEFAULT_CAPACITY
from .errors import ConfigError
from .fetch import DEFAULT_CONTEXT_LINES, DEFAULT_MAX_LINES
from .scheduler import DEFAULT_DEBOUNCE
from .search import DEFAULT_INCREMENTAL_THRESHOLD, DEFAULT_LOOKAHEAD

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FILE = os.path.join("tmp", "gitfilehistory_debug.log")

MAX_CONTEXT_LINES = 100


@dataclass
class Settings:
    context_lines: int = DEFAULT_CONTEXT_LINES
    cache_capacity: int = DEFAULT_CAPACITY
    debounce: float = DEFAULT_DEBOUNCE
    max_diff_lines: Optional[int] = DEFAULT_MAX_LINES
    search_lookahead: int = DEFAULT_LOOKAHEAD
    search_incremental_threshold: int = DEFAULT_INCREMENTAL_THRESHOLD
    follow_renames: bool = True
    first_parent: bool = False
    show_working_tree: bool = True
    colorize: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not 0 <= self.context_lines <= MAX_CONTEXT_LINES:
            raise ConfigError(f"Context lines must be between 0 and {MAX_CONTEXT_LINES}")
        if self.cache_capacity < 1:
            raise ConfigError("Cache capacity must be at least 1")
        if self.debounce < 0:
            raise ConfigError("Debounce interval cannot be negative")
        if self.max_diff_lines is not None and self.max_diff_lines < 1:
            raise ConfigError("Diff line cap must be positive")
        if self.search_lookahead < 1:
            raise ConfigError("Search lookahead must be positive")

    @classmethod
    def from_args(cls, args) -> "Settings":
        """Build settings from parsed command line arguments."""
        return cls(
            context_lines=args.context_lines,
            cache_capacity=args.cache_size,
            max_diff_lines=args.max_lines or None,
            follow_renames=not args.no_follow,
            first_parent=args.first_parent,
            colorize=not args.no_color,
        )


def configure_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """Send debug logging to a file; stay silent otherwise (the terminal belongs to the UI)."""
    if not debug:
        logging.getLogger().addHandler(logging.NullHandler())
        return
    path = log_file or DEFAULT_LOG_FILE
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    logging.basicConfig(filename=path, level=logging.DEBUG, format=LOG_FORMAT)
