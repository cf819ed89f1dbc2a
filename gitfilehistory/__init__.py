"""Browse the git history of a single file, following renames."""
from __future__ import annotations

from .errors import (
    CommandFailed,
    ConfigError,
    GitCommandError,
    HistoryError,
    NotARepository,
    PathUnresolved,
    RepositoryQueryFailed,
)
from .session import HistorySession, SessionSnapshot

__version__ = "0.1.0"

__all__ = [
    "CommandFailed",
    "ConfigError",
    "GitCommandError",
    "HistoryError",
    "HistorySession",
    "NotARepository",
    "PathUnresolved",
    "RepositoryQueryFailed",
    "SessionSnapshot",
]
