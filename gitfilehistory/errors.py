"""Exception hierarchy for the file history engine."""
from __future__ import annotations

from typing import Any, Optional


class HistoryError(Exception):
    """Base exception for all file history errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigError(HistoryError):
    """Invalid settings."""


class GitCommandError(HistoryError):
    """A git invocation exited with an unexpected status."""

    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        super().__init__(
            f"git command failed: {' '.join(command)}",
            {"returncode": returncode},
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class NotARepository(HistoryError):
    """The path is not inside a git working tree."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not a git repository: {path}")
        self.path = path


class RepositoryQueryFailed(HistoryError):
    """The history query for a file failed."""

    def __init__(self, diagnostic: str) -> None:
        super().__init__("Repository query failed", {"diagnostic": diagnostic.strip()})
        self.diagnostic = diagnostic


class PathUnresolved(HistoryError):
    """The path at a commit could not be determined from the loaded history."""

    def __init__(self, commit_id: str, reason: str) -> None:
        super().__init__(f"Cannot resolve path at {commit_id}: {reason}")
        self.commit_id = commit_id
        self.reason = reason


class CommandFailed(HistoryError):
    """Diff retrieval failed."""

    def __init__(self, diagnostic: str) -> None:
        super().__init__("Diff command failed", {"diagnostic": diagnostic.strip()})
        self.diagnostic = diagnostic
