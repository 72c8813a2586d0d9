"""Exception hierarchy for autogit."""

from __future__ import annotations


class AutoGitError(Exception):
    """Base class for every error raised by autogit."""


class GitError(AutoGitError):
    """A git command failed."""


class NotARepositoryError(GitError):
    """The target directory is not inside a git working tree."""


class NoUpstreamError(GitError):
    """Push failed because the current branch has no upstream configured."""


class LLMError(AutoGitError):
    """The completion service failed or returned unusable output."""


class RateLimitExceeded(LLMError):
    """The per-minute call budget for the completion service is exhausted."""

    def __init__(self, retry_after: float, limit: int | None = None) -> None:
        self.retry_after = max(float(retry_after), 0.0)
        self.limit = limit
        budget = f" ({limit} calls/min)" if limit is not None else ""
        super().__init__(
            f"Rate limited{budget}, retry after {self.retry_after:.1f}s"
        )


class WatcherError(AutoGitError):
    """The file-system watch primitive could not be started or crashed."""


class ConfigError(AutoGitError):
    """Configuration values are missing or invalid."""


class ValidationError(AutoGitError):
    """Input supplied to an operation is invalid."""
