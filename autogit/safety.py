"""Uniform failure surfacing at the pipeline boundary."""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable, Optional, TypeVar

from .events import EventSink
from .exceptions import AutoGitError, GitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Suggester = Callable[[str], Awaitable[str]]

# Common Git error patterns and the action that usually resolves them
ERROR_PATTERNS = {
    "MERGE_CONFLICT": (
        re.compile(r"merge conflict|conflict.*merge", re.IGNORECASE),
        "Resolve merge conflicts manually, then run: git add . && git commit",
    ),
    "PUSH_REJECTED": (
        re.compile(r"push.*rejected|non-fast-forward|\[rejected\]", re.IGNORECASE),
        "Pull latest changes first: git pull --rebase",
    ),
    "NO_UPSTREAM": (
        re.compile(r"no upstream branch|set-upstream", re.IGNORECASE),
        "Set upstream branch: git push --set-upstream origin <branch-name>",
    ),
    "AUTHENTICATION": (
        re.compile(r"authentication failed|permission denied", re.IGNORECASE),
        "Check your Git credentials or SSH keys",
    ),
    "DETACHED_HEAD": (
        re.compile(r"detached head", re.IGNORECASE),
        "Switch to a branch: git checkout main",
    ),
    "UNCOMMITTED_CHANGES": (
        re.compile(r"uncommitted changes|working tree clean", re.IGNORECASE),
        "Stash or commit your changes: git stash or git add . && git commit",
    ),
}


def quick_suggestion(error_message: str) -> str:
    for pattern, suggestion in ERROR_PATTERNS.values():
        if pattern.search(error_message):
            return suggestion
    return 'Run "git status" to see the current state of your repository'


async def safe_operation(
    operation: Callable[[], Awaitable[T]],
    name: str = "Git operation",
    *,
    sink: Optional[EventSink] = None,
    suggester: Optional[Suggester] = None,
) -> T:
    """Await ``operation`` and surface any failure before re-raising it.

    The original exception always propagates unchanged; nothing is retried
    or substituted. Git failures additionally get a suggestion, from
    ``suggester`` when it works and from ERROR_PATTERNS otherwise.
    """
    try:
        return await operation()
    except Exception as exc:
        logger.error("%s failed: %s", name, exc)
        if sink is not None:
            sink(
                "error",
                {
                    "operation": name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "retry_after": getattr(exc, "retry_after", None),
                },
            )
        if isinstance(exc, GitError):
            await _surface_suggestion(str(exc), name, sink, suggester)
        raise


async def _surface_suggestion(
    error_text: str,
    name: str,
    sink: Optional[EventSink],
    suggester: Optional[Suggester],
) -> None:
    suggestion = None
    source = "pattern"
    if suggester is not None:
        try:
            suggestion = await suggester(error_text)
            source = "ai"
        except AutoGitError as suggestion_error:
            logger.debug("suggestion unavailable: %s", suggestion_error)
    if not suggestion:
        suggestion = quick_suggestion(error_text)
        source = "pattern"
    logger.info("suggestion for %s: %s", name, suggestion)
    if sink is not None:
        sink(
            "suggestion",
            {"operation": name, "suggestion": suggestion, "source": source},
        )
