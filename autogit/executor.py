"""Stage, commit and push through git."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .exceptions import NoUpstreamError, ValidationError
from .git import GitRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitOutcome:
    message: str
    pushed: bool
    branch: Optional[str] = None
    upstream_created: bool = False


class CommitExecutor:
    def __init__(self, repo: GitRepo, push_enabled: bool = True) -> None:
        self.repo = repo
        self.push_enabled = push_enabled

    async def execute(self, message: str) -> CommitOutcome:
        """Stage everything, commit with ``message`` and push if enabled.

        A push rejected for lack of an upstream is retried once with
        ``--set-upstream`` on the current branch. Any other failure
        propagates to the caller.
        """
        if not message or not message.strip():
            raise ValidationError("Commit message cannot be empty.")
        await asyncio.to_thread(self.repo.stage_all)
        await asyncio.to_thread(self.repo.commit, message)
        logger.info("committed: %s", message.splitlines()[0])

        if not self.push_enabled:
            return CommitOutcome(message=message, pushed=False)
        if not await asyncio.to_thread(self.repo.has_remote):
            logger.info("no remote configured, skipping push")
            return CommitOutcome(message=message, pushed=False)

        try:
            await asyncio.to_thread(self.repo.push)
        except NoUpstreamError:
            branch = await asyncio.to_thread(self.repo.current_branch)
            logger.info("setting upstream for branch '%s'", branch)
            await asyncio.to_thread(self.repo.push, True, "origin", branch)
            return CommitOutcome(
                message=message, pushed=True, branch=branch, upstream_created=True
            )
        return CommitOutcome(message=message, pushed=True)
