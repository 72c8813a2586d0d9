"""Diff capture with fingerprint dedup."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from .git import GitRepo

logger = logging.getLogger(__name__)


def fingerprint(text: str) -> str:
    """Deterministic hash of diff text."""
    return hashlib.sha256(text.encode("utf-8", "ignore")).hexdigest()


@dataclass(frozen=True)
class DiffSnapshot:
    text: str
    fingerprint: str


@dataclass(frozen=True)
class SnapshotResult:
    snapshot: Optional[DiffSnapshot]
    is_new: bool
    reason: str = ""


class DiffTracker:
    """Capture the aggregate diff and skip states that were already analysed."""

    def __init__(self, repo: GitRepo) -> None:
        self.repo = repo
        self.last_fingerprint: Optional[str] = None

    async def capture_and_check(self) -> SnapshotResult:
        diff = await asyncio.to_thread(self.repo.get_diff)
        if not diff or not diff.strip():
            return SnapshotResult(None, False, "no changes")
        snapshot = DiffSnapshot(text=diff, fingerprint=fingerprint(diff))
        if snapshot.fingerprint == self.last_fingerprint:
            logger.debug("Diff unchanged since last analysis, skipping")
            return SnapshotResult(snapshot, False, "diff unchanged since last analysis")
        self.last_fingerprint = snapshot.fingerprint
        return SnapshotResult(snapshot, True)

    def forget(self) -> None:
        """Drop the stored fingerprint so the next capture counts as new."""
        self.last_fingerprint = None
