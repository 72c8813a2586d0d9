"""Cancellable countdown between a commit decision and its execution."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from .decision import CommitDecision
from .events import EventSink, LoggingSink
from .exceptions import AutoGitError
from .executor import CommitOutcome
from .safety import Suggester, safe_operation
from .snapshot import DiffSnapshot

logger = logging.getLogger(__name__)


class BufferState(str, Enum):
    EMPTY = "empty"
    ARMED = "armed"
    EXECUTING = "executing"
    CANCELLED = "cancelled"


@dataclass
class PendingCommit:
    message: str
    snapshot: Optional[DiffSnapshot] = None
    decision: Optional[CommitDecision] = None
    remaining_seconds: float = 0.0


# (result, outcome) where result is "committed", "failed" or "cancelled"
FinishedCallback = Callable[[str, Optional[CommitOutcome]], None]


class CommitBuffer:
    """Hold at most one pending commit and count it down.

    States: EMPTY -> ARMED -> (EXECUTING | CANCELLED) -> EMPTY. The countdown
    is a single loop timer re-armed once per ``tick`` so the remaining time
    can be reported. Cancellation clears the timer before the pending commit,
    and expiry re-checks both state and presence before executing, so a
    cancel processed first always wins.
    """

    def __init__(
        self,
        execute: Callable[[str], Awaitable[CommitOutcome]],
        seconds: float,
        *,
        sink: Optional[EventSink] = None,
        suggester: Optional[Suggester] = None,
        on_finished: Optional[FinishedCallback] = None,
        tick: float = 1.0,
    ) -> None:
        self._execute = execute
        self.seconds = max(float(seconds), 0.0)
        self.tick = tick
        self._sink = sink or LoggingSink()
        self._suggester = suggester
        self._on_finished = on_finished
        self._state = BufferState.EMPTY
        self._pending: Optional[PendingCommit] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> BufferState:
        return self._state

    @property
    def pending(self) -> Optional[PendingCommit]:
        return self._pending

    @property
    def is_armed(self) -> bool:
        return self._state is BufferState.ARMED

    def arm(self, pending: PendingCommit) -> bool:
        """Start the countdown for ``pending``; a no-op while one exists."""
        if self._pending is not None or self._state is not BufferState.EMPTY:
            logger.debug("buffer already holds a pending commit; ignoring arm")
            return False
        self._loop = asyncio.get_running_loop()
        pending.remaining_seconds = self.seconds
        self._pending = pending
        self._state = BufferState.ARMED
        decision = pending.decision
        self._sink(
            "countdown_started",
            {
                "message": pending.message,
                "seconds": self.seconds,
                "significance": decision.significance if decision else None,
                "change_type": decision.change_type if decision else None,
            },
        )
        self._schedule_tick()
        return True

    def cancel(self, reason: str = "cancelled by user") -> bool:
        """Cancel an ARMED countdown. Returns False when nothing was cancelled."""
        if self._state is not BufferState.ARMED:
            return False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        pending = self._pending
        self._pending = None
        self._state = BufferState.CANCELLED
        self._sink(
            "cancelled",
            {
                "reason": reason,
                "message": pending.message if pending else None,
                "remaining_seconds": pending.remaining_seconds if pending else 0.0,
            },
        )
        self._state = BufferState.EMPTY
        self._notify("cancelled", None)
        return True

    async def wait_idle(self) -> None:
        """Wait for a running execution to finish."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Countdown
    # ------------------------------------------------------------------
    def _schedule_tick(self) -> None:
        assert self._loop is not None and self._pending is not None
        step = min(self.tick, self._pending.remaining_seconds)
        self._handle = self._loop.call_later(step, self._on_tick, step)

    def _on_tick(self, step: float) -> None:
        self._handle = None
        pending = self._pending
        if self._state is not BufferState.ARMED or pending is None:
            return
        pending.remaining_seconds = max(0.0, pending.remaining_seconds - step)
        if pending.remaining_seconds > 1e-6:
            self._sink(
                "countdown",
                {
                    "remaining_seconds": round(pending.remaining_seconds, 3),
                    "message": pending.message,
                },
            )
            self._schedule_tick()
            return
        self._state = BufferState.EXECUTING
        assert self._loop is not None
        self._task = self._loop.create_task(self._run_execution(pending))

    async def _run_execution(self, pending: PendingCommit) -> None:
        outcome: Optional[CommitOutcome] = None
        try:
            outcome = await safe_operation(
                lambda: self._execute(pending.message),
                "Auto-commit operation",
                sink=self._sink,
                suggester=self._suggester,
            )
        except AutoGitError:
            # Already surfaced by safe_operation; the session keeps watching.
            outcome = None
        finally:
            self._pending = None
            self._state = BufferState.EMPTY
            self._task = None

        if outcome is None:
            self._notify("failed", None)
            return
        self._sink(
            "committed",
            {
                "message": outcome.message,
                "pushed": outcome.pushed,
                "branch": outcome.branch,
                "upstream_created": outcome.upstream_created,
            },
        )
        self._notify("committed", outcome)

    def _notify(self, result: str, outcome: Optional[CommitOutcome]) -> None:
        if self._on_finished is not None:
            self._on_finished(result, outcome)
