"""Watch-session orchestration for autogit.

A WatchSession runs on one asyncio event loop. File-system events arrive
from the watcher thread via ``call_soon_threadsafe``; every timer is a loop
``TimerHandle`` that is cancelled before it is replaced; blocking git and
LLM work runs in worker threads. The session owns the pipeline

    change events -> quiet period -> diff snapshot -> decision -> buffer
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from .buffer import BufferState, CommitBuffer, PendingCommit
from .config import Config
from .decision import CommitDecision, DecisionEngine
from .events import ChangeEvent, EventSink, LoggingSink
from .exceptions import (
    AutoGitError,
    LLMError,
    NotARepositoryError,
    RateLimitExceeded,
)
from .executor import CommitExecutor, CommitOutcome
from .git import GitRepo
from .llm import LLMClient
from .ratelimit import RateLimiter
from .safety import safe_operation
from .snapshot import DiffTracker

logger = logging.getLogger(__name__)

# (repo root, event callback, config) -> object with start() and stop()
WatcherFactory = Callable[[Path, Callable[[ChangeEvent], None], Config], Any]


def _default_watcher_factory(
    root: Path, on_event: Callable[[ChangeEvent], None], config: Config
):
    from .watcher import RepoWatcher

    return RepoWatcher(
        root,
        on_event,
        ignore_patterns=config.ignore_patterns,
        paths=config.watch_paths,
    )


@dataclass
class ActivityWindow:
    """Change activity since the last decision.

    ``settle_handle`` holds the quiet-period timer (the debounce timer in
    periodic mode); ``min_interval_handle`` the single follow-up timer used
    while waiting out the minimum spacing between commits.
    """

    is_active: bool = False
    event_count: int = 0
    settle_handle: Optional[asyncio.TimerHandle] = None
    min_interval_handle: Optional[asyncio.TimerHandle] = None

    def record(self) -> None:
        self.is_active = True
        self.event_count += 1

    def reset(self) -> None:
        self.is_active = False
        self.event_count = 0

    def cancel_timers(self) -> None:
        if self.settle_handle is not None:
            self.settle_handle.cancel()
            self.settle_handle = None
        if self.min_interval_handle is not None:
            self.min_interval_handle.cancel()
            self.min_interval_handle = None


class WatchSession:
    """Turn file activity into buffered, cancellable commits."""

    def __init__(
        self,
        config: Config,
        repo: GitRepo,
        engine: DecisionEngine,
        executor: CommitExecutor,
        *,
        sink: Optional[EventSink] = None,
        clock: Callable[[], float] = time.monotonic,
        watcher_factory: Optional[WatcherFactory] = None,
        buffer_tick: float = 1.0,
    ) -> None:
        self.config = config
        self.repo = repo
        self.engine = engine
        self.executor = executor
        self.sink = sink or LoggingSink()
        self._clock = clock
        self._watcher_factory = watcher_factory or _default_watcher_factory

        self.window = ActivityWindow()
        self.tracker = DiffTracker(repo)
        self.is_processing = False
        self.paused = False
        self.ready = False
        self.last_commit_at: Optional[float] = None
        self.decisions_made = 0
        self._changed_while_executing = False

        self._suggester = (
            engine.suggest
            if config.enable_suggestions and config.interactive_on_error
            else None
        )
        self.buffer = CommitBuffer(
            executor.execute,
            config.buffer_seconds,
            sink=self.sink,
            suggester=self._suggester,
            on_finished=self._on_buffer_finished,
            tick=buffer_tick,
        )
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._stopped: Optional[asyncio.Event] = None
        self._watcher: Any = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        sink: Optional[EventSink] = None,
        debug: bool = False,
    ) -> "WatchSession":
        repo = GitRepo(config.git_repo_path, config)
        client = LLMClient(config, debug=debug)
        limiter = RateLimiter(config.max_calls_per_minute)
        engine = DecisionEngine(client, limiter, config)
        executor = CommitExecutor(repo, push_enabled=config.push_enabled)
        return cls(config, repo, engine, executor, sink=sink)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Mark the session ready on the running loop and reset activity."""
        self._loop = asyncio.get_running_loop()
        self.window.cancel_timers()
        self.window.reset()
        self.ready = True
        self.sink(
            "ready",
            {
                "mode": self.config.commit_mode,
                "repo": str(self.repo.repo_path),
                "push": self.config.push_enabled,
                "buffer_seconds": self.config.buffer_seconds,
            },
        )

    async def run(self) -> None:
        """Watch the repository until stop() is called."""
        if not self.repo.is_repo():
            raise NotARepositoryError(f"Not a git repository: {self.repo.repo_path}")
        loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()

        def post(event: ChangeEvent) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(self.on_change_event, event)

        self._watcher = self._watcher_factory(
            Path(self.repo.repo_path), post, self.config
        )
        self._watcher.start()
        try:
            self.start()
            await self._stopped.wait()
        finally:
            self.shutdown()
            await self.buffer.wait_idle()

    def stop(self) -> None:
        """Request the run loop to end. Safe to call from a loop callback."""
        if self._stopped is not None:
            self._stopped.set()
        else:
            self.shutdown()

    def shutdown(self) -> None:
        self.ready = False
        self.window.cancel_timers()
        self.buffer.cancel("session stopped")
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self.sink("stopped", {"decisions": self.decisions_made})

    def pause(self) -> None:
        if self.paused:
            return
        self.paused = True
        self.window.cancel_timers()
        self.sink("paused", {})

    def resume(self) -> None:
        if not self.paused:
            return
        self.paused = False
        self.window.reset()
        self.sink("resumed", {})

    def cancel_pending(self, reason: str = "cancelled by user") -> bool:
        return self.buffer.cancel(reason)

    # ------------------------------------------------------------------
    # Activity tracking
    # ------------------------------------------------------------------
    def on_change_event(self, event: ChangeEvent) -> None:
        if not self.ready or self.paused:
            return
        self.sink("file_change", {"kind": event.kind, "path": event.path})
        if self.buffer.is_armed and self.config.cancel_on_new_changes:
            self.buffer.cancel("new changes detected")
        self.window.record()
        if self.buffer.state is BufferState.EXECUTING:
            # Staging already ran; this edit needs a cycle of its own.
            self._changed_while_executing = True
        if self.is_processing or self.buffer.pending is not None:
            # Recorded; picked up once the current cycle completes.
            return
        if self.config.intelligent:
            self._arm_settle_timer()
        else:
            self._arm_debounce_timer()

    def _arm_debounce_timer(self) -> None:
        assert self._loop is not None
        self.window.cancel_timers()
        self.window.settle_handle = self._loop.call_later(
            self.config.debounce_seconds, self._on_debounce_elapsed
        )

    def _arm_settle_timer(self) -> None:
        assert self._loop is not None
        self.window.cancel_timers()
        self.window.settle_handle = self._loop.call_later(
            self.config.settle_seconds, self._on_settle_elapsed
        )

    def _on_debounce_elapsed(self) -> None:
        self.window.settle_handle = None
        self._start_cycle("debounce elapsed")

    def _on_settle_elapsed(self) -> None:
        self.window.settle_handle = None
        self.window.is_active = False
        remaining = self.min_interval_remaining()
        if remaining > 0:
            assert self._loop is not None
            self.sink(
                "waiting",
                {
                    "reason": "minimum interval between commits",
                    "remaining_seconds": round(remaining, 3),
                },
            )
            self.window.min_interval_handle = self._loop.call_later(
                remaining, self._on_min_interval_elapsed
            )
            return
        self._start_cycle("activity settled")

    def _on_min_interval_elapsed(self) -> None:
        self.window.min_interval_handle = None
        if self.window.is_active:
            self.sink("cycle_skipped", {"reason": "activity resumed while waiting"})
            return
        self._start_cycle("minimum interval elapsed")

    def min_interval_remaining(self) -> float:
        if self.last_commit_at is None:
            return 0.0
        elapsed = self._clock() - self.last_commit_at
        return max(0.0, self.config.min_interval_seconds - elapsed)

    # ------------------------------------------------------------------
    # Decision cycle
    # ------------------------------------------------------------------
    def _start_cycle(self, trigger: str) -> None:
        if not self.ready or self.paused:
            return
        if self.is_processing or self.buffer.pending is not None:
            self.sink("cycle_skipped", {"reason": "a commit is already in progress"})
            return
        assert self._loop is not None
        self.is_processing = True
        self._cycle_task = self._loop.create_task(self._run_cycle(trigger))
        self._cycle_task.add_done_callback(self._report_crashed_cycle)

    async def _run_cycle(self, trigger: str) -> None:
        event_count = self.window.event_count
        self.window.reset()
        armed = False
        try:
            self.sink("cycle_started", {"trigger": trigger, "events": event_count})
            result = await safe_operation(
                self.tracker.capture_and_check,
                "Diff capture",
                sink=self.sink,
                suggester=self._suggester,
            )
            if not result.is_new or result.snapshot is None:
                self.sink("cycle_skipped", {"reason": result.reason})
                return
            snapshot = result.snapshot
            try:
                decision = await safe_operation(
                    lambda: self.engine.decide(snapshot.text),
                    "Commit analysis",
                    sink=self.sink,
                )
            except (LLMError, RateLimitExceeded):
                # Same diff must be re-analysable once the provider recovers.
                self.tracker.forget()
                raise
            self.decisions_made += 1
            self._emit_decision(decision)
            if not decision.should_commit:
                return
            armed = self.buffer.arm(
                PendingCommit(decision.message, snapshot=snapshot, decision=decision)
            )
        except AutoGitError as exc:
            logger.info("cycle ended with %s; still watching", type(exc).__name__)
        finally:
            self.is_processing = False
            self._cycle_task = None
            if not armed and self.window.event_count and self.ready:
                self._rearm_for_recorded_activity()

    def _rearm_for_recorded_activity(self) -> None:
        if self.paused:
            return
        if self.config.intelligent:
            self._arm_settle_timer()
        else:
            self._arm_debounce_timer()

    def _emit_decision(self, decision: CommitDecision) -> None:
        self.sink(
            "decision",
            {
                "should_commit": decision.should_commit,
                "message": decision.message,
                "significance": decision.significance,
                "completeness": decision.completeness,
                "change_type": decision.change_type,
                "risk_level": decision.risk_level,
                "reason": decision.reason,
            },
        )

    def _on_buffer_finished(
        self, result: str, outcome: Optional[CommitOutcome]
    ) -> None:
        if result == "committed":
            self.last_commit_at = self._clock()
            self.tracker.forget()
        self.window.reset()
        if self._changed_while_executing:
            self._changed_while_executing = False
            if self.ready:
                self.window.record()
                self._rearm_for_recorded_activity()

    @staticmethod
    def _report_crashed_cycle(task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("decision cycle crashed", exc_info=exc)


async def commit_once(
    config: Config,
    repo: GitRepo,
    engine: DecisionEngine,
    executor: CommitExecutor,
    *,
    sink: Optional[EventSink] = None,
    dry_run: bool = False,
) -> Optional[CommitOutcome]:
    """Commit the current changes immediately, without buffering.

    Returns None when there is nothing to commit or on a dry run.
    """
    sink = sink or LoggingSink()
    diff = await safe_operation(
        lambda: asyncio.to_thread(repo.get_diff), "Diff capture", sink=sink
    )
    if not diff.strip():
        sink("cycle_skipped", {"reason": "no changes"})
        return None
    suggester = (
        engine.suggest
        if config.enable_suggestions and config.interactive_on_error
        else None
    )
    message = await safe_operation(
        lambda: engine.generate_message(diff),
        "Commit message generation",
        sink=sink,
    )
    sink("decision", {"should_commit": True, "message": message, "dry_run": dry_run})
    if dry_run:
        return None
    outcome = await safe_operation(
        lambda: executor.execute(message),
        "Commit operation",
        sink=sink,
        suggester=suggester,
    )
    sink(
        "committed",
        {
            "message": outcome.message,
            "pushed": outcome.pushed,
            "branch": outcome.branch,
            "upstream_created": outcome.upstream_created,
        },
    )
    return outcome
