import asyncio
import time

import pytest

from autogit.buffer import BufferState
from autogit.core import commit_once
from autogit.decision import DecisionEngine
from autogit.events import ChangeEvent, RecordingSink
from autogit.exceptions import GitError, LLMError, NotARepositoryError
from autogit.ratelimit import RateLimiter

from conftest import FakeClient, FakeExecutor, FakeRepo, make_config


async def until(predicate, timeout=3.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


def _change(path="app.py", kind="modify"):
    return ChangeEvent(kind=kind, path=path)


def test_periodic_burst_produces_single_commit(make_session):
    session, client, executor, sink, _ = make_session(commit_mode="periodic")

    async def scenario():
        session.start()
        for i in range(5):
            session.on_change_event(_change(f"f{i}.py"))
            await asyncio.sleep(0.01)
        await until(lambda: executor.messages)
        await session.buffer.wait_idle()
        await asyncio.sleep(0.1)

    asyncio.run(scenario())

    assert executor.messages == ["feat(app): add greeting"]
    assert [c[0] for c in client.calls] == ["message"]
    assert sink.names().count("cycle_started") == 1
    assert sink.of("committed")[0]["message"] == "feat(app): add greeting"
    assert session.last_commit_at is not None
    assert session.buffer.state is BufferState.EMPTY


def test_intelligent_threshold_demotes_minor_change(make_session):
    client = FakeClient(
        analysis={
            "should_commit": True,
            "message": "style: fix spacing",
            "significance": "minor",
            "completeness": "complete",
            "change_type": "style",
            "risk_level": "low",
            "reason": "Whitespace only",
        }
    )
    session, _, executor, sink, _ = make_session(
        client=client, commit_mode="intelligent", commit_threshold="medium"
    )

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: sink.of("decision"))
        await asyncio.sleep(0.15)

    asyncio.run(scenario())

    decision = sink.of("decision")[0]
    assert decision["should_commit"] is False
    assert "overridden" in decision["reason"]
    assert "countdown_started" not in sink.names()
    assert executor.messages == []
    assert session.is_processing is False


def test_user_cancel_during_countdown_prevents_commit(make_session):
    session, _, executor, sink, _ = make_session(buffer_seconds=0.5)

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: session.buffer.is_armed)
        assert session.cancel_pending() is True
        await asyncio.sleep(0.6)

    asyncio.run(scenario())

    assert executor.messages == []
    assert sink.of("cancelled")[0]["reason"] == "cancelled by user"
    assert session.buffer.pending is None
    assert session.window.event_count == 0
    assert session.cancel_pending() is False


def test_rate_limited_cycle_surfaces_error_and_keeps_watching(make_session):
    clock = [100.0]
    limiter = RateLimiter(1, clock=lambda: clock[0])
    limiter.record_call()
    session, client, executor, sink, repo = make_session(limiter=limiter)

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: sink.of("error"))
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    error = sink.of("error")[0]
    assert error["error_type"] == "RateLimitExceeded"
    assert error["retry_after"] == pytest.approx(60.0)
    assert client.calls == []
    assert executor.messages == []
    # The diff stays eligible once the budget frees up
    assert session.tracker.last_fingerprint is None
    assert session.ready and not session.is_processing


def test_unchanged_diff_is_not_reanalysed(make_session):
    client = FakeClient(
        analysis={"should_commit": False, "message": "", "reason": "work in progress"}
    )
    session, _, _, sink, repo = make_session(client=client, commit_mode="intelligent")

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: sink.of("decision"))
        await until(lambda: not session.is_processing)
        session.on_change_event(_change())
        await until(lambda: sink.of("cycle_skipped"))

    asyncio.run(scenario())

    assert len(client.calls) == 1
    assert repo.diff_calls == 2
    assert sink.of("cycle_skipped")[0]["reason"] == "diff unchanged since last analysis"


def test_changes_during_countdown_do_not_arm_second_commit(make_session):
    session, client, executor, sink, _ = make_session(
        buffer_seconds=0.3, cancel_on_new_changes=False
    )

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: session.buffer.is_armed)
        session.on_change_event(_change("other.py"))
        await asyncio.sleep(0.1)
        assert session.window.settle_handle is None
        await until(lambda: executor.messages)
        await session.buffer.wait_idle()

    asyncio.run(scenario())

    assert len(executor.messages) == 1
    assert len(client.calls) == 1
    assert "cancelled" not in sink.names()
    assert session.window.event_count == 0


def test_new_changes_cancel_countdown_and_start_fresh_cycle(make_session):
    session, client, executor, sink, repo = make_session(buffer_seconds=0.3)

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: session.buffer.is_armed)
        repo.diff = repo.diff + "\n+print('more')"
        session.on_change_event(_change())
        assert sink.of("cancelled")[0]["reason"] == "new changes detected"
        await until(lambda: executor.messages)
        await session.buffer.wait_idle()

    asyncio.run(scenario())

    assert len(client.calls) == 2
    assert len(executor.messages) == 1
    assert sink.names().count("countdown_started") == 2


def test_edit_during_commit_execution_starts_new_cycle(make_session):
    executor = FakeExecutor(delay=0.2)
    session, client, _, sink, repo = make_session(executor=executor)

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: session.buffer.state is BufferState.EXECUTING)
        repo.diff = repo.diff + "\n+print('late')"
        session.on_change_event(_change("late.py"))
        await until(lambda: len(executor.messages) == 2)
        await session.buffer.wait_idle()

    asyncio.run(scenario())

    assert sink.names().count("cycle_started") == 2
    assert len(client.calls) == 2
    assert sink.names().count("committed") == 2
    assert session.window.event_count == 0


def test_min_interval_defers_cycle_after_recent_commit(make_session):
    session, client, executor, sink, _ = make_session(
        commit_mode="intelligent", min_interval_seconds=0.3
    )

    async def scenario():
        session.start()
        session.last_commit_at = time.monotonic()
        session.on_change_event(_change())
        await until(lambda: sink.of("waiting"))
        assert client.calls == []
        assert session.window.min_interval_handle is not None
        await until(lambda: sink.of("decision"))

    asyncio.run(scenario())

    assert sink.of("waiting")[0]["remaining_seconds"] > 0
    assert sink.of("cycle_started")[0]["trigger"] == "minimum interval elapsed"


def test_activity_while_waiting_rearms_settle_timer(make_session):
    session, client, _, sink, _ = make_session(
        commit_mode="intelligent", min_interval_seconds=0.5
    )

    async def scenario():
        session.start()
        session.last_commit_at = time.monotonic()
        session.on_change_event(_change())
        await until(lambda: session.window.min_interval_handle is not None)
        session.on_change_event(_change("b.py"))
        assert session.window.min_interval_handle is None
        assert session.window.settle_handle is not None
        session.stop()

    asyncio.run(scenario())

    assert client.calls == []
    assert "stopped" in sink.names()


def test_commit_failure_is_surfaced_with_suggestion(make_session):
    executor = FakeExecutor(error=GitError("push rejected: non-fast-forward"))
    session, client, _, sink, _ = make_session(executor=executor)

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: sink.of("suggestion"))
        await session.buffer.wait_idle()

    asyncio.run(scenario())

    assert sink.of("error")[0]["operation"] == "Auto-commit operation"
    suggestion = sink.of("suggestion")[0]
    assert suggestion["source"] == "ai"
    assert ("suggest", "push rejected: non-fast-forward") in client.calls
    assert session.last_commit_at is None
    assert session.buffer.state is BufferState.EMPTY


def test_llm_failure_forgets_fingerprint(make_session):
    client = FakeClient(error=LLMError("provider down"))
    session, _, executor, sink, _ = make_session(client=client)

    async def scenario():
        session.start()
        session.on_change_event(_change())
        await until(lambda: sink.of("error"))
        await until(lambda: not session.is_processing)

    asyncio.run(scenario())

    assert session.tracker.last_fingerprint is None
    assert executor.messages == []
    assert sink.of("error")[0]["operation"] == "Commit analysis"


def test_paused_session_ignores_events(make_session):
    session, client, _, sink, _ = make_session()

    async def scenario():
        session.start()
        session.pause()
        session.on_change_event(_change())
        await asyncio.sleep(0.1)
        session.resume()

    asyncio.run(scenario())

    assert client.calls == []
    assert "file_change" not in sink.names()
    assert sink.names()[-2:] == ["paused", "resumed"]


def test_events_before_ready_are_ignored(make_session):
    session, _, _, sink, _ = make_session()
    session.on_change_event(_change())
    assert sink.events == []
    assert session.window.event_count == 0


def test_run_rejects_non_repository(make_session):
    class _NotRepo(FakeRepo):
        def is_repo(self):
            return False

    session, _, _, _, _ = make_session(repo=_NotRepo())
    with pytest.raises(NotARepositoryError):
        asyncio.run(session.run())


def test_run_wires_watcher_and_stops(make_session):
    session, _, executor, sink, _ = make_session()
    started = {}

    class _Watcher:
        def __init__(self, root, on_event, config):
            started["root"] = root
            self.on_event = on_event

        def start(self):
            started["start"] = True

        def stop(self):
            started["stop"] = True

    session._watcher_factory = _Watcher

    async def scenario():
        task = asyncio.create_task(session.run())
        await until(lambda: session.ready)
        session._watcher.on_event(_change())
        await until(lambda: executor.messages)
        await session.buffer.wait_idle()
        session.stop()
        await task

    asyncio.run(scenario())

    assert started == {"root": session.repo.repo_path, "start": True, "stop": True}
    assert sink.names()[0] == "ready"
    assert sink.names()[-1] == "stopped"


def _engine(client):
    return DecisionEngine(client, RateLimiter(5), make_config())


def test_commit_once_commits_immediately():
    client, executor, sink = FakeClient(), FakeExecutor(), RecordingSink()
    outcome = asyncio.run(
        commit_once(make_config(), FakeRepo(), _engine(client), executor, sink=sink)
    )
    assert outcome.message == "feat(app): add greeting"
    assert executor.messages == ["feat(app): add greeting"]
    assert sink.names() == ["decision", "committed"]


def test_commit_once_dry_run_and_clean_tree():
    executor, sink = FakeExecutor(), RecordingSink()
    result = asyncio.run(
        commit_once(
            make_config(),
            FakeRepo(),
            _engine(FakeClient()),
            executor,
            sink=sink,
            dry_run=True,
        )
    )
    assert result is None
    assert executor.messages == []
    assert sink.of("decision")[0]["dry_run"] is True

    clean = asyncio.run(
        commit_once(make_config(), FakeRepo(diff=""), _engine(FakeClient()), executor)
    )
    assert clean is None
