import asyncio
import os
from collections.abc import Generator
from pathlib import Path

import pytest

from autogit.config import Config
from autogit.core import WatchSession
from autogit.decision import DecisionEngine
from autogit.events import RecordingSink
from autogit.executor import CommitOutcome
from autogit.ratelimit import RateLimiter


@pytest.fixture(autouse=True)
def reset_config(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    # Default to OpenAI provider with a fake key
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    for var in (
        "ANTHROPIC_API_KEY",
        "GEMINI_API_KEY",
        "XAI_API_KEY",
        "GITHUB_TOKEN",
        "GH_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.startswith("AUTO_GIT_"):
            monkeypatch.delenv(var, raising=False)

    from autogit.config import clear_active_config

    clear_active_config()
    yield
    clear_active_config()


# No real Anthropic calls escape during tests that don't mock the endpoint.
@pytest.fixture(autouse=True)
def _block_anthropic_messages(monkeypatch):
    import httpx

    original_post = httpx.post

    def fake_post(url, *args, **kwargs):
        if isinstance(url, str) and "api.anthropic.com" in url:
            raise httpx.ConnectError("network disabled in tests")
        return original_post(url, *args, **kwargs)

    monkeypatch.setattr(httpx, "post", fake_post)


class FakeRepo:
    """In-memory stand-in for GitRepo used by the session tests."""

    def __init__(self, diff: str = "diff --git a/app.py b/app.py\n+print('hi')"):
        self.diff = diff
        self.repo_path = Path("/tmp/fake-repo")
        self.diff_calls = 0

    def is_repo(self) -> bool:
        return True

    def get_diff(self) -> str:
        self.diff_calls += 1
        return self.diff


class FakeClient:
    """LLMClient double recording every call."""

    def __init__(self, message="feat(app): add greeting", analysis=None, error=None):
        self.message = message
        self.analysis = analysis or {
            "should_commit": True,
            "message": message,
            "significance": "medium",
            "completeness": "complete",
            "change_type": "feature",
            "risk_level": "low",
            "reason": "Adds a greeting",
        }
        self.error = error
        self.calls = []

    def generate_commit_message(self, diff):
        self.calls.append(("message", diff))
        if self.error is not None:
            raise self.error
        return self.message

    def classify(self, diff, threshold="medium", require_completeness=True):
        self.calls.append(("classify", diff))
        if self.error is not None:
            raise self.error
        return dict(self.analysis)

    def suggest_fix(self, error_text):
        self.calls.append(("suggest", error_text))
        return "Run git pull --rebase, then retry"


class FakeExecutor:
    def __init__(self, error=None, delay=0.0):
        self.error = error
        self.delay = delay
        self.messages = []

    async def execute(self, message):
        self.messages.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CommitOutcome(message=message, pushed=False)


def make_config(**overrides) -> Config:
    values = dict(
        provider="openai",
        model="gpt-test",
        llm_endpoint="http://llm.local/v1",
        api_key_env="OPENAI_API_KEY",
        git_repo_path="/tmp/fake-repo",
        debounce_seconds=0.05,
        settle_seconds=0.05,
        min_interval_seconds=0.0,
        buffer_seconds=0.1,
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def make_session():
    """Build a WatchSession wired to fakes with tiny timer durations."""

    def _make(client=None, executor=None, repo=None, limiter=None, **config_overrides):
        config = make_config(**config_overrides)
        client = client or FakeClient()
        executor = executor or FakeExecutor()
        repo = repo or FakeRepo()
        limiter = limiter or RateLimiter(config.max_calls_per_minute)
        sink = RecordingSink()
        engine = DecisionEngine(client, limiter, config)
        session = WatchSession(
            config,
            repo,
            engine,
            executor,
            sink=sink,
            buffer_tick=0.02,
        )
        return session, client, executor, sink, repo

    return _make
