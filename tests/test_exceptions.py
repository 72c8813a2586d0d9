from autogit.exceptions import (
    AutoGitError,
    ConfigError,
    GitError,
    LLMError,
    NotARepositoryError,
    NoUpstreamError,
    RateLimitExceeded,
    ValidationError,
    WatcherError,
)


def test_exceptions_hierarchy_and_str():
    for cls in (GitError, LLMError, WatcherError, ConfigError, ValidationError):
        err = cls("boom")
        assert isinstance(err, AutoGitError)
        assert "boom" in str(err)
    assert issubclass(NotARepositoryError, GitError)
    assert issubclass(NoUpstreamError, GitError)
    assert issubclass(RateLimitExceeded, LLMError)


def test_rate_limit_exceeded_carries_retry_after():
    err = RateLimitExceeded(12.34, limit=15)
    assert err.retry_after == 12.34
    assert err.limit == 15
    assert str(err) == "Rate limited (15 calls/min), retry after 12.3s"
    assert RateLimitExceeded(-3).retry_after == 0.0
