"""autogit - watch a working tree and commit with AI-drafted messages."""

from importlib import import_module
from typing import TYPE_CHECKING

__version__ = "0.1.0"

# Public API (lazy-exported to avoid import-time side effects)
__all__ = [
    # Config
    "Config", "load_config",
    # Collaborators
    "GitRepo", "LLMClient",
    # Orchestration
    "WatchSession", "CommitBuffer", "CommitExecutor", "DecisionEngine",
    "RateLimiter", "DiffTracker", "CommitDecision",
    # Exceptions
    "AutoGitError", "GitError", "NotARepositoryError", "LLMError",
    "RateLimitExceeded", "WatcherError", "ConfigError", "ValidationError",
]


def __getattr__(name: str):
    """Lazy attribute loader to avoid importing heavy modules at package import time.

    Provider SDKs and watchdog are only pulled in when the symbols that need
    them are accessed.
    """
    mapping = {
        # Config
        "Config": ("autogit.config", "Config"),
        "load_config": ("autogit.config", "load_config"),
        # Collaborators
        "GitRepo": ("autogit.git", "GitRepo"),
        "LLMClient": ("autogit.llm", "LLMClient"),
        # Orchestration
        "WatchSession": ("autogit.core", "WatchSession"),
        "CommitBuffer": ("autogit.buffer", "CommitBuffer"),
        "CommitExecutor": ("autogit.executor", "CommitExecutor"),
        "DecisionEngine": ("autogit.decision", "DecisionEngine"),
        "CommitDecision": ("autogit.decision", "CommitDecision"),
        "RateLimiter": ("autogit.ratelimit", "RateLimiter"),
        "DiffTracker": ("autogit.snapshot", "DiffTracker"),
        # Exceptions
        "AutoGitError": ("autogit.exceptions", "AutoGitError"),
        "GitError": ("autogit.exceptions", "GitError"),
        "NotARepositoryError": ("autogit.exceptions", "NotARepositoryError"),
        "LLMError": ("autogit.exceptions", "LLMError"),
        "RateLimitExceeded": ("autogit.exceptions", "RateLimitExceeded"),
        "WatcherError": ("autogit.exceptions", "WatcherError"),
        "ConfigError": ("autogit.exceptions", "ConfigError"),
        "ValidationError": ("autogit.exceptions", "ValidationError"),
    }
    if name in mapping:
        mod_name, attr = mapping[name]
        mod = import_module(mod_name)
        value = getattr(mod, attr)
        globals()[name] = value  # cache for future access
        return value
    raise AttributeError(f"module 'autogit' has no attribute {name!r}")


if TYPE_CHECKING:
    # For type checkers and IDEs, provide direct imports
    from .buffer import CommitBuffer
    from .config import Config, load_config
    from .core import WatchSession
    from .decision import CommitDecision, DecisionEngine
    from .exceptions import (
        AutoGitError,
        ConfigError,
        GitError,
        LLMError,
        NotARepositoryError,
        RateLimitExceeded,
        ValidationError,
        WatcherError,
    )
    from .executor import CommitExecutor
    from .git import GitRepo
    from .llm import LLMClient
    from .ratelimit import RateLimiter
    from .snapshot import DiffTracker
