"""Git operations for autogit."""

from __future__ import annotations

import hashlib
import logging
import subprocess
from pathlib import Path
from typing import Optional

from .config import Config, get_active_config
from .exceptions import GitError, NoUpstreamError, NotARepositoryError

logger = logging.getLogger(__name__)

_NO_UPSTREAM_MARKERS = ("no upstream branch", "--set-upstream")


def find_git_repo_root(start_path: Optional[Path] = None) -> Optional[Path]:
    """Return the top-level Git repository directory for ``start_path``.

    Attempts ``git rev-parse --show-toplevel`` first so worktrees and
    submodules are handled correctly. Falls back to walking parent
    directories looking for a ``.git`` directory or file. Returns ``None``
    when no Git repository can be found starting from ``start_path``.
    """

    path = Path(start_path or Path.cwd()).expanduser().resolve(strict=False)
    if path.is_file():
        path = path.parent

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=path,
            capture_output=True,
            text=True,
            check=True,
        )
        top = result.stdout.strip()
        if top:
            return Path(top)
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        pass

    for candidate in (path, *path.parents):
        if (candidate / ".git").exists():
            return candidate

    return None


class GitRepo:
    """Thin wrapper over the git CLI used by the watch session."""

    def __init__(
        self,
        repo_path: Optional[str] = None,
        config: Optional[Config] = None,
    ) -> None:
        self._config = config or get_active_config()
        self.repo_path = Path(repo_path or self._config.git_repo_path)
        if not self.is_repo():
            raise NotARepositoryError(
                f"Not a git repository: {self.repo_path}. "
                "Run inside a repository or initialise one with: git init"
            )

    def is_repo(self) -> bool:
        """Check if ``repo_path`` is inside a Git working tree."""
        try:
            self._run_git_command(["rev-parse", "--git-dir"])
            return True
        except GitError:
            return False

    def _run_git_command(self, args: list[str]) -> str:
        """Run a Git command and return its stripped stdout."""
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=True,
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            cmd = " ".join(args)
            stderr = (e.stderr or "").strip()
            raise GitError(f"Git command failed: {cmd}\n{stderr}") from e
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise GitError("Git command not found. Please install Git.") from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def status_porcelain(self) -> str:
        return self._run_git_command(["status", "--porcelain"])

    def has_changes(self) -> bool:
        """Return True when the working tree has anything to commit."""
        return bool(self.status_porcelain())

    def get_working_diff(self) -> str:
        return self._run_git_command(["diff"])

    def get_staged_diff(self) -> str:
        return self._run_git_command(["diff", "--cached"])

    def list_untracked(self) -> list[str]:
        output = self._run_git_command(
            ["ls-files", "--others", "--exclude-standard"]
        )
        return [line for line in output.splitlines() if line.strip()]

    def untracked_digest(self, name: str) -> str:
        """Short content hash of an untracked file, or ``missing``."""
        try:
            data = (self.repo_path / name).read_bytes()
        except OSError:
            return "missing"
        return hashlib.sha256(data).hexdigest()[:12]

    def get_diff(self) -> str:
        """Return the aggregate diff of unstaged and staged changes.

        Untracked files are listed with a short content hash, so editing a
        file that is still untracked changes the diff text as well.
        """
        parts: list[str] = []
        unstaged = self.get_working_diff()
        if unstaged:
            parts.append(f"Unstaged changes:\n{unstaged}")
        staged = self.get_staged_diff()
        if staged:
            parts.append(f"Staged changes:\n{staged}")
        untracked = self.list_untracked()
        if untracked:
            listing = "\n".join(
                f"{name} ({self.untracked_digest(name)})" for name in untracked
            )
            parts.append(f"New untracked files:\n{listing}")
        return "\n\n".join(parts).strip()

    def current_branch(self) -> str:
        branch = self._run_git_command(["branch", "--show-current"])
        if not branch:
            raise GitError("Cannot determine current branch (detached HEAD?)")
        return branch

    def has_remote(self) -> bool:
        try:
            return bool(self._run_git_command(["remote"]))
        except GitError:
            return False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def stage_all(self) -> None:
        """Stage all changes (including new and deleted files)."""
        self._run_git_command(["add", "-A"])

    def commit(self, message: str) -> None:
        """Create a commit with the given message."""
        self._run_git_command(["commit", "-m", message])

    def push(
        self,
        set_upstream: bool = False,
        remote: str = "origin",
        branch: Optional[str] = None,
    ) -> str:
        """Push the current branch.

        A plain push relies on the configured upstream. With
        ``set_upstream`` the branch is pushed to ``remote`` and tracked.
        Raises NoUpstreamError when git refuses because no upstream exists.
        """
        if set_upstream:
            target = branch or self.current_branch()
            args = ["push", "--set-upstream", remote, target]
        else:
            args = ["push"]
        try:
            return self._run_git_command(args)
        except GitError as e:
            text = str(e).lower()
            if not set_upstream and any(m in text for m in _NO_UPSTREAM_MARKERS):
                raise NoUpstreamError(str(e)) from e
            raise
