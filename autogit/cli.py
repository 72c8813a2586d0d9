"""Command-line interface for autogit."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from . import __version__
from .config import COMMIT_MODES, COMMIT_THRESHOLDS, Config, load_config, save_config
from .core import WatchSession, commit_once
from .decision import DecisionEngine
from .events import EventSink, JsonLinesSink, LoggingSink, MultiSink
from .exceptions import AutoGitError, ConfigError
from .executor import CommitExecutor
from .git import GitRepo, find_git_repo_root
from .keyboard import KEY_HELP, KeyboardControls
from .llm import LLMClient
from .ratelimit import RateLimiter

RESET = "\033[0m"
BOLD = "\033[1m"
CYAN = "\033[96m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
MAGENTA = "\033[95m"
DIM = "\033[2m"
RED = "\033[91m"

SUBCOMMANDS = ("watch", "commit", "config")


def _value(item: Any) -> Any:
    return getattr(item, "value", item)


class ConsoleRenderer:
    """Render session events as short coloured lines."""

    def __init__(self, stream: Optional[TextIO] = None, color: Optional[bool] = None):
        self._stream = stream or sys.stdout
        isatty = getattr(self._stream, "isatty", None)
        self._tty = bool(isatty and isatty())
        if color is None:
            color = self._tty and not os.environ.get("NO_COLOR")
        self._color = color
        self._countdown_open = False

    def _paint(self, color: str, text: str) -> str:
        return f"{color}{text}{RESET}" if self._color else text

    def _write(self, line: str) -> None:
        if self._countdown_open:
            self._stream.write("\n")
            self._countdown_open = False
        self._stream.write(line + "\n")
        self._stream.flush()

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        if event == "countdown":
            if self._tty:
                remaining = payload.get("remaining_seconds", 0)
                self._stream.write(
                    "\r" + self._paint(DIM, f"   committing in {remaining:.0f}s ")
                )
                self._stream.flush()
                self._countdown_open = True
            return
        line = self.format(event, payload)
        if line:
            self._write(line)

    def format(self, event: str, payload: Dict[str, Any]) -> Optional[str]:
        if event == "ready":
            push = "on" if payload.get("push") else "off"
            return (
                f"{self._paint(BOLD, '🚀 autogit')} watching {payload.get('repo')} "
                f"({payload.get('mode')} mode, push {push})"
            )
        if event == "controls":
            return self._paint(DIM, payload.get("help", ""))
        if event == "file_change":
            return self._paint(DIM, f"  {payload.get('kind')} {payload.get('path')}")
        if event == "cycle_started":
            return self._paint(CYAN, "🧠 Analyzing changes...")
        if event == "cycle_skipped":
            return self._paint(DIM, f"   skipped: {payload.get('reason')}")
        if event == "waiting":
            return self._paint(
                YELLOW,
                f"⏳ Waiting {payload.get('remaining_seconds', 0):.0f}s "
                f"({payload.get('reason')})",
            )
        if event == "decision":
            return self._format_decision(payload)
        if event == "countdown_started":
            return self._paint(
                MAGENTA,
                f"⏱  Committing in {payload.get('seconds', 0):.0f}s, "
                "press c to cancel",
            )
        if event == "cancelled":
            return self._paint(YELLOW, f"✋ Commit cancelled: {payload.get('reason')}")
        if event == "committed":
            subject = str(payload.get("message") or "").splitlines()[:1]
            text = f"🏁 Committed: {subject[0] if subject else ''}"
            if payload.get("pushed"):
                branch = payload.get("branch")
                text += f" (pushed{' to ' + branch if branch else ''})"
            return self._paint(GREEN, text)
        if event == "error":
            text = f"❌ {payload.get('operation')} failed: {payload.get('error')}"
            return self._paint(RED, text)
        if event == "suggestion":
            return self._paint(CYAN, f"💡 {payload.get('suggestion')}")
        if event in {"paused", "resumed", "stopped"}:
            return self._paint(DIM, f"   {event}")
        return f"{event} {payload}"

    def _format_decision(self, payload: Dict[str, Any]) -> str:
        message = str(payload.get("message") or "")
        if payload.get("dry_run"):
            return self._paint(BOLD, "Proposed commit message:") + "\n" + message
        if not payload.get("should_commit"):
            return self._paint(
                YELLOW, f"⏸  Not committing: {payload.get('reason') or 'declined'}"
            )
        details = ""
        if payload.get("significance"):
            details = self._paint(
                DIM,
                f" [{_value(payload['significance'])} "
                f"{_value(payload.get('change_type'))}]",
            )
        subject = message.splitlines()[0] if message else ""
        return self._paint(GREEN, f"✅ {subject}") + details


class CLI:
    """argparse front end dispatching to the watch, commit and config commands."""

    def __init__(self) -> None:
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            "--repo-path", help="Repository to operate on (default: cwd)"
        )
        common.add_argument("--provider", help="LLM provider (openai, anthropic, ...)")
        common.add_argument("--model", help="LLM model name")
        common.add_argument("--endpoint", help="LLM API base URL")
        common.add_argument("--api-key-env", help="Environment variable with the API key")
        common.add_argument("--no-push", action="store_true", help="Never push")
        common.add_argument("--json", action="store_true", help="Emit JSON-lines events")
        common.add_argument("-v", "--verbose", action="store_true")
        common.add_argument("--debug", action="store_true")

        tuning = argparse.ArgumentParser(add_help=False)
        tuning.add_argument("--mode", choices=COMMIT_MODES, help="Commit mode")
        tuning.add_argument(
            "--threshold", choices=COMMIT_THRESHOLDS, help="Minimum significance"
        )
        tuning.add_argument("--buffer", type=float, help="Cancel window in seconds")
        tuning.add_argument("--debounce", type=float, help="Periodic quiet period")
        tuning.add_argument("--settle", type=float, help="Intelligent quiet period")
        tuning.add_argument(
            "--min-interval", type=float, help="Minimum seconds between commits"
        )
        tuning.add_argument("--max-calls", type=int, help="LLM calls per minute")

        parser = argparse.ArgumentParser(
            prog="autogit",
            description="Watch a git repository and commit changes with AI messages.",
        )
        parser.add_argument("--version", action="version", version=__version__)
        sub = parser.add_subparsers(dest="command")
        sub.add_parser(
            "watch", parents=[common, tuning], help="Watch and auto-commit (default)"
        )
        commit = sub.add_parser(
            "commit", parents=[common], help="Commit current changes once"
        )
        commit.add_argument(
            "--dry-run", action="store_true", help="Print the message only"
        )
        cfg = sub.add_parser(
            "config", parents=[common, tuning], help="Show or save configuration"
        )
        cfg.add_argument("--show", action="store_true")
        cfg.add_argument("--save", action="store_true")
        return parser

    def run(self, args: Optional[list[str]] = None) -> int:
        argv = list(sys.argv[1:] if args is None else args)
        if not argv or (
            argv[0] not in SUBCOMMANDS and argv[0] not in {"-h", "--help", "--version"}
        ):
            argv.insert(0, "watch")
        try:
            parsed = self.parser.parse_args(argv)
        except SystemExit as exc:
            return exc.code if isinstance(exc.code, int) else 2

        self._configure_logging(parsed)
        sink = self._build_sink(parsed)
        try:
            config = self._load_config(parsed)
        except ConfigError as exc:
            self._error(f"Configuration error: {exc}")
            return 2

        try:
            if parsed.command == "config":
                return self._run_config(parsed, config)
            if parsed.command == "commit":
                return self._run_commit(parsed, config, sink)
            return self._run_watch(parsed, config, sink)
        except ConfigError as exc:
            self._error(f"Configuration error: {exc}")
            return 2
        except AutoGitError as exc:
            self._error(str(exc))
            return 1
        except KeyboardInterrupt:
            return 0

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def _configure_logging(self, parsed: argparse.Namespace) -> None:
        level = logging.WARNING
        if parsed.debug:
            level = logging.DEBUG
        elif parsed.verbose:
            level = logging.INFO
        logging.basicConfig(
            level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )

    def _build_sink(self, parsed: argparse.Namespace) -> EventSink:
        primary: EventSink = JsonLinesSink() if parsed.json else ConsoleRenderer()
        if parsed.debug:
            return MultiSink([primary, LoggingSink()])
        return primary

    def _overrides(self, parsed: argparse.Namespace) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {
            "provider": parsed.provider,
            "model": parsed.model,
            "endpoint": parsed.endpoint,
            "api_key_env": parsed.api_key_env,
            "push_enabled": False if parsed.no_push else None,
        }
        tuning = {
            "commit_mode": "mode",
            "commit_threshold": "threshold",
            "buffer_seconds": "buffer",
            "debounce_seconds": "debounce",
            "settle_seconds": "settle",
            "min_interval_seconds": "min_interval",
            "max_calls_per_minute": "max_calls",
        }
        for field_name, attr in tuning.items():
            overrides[field_name] = getattr(parsed, attr, None)
        return overrides

    def _load_config(self, parsed: argparse.Namespace) -> Config:
        start = Path(parsed.repo_path or ".").expanduser().resolve(strict=False)
        repo_root = find_git_repo_root(start) or start
        overrides = self._overrides(parsed)
        if parsed.repo_path:
            overrides["repo_path"] = str(repo_root)
        return load_config(repo_root=repo_root, overrides=overrides)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _run_config(self, parsed: argparse.Namespace, config: Config) -> int:
        if parsed.save:
            path = save_config(config, Path(config.git_repo_path))
            self._info(f"Saved configuration to {path}")
        if parsed.show or not parsed.save:
            print(json.dumps(config.to_dict(), indent=2))
        return 0

    def _run_commit(
        self, parsed: argparse.Namespace, config: Config, sink: EventSink
    ) -> int:
        repo = GitRepo(config.git_repo_path, config)
        engine = DecisionEngine(
            LLMClient(config, debug=parsed.debug),
            RateLimiter(config.max_calls_per_minute),
            config,
        )
        executor = CommitExecutor(repo, push_enabled=config.push_enabled)
        asyncio.run(
            commit_once(
                config, repo, engine, executor, sink=sink, dry_run=parsed.dry_run
            )
        )
        return 0

    def _run_watch(
        self, parsed: argparse.Namespace, config: Config, sink: EventSink
    ) -> int:
        session = WatchSession.from_config(config, sink=sink, debug=parsed.debug)
        asyncio.run(self._watch(session, sink, interactive=not parsed.json))
        return 0

    async def _watch(
        self, session: WatchSession, sink: EventSink, interactive: bool = True
    ) -> None:
        loop = asyncio.get_running_loop()
        controls = KeyboardControls(
            loop,
            on_cancel=session.cancel_pending,
            on_pause=session.pause,
            on_resume=session.resume,
            on_quit=session.stop,
        )
        if interactive and controls.start():
            sink("controls", {"help": KEY_HELP})
        try:
            await session.run()
        finally:
            controls.stop()

    def _info(self, message: str) -> None:
        print(f"{CYAN}{message}{RESET}" if sys.stdout.isatty() else message)

    def _error(self, message: str) -> None:
        text = f"Error: {message}"
        if sys.stderr.isatty():
            text = f"{RED}{text}{RESET}"
        print(text, file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    return CLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
