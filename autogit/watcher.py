"""File-system watching built on watchdog."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .events import ChangeEvent
from .exceptions import WatcherError

logger = logging.getLogger(__name__)

_KIND_BY_EVENT_TYPE = {
    "created": "add",
    "modified": "modify",
    "deleted": "delete",
    "moved": "rename",
}


def compile_ignore_patterns(patterns: Iterable[str]) -> List[re.Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise WatcherError(f"Invalid ignore pattern '{pattern}': {exc}") from exc
    return compiled


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: "RepoWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        kind = _KIND_BY_EVENT_TYPE.get(event.event_type)
        if kind is None:
            return
        path = getattr(event, "dest_path", "") if kind == "rename" else ""
        self._watcher.dispatch(kind, path or event.src_path)


class RepoWatcher:
    """Report file changes under a repository as ChangeEvents.

    ``on_event`` is called from the observer thread; callers hand the event
    over to their own loop. Paths matching any ignore pattern (relative to
    ``root``, forward slashes) are dropped.
    """

    def __init__(
        self,
        root: Path,
        on_event: Callable[[ChangeEvent], None],
        *,
        ignore_patterns: Optional[Iterable[str]] = None,
        paths: Optional[Iterable[str]] = None,
    ) -> None:
        self.root = Path(root).resolve()
        self._on_event = on_event
        self._ignore = compile_ignore_patterns(ignore_patterns or [])
        self.paths = list(paths or ["."])
        self._observer: Optional[Observer] = None

    def relative(self, path: str) -> str:
        try:
            rel = os.path.relpath(os.fsdecode(path), self.root)
        except ValueError:
            rel = os.fsdecode(path)
        return rel.replace(os.sep, "/")

    def is_ignored(self, rel_path: str) -> bool:
        return any(pattern.search(rel_path) for pattern in self._ignore)

    def dispatch(self, kind: str, path: str) -> None:
        rel = self.relative(path)
        if rel.startswith("../") or self.is_ignored(rel):
            return
        logger.debug("%s %s", kind, rel)
        self._on_event(ChangeEvent(kind=kind, path=rel))

    def start(self) -> None:
        observer = Observer()
        handler = _ChangeHandler(self)
        try:
            for entry in self.paths:
                target = (self.root / entry).resolve()
                if not target.exists():
                    raise WatcherError(f"Watch path does not exist: {target}")
                observer.schedule(handler, str(target), recursive=True)
            observer.start()
        except OSError as exc:
            raise WatcherError(f"Could not start file watcher: {exc}") from exc
        self._observer = observer
        logger.info("watching %s", ", ".join(self.paths))

    def stop(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        observer.join(timeout=5)
