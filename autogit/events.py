"""Change events and the diagnostics sinks the session reports through."""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TextIO, Tuple

logger = logging.getLogger("autogit")

# (event name, payload) -> None
EventSink = Callable[[str, Dict[str, Any]], None]


@dataclass(frozen=True)
class ChangeEvent:
    """One raw file-system notification."""

    kind: str
    path: str
    timestamp: float = field(default_factory=time.time)


def _serialise(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {key: _serialise(val) for key, val in asdict(value).items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(key): _serialise(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialise(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return value


class LoggingSink:
    """Write every session event to the ``autogit`` logger."""

    _LEVELS = {
        "error": logging.ERROR,
        "cancelled": logging.WARNING,
        "file_change": logging.DEBUG,
        "countdown": logging.DEBUG,
    }

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        level = self._LEVELS.get(event, logging.INFO)
        self._log.log(level, "%s %s", event, _serialise(payload))


class JsonLinesSink:
    """Emit ``{"event": ..., "payload": ...}`` objects, one per line."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream or sys.stdout

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        message = {"event": event, "payload": _serialise(payload)}
        self._stream.write(json.dumps(message) + "\n")
        self._stream.flush()


class MultiSink:
    """Fan one event out to several sinks."""

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self._sinks: List[EventSink] = list(sinks)

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        for sink in self._sinks:
            sink(event, payload)


class RecordingSink:
    """Keep emitted events in memory; handy for embedding and tests."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def of(self, event: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]
