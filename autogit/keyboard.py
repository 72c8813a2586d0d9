"""Single-key controls for an interactive watch session."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import threading
from typing import Callable, Dict, Optional, TextIO

logger = logging.getLogger(__name__)

KEY_HELP = "c: cancel pending commit  Ctrl+P: pause  Ctrl+R: resume  q: quit"


class KeyboardControls:
    """Read keys on a daemon thread and post actions to the event loop.

    Only active when stdin is a TTY; the terminal is switched to cbreak
    mode while running and restored on stop().
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        *,
        on_cancel: Callable[[], object],
        on_pause: Callable[[], object],
        on_resume: Callable[[], object],
        on_quit: Callable[[], object],
        stream: Optional[TextIO] = None,
    ) -> None:
        self._loop = loop
        self._stream = stream or sys.stdin
        self._bindings: Dict[str, Callable[[], object]] = {
            "c": on_cancel,
            "C": on_cancel,
            "\x10": on_pause,  # Ctrl+P
            "\x12": on_resume,  # Ctrl+R
            "q": on_quit,
            "Q": on_quit,
            "\x03": on_quit,  # Ctrl+C
        }
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._saved_attrs = None

    @property
    def available(self) -> bool:
        isatty = getattr(self._stream, "isatty", None)
        return bool(isatty and isatty()) and os.name == "posix"

    def handle_key(self, key: str) -> bool:
        action = self._bindings.get(key)
        if action is None:
            return False
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(action)
        return True

    def start(self) -> bool:
        if not self.available:
            return False
        import termios
        import tty

        fd = self._stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._running.set()
        self._thread = threading.Thread(
            target=self._read_loop, name="autogit-keys", daemon=True
        )
        self._thread.start()
        return True

    def stop(self) -> None:
        self._running.clear()
        if self._saved_attrs is not None:
            import termios

            termios.tcsetattr(
                self._stream.fileno(), termios.TCSADRAIN, self._saved_attrs
            )
            self._saved_attrs = None

    def _read_loop(self) -> None:
        import select

        while self._running.is_set():
            ready, _, _ = select.select([self._stream], [], [], 0.2)
            if not ready:
                continue
            key = self._stream.read(1)
            if not key:
                break
            self.handle_key(key)
