"""Interactive controls — keyboard and signals mapped onto an AggregationView."""

import asyncio
import contextlib
import os
import signal
import sys
import termios
import tty
from collections.abc import Iterator

from preval.session.application.orchestrator import AggregationView

PAUSE_KEY = b" "
QUIT_KEYS = (b"q", b"Q")


def handle_key(key: bytes, view: AggregationView) -> None:
    if key == PAUSE_KEY:
        view.toggle_pause()
    elif key in QUIT_KEYS:
        view.stop_all()


@contextlib.contextmanager
def signal_controls(
    loop: asyncio.AbstractEventLoop, view: AggregationView
) -> Iterator[None]:
    """SIGUSR1 toggles pause; SIGINT and SIGTERM stop every session."""
    handlers = {
        signal.SIGUSR1: view.toggle_pause,
        signal.SIGINT: view.stop_all,
        signal.SIGTERM: view.stop_all,
    }
    for signum, handler in handlers.items():
        loop.add_signal_handler(signum, handler)
    try:
        yield
    finally:
        for signum in handlers:
            loop.remove_signal_handler(signum)


@contextlib.contextmanager
def keyboard_controls(
    loop: asyncio.AbstractEventLoop, view: AggregationView, enabled: bool = True
) -> Iterator[None]:
    """Single-key controls while stdin is a terminal; a no-op otherwise."""
    if not enabled or not sys.stdin.isatty():
        yield
        return

    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)
    tty.setcbreak(fd)

    def on_readable() -> None:
        key = os.read(fd, 1)
        if key:
            handle_key(key, view)

    loop.add_reader(fd, on_readable)
    try:
        yield
    finally:
        loop.remove_reader(fd)
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)
