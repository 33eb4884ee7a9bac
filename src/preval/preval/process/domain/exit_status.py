"""ExitStatus — how an evaluator subprocess ended."""

import signal

from pydantic import BaseModel


class ExitStatus(BaseModel, frozen=True):
    """Return code of an exited process.

    Follows asyncio's convention: a negative return code means the process was
    killed by that signal number.
    """

    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def signal(self) -> int | None:
        if self.returncode < 0:
            return -self.returncode
        return None

    def describe(self) -> str:
        sig = self.signal
        if sig is not None:
            try:
                name = signal.Signals(sig).name
            except ValueError:
                name = f"signal {sig}"
            return f"killed by {name}"
        return f"exited with code {self.returncode}"
