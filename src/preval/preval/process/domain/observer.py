"""Observer port for the process domain — defines events in domain language."""

from typing import Protocol


class ProcessObserver(Protocol):
    def process_spawned(self, pid: int, command: str, args: list[str]) -> None: ...

    def process_stderr_line(self, pid: int, line: str) -> None: ...

    def process_line_too_long(self, pid: int, limit: int) -> None: ...

    def process_exited(self, pid: int, returncode: int) -> None: ...

    def process_terminated(self, pid: int, forced: bool) -> None: ...
