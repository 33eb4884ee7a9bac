"""FakeProcessObserver — records process domain events for assertion in tests."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ProcessSpawnedEvent:
    pid: int
    command: str
    args: list[str]


@dataclass(frozen=True)
class ProcessStderrLineEvent:
    pid: int
    line: str


@dataclass(frozen=True)
class ProcessExitedEvent:
    pid: int
    returncode: int


@dataclass(frozen=True)
class ProcessTerminatedEvent:
    pid: int
    forced: bool


class FakeProcessObserver:
    """Records all emitted process events as typed frozen dataclasses.

    Event lists use a leading underscore + public property pattern to avoid
    name collision between the list attributes and the Protocol method names.
    """

    def __init__(self) -> None:
        self._spawned: list[ProcessSpawnedEvent] = []
        self._stderr: list[ProcessStderrLineEvent] = []
        self._too_long: list[int] = []
        self._exited: list[ProcessExitedEvent] = []
        self._terminated: list[ProcessTerminatedEvent] = []

    @property
    def spawned(self) -> list[ProcessSpawnedEvent]:
        return self._spawned

    @property
    def stderr_lines(self) -> list[str]:
        return [event.line for event in self._stderr]

    @property
    def too_long(self) -> list[int]:
        return self._too_long

    @property
    def exited(self) -> list[ProcessExitedEvent]:
        return self._exited

    @property
    def terminated(self) -> list[ProcessTerminatedEvent]:
        return self._terminated

    def process_spawned(self, pid: int, command: str, args: list[str]) -> None:
        self._spawned.append(ProcessSpawnedEvent(pid=pid, command=command, args=args))

    def process_stderr_line(self, pid: int, line: str) -> None:
        self._stderr.append(ProcessStderrLineEvent(pid=pid, line=line))

    def process_line_too_long(self, pid: int, limit: int) -> None:
        self._too_long.append(limit)

    def process_exited(self, pid: int, returncode: int) -> None:
        self._exited.append(ProcessExitedEvent(pid=pid, returncode=returncode))

    def process_terminated(self, pid: int, forced: bool) -> None:
        self._terminated.append(ProcessTerminatedEvent(pid=pid, forced=forced))
