"""ProcessSupervisor — spawns one evaluator subprocess and owns its lifecycle."""

import asyncio
import collections
import os
from collections.abc import AsyncIterator, Mapping, Sequence
from types import TracebackType

from preval.process.domain.exit_status import ExitStatus
from preval.process.domain.observer import ProcessObserver
from preval.process.infrastructure.errors import OutputAlreadyConsumedError, SpawnError

# Upper bound for a single stdout line. OTLP batches can be large.
DEFAULT_LINE_LIMIT = 16 * 1024 * 1024
DEFAULT_GRACE_SECONDS = 3.0
_STDERR_TAIL_LINES = 20


class ProcessHandle:
    """Handle to a running evaluator process.

    stdout is exposed as a single-use async iterator of lines. stderr is drained
    in the background so a chatty evaluator can never block on a full pipe.

    Use as an async context manager: leaving the block always terminates the
    process, whatever the reason for leaving.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        command: str,
        observer: ProcessObserver,
        line_limit: int,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
    ) -> None:
        self._process = process
        self._command = command
        self._observer = observer
        self._line_limit = line_limit
        self._grace_seconds = grace_seconds
        self._reading = False
        self._stderr_tail: collections.deque[str] = collections.deque(
            maxlen=_STDERR_TAIL_LINES
        )
        self._stderr_task = asyncio.create_task(
            self._drain_stderr(), name=f"stderr-{process.pid}"
        )

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def command(self) -> str:
        return self._command

    @property
    def stderr_tail(self) -> list[str]:
        return list(self._stderr_tail)

    def exit_status(self) -> ExitStatus | None:
        """Exit status once the process has been reaped, else None."""
        returncode = self._process.returncode
        if returncode is None:
            return None
        return ExitStatus(returncode=returncode)

    async def lines(self) -> AsyncIterator[str]:
        """Yield stdout lines in order until the process closes stdout.

        Lines are decoded as UTF-8 (invalid bytes replaced) with the trailing
        newline removed. A line longer than the configured limit is discarded
        and yielded as an empty string so that the consumer still sees that
        something unparseable arrived.

        Raises:
            OutputAlreadyConsumedError: if called more than once.
        """
        if self._reading:
            raise OutputAlreadyConsumedError(pid=self.pid)
        self._reading = True

        stdout = self._process.stdout
        assert stdout is not None
        while True:
            try:
                raw = await stdout.readuntil(b"\n")
            except asyncio.IncompleteReadError as exc:
                raw = exc.partial
            except asyncio.LimitOverrunError:
                self._observer.process_line_too_long(pid=self.pid, limit=self._line_limit)
                await _skip_line(stdout)
                yield ""
                continue
            if not raw:
                return
            yield raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def wait(self) -> ExitStatus:
        returncode = await self._process.wait()
        await self._finish_stderr()
        self._observer.process_exited(pid=self.pid, returncode=returncode)
        return ExitStatus(returncode=returncode)

    async def terminate(self, grace_seconds: float | None = None) -> None:
        """Ask the process to stop, then force-kill it after the grace period.

        *grace_seconds* defaults to the grace period the handle was created with.

        Safe to call any number of times and after the process has exited.
        """
        if grace_seconds is None:
            grace_seconds = self._grace_seconds
        if self._process.returncode is None:
            forced = False
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self._process.wait(), timeout=grace_seconds)
            except TimeoutError:
                forced = True
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
                await self._process.wait()
            self._observer.process_terminated(pid=self.pid, forced=forced)
        await self._finish_stderr()

    async def __aenter__(self) -> "ProcessHandle":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.terminate()

    def __del__(self) -> None:
        # Last line of defence for handles dropped without terminate().
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass

    async def _drain_stderr(self) -> None:
        stderr = self._process.stderr
        if stderr is None:
            return
        while True:
            try:
                raw = await stderr.readline()
            except ValueError:
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            self._stderr_tail.append(line)
            self._observer.process_stderr_line(pid=self.pid, line=line)

    async def _finish_stderr(self) -> None:
        if self._stderr_task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=1.0)
        except TimeoutError:
            self._stderr_task.cancel()


async def _skip_line(stream: asyncio.StreamReader) -> None:
    """Discard input up to and including the next newline, or to EOF.

    ``readuntil`` leaves the buffer intact on overrun, so the oversized line is
    consumed chunk by chunk until its newline arrives.
    """
    while True:
        try:
            await stream.readuntil(b"\n")
            return
        except asyncio.LimitOverrunError as exc:
            await stream.readexactly(exc.consumed)
        except asyncio.IncompleteReadError:
            return


class ProcessSupervisor:
    """Launches evaluator subprocesses with piped stdout/stderr and no stdin."""

    def __init__(
        self,
        observer: ProcessObserver,
        line_limit: int = DEFAULT_LINE_LIMIT,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
    ) -> None:
        self._observer = observer
        self._line_limit = line_limit
        self._grace_seconds = grace_seconds

    async def start(
        self,
        command: str,
        arguments: Sequence[str] = (),
        environment: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        """Spawn *command* with *arguments*.

        *environment* is layered over the current process environment.

        Raises:
            SpawnError: if the executable cannot be found or launched.
        """
        env = {**os.environ, **(environment or {})}
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *arguments,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=self._line_limit,
            )
        except (OSError, ValueError) as exc:
            raise SpawnError(command=command, reason=str(exc)) from exc

        self._observer.process_spawned(
            pid=process.pid, command=command, args=list(arguments)
        )
        return ProcessHandle(
            process=process,
            command=command,
            observer=self._observer,
            line_limit=self._line_limit,
            grace_seconds=self._grace_seconds,
        )
