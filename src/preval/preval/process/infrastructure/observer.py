"""StructlogProcessObserver — production observer that delegates to structlog."""

import structlog


class StructlogProcessObserver:
    """Logs process lifecycle events to structlog.

    Does NOT inherit from ProcessObserver (structural typing via Protocol).
    """

    def __init__(self, session_id: str | None = None) -> None:
        self._log = structlog.get_logger().bind(session_id=session_id)

    def process_spawned(self, pid: int, command: str, args: list[str]) -> None:
        self._log.info("process.spawned", pid=pid, command=command, args=args)

    def process_stderr_line(self, pid: int, line: str) -> None:
        self._log.debug("process.stderr", pid=pid, line=line)

    def process_line_too_long(self, pid: int, limit: int) -> None:
        self._log.warning("process.line_too_long", pid=pid, limit=limit)

    def process_exited(self, pid: int, returncode: int) -> None:
        self._log.info("process.exited", pid=pid, returncode=returncode)

    def process_terminated(self, pid: int, forced: bool) -> None:
        self._log.info("process.terminated", pid=pid, forced=forced)
