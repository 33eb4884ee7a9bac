"""Error types raised by process infrastructure."""

from preval.core.errors import PrevalError


class SpawnError(PrevalError):
    """Raised when the evaluator executable cannot be launched."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(
            f"Failed to spawn evaluator '{command}': {reason}", fatal=True
        )


class OutputAlreadyConsumedError(PrevalError):
    """Raised when a second reader asks for a process's stdout lines."""

    def __init__(self, pid: int) -> None:
        super().__init__(
            f"Failed to read evaluator output: stdout of pid {pid} already has a reader"
        )
