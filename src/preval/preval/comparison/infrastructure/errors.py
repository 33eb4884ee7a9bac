"""Error types raised by comparison infrastructure."""

from pathlib import Path

from preval.core.errors import PrevalError


class SummaryStoreError(PrevalError):
    """Raised when a run summary cannot be read from or written to disk."""

    def __init__(self, operation: str, path: Path, reason: str) -> None:
        self.operation = operation
        self.path = path
        super().__init__(f"Failed to {operation} run summary at {path}: {reason}")
