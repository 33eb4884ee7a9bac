"""Base exception class for all preval-specific errors."""


class PrevalError(Exception):
    """Base class for all preval errors."""

    def __init__(self, message: str, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal
