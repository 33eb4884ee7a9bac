"""Error types raised while negotiating with an evaluator."""

from preval.core.errors import PrevalError


class HandshakeTimeoutError(PrevalError):
    """Raised when no first line arrives before the handshake deadline."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Failed to receive handshake within {timeout_seconds:g} seconds",
            fatal=True,
        )


class HandshakeRejectedError(PrevalError):
    """Raised when the first line is not an acceptable handshake."""

    def __init__(self, reason: str, detail: str) -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"Failed to accept handshake ({reason}): {detail}", fatal=True)


class NegotiationFinishedError(PrevalError):
    """Raised when a negotiator that already reached a verdict is reused."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Failed to negotiate: handshake already {state}")
