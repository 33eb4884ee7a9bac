"""Error types raised by the protocol decoder."""

from preval.core.errors import PrevalError
from preval.protocol.domain.metric import DecodeFailureKind


class ProtocolDecodeError(PrevalError):
    """Raised when a stdout line cannot be decoded as a protocol message."""

    def __init__(self, kind: DecodeFailureKind, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"Failed to decode protocol message ({kind}): {reason}")


class UnexpectedMessageTypeError(ProtocolDecodeError):
    """Raised when a well-formed message is not the type the caller expected."""

    def __init__(self, expected: str, received: str) -> None:
        self.expected = expected
        self.received = received
        super().__init__(
            kind=DecodeFailureKind.SCHEMA_MISMATCH,
            reason=f"expected message type '{expected}', got '{received}'",
        )
