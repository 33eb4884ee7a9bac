"""HandshakeNegotiator — turns the first stdout line into an accepted Handshake."""

import asyncio
from enum import StrEnum
from typing import NoReturn

from preval.protocol.domain.handshake import Handshake
from preval.protocol.infrastructure.decoder import decode_handshake
from preval.protocol.infrastructure.errors import (
    ProtocolDecodeError,
    UnexpectedMessageTypeError,
)
from preval.session.application.channel import EndOfStream, LineChannel
from preval.session.application.errors import (
    HandshakeRejectedError,
    HandshakeTimeoutError,
    NegotiationFinishedError,
)

DEFAULT_HANDSHAKE_TIMEOUT_SECONDS = 5.0


class NegotiationState(StrEnum):
    AWAITING_FIRST_LINE = "awaiting_first_line"
    ACCEPTED = "accepted"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"


class RejectionReason(StrEnum):
    EMPTY_OUTPUT = "empty_output"
    MALFORMED_HANDSHAKE = "malformed_handshake"
    WRONG_MESSAGE_TYPE = "wrong_message_type"


class HandshakeNegotiator:
    """Reads exactly one item from the channel and decides on it.

    The wait is bounded: whatever the evaluator does, ``negotiate`` returns or
    raises within the timeout. A negotiator is single-use.
    """

    def __init__(
        self, timeout_seconds: float = DEFAULT_HANDSHAKE_TIMEOUT_SECONDS
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._state = NegotiationState.AWAITING_FIRST_LINE
        self._handshake: Handshake | None = None

    @property
    def state(self) -> NegotiationState:
        return self._state

    @property
    def handshake(self) -> Handshake | None:
        return self._handshake

    async def negotiate(self, channel: LineChannel) -> Handshake:
        """Wait for the first line and accept it as the handshake.

        Raises:
            HandshakeTimeoutError: if nothing arrives within the timeout.
            HandshakeRejectedError: if the stream ended first, or the line is not
                a valid handshake.
            NegotiationFinishedError: if called again after a verdict.
        """
        if self._state is not NegotiationState.AWAITING_FIRST_LINE:
            raise NegotiationFinishedError(state=self._state.value)

        try:
            async with asyncio.timeout(self._timeout_seconds):
                item = await channel.get()
        except TimeoutError:
            self._state = NegotiationState.TIMED_OUT
            raise HandshakeTimeoutError(timeout_seconds=self._timeout_seconds) from None

        if isinstance(item, EndOfStream):
            self._reject(
                RejectionReason.EMPTY_OUTPUT,
                f"evaluator {item.exit_status.describe()} before writing a handshake",
            )

        try:
            handshake = decode_handshake(item)
        except UnexpectedMessageTypeError as exc:
            self._reject(RejectionReason.WRONG_MESSAGE_TYPE, exc.reason, cause=exc)
        except ProtocolDecodeError as exc:
            self._reject(RejectionReason.MALFORMED_HANDSHAKE, exc.reason, cause=exc)

        self._state = NegotiationState.ACCEPTED
        self._handshake = handshake
        return handshake

    def _reject(
        self,
        reason: RejectionReason,
        detail: str,
        cause: Exception | None = None,
    ) -> NoReturn:
        self._state = NegotiationState.REJECTED
        raise HandshakeRejectedError(reason=reason.value, detail=detail) from cause
