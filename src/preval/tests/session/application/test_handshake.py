"""Tests for HandshakeNegotiator — accepting or rejecting the first line."""

import asyncio

import pytest

from preval.process.domain.exit_status import ExitStatus
from preval.protocol.domain.handshake import EvaluationMode
from preval.session.application.channel import EndOfStream, LineChannel
from preval.session.application.errors import (
    HandshakeRejectedError,
    HandshakeTimeoutError,
    NegotiationFinishedError,
)
from preval.session.application.handshake import (
    HandshakeNegotiator,
    NegotiationState,
)
from tests.protocol.wire import handshake_line, sample_line


def _channel(*items: str | EndOfStream) -> LineChannel:
    channel: LineChannel = asyncio.Queue()
    for item in items:
        channel.put_nowait(item)
    return channel


class TestHandshakeNegotiatorAccept:
    async def test_accepts_valid_handshake(self) -> None:
        negotiator = HandshakeNegotiator(timeout_seconds=1.0)

        handshake = await negotiator.negotiate(_channel(handshake_line()))

        assert handshake.mode is EvaluationMode.TEST_SUITE
        assert handshake.evaluator.name == "test-evaluator"
        assert negotiator.state is NegotiationState.ACCEPTED
        assert negotiator.handshake == handshake

    async def test_consumes_only_the_first_line(self) -> None:
        channel = _channel(handshake_line(), sample_line("s1"))

        await HandshakeNegotiator(timeout_seconds=1.0).negotiate(channel)

        assert channel.qsize() == 1

    async def test_negotiator_is_single_use(self) -> None:
        negotiator = HandshakeNegotiator(timeout_seconds=1.0)
        await negotiator.negotiate(_channel(handshake_line()))

        with pytest.raises(NegotiationFinishedError):
            await negotiator.negotiate(_channel(handshake_line()))


class TestHandshakeNegotiatorReject:
    async def test_times_out_when_nothing_arrives(self) -> None:
        negotiator = HandshakeNegotiator(timeout_seconds=0.05)

        with pytest.raises(HandshakeTimeoutError) as exc_info:
            await negotiator.negotiate(_channel())

        assert exc_info.value.timeout_seconds == 0.05
        assert exc_info.value.fatal
        assert negotiator.state is NegotiationState.TIMED_OUT

    async def test_end_of_stream_is_empty_output(self) -> None:
        negotiator = HandshakeNegotiator(timeout_seconds=1.0)

        with pytest.raises(HandshakeRejectedError) as exc_info:
            await negotiator.negotiate(
                _channel(EndOfStream(exit_status=ExitStatus(returncode=3)))
            )

        assert exc_info.value.reason == "empty_output"
        assert "exited with code 3" in exc_info.value.detail
        assert negotiator.state is NegotiationState.REJECTED

    async def test_metrics_line_first_is_wrong_message_type(self) -> None:
        negotiator = HandshakeNegotiator(timeout_seconds=1.0)

        with pytest.raises(HandshakeRejectedError) as exc_info:
            await negotiator.negotiate(_channel(handshake_line(msg_type="metrics")))

        assert exc_info.value.reason == "wrong_message_type"

    async def test_invalid_json_is_malformed(self) -> None:
        negotiator = HandshakeNegotiator(timeout_seconds=1.0)

        with pytest.raises(HandshakeRejectedError) as exc_info:
            await negotiator.negotiate(_channel("not json at all"))

        assert exc_info.value.reason == "malformed_handshake"

    async def test_missing_execution_plan_in_test_suite_is_malformed(self) -> None:
        negotiator = HandshakeNegotiator(timeout_seconds=1.0)

        with pytest.raises(HandshakeRejectedError) as exc_info:
            await negotiator.negotiate(_channel(handshake_line(execution_plan=None)))

        assert exc_info.value.reason == "malformed_handshake"
        assert str(exc_info.value).startswith("Failed to accept handshake")
