"""Tests verifying the PrevalError type hierarchy."""

from pathlib import Path

from preval.comparison.infrastructure.errors import SummaryStoreError
from preval.config.infrastructure.errors import (
    ConfigLoadError,
    ConfigValidationError,
    MissingEnvVarsError,
)
from preval.core.errors import PrevalError
from preval.process.infrastructure.errors import OutputAlreadyConsumedError, SpawnError
from preval.protocol.domain.metric import DecodeFailureKind
from preval.protocol.infrastructure.errors import (
    ProtocolDecodeError,
    UnexpectedMessageTypeError,
)
from preval.session.application.errors import (
    HandshakeRejectedError,
    HandshakeTimeoutError,
    NegotiationFinishedError,
)


class TestPrevalErrorHierarchy:
    """All preval-specific exceptions inherit from PrevalError."""

    def test_config_errors_are_preval_errors(self) -> None:
        assert isinstance(MissingEnvVarsError(missing_vars=["X"]), PrevalError)
        assert isinstance(ConfigValidationError(reason="bad"), PrevalError)
        assert isinstance(ConfigLoadError(path=Path("/c.yaml")), PrevalError)

    def test_protocol_errors_are_preval_errors(self) -> None:
        error = ProtocolDecodeError(
            kind=DecodeFailureKind.NOT_VALID_STRUCTURED_DATA, reason="bad json"
        )
        assert isinstance(error, PrevalError)
        wrong = UnexpectedMessageTypeError(expected="handshake", received="metrics")
        assert isinstance(wrong, ProtocolDecodeError)

    def test_store_error_is_preval_error(self) -> None:
        error = SummaryStoreError(operation="write", path=Path("/h"), reason="full")
        assert isinstance(error, PrevalError)

    def test_preval_error_is_exception(self) -> None:
        assert isinstance(PrevalError("test"), Exception)

    def test_not_fatal_by_default(self) -> None:
        assert PrevalError("test").fatal is False


class TestFatalErrors:
    """Errors that end a session are flagged fatal."""

    def test_spawn_error_is_fatal(self) -> None:
        error = SpawnError(command="evaluator", reason="No such file")
        assert error.fatal is True
        assert "evaluator" in str(error)

    def test_handshake_errors_are_fatal(self) -> None:
        assert HandshakeTimeoutError(timeout_seconds=5.0).fatal is True
        assert HandshakeRejectedError(reason="empty_output", detail="x").fatal is True

    def test_reused_resources_are_not_fatal(self) -> None:
        assert OutputAlreadyConsumedError(pid=1).fatal is False
        assert NegotiationFinishedError(state="accepted").fatal is False


class TestErrorMessages:
    """Every message starts with 'Failed to '."""

    def test_messages_start_with_failed(self) -> None:
        errors: list[PrevalError] = [
            MissingEnvVarsError(missing_vars=["X"]),
            ConfigValidationError(reason="bad"),
            ConfigLoadError(path=Path("/c.yaml")),
            SummaryStoreError(operation="read", path=Path("/h"), reason="denied"),
            SpawnError(command="evaluator", reason="No such file"),
            OutputAlreadyConsumedError(pid=1),
            HandshakeTimeoutError(timeout_seconds=5.0),
            HandshakeRejectedError(reason="empty_output", detail="x"),
            NegotiationFinishedError(state="accepted"),
        ]
        for error in errors:
            assert str(error).startswith("Failed to "), str(error)
