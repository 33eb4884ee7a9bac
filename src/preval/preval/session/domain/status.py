"""Lifecycle states of sessions, samples and runs."""

from enum import StrEnum


class SessionStatus(StrEnum):
    STARTING = "starting"
    HANDSHAKING = "handshaking"
    RUNNING = "running"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset(
    {
        SessionStatus.COMPLETE,
        SessionStatus.INCOMPLETE,
        SessionStatus.FAILED,
        SessionStatus.CANCELLED,
    }
)


class RunStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class SampleStatus(StrEnum):
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class AnomalyKind(StrEnum):
    """Non-fatal problems that are counted and skipped."""

    LINE_DECODE = "line_decode"
    UNRESOLVABLE_METRIC = "unresolvable_metric"
    INVALID_DATA_POINT = "invalid_data_point"
    BUFFER_OVERFLOW = "buffer_overflow"


class FailureKind(StrEnum):
    """Fatal conditions that end a session in the failed state."""

    SPAWN_FAILURE = "spawn_failure"
    HANDSHAKE_TIMEOUT = "handshake_timeout"
    HANDSHAKE_REJECTED = "handshake_rejected"
    SUBPROCESS_CRASHED = "subprocess_crashed"
    INTERNAL_ERROR = "internal_error"


class LifecycleEvent(StrEnum):
    """Values of the ``preval.event`` point attribute."""

    RUN_COMPLETE = "run.complete"
    RUN_FAILED = "run.failed"
    SAMPLE_COMPLETE = "sample.complete"
    SAMPLE_FAILED = "sample.failed"
    EVALUATION_COMPLETE = "evaluation.complete"
