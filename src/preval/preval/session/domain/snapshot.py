"""Immutable point-in-time views of a session, for rendering and reporting."""

from pydantic import BaseModel, Field

from preval.comparison.domain.result import Comparison
from preval.process.domain.exit_status import ExitStatus
from preval.protocol.domain.handshake import EvaluationMode, Handshake
from preval.protocol.domain.metric import MetricPoint
from preval.session.domain.status import (
    AnomalyKind,
    FailureKind,
    RunStatus,
    SampleStatus,
    SessionStatus,
)


class AnomalyCounts(BaseModel, frozen=True):
    line_decode: int = 0
    unresolvable_metric: int = 0
    invalid_data_point: int = 0
    buffer_overflow: int = 0

    @property
    def total(self) -> int:
        return (
            self.line_decode
            + self.unresolvable_metric
            + self.invalid_data_point
            + self.buffer_overflow
        )

    def of(self, kind: AnomalyKind) -> int:
        return int(getattr(self, kind.value))


class SessionFailure(BaseModel, frozen=True):
    """Why a session ended in the failed state."""

    kind: FailureKind
    message: str


class RunSnapshot(BaseModel, frozen=True):
    run_id: str
    status: RunStatus
    points: list[MetricPoint] = Field(default_factory=list)
    metrics: dict[str, float] = Field(default_factory=dict)
    duration_seconds: float | None = None


class SampleSnapshot(BaseModel, frozen=True):
    sample_id: str
    status: SampleStatus
    runs: list[RunSnapshot] = Field(default_factory=list)
    duration_seconds: float | None = None

    def run(self, run_id: str) -> RunSnapshot | None:
        for run in self.runs:
            if run.run_id == run_id:
                return run
        return None


class SessionSnapshot(BaseModel, frozen=True):
    """Read-only copy of a session's state.

    Safe to hand to any other task: nothing in it refers back to live state.
    """

    session_id: str
    evaluator_name: str
    status: SessionStatus
    paused: bool = False
    stalled: bool = False
    handshake: Handshake | None = None
    samples: list[SampleSnapshot] = Field(default_factory=list)
    anomalies: AnomalyCounts = Field(default_factory=AnomalyCounts)
    summary_metrics: dict[str, float] = Field(default_factory=dict)
    stream_metrics: dict[str, float] = Field(default_factory=dict)
    buffered_lines: int = 0
    elapsed_seconds: float = 0.0
    eta_seconds: float | None = None
    failure: SessionFailure | None = None
    exit_status: ExitStatus | None = None
    stderr_tail: list[str] = Field(default_factory=list)
    comparison: Comparison | None = None

    @property
    def mode(self) -> EvaluationMode | None:
        return self.handshake.mode if self.handshake is not None else None

    @property
    def total_samples(self) -> int | None:
        if self.handshake is None or self.handshake.execution_plan is None:
            return None
        return self.handshake.execution_plan.total_samples

    @property
    def completed_samples(self) -> int:
        return sum(1 for s in self.samples if s.status is SampleStatus.COMPLETE)

    @property
    def failed_samples(self) -> int:
        return sum(1 for s in self.samples if s.status is SampleStatus.FAILED)

    @property
    def finished_samples(self) -> int:
        return self.completed_samples + self.failed_samples

    @property
    def progress(self) -> float | None:
        """Fraction of declared samples that have finished, or None without a plan."""
        total = self.total_samples
        if total is None:
            return None
        return min(1.0, self.finished_samples / total)

    def sample(self, sample_id: str) -> SampleSnapshot | None:
        for sample in self.samples:
            if sample.sample_id == sample_id:
                return sample
        return None
