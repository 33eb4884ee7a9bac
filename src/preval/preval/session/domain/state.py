"""Mutable session state, owned by exactly one session task.

Nothing outside the owning session mutates these objects. Everyone else reads
``SessionState.snapshot()``.
"""

import collections
from dataclasses import dataclass, field

from preval.comparison.domain.result import Comparison
from preval.process.domain.exit_status import ExitStatus
from preval.protocol.domain.handshake import Handshake
from preval.protocol.domain.metric import MetricPoint
from preval.session.domain.snapshot import (
    AnomalyCounts,
    RunSnapshot,
    SampleSnapshot,
    SessionFailure,
    SessionSnapshot,
)
from preval.session.domain.status import (
    AnomalyKind,
    RunStatus,
    SampleStatus,
    SessionStatus,
)


@dataclass
class RunState:
    run_id: str
    started_at: float
    status: RunStatus = RunStatus.RUNNING
    points: list[MetricPoint] = field(default_factory=list)
    latest: dict[str, float] = field(default_factory=dict)
    ended_at: float | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (RunStatus.COMPLETE, RunStatus.FAILED)

    def add(self, point: MetricPoint) -> None:
        self.points.append(point)
        scalar = point.scalar
        if scalar is not None:
            self.latest[point.name] = scalar

    def finish(self, status: RunStatus, now: float) -> bool:
        """Move a running run to *status*. Returns False if it already finished."""
        if self.is_finished:
            return False
        self.status = status
        self.ended_at = now
        return True

    def snapshot(self) -> RunSnapshot:
        duration = None
        if self.ended_at is not None:
            duration = self.ended_at - self.started_at
        return RunSnapshot(
            run_id=self.run_id,
            status=self.status,
            points=list(self.points),
            metrics=dict(self.latest),
            duration_seconds=duration,
        )


@dataclass
class SampleState:
    sample_id: str
    started_at: float
    runs: dict[str, RunState] = field(default_factory=dict)
    completed_override: bool = False
    failed_override: bool = False
    finished_at: float | None = None

    def status(self, runs_per_sample: int) -> SampleStatus:
        runs = list(self.runs.values())
        if any(not run.is_finished for run in runs):
            return SampleStatus.RUNNING
        if self.completed_override:
            return SampleStatus.COMPLETE
        if self.failed_override or any(r.status is RunStatus.FAILED for r in runs):
            return SampleStatus.FAILED
        if runs and len(runs) >= runs_per_sample:
            return SampleStatus.COMPLETE
        return SampleStatus.RUNNING

    def snapshot(self, runs_per_sample: int, now: float) -> SampleSnapshot:
        end = self.finished_at if self.finished_at is not None else now
        return SampleSnapshot(
            sample_id=self.sample_id,
            status=self.status(runs_per_sample=runs_per_sample),
            runs=[run.snapshot() for run in self.runs.values()],
            duration_seconds=end - self.started_at,
        )


@dataclass
class SessionState:
    session_id: str
    evaluator_name: str
    stall_threshold_seconds: float = 30.0
    eta_window: int = 10
    status: SessionStatus = SessionStatus.STARTING
    paused: bool = False
    handshake: Handshake | None = None
    samples: dict[str, SampleState] = field(default_factory=dict)
    anomalies: collections.Counter[AnomalyKind] = field(
        default_factory=collections.Counter
    )
    summary_metrics: dict[str, float] = field(default_factory=dict)
    stream_metrics: dict[str, float] = field(default_factory=dict)
    buffered_lines: int = 0
    started_at: float | None = None
    ended_at: float | None = None
    last_activity_at: float | None = None
    sample_durations: collections.deque[float] = field(
        default_factory=collections.deque
    )
    eta_seconds: float | None = None
    evaluation_complete_signalled: bool = False
    failure: SessionFailure | None = None
    exit_status: ExitStatus | None = None
    stderr_tail: list[str] = field(default_factory=list)
    comparison: Comparison | None = None

    def __post_init__(self) -> None:
        self.sample_durations = collections.deque(maxlen=self.eta_window)

    @property
    def runs_per_sample(self) -> int:
        if self.handshake is None or self.handshake.execution_plan is None:
            return 1
        return self.handshake.execution_plan.runs_per_sample

    def record_anomaly(self, kind: AnomalyKind, count: int = 1) -> None:
        self.anomalies[kind] += count

    def sample_status(self, sample: SampleState) -> SampleStatus:
        return sample.status(runs_per_sample=self.runs_per_sample)

    def is_stalled(self, now: float) -> bool:
        if self.status is not SessionStatus.RUNNING or self.paused:
            return False
        if self.last_activity_at is None:
            return False
        return now - self.last_activity_at >= self.stall_threshold_seconds

    def snapshot(self, now: float) -> SessionSnapshot:
        elapsed = 0.0
        if self.started_at is not None:
            end = self.ended_at if self.ended_at is not None else now
            elapsed = max(0.0, end - self.started_at)
        return SessionSnapshot(
            session_id=self.session_id,
            evaluator_name=self.evaluator_name,
            status=self.status,
            paused=self.paused,
            stalled=self.is_stalled(now=now),
            handshake=self.handshake,
            samples=[
                sample.snapshot(runs_per_sample=self.runs_per_sample, now=now)
                for sample in self.samples.values()
            ],
            anomalies=AnomalyCounts(
                **{kind.value: self.anomalies[kind] for kind in AnomalyKind}
            ),
            summary_metrics=dict(self.summary_metrics),
            stream_metrics=dict(self.stream_metrics),
            buffered_lines=self.buffered_lines,
            elapsed_seconds=elapsed,
            eta_seconds=self.eta_seconds,
            failure=self.failure,
            exit_status=self.exit_status,
            stderr_tail=list(self.stderr_tail),
            comparison=self.comparison,
        )
