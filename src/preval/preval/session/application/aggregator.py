"""MetricAggregator — folds post-handshake lines into the sample/run hierarchy."""

import time
from collections.abc import Callable

from typing_extensions import TypeAliasType

from preval.process.domain.exit_status import ExitStatus
from preval.protocol.domain.handshake import EvaluationMode, Handshake
from preval.protocol.domain.metric import (
    EVENT_ATTRIBUTE,
    RUN_ID_ATTRIBUTE,
    SAMPLE_ID_ATTRIBUTE,
    SUMMARY_ATTRIBUTE,
    MetricPoint,
)
from preval.protocol.infrastructure.decoder import decode_metrics
from preval.protocol.infrastructure.errors import ProtocolDecodeError
from preval.session.domain.observer import SessionObserver
from preval.session.domain.snapshot import SessionFailure
from preval.session.domain.state import RunState, SampleState, SessionState
from preval.session.domain.status import (
    AnomalyKind,
    FailureKind,
    LifecycleEvent,
    RunStatus,
    SampleStatus,
    SessionStatus,
)

Clock = TypeAliasType("Clock", Callable[[], float])

DEFAULT_RUN_ID = "1"
# Metric names in this namespace carry lifecycle signals, not measurements.
CONTROL_METRIC_PREFIX = "preval."

_RUN_EVENTS = {LifecycleEvent.RUN_COMPLETE, LifecycleEvent.RUN_FAILED}
_SAMPLE_EVENTS = {LifecycleEvent.SAMPLE_COMPLETE, LifecycleEvent.SAMPLE_FAILED}


class MetricAggregator:
    """Owns all mutation of a SessionState after the handshake.

    Every call is synchronous and runs to completion, so a snapshot taken
    between two calls always sees whole lines folded in.

    Runs complete on an explicit ``run.complete``/``run.failed`` signal, on
    schema coverage (every metric of the handshake's schema seen for the run,
    only while the evaluator has sent no explicit run signal), or when the
    stream ends.
    """

    def __init__(
        self,
        state: SessionState,
        observer: SessionObserver,
        infer_run_completion: bool = True,
        on_finished: Callable[[], None] | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._state = state
        self._observer = observer
        self._infer_run_completion = infer_run_completion
        self._on_finished = on_finished
        self._clock = clock
        self._schema_names: frozenset[str] = frozenset()
        self._explicit_run_signals = False
        self._last_sample_finished_at: float | None = None
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self, handshake: Handshake) -> None:
        """Adopt the accepted handshake and move the session to running."""
        now = self._clock()
        self._state.handshake = handshake
        self._state.status = SessionStatus.RUNNING
        self._state.last_activity_at = now
        self._last_sample_finished_at = now
        self._schema_names = frozenset(d.name for d in handshake.metrics_schema)

    def process_line(self, line: str) -> None:
        """Decode one line and fold every point it carries.

        A line that cannot be decoded counts as exactly one ``line_decode``
        anomaly and changes nothing else.
        """
        if self._finished:
            return
        now = self._clock()
        self._state.last_activity_at = now

        try:
            batch = decode_metrics(line)
        except ProtocolDecodeError as exc:
            self._anomaly(AnomalyKind.LINE_DECODE, detail=exc.reason)
            return

        for failure in batch.failures:
            self._anomaly(AnomalyKind.INVALID_DATA_POINT, detail=failure.reason)

        touched: dict[tuple[str, str], tuple[SampleState, RunState]] = {}
        for point in batch.points:
            self._fold(point, touched, now)

        if self._infer_run_completion and not self._explicit_run_signals:
            for sample, run in touched.values():
                if self._covers_schema(run):
                    self._finish_run(sample, run, RunStatus.COMPLETE, now)

    def finish(self, exit_status: ExitStatus) -> None:
        """Close the session once the evaluator's output has ended.

        Partial data is never discarded: runs still open are closed as complete
        on a clean exit and as failed otherwise.
        """
        if self._finished:
            return
        now = self._clock()
        state = self._state
        state.exit_status = exit_status

        run_status = RunStatus.COMPLETE if exit_status.success else RunStatus.FAILED
        self._finish_open_runs(run_status, now)

        if not exit_status.success:
            message = f"Evaluator {exit_status.describe()}"
            if state.stderr_tail:
                message = f"{message}: {state.stderr_tail[-1]}"
            state.status = SessionStatus.FAILED
            state.failure = SessionFailure(
                kind=FailureKind.SUBPROCESS_CRASHED, message=message
            )
        elif self._plan_satisfied():
            state.status = SessionStatus.COMPLETE
        else:
            state.status = SessionStatus.INCOMPLETE

        state.ended_at = now
        self._finished = True
        if self._on_finished is not None:
            self._on_finished()

    # ------------------------------------------------------------------
    # Folding
    # ------------------------------------------------------------------

    def _fold(
        self,
        point: MetricPoint,
        touched: dict[tuple[str, str], tuple[SampleState, RunState]],
        now: float,
    ) -> None:
        state = self._state
        is_control = point.name.startswith(CONTROL_METRIC_PREFIX)
        event = _lifecycle_event(point.attribute(EVENT_ATTRIBUTE))

        if _is_summary(point):
            if not is_control and point.scalar is not None:
                state.summary_metrics[point.name] = point.scalar
            return

        if event is LifecycleEvent.EVALUATION_COMPLETE:
            state.evaluation_complete_signalled = True
            self._finish_open_runs(RunStatus.COMPLETE, now)
            return

        sample_id = _identity(point, SAMPLE_ID_ATTRIBUTE)
        if sample_id is None:
            handshake = state.handshake
            continuous = (
                handshake is not None and handshake.mode is EvaluationMode.CONTINUOUS
            )
            if continuous and not is_control and point.scalar is not None:
                state.stream_metrics[point.name] = point.scalar
                return
            self._anomaly(
                AnomalyKind.UNRESOLVABLE_METRIC,
                detail=f"metric '{point.name}' has no {SAMPLE_ID_ATTRIBUTE} attribute",
            )
            return

        if is_control and event not in _RUN_EVENTS and event not in _SAMPLE_EVENTS:
            return

        sample = self._sample(sample_id, now)

        if event is not None and event in _SAMPLE_EVENTS:
            if not is_control:
                run = self._run(sample, point, now)
                run.add(point)
            self._signal_sample(sample, event, now)
            return

        run = self._run(sample, point, now)
        if not is_control:
            run.add(point)

        if event is LifecycleEvent.RUN_COMPLETE:
            self._explicit_run_signals = True
            self._finish_run(sample, run, RunStatus.COMPLETE, now)
        elif event is LifecycleEvent.RUN_FAILED:
            self._explicit_run_signals = True
            self._finish_run(sample, run, RunStatus.FAILED, now)
        elif not is_control:
            touched[(sample.sample_id, run.run_id)] = (sample, run)

    def _sample(self, sample_id: str, now: float) -> SampleState:
        sample = self._state.samples.get(sample_id)
        if sample is None:
            sample = SampleState(sample_id=sample_id, started_at=now)
            self._state.samples[sample_id] = sample
            self._observer.sample_started(
                session_id=self._state.session_id, sample_id=sample_id
            )
        return sample

    def _run(
        self,
        sample: SampleState,
        point: MetricPoint,
        now: float,
    ) -> RunState:
        run_id = _identity(point, RUN_ID_ATTRIBUTE) or DEFAULT_RUN_ID
        run = sample.runs.get(run_id)
        if run is None:
            run = RunState(run_id=run_id, started_at=now)
            sample.runs[run_id] = run
            # A late run reopens the sample until that run finishes too.
            sample.finished_at = None
        return run

    def _covers_schema(self, run: RunState) -> bool:
        if run.is_finished or not self._schema_names:
            return False
        seen = {point.name for point in run.points}
        return self._schema_names <= seen

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _finish_run(
        self, sample: SampleState, run: RunState, status: RunStatus, now: float
    ) -> None:
        if not run.finish(status, now):
            return
        self._observer.run_finished(
            session_id=self._state.session_id,
            sample_id=sample.sample_id,
            run_id=run.run_id,
            status=status.value,
        )
        self._check_sample_finished(sample, now)

    def _signal_sample(
        self, sample: SampleState, event: LifecycleEvent, now: float
    ) -> None:
        if event is LifecycleEvent.SAMPLE_COMPLETE:
            sample.completed_override = True
            run_status = RunStatus.COMPLETE
        else:
            sample.failed_override = True
            run_status = RunStatus.FAILED
        for run in sample.runs.values():
            if run.finish(run_status, now):
                self._observer.run_finished(
                    session_id=self._state.session_id,
                    sample_id=sample.sample_id,
                    run_id=run.run_id,
                    status=run_status.value,
                )
        self._check_sample_finished(sample, now)

    def _finish_open_runs(self, status: RunStatus, now: float) -> None:
        for sample in self._state.samples.values():
            for run in sample.runs.values():
                if run.finish(status, now):
                    self._observer.run_finished(
                        session_id=self._state.session_id,
                        sample_id=sample.sample_id,
                        run_id=run.run_id,
                        status=status.value,
                    )
            self._check_sample_finished(sample, now)

    def _check_sample_finished(self, sample: SampleState, now: float) -> None:
        if sample.finished_at is not None:
            return
        status = self._state.sample_status(sample)
        if status is SampleStatus.RUNNING:
            return
        sample.finished_at = now
        self._record_sample_duration(now)
        self._observer.sample_finished(
            session_id=self._state.session_id,
            sample_id=sample.sample_id,
            status=status.value,
            duration_seconds=now - sample.started_at,
            eta_seconds=self._state.eta_seconds,
        )

    def _record_sample_duration(self, now: float) -> None:
        """Update the ETA from the time between consecutive sample completions."""
        state = self._state
        previous = self._last_sample_finished_at
        if previous is None:
            previous = state.started_at if state.started_at is not None else now
        state.sample_durations.append(max(0.0, now - previous))
        self._last_sample_finished_at = now

        handshake = state.handshake
        if handshake is None or handshake.execution_plan is None:
            state.eta_seconds = None
            return
        finished = sum(1 for s in state.samples.values() if s.finished_at is not None)
        remaining = max(0, handshake.execution_plan.total_samples - finished)
        average = sum(state.sample_durations) / len(state.sample_durations)
        state.eta_seconds = max(0.0, average * remaining)

    def _plan_satisfied(self) -> bool:
        handshake = self._state.handshake
        if handshake is None or handshake.execution_plan is None:
            return True
        finished = sum(
            1
            for sample in self._state.samples.values()
            if self._state.sample_status(sample) is not SampleStatus.RUNNING
        )
        return finished >= handshake.execution_plan.total_samples

    def _anomaly(self, kind: AnomalyKind, detail: str) -> None:
        self._state.record_anomaly(kind)
        self._observer.anomaly_recorded(
            session_id=self._state.session_id, kind=kind.value, detail=detail
        )


def _identity(point: MetricPoint, key: str) -> str | None:
    value = point.attribute(key)
    if value is None:
        value = point.resource_attributes.get(key)
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    text = str(value).strip()
    return text or None


def _is_summary(point: MetricPoint) -> bool:
    return point.attribute(SUMMARY_ATTRIBUTE) is True or (
        point.resource_attributes.get(SUMMARY_ATTRIBUTE) is True
        and point.attribute(SAMPLE_ID_ATTRIBUTE) is None
    )


def _lifecycle_event(value: object) -> LifecycleEvent | None:
    if not isinstance(value, str):
        return None
    try:
        return LifecycleEvent(value)
    except ValueError:
        return None
