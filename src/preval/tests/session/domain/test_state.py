"""Tests for the mutable session state and its snapshots."""

from preval.protocol.domain.handshake import MetricKind
from preval.protocol.domain.metric import MetricPoint
from preval.protocol.infrastructure.decoder import decode_handshake
from preval.session.domain.state import RunState, SampleState, SessionState
from preval.session.domain.status import (
    AnomalyKind,
    RunStatus,
    SampleStatus,
    SessionStatus,
)
from tests.protocol.wire import handshake_line


def _point(name: str, value: float) -> MetricPoint:
    return MetricPoint(name=name, kind=MetricKind.GAUGE, value=value, time_unix_nano=1)


class TestRunState:
    def test_add_tracks_latest_scalar(self) -> None:
        run = RunState(run_id="1", started_at=0.0)

        run.add(_point("accuracy", 0.5))
        run.add(_point("accuracy", 0.7))

        assert run.latest == {"accuracy": 0.7}
        assert len(run.points) == 2

    def test_finish_only_once(self) -> None:
        run = RunState(run_id="1", started_at=1.0)

        assert run.finish(RunStatus.COMPLETE, now=3.0)
        assert not run.finish(RunStatus.FAILED, now=4.0)

        snapshot = run.snapshot()
        assert snapshot.status is RunStatus.COMPLETE
        assert snapshot.duration_seconds == 2.0


class TestSampleState:
    def test_running_while_any_run_is_open(self) -> None:
        sample = SampleState(sample_id="s1", started_at=0.0)
        sample.runs["1"] = RunState(run_id="1", started_at=0.0)

        assert sample.status(runs_per_sample=1) is SampleStatus.RUNNING

    def test_complete_once_declared_runs_finished(self) -> None:
        sample = SampleState(sample_id="s1", started_at=0.0)
        for run_id in ("1", "2"):
            run = RunState(run_id=run_id, started_at=0.0)
            run.finish(RunStatus.COMPLETE, now=1.0)
            sample.runs[run_id] = run

        assert sample.status(runs_per_sample=3) is SampleStatus.RUNNING
        assert sample.status(runs_per_sample=2) is SampleStatus.COMPLETE

    def test_any_failed_run_fails_sample(self) -> None:
        sample = SampleState(sample_id="s1", started_at=0.0)
        run = RunState(run_id="1", started_at=0.0)
        run.finish(RunStatus.FAILED, now=1.0)
        sample.runs["1"] = run

        assert sample.status(runs_per_sample=1) is SampleStatus.FAILED

    def test_completed_override_wins_over_counts(self) -> None:
        sample = SampleState(sample_id="s1", started_at=0.0, completed_override=True)

        assert sample.status(runs_per_sample=5) is SampleStatus.COMPLETE


class TestSessionState:
    def test_snapshot_is_detached_from_state(self) -> None:
        state = SessionState(session_id="abc", evaluator_name="test")
        state.summary_metrics["accuracy"] = 0.5

        snapshot = state.snapshot(now=0.0)
        state.summary_metrics["accuracy"] = 0.9

        assert snapshot.summary_metrics == {"accuracy": 0.5}

    def test_anomaly_counts_by_kind(self) -> None:
        state = SessionState(session_id="abc", evaluator_name="test")

        state.record_anomaly(AnomalyKind.LINE_DECODE)
        state.record_anomaly(AnomalyKind.BUFFER_OVERFLOW, count=3)

        counts = state.snapshot(now=0.0).anomalies
        assert counts.line_decode == 1
        assert counts.buffer_overflow == 3
        assert counts.total == 4

    def test_elapsed_stops_at_end(self) -> None:
        state = SessionState(session_id="abc", evaluator_name="test")
        state.started_at = 10.0
        assert state.snapshot(now=15.0).elapsed_seconds == 5.0

        state.ended_at = 12.0
        assert state.snapshot(now=100.0).elapsed_seconds == 2.0

    def test_stalled_after_threshold_while_running(self) -> None:
        state = SessionState(
            session_id="abc", evaluator_name="test", stall_threshold_seconds=5.0
        )
        state.status = SessionStatus.RUNNING
        state.last_activity_at = 0.0

        assert not state.is_stalled(now=4.0)
        assert state.is_stalled(now=5.0)

        state.status = SessionStatus.COMPLETE
        assert not state.is_stalled(now=50.0)

    def test_runs_per_sample_from_plan(self) -> None:
        state = SessionState(session_id="abc", evaluator_name="test")
        assert state.runs_per_sample == 1

        state.handshake = decode_handshake(
            handshake_line(execution_plan={"total_samples": 4, "runs_per_sample": 3})
        )

        assert state.runs_per_sample == 3
        assert state.snapshot(now=0.0).total_samples == 4

    def test_eta_window_bounds_durations(self) -> None:
        state = SessionState(session_id="abc", evaluator_name="test", eta_window=2)

        state.sample_durations.extend([1.0, 2.0, 3.0])

        assert list(state.sample_durations) == [2.0, 3.0]
