"""Tests for EvaluationSession — one evaluator subprocess, end to end."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from preval.comparison.domain.result import (
    ChangeKind,
    ComparisonResult,
    NoPreviousRun,
)
from preval.comparison.domain.summary import RunSummary
from preval.config.domain.evaluator import EvaluatorSpec
from preval.config.domain.session import SessionSettings
from preval.protocol.domain.handshake import EvaluationMode
from preval.session.application.session import EvaluationSession
from preval.session.domain.status import FailureKind, SampleStatus, SessionStatus
from tests.comparison.fake_store import InMemorySummaryStore
from tests.protocol.wire import (
    gauge_metric,
    handshake_line,
    metrics_line,
    sample_line,
)
from tests.session.evaluators import replay_spec, silent_spec
from tests.session.fake_observer import FakeSessionObserver, RaisingSessionObserver

FULL_RUN = {
    "llm.eval.accuracy": 0.9,
    "llm.eval.latency": 120.0,
    "llm.eval.tokens": 500.0,
}

TWO_SAMPLES = [
    handshake_line(),
    sample_line("s1", FULL_RUN),
    sample_line("s2", FULL_RUN),
]

FAST = SessionSettings(handshake_timeout_seconds=5.0, terminate_grace_seconds=1.0)


def _session(
    spec: EvaluatorSpec,
    observer: FakeSessionObserver,
    settings: SessionSettings = FAST,
    store: InMemorySummaryStore | None = None,
) -> EvaluationSession:
    return EvaluationSession(
        spec=spec, settings=settings, observer=observer, store=store
    )


async def _wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


class TestEvaluationSessionHappyPath:
    async def test_complete_run(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        session = _session(replay_spec(tmp_path, TWO_SAMPLES), observer)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.COMPLETE
        assert snapshot.completed_samples == 2
        assert snapshot.anomalies.total == 0
        assert snapshot.exit_status is not None
        assert snapshot.exit_status.success
        assert snapshot.failure is None
        assert observer.started[0].evaluator == "replay"
        assert observer.accepted[0].evaluator_name == "test-evaluator"
        assert observer.accepted[0].total_samples == 2
        assert observer.finished[0].status == "complete"
        assert observer.finished[0].session_id == session.session_id

    async def test_malformed_line_is_counted_not_fatal(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        lines = [TWO_SAMPLES[0], "garbage", *TWO_SAMPLES[1:]]
        session = _session(replay_spec(tmp_path, lines), observer)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.COMPLETE
        assert snapshot.anomalies.line_decode == 1

    async def test_clean_exit_before_plan_is_incomplete(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        lines = [handshake_line(), sample_line("a", {"llm.eval.accuracy": 0.3})]
        session = _session(replay_spec(tmp_path, lines), observer)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.INCOMPLETE
        sample = snapshot.sample("a")
        assert sample is not None
        assert sample.runs[0].metrics == {"llm.eval.accuracy": 0.3}


class TestEvaluationSessionFailures:
    async def test_spawn_failure(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        spec = EvaluatorSpec(name="missing", command=str(tmp_path / "no-such-binary"))
        session = _session(spec, observer)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.FAILED
        assert snapshot.failure is not None
        assert snapshot.failure.kind is FailureKind.SPAWN_FAILURE
        assert observer.failed[0].kind == "spawn_failure"

    async def test_handshake_timeout(self) -> None:
        observer = FakeSessionObserver()
        settings = SessionSettings(
            handshake_timeout_seconds=0.2, terminate_grace_seconds=1.0
        )
        session = _session(silent_spec(), observer, settings=settings)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.FAILED
        assert snapshot.failure is not None
        assert snapshot.failure.kind is FailureKind.HANDSHAKE_TIMEOUT
        assert observer.timed_out == [0.2]

    async def test_empty_output_is_rejected(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        session = _session(replay_spec(tmp_path, []), observer)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.FAILED
        assert snapshot.failure is not None
        assert snapshot.failure.kind is FailureKind.HANDSHAKE_REJECTED
        assert observer.rejected[0].reason == "empty_output"

    async def test_metrics_before_handshake_is_rejected(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        session = _session(replay_spec(tmp_path, [sample_line("s1")]), observer)

        snapshot = await session.run()

        assert snapshot.failure is not None
        assert snapshot.failure.kind is FailureKind.HANDSHAKE_REJECTED
        assert observer.rejected[0].reason == "wrong_message_type"

    async def test_crash_keeps_partial_data(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        lines = [handshake_line(), sample_line("s1", {"llm.eval.accuracy": 0.4})]
        spec = replay_spec(tmp_path, lines, "--exit-code", "2", "--stderr", "boom")
        session = _session(spec, observer)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.FAILED
        assert snapshot.failure is not None
        assert snapshot.failure.kind is FailureKind.SUBPROCESS_CRASHED
        assert snapshot.failure.message == "Evaluator exited with code 2: boom"
        assert snapshot.stderr_tail == ["boom"]
        sample = snapshot.sample("s1")
        assert sample is not None
        assert sample.status is SampleStatus.FAILED

    async def test_unexpected_error_fails_session_and_keeps_partial_data(
        self, tmp_path: Path
    ) -> None:
        observer = RaisingSessionObserver(failing_sample_id="s2")
        spec = replay_spec(tmp_path, TWO_SAMPLES, "--hang")
        session = _session(spec, observer)

        async with asyncio.timeout(10.0):
            snapshot = await session.run()

        assert snapshot.status is SessionStatus.FAILED
        assert snapshot.failure is not None
        assert snapshot.failure.kind is FailureKind.INTERNAL_ERROR
        assert "RuntimeError" in snapshot.failure.message
        assert snapshot.sample("s1") is not None
        assert observer.failed[0].kind == "internal_error"
        assert len(observer.finished) == 1

    async def test_malformed_attribute_line_does_not_abort_stream(
        self, tmp_path: Path
    ) -> None:
        observer = FakeSessionObserver()
        point = {
            "timeUnixNano": "1",
            "asDouble": 0.5,
            "attributes": [{"key": "tags", "value": {"arrayValue": ["x"]}}],
        }
        bad = metrics_line([gauge_metric("llm.eval.accuracy", [point])])
        lines = [handshake_line(), bad, *TWO_SAMPLES[1:]]
        session = _session(replay_spec(tmp_path, lines), observer)

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.COMPLETE
        assert snapshot.anomalies.invalid_data_point == 1
        assert [s.sample_id for s in snapshot.samples] == ["s1", "s2"]


class TestEvaluationSessionControl:
    async def test_stop_cancels_session(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        lines = [handshake_line(), sample_line("s1", FULL_RUN)]
        session = _session(replay_spec(tmp_path, lines, "--hang"), observer)
        task = asyncio.create_task(session.run())

        await _wait_until(lambda: bool(session.snapshot().samples))
        session.stop()
        snapshot = await task

        assert snapshot.status is SessionStatus.CANCELLED
        assert snapshot.completed_samples == 1
        assert observer.finished[0].status == "cancelled"

    async def test_task_cancellation_propagates(self, tmp_path: Path) -> None:
        observer = FakeSessionObserver()
        lines = [handshake_line()]
        session = _session(replay_spec(tmp_path, lines, "--hang"), observer)
        task = asyncio.create_task(session.run())

        await _wait_until(lambda: session.snapshot().status is SessionStatus.RUNNING)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.snapshot().status is SessionStatus.CANCELLED

    async def test_paused_session_finishes_only_after_resume(
        self, tmp_path: Path
    ) -> None:
        observer = FakeSessionObserver()
        session = _session(replay_spec(tmp_path, TWO_SAMPLES), observer)
        session.pause()
        task = asyncio.create_task(session.run())

        await _wait_until(lambda: session.snapshot().buffered_lines == 2)
        await asyncio.sleep(0.2)
        assert not task.done()
        assert session.snapshot().samples == []
        assert session.paused

        session.resume()
        snapshot = await asyncio.wait_for(task, timeout=10.0)

        assert snapshot.status is SessionStatus.COMPLETE
        assert [s.sample_id for s in snapshot.samples] == ["s1", "s2"]
        assert observer.resumed == [2]


class TestEvaluationSessionComparison:
    async def test_compare_before_handshake(self) -> None:
        session = _session(silent_spec(), FakeSessionObserver())

        assert isinstance(session.compare(), NoPreviousRun)

    async def test_compares_against_previous_and_saves(self, tmp_path: Path) -> None:
        previous = RunSummary(
            evaluator_name="test-evaluator",
            mode=EvaluationMode.TEST_SUITE,
            session_id="previous-session",
            finished_at=datetime(2026, 1, 1, tzinfo=UTC),
            status="complete",
            metrics={"llm.eval.accuracy": 0.85},
        )
        store = InMemorySummaryStore(summaries=[previous])
        observer = FakeSessionObserver()
        session = _session(
            replay_spec(tmp_path, TWO_SAMPLES), observer, store=store
        )

        snapshot = await session.run()

        comparison = snapshot.comparison
        assert isinstance(comparison, ComparisonResult)
        accuracy = comparison.metric("llm.eval.accuracy")
        assert accuracy is not None
        assert accuracy.change is ChangeKind.IMPROVED
        assert accuracy.delta == pytest.approx(0.05)
        assert observer.comparisons[0].found
        assert len(store.summaries) == 2
        assert store.summaries[-1].session_id == session.session_id

    async def test_first_run_has_no_previous(self, tmp_path: Path) -> None:
        store = InMemorySummaryStore()
        session = _session(
            replay_spec(tmp_path, TWO_SAMPLES), FakeSessionObserver(), store=store
        )

        snapshot = await session.run()

        assert isinstance(snapshot.comparison, NoPreviousRun)
        assert len(store.summaries) == 1

    async def test_incomplete_session_is_not_saved(self, tmp_path: Path) -> None:
        store = InMemorySummaryStore()
        lines = [handshake_line(), sample_line("a", FULL_RUN)]
        session = _session(
            replay_spec(tmp_path, lines), FakeSessionObserver(), store=store
        )

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.INCOMPLETE
        assert store.summaries == []

    async def test_store_errors_are_reported_not_fatal(self, tmp_path: Path) -> None:
        store = InMemorySummaryStore(fail_with="disk full")
        observer = FakeSessionObserver()
        session = _session(
            replay_spec(tmp_path, TWO_SAMPLES), observer, store=store
        )

        snapshot = await session.run()

        assert snapshot.status is SessionStatus.COMPLETE
        assert observer.store_failures == ["load", "save"]
