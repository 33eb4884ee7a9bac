"""Tests for JsonSummaryStore — run summaries on disk."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from preval.comparison.domain.summary import RunSummary
from preval.comparison.infrastructure.errors import SummaryStoreError
from preval.comparison.infrastructure.json_store import JsonSummaryStore
from preval.protocol.domain.handshake import EvaluationMode
from tests.comparison.fake_observer import FakeComparisonObserver


def _summary(
    finished_at: datetime,
    accuracy: float,
    session_id: str = "aaaaaaaa-1111",
    evaluator_name: str = "my evaluator",
    mode: EvaluationMode = EvaluationMode.TEST_SUITE,
) -> RunSummary:
    return RunSummary(
        evaluator_name=evaluator_name,
        mode=mode,
        session_id=session_id,
        finished_at=finished_at,
        status="complete",
        metrics={"accuracy": accuracy},
        samples={"s1": {"accuracy": accuracy}},
    )


@pytest.fixture
def observer() -> FakeComparisonObserver:
    return FakeComparisonObserver()


@pytest.fixture
def store(tmp_path: Path, observer: FakeComparisonObserver) -> JsonSummaryStore:
    return JsonSummaryStore(directory=tmp_path / "history", observer=observer)


class TestJsonSummaryStore:
    def test_load_previous_with_empty_history(
        self, store: JsonSummaryStore, observer: FakeComparisonObserver
    ) -> None:
        assert (
            store.load_previous(
                evaluator_name="my evaluator", mode=EvaluationMode.TEST_SUITE
            )
            is None
        )
        assert observer.not_found[0].mode == "test_suite"

    def test_save_then_load_returns_latest(
        self, store: JsonSummaryStore, observer: FakeComparisonObserver
    ) -> None:
        older = _summary(datetime(2026, 1, 1, tzinfo=UTC), 0.8, session_id="old-1")
        newer = _summary(datetime(2026, 1, 2, tzinfo=UTC), 0.9, session_id="new-1")
        store.save(newer)
        store.save(older)

        loaded = store.load_previous(
            evaluator_name="my evaluator", mode=EvaluationMode.TEST_SUITE
        )

        assert loaded == newer
        assert len(observer.saved) == 2
        assert observer.loaded[0].path.endswith("new-1.json")

    def test_files_are_grouped_by_evaluator_and_mode(
        self, store: JsonSummaryStore
    ) -> None:
        summary = _summary(datetime(2026, 1, 1, tzinfo=UTC), 0.8)
        store.save(summary)

        (path,) = store.history(
            evaluator_name="my evaluator", mode=EvaluationMode.TEST_SUITE
        )
        assert path.parent == store.directory / "my-evaluator" / "test_suite"
        assert (
            store.load_previous(
                evaluator_name="my evaluator", mode=EvaluationMode.CONTINUOUS
            )
            is None
        )

    def test_invalid_newest_file_is_skipped(
        self, store: JsonSummaryStore, observer: FakeComparisonObserver
    ) -> None:
        valid = _summary(datetime(2026, 1, 1, tzinfo=UTC), 0.8)
        store.save(valid)
        folder = store.directory / "my-evaluator" / "test_suite"
        (folder / "99999999T999999999999Z_broken.json").write_text(
            "{not json", encoding="utf-8"
        )

        loaded = store.load_previous(
            evaluator_name="my evaluator", mode=EvaluationMode.TEST_SUITE
        )

        assert loaded == valid
        assert observer.skipped[0].path.endswith("_broken.json")

    def test_save_failure_raises_store_error(
        self, tmp_path: Path, observer: FakeComparisonObserver
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = JsonSummaryStore(directory=blocker, observer=observer)

        with pytest.raises(SummaryStoreError) as exc_info:
            store.save(_summary(datetime(2026, 1, 1, tzinfo=UTC), 0.8))

        assert exc_info.value.operation == "write"
        assert str(exc_info.value).startswith("Failed to write run summary")
        assert observer.saved == []
