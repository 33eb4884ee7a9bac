"""FakeComparisonObserver — records comparison domain events for assertion in tests."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SummaryLoadedEvent:
    evaluator_name: str
    mode: str
    path: str


@dataclass(frozen=True)
class SummaryNotFoundEvent:
    evaluator_name: str
    mode: str


@dataclass(frozen=True)
class SummarySavedEvent:
    evaluator_name: str
    mode: str
    path: str


@dataclass(frozen=True)
class SummarySkippedEvent:
    path: str
    reason: str


class FakeComparisonObserver:
    """Records all emitted comparison events as typed frozen dataclasses."""

    def __init__(self) -> None:
        self._loaded: list[SummaryLoadedEvent] = []
        self._not_found: list[SummaryNotFoundEvent] = []
        self._saved: list[SummarySavedEvent] = []
        self._skipped: list[SummarySkippedEvent] = []

    @property
    def loaded(self) -> list[SummaryLoadedEvent]:
        return self._loaded

    @property
    def not_found(self) -> list[SummaryNotFoundEvent]:
        return self._not_found

    @property
    def saved(self) -> list[SummarySavedEvent]:
        return self._saved

    @property
    def skipped(self) -> list[SummarySkippedEvent]:
        return self._skipped

    def summary_loaded(self, evaluator_name: str, mode: str, path: str) -> None:
        self._loaded.append(
            SummaryLoadedEvent(evaluator_name=evaluator_name, mode=mode, path=path)
        )

    def summary_not_found(self, evaluator_name: str, mode: str) -> None:
        self._not_found.append(
            SummaryNotFoundEvent(evaluator_name=evaluator_name, mode=mode)
        )

    def summary_saved(self, evaluator_name: str, mode: str, path: str) -> None:
        self._saved.append(
            SummarySavedEvent(evaluator_name=evaluator_name, mode=mode, path=path)
        )

    def summary_skipped(self, path: str, reason: str) -> None:
        self._skipped.append(SummarySkippedEvent(path=path, reason=reason))
