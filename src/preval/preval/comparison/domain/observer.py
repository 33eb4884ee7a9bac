"""Observer port for the comparison domain — defines events in domain language."""

from typing import Protocol


class ComparisonObserver(Protocol):
    def summary_loaded(self, evaluator_name: str, mode: str, path: str) -> None: ...

    def summary_not_found(self, evaluator_name: str, mode: str) -> None: ...

    def summary_saved(self, evaluator_name: str, mode: str, path: str) -> None: ...

    def summary_skipped(self, path: str, reason: str) -> None: ...
