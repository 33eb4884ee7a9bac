"""SummaryStore port — where previous run summaries come from and go to."""

from typing import Protocol

from preval.comparison.domain.summary import RunSummary
from preval.protocol.domain.handshake import EvaluationMode


class SummaryStore(Protocol):
    """Storage collaborator for run summaries.

    The engine never touches files itself; it asks the store for the latest
    summary of an evaluator in a given mode and hands finished summaries back.
    """

    def load_previous(
        self, evaluator_name: str, mode: EvaluationMode
    ) -> RunSummary | None: ...

    def save(self, summary: RunSummary) -> None: ...
