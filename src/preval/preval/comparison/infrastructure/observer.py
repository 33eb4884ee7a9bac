"""Structlog implementation of the ComparisonObserver port."""

import structlog


class StructlogComparisonObserver:
    """Delegates comparison domain events to structlog.

    Satisfies the ComparisonObserver protocol structurally.
    """

    def __init__(self) -> None:
        self._log = structlog.get_logger()

    def summary_loaded(self, evaluator_name: str, mode: str, path: str) -> None:
        self._log.info(
            "comparison.summary.loaded",
            evaluator_name=evaluator_name,
            mode=mode,
            path=path,
        )

    def summary_not_found(self, evaluator_name: str, mode: str) -> None:
        self._log.info(
            "comparison.summary.not_found", evaluator_name=evaluator_name, mode=mode
        )

    def summary_saved(self, evaluator_name: str, mode: str, path: str) -> None:
        self._log.info(
            "comparison.summary.saved",
            evaluator_name=evaluator_name,
            mode=mode,
            path=path,
        )

    def summary_skipped(self, path: str, reason: str) -> None:
        self._log.warning("comparison.summary.skipped", path=path, reason=reason)
