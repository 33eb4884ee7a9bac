"""JsonSummaryStore — keeps run summaries as JSON files under a directory."""

import re
from pathlib import Path

from pydantic import ValidationError

from preval.comparison.domain.observer import ComparisonObserver
from preval.comparison.domain.summary import RunSummary
from preval.comparison.infrastructure.errors import SummaryStoreError
from preval.protocol.domain.handshake import EvaluationMode

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _slug(name: str) -> str:
    slug = _UNSAFE_CHARS.sub("-", name).strip("-.")
    return slug or "evaluator"


class JsonSummaryStore:
    """Stores one file per finished session.

    Layout: ``<directory>/<evaluator>/<mode>/<finished_at>_<session>.json``.
    File names sort chronologically, so the latest summary is the last valid
    file in name order. Files that fail to parse are skipped, not fatal.

    Does NOT inherit from SummaryStore (structural typing via Protocol).
    """

    def __init__(self, directory: Path, observer: ComparisonObserver) -> None:
        self._directory = directory
        self._observer = observer

    @property
    def directory(self) -> Path:
        return self._directory

    def history(self, evaluator_name: str, mode: EvaluationMode) -> list[Path]:
        """Summary files for the evaluator and mode, oldest first."""
        folder = self._folder(evaluator_name=evaluator_name, mode=mode)
        if not folder.is_dir():
            return []
        return sorted(folder.glob("*.json"))

    def load_previous(
        self, evaluator_name: str, mode: EvaluationMode
    ) -> RunSummary | None:
        """
        Return the most recent readable summary, or None if there is none.

        Raises:
            SummaryStoreError: if the history directory cannot be listed or read.
        """
        try:
            paths = self.history(evaluator_name=evaluator_name, mode=mode)
        except OSError as exc:
            raise SummaryStoreError(
                operation="list", path=self._directory, reason=str(exc)
            ) from exc

        for path in reversed(paths):
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise SummaryStoreError(
                    operation="read", path=path, reason=str(exc)
                ) from exc
            try:
                summary = RunSummary.model_validate_json(text)
            except ValidationError as exc:
                self._observer.summary_skipped(
                    path=str(path), reason=f"{exc.error_count()} validation error(s)"
                )
                continue
            self._observer.summary_loaded(
                evaluator_name=evaluator_name, mode=mode.value, path=str(path)
            )
            return summary

        self._observer.summary_not_found(
            evaluator_name=evaluator_name, mode=mode.value
        )
        return None

    def save(self, summary: RunSummary) -> None:
        """
        Write *summary* as a new file.

        Raises:
            SummaryStoreError: if the file cannot be written.
        """
        folder = self._folder(evaluator_name=summary.evaluator_name, mode=summary.mode)
        stamp = summary.finished_at.strftime("%Y%m%dT%H%M%S%fZ")
        path = folder / f"{stamp}_{summary.session_id[:8]}.json"
        try:
            folder.mkdir(parents=True, exist_ok=True)
            path.write_text(summary.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            raise SummaryStoreError(
                operation="write", path=path, reason=str(exc)
            ) from exc
        self._observer.summary_saved(
            evaluator_name=summary.evaluator_name,
            mode=summary.mode.value,
            path=str(path),
        )

    def _folder(self, evaluator_name: str, mode: EvaluationMode) -> Path:
        return self._directory / _slug(evaluator_name) / mode.value
