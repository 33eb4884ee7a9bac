"""EventFeedObserver — keeps the most recent notable session events for display."""

import collections
import time

DEFAULT_FEED_SIZE = 6


class EventFeedObserver:
    """Records a short, human-readable line per notable event.

    Routine progress (samples starting, runs finishing) is left to the
    dashboard's tables; the feed only keeps what a user watching the screen
    would otherwise miss.

    Does NOT inherit from SessionObserver (structural typing via Protocol).
    """

    def __init__(self, size: int = DEFAULT_FEED_SIZE) -> None:
        self._lines: collections.deque[str] = collections.deque(maxlen=size)
        self._names: dict[str, str] = {}

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def _add(self, session_id: str, message: str) -> None:
        name = self._names.get(session_id, session_id[:8])
        self._lines.append(f"{time.strftime('%H:%M:%S')} {name}: {message}")

    def session_started(self, session_id: str, evaluator: str, command: str) -> None:
        self._names[session_id] = evaluator
        self._add(session_id, "started")

    def handshake_accepted(
        self,
        session_id: str,
        evaluator_name: str,
        mode: str,
        protocol_version: str,
        total_samples: int | None,
        runs_per_sample: int | None,
    ) -> None:
        plan = "" if total_samples is None else f", {total_samples} samples"
        self._add(session_id, f"handshake accepted ({mode}{plan})")

    def handshake_rejected(self, session_id: str, reason: str, detail: str) -> None:
        self._add(session_id, f"handshake rejected: {reason}")

    def handshake_timed_out(self, session_id: str, timeout_seconds: float) -> None:
        self._add(session_id, f"no handshake within {timeout_seconds:g}s")

    def sample_started(self, session_id: str, sample_id: str) -> None:
        pass

    def run_finished(
        self, session_id: str, sample_id: str, run_id: str, status: str
    ) -> None:
        pass

    def sample_finished(
        self,
        session_id: str,
        sample_id: str,
        status: str,
        duration_seconds: float,
        eta_seconds: float | None,
    ) -> None:
        if status == "failed":
            self._add(session_id, f"sample {sample_id} failed")

    def anomaly_recorded(self, session_id: str, kind: str, detail: str) -> None:
        self._add(session_id, f"{kind}: {detail}")

    def session_paused(self, session_id: str) -> None:
        self._add(session_id, "paused")

    def session_resumed(self, session_id: str, replayed: int) -> None:
        self._add(session_id, f"resumed, replayed {replayed} lines")

    def comparison_ready(
        self, session_id: str, improved: int, regressed: int, found: bool
    ) -> None:
        if found:
            self._add(
                session_id, f"vs previous: {improved} improved, {regressed} regressed"
            )
        else:
            self._add(session_id, "no previous run to compare against")

    def summary_store_failed(
        self, session_id: str, operation: str, reason: str
    ) -> None:
        self._add(session_id, f"history {operation} failed: {reason}")

    def session_finished(
        self,
        session_id: str,
        status: str,
        elapsed_seconds: float,
        completed_samples: int,
        anomalies: int,
    ) -> None:
        self._add(session_id, f"finished {status}")

    def session_failed(self, session_id: str, kind: str, message: str) -> None:
        self._add(session_id, f"{kind}: {message}")

