"""Observer port for the session domain — defines events in domain language."""

from typing import Protocol


class SessionObserver(Protocol):
    """Observer port emitting structured events during an evaluation session.

    Implementations may log to structlog, record for tests, or drive a display.
    """

    def session_started(self, session_id: str, evaluator: str, command: str) -> None: ...

    def handshake_accepted(
        self,
        session_id: str,
        evaluator_name: str,
        mode: str,
        protocol_version: str,
        total_samples: int | None,
        runs_per_sample: int | None,
    ) -> None: ...

    def handshake_rejected(self, session_id: str, reason: str, detail: str) -> None: ...

    def handshake_timed_out(self, session_id: str, timeout_seconds: float) -> None: ...

    def sample_started(self, session_id: str, sample_id: str) -> None: ...

    def run_finished(
        self, session_id: str, sample_id: str, run_id: str, status: str
    ) -> None: ...

    def sample_finished(
        self,
        session_id: str,
        sample_id: str,
        status: str,
        duration_seconds: float,
        eta_seconds: float | None,
    ) -> None: ...

    def anomaly_recorded(self, session_id: str, kind: str, detail: str) -> None: ...

    def session_paused(self, session_id: str) -> None: ...

    def session_resumed(self, session_id: str, replayed: int) -> None: ...

    def comparison_ready(
        self, session_id: str, improved: int, regressed: int, found: bool
    ) -> None: ...

    def session_finished(
        self,
        session_id: str,
        status: str,
        elapsed_seconds: float,
        completed_samples: int,
        anomalies: int,
    ) -> None: ...

    def session_failed(self, session_id: str, kind: str, message: str) -> None: ...

    def summary_store_failed(
        self, session_id: str, operation: str, reason: str
    ) -> None: ...
