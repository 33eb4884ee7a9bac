"""StructlogSessionObserver — production observer that delegates to structlog."""

import structlog


class StructlogSessionObserver:
    """Logs session domain events to structlog.

    Does NOT inherit from SessionObserver (structural typing via Protocol).
    """

    def __init__(self) -> None:
        self._log = structlog.get_logger()

    def session_started(self, session_id: str, evaluator: str, command: str) -> None:
        self._log.info(
            "session.started",
            session_id=session_id,
            evaluator=evaluator,
            command=command,
        )

    def handshake_accepted(
        self,
        session_id: str,
        evaluator_name: str,
        mode: str,
        protocol_version: str,
        total_samples: int | None,
        runs_per_sample: int | None,
    ) -> None:
        self._log.info(
            "session.handshake.accepted",
            session_id=session_id,
            evaluator_name=evaluator_name,
            mode=mode,
            protocol_version=protocol_version,
            total_samples=total_samples,
            runs_per_sample=runs_per_sample,
        )

    def handshake_rejected(self, session_id: str, reason: str, detail: str) -> None:
        self._log.error(
            "session.handshake.rejected",
            session_id=session_id,
            reason=reason,
            detail=detail,
        )

    def handshake_timed_out(self, session_id: str, timeout_seconds: float) -> None:
        self._log.error(
            "session.handshake.timed_out",
            session_id=session_id,
            timeout_seconds=timeout_seconds,
        )

    def sample_started(self, session_id: str, sample_id: str) -> None:
        self._log.debug(
            "session.sample.started", session_id=session_id, sample_id=sample_id
        )

    def run_finished(
        self, session_id: str, sample_id: str, run_id: str, status: str
    ) -> None:
        self._log.debug(
            "session.run.finished",
            session_id=session_id,
            sample_id=sample_id,
            run_id=run_id,
            status=status,
        )

    def sample_finished(
        self,
        session_id: str,
        sample_id: str,
        status: str,
        duration_seconds: float,
        eta_seconds: float | None,
    ) -> None:
        self._log.info(
            "session.sample.finished",
            session_id=session_id,
            sample_id=sample_id,
            status=status,
            duration_seconds=round(duration_seconds, 3),
            eta_seconds=round(eta_seconds, 1) if eta_seconds is not None else None,
        )

    def anomaly_recorded(self, session_id: str, kind: str, detail: str) -> None:
        self._log.warning(
            "session.anomaly", session_id=session_id, kind=kind, detail=detail
        )

    def session_paused(self, session_id: str) -> None:
        self._log.info("session.paused", session_id=session_id)

    def session_resumed(self, session_id: str, replayed: int) -> None:
        self._log.info("session.resumed", session_id=session_id, replayed=replayed)

    def comparison_ready(
        self, session_id: str, improved: int, regressed: int, found: bool
    ) -> None:
        self._log.info(
            "session.comparison.ready",
            session_id=session_id,
            previous_found=found,
            improved=improved,
            regressed=regressed,
        )

    def summary_store_failed(
        self, session_id: str, operation: str, reason: str
    ) -> None:
        self._log.error(
            "session.summary_store.failed",
            session_id=session_id,
            operation=operation,
            reason=reason,
        )

    def session_finished(
        self,
        session_id: str,
        status: str,
        elapsed_seconds: float,
        completed_samples: int,
        anomalies: int,
    ) -> None:
        self._log.info(
            "session.finished",
            session_id=session_id,
            status=status,
            elapsed_seconds=round(elapsed_seconds, 2),
            completed_samples=completed_samples,
            anomalies=anomalies,
        )

    def session_failed(self, session_id: str, kind: str, message: str) -> None:
        self._log.error(
            "session.failed", session_id=session_id, kind=kind, message=message
        )
