"""CompositeSessionObserver — fans out all events to a list of observers."""

from preval.session.domain.observer import SessionObserver


class CompositeSessionObserver:
    """Delegates every observer event to each observer in order.

    Does NOT inherit from SessionObserver (structural typing via Protocol).
    """

    def __init__(self, observers: list[SessionObserver]) -> None:
        self._observers = observers

    def session_started(self, session_id: str, evaluator: str, command: str) -> None:
        for obs in self._observers:
            obs.session_started(
                session_id=session_id, evaluator=evaluator, command=command
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
        for obs in self._observers:
            obs.handshake_accepted(
                session_id=session_id,
                evaluator_name=evaluator_name,
                mode=mode,
                protocol_version=protocol_version,
                total_samples=total_samples,
                runs_per_sample=runs_per_sample,
            )

    def handshake_rejected(self, session_id: str, reason: str, detail: str) -> None:
        for obs in self._observers:
            obs.handshake_rejected(session_id=session_id, reason=reason, detail=detail)

    def handshake_timed_out(self, session_id: str, timeout_seconds: float) -> None:
        for obs in self._observers:
            obs.handshake_timed_out(
                session_id=session_id, timeout_seconds=timeout_seconds
            )

    def sample_started(self, session_id: str, sample_id: str) -> None:
        for obs in self._observers:
            obs.sample_started(session_id=session_id, sample_id=sample_id)

    def run_finished(
        self, session_id: str, sample_id: str, run_id: str, status: str
    ) -> None:
        for obs in self._observers:
            obs.run_finished(
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
        for obs in self._observers:
            obs.sample_finished(
                session_id=session_id,
                sample_id=sample_id,
                status=status,
                duration_seconds=duration_seconds,
                eta_seconds=eta_seconds,
            )

    def anomaly_recorded(self, session_id: str, kind: str, detail: str) -> None:
        for obs in self._observers:
            obs.anomaly_recorded(session_id=session_id, kind=kind, detail=detail)

    def session_paused(self, session_id: str) -> None:
        for obs in self._observers:
            obs.session_paused(session_id=session_id)

    def session_resumed(self, session_id: str, replayed: int) -> None:
        for obs in self._observers:
            obs.session_resumed(session_id=session_id, replayed=replayed)

    def comparison_ready(
        self, session_id: str, improved: int, regressed: int, found: bool
    ) -> None:
        for obs in self._observers:
            obs.comparison_ready(
                session_id=session_id,
                improved=improved,
                regressed=regressed,
                found=found,
            )

    def summary_store_failed(
        self, session_id: str, operation: str, reason: str
    ) -> None:
        for obs in self._observers:
            obs.summary_store_failed(
                session_id=session_id, operation=operation, reason=reason
            )

    def session_finished(
        self,
        session_id: str,
        status: str,
        elapsed_seconds: float,
        completed_samples: int,
        anomalies: int,
    ) -> None:
        for obs in self._observers:
            obs.session_finished(
                session_id=session_id,
                status=status,
                elapsed_seconds=elapsed_seconds,
                completed_samples=completed_samples,
                anomalies=anomalies,
            )

    def session_failed(self, session_id: str, kind: str, message: str) -> None:
        for obs in self._observers:
            obs.session_failed(session_id=session_id, kind=kind, message=message)
