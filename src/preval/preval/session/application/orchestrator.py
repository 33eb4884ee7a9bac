"""SessionOrchestrator — runs several evaluation sessions side by side."""

import asyncio
from collections.abc import Callable, Sequence

from typing_extensions import TypeAliasType

from preval.comparison.domain.store import SummaryStore
from preval.config.domain.comparison import ComparisonConfig
from preval.config.domain.evaluator import EvaluatorSpec
from preval.config.domain.session import SessionSettings
from preval.session.application.session import EvaluationSession
from preval.session.domain.observer import SessionObserver
from preval.session.domain.snapshot import SessionSnapshot

SessionFactory = TypeAliasType(
    "SessionFactory", Callable[[EvaluatorSpec], EvaluationSession]
)


class AggregationView:
    """Read-only window onto every session an orchestrator is running.

    Presentation code polls ``snapshots()``; it never touches session state.
    Control operations are forwarded to every session.
    """

    def __init__(self) -> None:
        self._sessions: list[EvaluationSession] = []

    def add(self, session: EvaluationSession) -> None:
        self._sessions.append(session)

    @property
    def sessions(self) -> list[EvaluationSession]:
        return list(self._sessions)

    def snapshots(self) -> list[SessionSnapshot]:
        return [session.snapshot() for session in self._sessions]

    @property
    def all_finished(self) -> bool:
        return bool(self._sessions) and all(
            snapshot.status.is_terminal for snapshot in self.snapshots()
        )

    def toggle_pause(self) -> None:
        """Pause every session if any is flowing, otherwise resume them all."""
        if any(not session.paused for session in self._sessions):
            for session in self._sessions:
                session.pause()
        else:
            for session in self._sessions:
                session.resume()

    def pause_all(self) -> None:
        for session in self._sessions:
            session.pause()

    def resume_all(self) -> None:
        for session in self._sessions:
            session.resume()

    def stop_all(self) -> None:
        for session in self._sessions:
            session.stop()


class SessionOrchestrator:
    """Fans out one EvaluationSession per evaluator spec.

    Sessions are independent: one evaluator failing never affects another,
    because ``EvaluationSession.run`` turns evaluator failures and unexpected
    errors into a failed snapshot instead of raising.
    """

    def __init__(
        self,
        settings: SessionSettings,
        observer: SessionObserver,
        store: SummaryStore | None = None,
        comparison: ComparisonConfig | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._settings = settings
        self._observer = observer
        self._store = store
        self._comparison = comparison
        self._session_factory = session_factory or self._default_session
        self.view = AggregationView()

    def _default_session(self, spec: EvaluatorSpec) -> EvaluationSession:
        return EvaluationSession(
            spec=spec,
            settings=self._settings,
            observer=self._observer,
            store=self._store,
            comparison=self._comparison,
        )

    async def run_all(self, specs: Sequence[EvaluatorSpec]) -> list[SessionSnapshot]:
        """Run one session per evaluator concurrently; snapshots keep input order."""
        sessions = [self._session_factory(spec) for spec in specs]
        for session in sessions:
            self.view.add(session)

        tasks: list[asyncio.Task[SessionSnapshot]] = []
        async with asyncio.TaskGroup() as tg:
            for session in sessions:
                tasks.append(
                    tg.create_task(session.run(), name=f"session-{session.spec.name}")
                )

        return [task.result() for task in tasks]
