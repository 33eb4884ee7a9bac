"""EvaluationSession — drives one evaluator from spawn to final snapshot."""

import asyncio
import time
import uuid

from preval.comparison.application.engine import compare, summarize
from preval.comparison.domain.result import (
    ChangeKind,
    Comparison,
    ComparisonResult,
)
from preval.comparison.domain.store import SummaryStore
from preval.comparison.domain.summary import RunSummary
from preval.config.domain.comparison import ComparisonConfig
from preval.config.domain.evaluator import EvaluatorSpec
from preval.config.domain.session import SessionSettings
from preval.core.errors import PrevalError
from preval.process.infrastructure.errors import SpawnError
from preval.process.infrastructure.observer import StructlogProcessObserver
from preval.process.infrastructure.supervisor import ProcessHandle, ProcessSupervisor
from preval.protocol.domain.handshake import Handshake
from preval.session.application.aggregator import Clock, MetricAggregator
from preval.session.application.channel import EndOfStream, LineChannel
from preval.session.application.errors import (
    HandshakeRejectedError,
    HandshakeTimeoutError,
)
from preval.session.application.handshake import HandshakeNegotiator
from preval.session.application.pause import PauseController
from preval.session.domain.observer import SessionObserver
from preval.session.domain.snapshot import SessionFailure, SessionSnapshot
from preval.session.domain.state import SessionState
from preval.session.domain.status import FailureKind, SessionStatus


class EvaluationSession:
    """One evaluator subprocess and everything known about its progress.

    ``run()`` never raises for evaluator misbehaviour: spawn failures, handshake
    problems and crashes all end as a ``failed`` snapshot, and so does an
    unexpected error while folding the output (partial data is kept).
    Cancelling the task running ``run()`` terminates the subprocess and
    re-raises. Whatever the exit path, the subprocess is terminated before
    ``run()`` returns.

    All state mutation happens on the task running ``run()``; ``pause()``,
    ``resume()``, ``stop()`` and ``snapshot()`` are meant to be called from
    the same event loop.
    """

    def __init__(
        self,
        spec: EvaluatorSpec,
        settings: SessionSettings,
        observer: SessionObserver,
        store: SummaryStore | None = None,
        comparison: ComparisonConfig | None = None,
        supervisor: ProcessSupervisor | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._spec = spec
        self._settings = settings
        self._observer = observer
        self._store = store
        self._comparison = comparison or ComparisonConfig()
        self._clock = clock
        self._session_id = str(uuid.uuid4())
        self._supervisor = supervisor or ProcessSupervisor(
            observer=StructlogProcessObserver(session_id=self._session_id),
            line_limit=settings.line_limit_bytes,
            grace_seconds=settings.terminate_grace_seconds,
        )
        self._state = SessionState(
            session_id=self._session_id,
            evaluator_name=spec.name,
            stall_threshold_seconds=settings.stall_threshold_seconds,
            eta_window=settings.eta_window,
        )
        self._finished = asyncio.Event()
        self._stop_requested = asyncio.Event()
        self._aggregator = MetricAggregator(
            state=self._state,
            observer=observer,
            infer_run_completion=settings.infer_run_completion,
            on_finished=self._finished.set,
            clock=clock,
        )
        self._pause = PauseController(
            state=self._state,
            aggregator=self._aggregator,
            observer=observer,
            capacity=settings.buffer_capacity,
        )
        self._previous: RunSummary | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def spec(self) -> EvaluatorSpec:
        return self._spec

    @property
    def paused(self) -> bool:
        return self._pause.paused

    def snapshot(self) -> SessionSnapshot:
        return self._state.snapshot(now=self._clock())

    def pause(self) -> None:
        self._pause.pause()

    def resume(self) -> None:
        self._pause.resume()

    def toggle_pause(self) -> None:
        self._pause.toggle()

    def stop(self) -> None:
        """Ask the session to end early; its final status will be ``cancelled``."""
        self._stop_requested.set()

    def compare(self) -> Comparison:
        """Compare the session as it stands now against the previous run."""
        if self._state.handshake is None:
            return compare(current=None, previous=self._previous)
        return compare(
            current=summarize(self.snapshot()),
            previous=self._previous,
            epsilon=self._comparison.epsilon,
            lower_is_better=self._comparison.lower_is_better,
        )

    async def run(self) -> SessionSnapshot:
        """Spawn the evaluator, follow it to the end and return the final snapshot."""
        state = self._state
        state.started_at = self._clock()
        self._observer.session_started(
            session_id=self._session_id,
            evaluator=self._spec.name,
            command=self._spec.command_line,
        )

        try:
            handle = await self._supervisor.start(
                command=self._spec.command,
                arguments=self._spec.args,
                environment=self._spec.env,
            )
        except SpawnError as exc:
            self._fail(FailureKind.SPAWN_FAILURE, str(exc))
            return self._finish()

        try:
            async with handle:
                await self._follow(handle)
        except asyncio.CancelledError:
            self._cancel()
            raise
        except Exception as exc:
            self._fail(
                FailureKind.INTERNAL_ERROR,
                f"Failed to follow evaluator output: {type(exc).__name__}: {exc}",
            )

        return self._finish()

    async def _follow(self, handle: ProcessHandle) -> None:
        channel: LineChannel = asyncio.Queue()
        reader = asyncio.create_task(
            self._read(handle, channel), name=f"reader-{self._session_id[:8]}"
        )
        drive = asyncio.create_task(self._drive(channel))
        stop = asyncio.create_task(self._stop_requested.wait())
        tasks = (reader, drive, stop)
        try:
            await asyncio.wait({drive, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if drive.cancelled():
            self._cancel()
            return
        error = drive.exception()
        if error is not None:
            raise error

    async def _read(self, handle: ProcessHandle, channel: LineChannel) -> None:
        async for line in handle.lines():
            channel.put_nowait(line)
        exit_status = await handle.wait()
        self._state.stderr_tail = handle.stderr_tail
        channel.put_nowait(EndOfStream(exit_status=exit_status))

    async def _drive(self, channel: LineChannel) -> None:
        self._state.status = SessionStatus.HANDSHAKING
        handshake = await self._negotiate(channel)
        if handshake is None:
            return

        self._aggregator.start(handshake)
        self._observer.handshake_accepted(
            session_id=self._session_id,
            evaluator_name=handshake.evaluator.name,
            mode=handshake.mode.value,
            protocol_version=handshake.version,
            total_samples=(
                handshake.execution_plan.total_samples
                if handshake.execution_plan is not None
                else None
            ),
            runs_per_sample=(
                handshake.execution_plan.runs_per_sample
                if handshake.execution_plan is not None
                else None
            ),
        )
        self._load_previous(handshake)

        while True:
            item = await channel.get()
            self._pause.submit(item)
            if isinstance(item, EndOfStream):
                break
        # A paused session holds end-of-stream until it is resumed.
        await self._finished.wait()
        self._complete_comparison()

    async def _negotiate(self, channel: LineChannel) -> Handshake | None:
        negotiator = HandshakeNegotiator(
            timeout_seconds=self._settings.handshake_timeout_seconds
        )
        try:
            return await negotiator.negotiate(channel)
        except HandshakeTimeoutError as exc:
            self._observer.handshake_timed_out(
                session_id=self._session_id, timeout_seconds=exc.timeout_seconds
            )
            self._fail(FailureKind.HANDSHAKE_TIMEOUT, str(exc))
        except HandshakeRejectedError as exc:
            self._observer.handshake_rejected(
                session_id=self._session_id, reason=exc.reason, detail=exc.detail
            )
            self._fail(FailureKind.HANDSHAKE_REJECTED, str(exc))
        return None

    def _load_previous(self, handshake: Handshake) -> None:
        if self._store is None:
            return
        try:
            self._previous = self._store.load_previous(
                evaluator_name=handshake.evaluator.name, mode=handshake.mode
            )
        except PrevalError as exc:
            self._observer.summary_store_failed(
                session_id=self._session_id, operation="load", reason=str(exc)
            )

    def _complete_comparison(self) -> None:
        summary = summarize(self.snapshot())
        comparison = compare(
            current=summary,
            previous=self._previous,
            epsilon=self._comparison.epsilon,
            lower_is_better=self._comparison.lower_is_better,
        )
        self._state.comparison = comparison
        if isinstance(comparison, ComparisonResult):
            self._observer.comparison_ready(
                session_id=self._session_id,
                improved=comparison.count(ChangeKind.IMPROVED),
                regressed=comparison.count(ChangeKind.REGRESSED),
                found=True,
            )
        else:
            self._observer.comparison_ready(
                session_id=self._session_id, improved=0, regressed=0, found=False
            )

        if self._store is None or self._state.status is not SessionStatus.COMPLETE:
            return
        try:
            self._store.save(summary)
        except PrevalError as exc:
            self._observer.summary_store_failed(
                session_id=self._session_id, operation="save", reason=str(exc)
            )

    def _fail(self, kind: FailureKind, message: str) -> None:
        self._state.status = SessionStatus.FAILED
        self._state.failure = SessionFailure(kind=kind, message=message)
        self._state.ended_at = self._clock()

    def _cancel(self) -> None:
        if self._state.status.is_terminal:
            return
        self._state.status = SessionStatus.CANCELLED
        self._state.ended_at = self._clock()

    def _finish(self) -> SessionSnapshot:
        snapshot = self.snapshot()
        if snapshot.failure is not None:
            self._observer.session_failed(
                session_id=self._session_id,
                kind=snapshot.failure.kind.value,
                message=snapshot.failure.message,
            )
        self._observer.session_finished(
            session_id=self._session_id,
            status=snapshot.status.value,
            elapsed_seconds=snapshot.elapsed_seconds,
            completed_samples=snapshot.completed_samples,
            anomalies=snapshot.anomalies.total,
        )
        return snapshot
