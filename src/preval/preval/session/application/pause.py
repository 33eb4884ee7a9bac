"""PauseController — gates delivery to the aggregator with a bounded buffer."""

import collections

from preval.session.application.aggregator import MetricAggregator
from preval.session.application.channel import EndOfStream, StreamItem
from preval.session.domain.observer import SessionObserver
from preval.session.domain.state import SessionState
from preval.session.domain.status import AnomalyKind

DEFAULT_BUFFER_CAPACITY = 10_000


class PauseController:
    """Two-state gate (flowing / paused) in front of the aggregator.

    While paused, lines are held in a FIFO buffer of fixed capacity; when it is
    full the oldest line is dropped and counted as a ``buffer_overflow``
    anomaly. End-of-stream is never dropped: it is held aside and delivered
    after the buffered lines on resume.

    Reading from the subprocess never stops, so a paused session cannot stall
    its evaluator on a full pipe.
    """

    def __init__(
        self,
        state: SessionState,
        aggregator: MetricAggregator,
        observer: SessionObserver,
        capacity: int = DEFAULT_BUFFER_CAPACITY,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._state = state
        self._aggregator = aggregator
        self._observer = observer
        self._capacity = capacity
        self._buffer: collections.deque[str] = collections.deque()
        self._pending_end: EndOfStream | None = None
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def submit(self, item: StreamItem) -> None:
        if not self._paused:
            self._deliver(item)
            return
        if isinstance(item, EndOfStream):
            self._pending_end = item
            return
        if len(self._buffer) >= self._capacity:
            self._buffer.popleft()
            self._state.record_anomaly(AnomalyKind.BUFFER_OVERFLOW)
            self._observer.anomaly_recorded(
                session_id=self._state.session_id,
                kind=AnomalyKind.BUFFER_OVERFLOW.value,
                detail=f"pause buffer full ({self._capacity} lines), dropped oldest",
            )
        self._buffer.append(item)
        self._state.buffered_lines = len(self._buffer)

    def pause(self) -> None:
        if self._paused or self._state.status.is_terminal:
            return
        self._paused = True
        self._state.paused = True
        self._observer.session_paused(session_id=self._state.session_id)

    def resume(self) -> None:
        """Replay buffered lines in arrival order, then a held end-of-stream."""
        if not self._paused:
            return
        replayed = 0
        while self._buffer:
            self._deliver(self._buffer.popleft())
            replayed += 1
        self._state.buffered_lines = 0
        self._paused = False
        self._state.paused = False
        self._observer.session_resumed(
            session_id=self._state.session_id, replayed=replayed
        )
        if self._pending_end is not None:
            end, self._pending_end = self._pending_end, None
            self._deliver(end)

    def toggle(self) -> None:
        if self._paused:
            self.resume()
        else:
            self.pause()

    def _deliver(self, item: StreamItem) -> None:
        if isinstance(item, EndOfStream):
            self._aggregator.finish(item.exit_status)
        else:
            self._aggregator.process_line(item)
