"""Comparison engine — pure per-metric deltas between two run summaries."""

from collections.abc import Collection, Iterable, Mapping
from datetime import UTC, datetime

from preval.comparison.domain.result import (
    ChangeKind,
    Comparison,
    ComparisonResult,
    MetricDelta,
    NoPreviousRun,
    SampleComparison,
)
from preval.comparison.domain.summary import MetricValues, RunSummary
from preval.session.domain.snapshot import SessionSnapshot

DEFAULT_EPSILON = 0.001


def compare(
    current: RunSummary | None,
    previous: RunSummary | None,
    epsilon: float = DEFAULT_EPSILON,
    lower_is_better: Collection[str] = (),
) -> Comparison:
    """Compare *current* against *previous*, metric by metric.

    A change is ``unchanged`` when its size relative to the previous value is
    below *epsilon* (absolute size when the previous value is zero). An increase
    is an improvement unless the metric is listed in *lower_is_better*.

    Returns NoPreviousRun when either side is missing.
    """
    if previous is None:
        return NoPreviousRun()
    if current is None:
        return NoPreviousRun(reason="no current results to compare")

    shared_samples = [sid for sid in current.samples if sid in previous.samples]
    return ComparisonResult(
        previous_session_id=previous.session_id,
        previous_finished_at=previous.finished_at,
        metrics=_compare_values(
            current.metrics, previous.metrics, epsilon, lower_is_better
        ),
        samples=[
            SampleComparison(
                sample_id=sample_id,
                metrics=_compare_values(
                    current.samples[sample_id],
                    previous.samples[sample_id],
                    epsilon,
                    lower_is_better,
                ),
            )
            for sample_id in shared_samples
        ],
    )


def metric_delta(
    name: str,
    current: float | None,
    previous: float | None,
    epsilon: float = DEFAULT_EPSILON,
    lower_is_better: Collection[str] = (),
) -> MetricDelta:
    if previous is None and current is None:
        raise ValueError(f"metric '{name}' has neither a current nor a previous value")
    if previous is None:
        return MetricDelta(name=name, current=current, change=ChangeKind.NEW)
    if current is None:
        return MetricDelta(name=name, previous=previous, change=ChangeKind.DISCONTINUED)

    delta = current - previous
    if previous == 0:
        percent = None
        unchanged = abs(delta) < epsilon
    else:
        percent = delta / abs(previous) * 100.0
        unchanged = abs(delta) / abs(previous) < epsilon

    if unchanged:
        change = ChangeKind.UNCHANGED
    else:
        better = delta < 0 if name in lower_is_better else delta > 0
        change = ChangeKind.IMPROVED if better else ChangeKind.REGRESSED

    return MetricDelta(
        name=name,
        current=current,
        previous=previous,
        delta=delta,
        percent=percent,
        change=change,
    )


def _compare_values(
    current: Mapping[str, float],
    previous: Mapping[str, float],
    epsilon: float,
    lower_is_better: Collection[str],
) -> list[MetricDelta]:
    names = list(current) + [name for name in previous if name not in current]
    return [
        metric_delta(
            name=name,
            current=current.get(name),
            previous=previous.get(name),
            epsilon=epsilon,
            lower_is_better=lower_is_better,
        )
        for name in names
    ]


def summarize(
    snapshot: SessionSnapshot, finished_at: datetime | None = None
) -> RunSummary:
    """Condense a session snapshot into the values that get compared and stored.

    Per run the last value of each metric is used (histograms contribute
    sum/count); per sample the mean over its runs; overall the mean over
    samples. Evaluator-provided summary metrics and continuous-mode stream
    metrics override the computed overall values.

    Raises:
        ValueError: if the session never accepted a handshake.
    """
    handshake = snapshot.handshake
    if handshake is None:
        raise ValueError("Failed to summarize session: no handshake was accepted")

    samples: dict[str, MetricValues] = {}
    for sample in snapshot.samples:
        values = _mean_by_name(run.metrics for run in sample.runs)
        if values:
            samples[sample.sample_id] = values

    overall = _mean_by_name(samples.values())
    overall.update(snapshot.stream_metrics)
    overall.update(snapshot.summary_metrics)

    return RunSummary(
        evaluator_name=handshake.evaluator.name,
        mode=handshake.mode,
        session_id=snapshot.session_id,
        finished_at=finished_at or datetime.now(UTC),
        status=snapshot.status.value,
        metrics=overall,
        samples=samples,
    )


def _mean_by_name(rows: Iterable[Mapping[str, float]]) -> MetricValues:
    totals: dict[str, float] = {}
    counts: dict[str, int] = {}
    for row in rows:
        for name, value in row.items():
            totals[name] = totals.get(name, 0.0) + value
            counts[name] = counts.get(name, 0) + 1
    return {name: totals[name] / counts[name] for name in totals}
