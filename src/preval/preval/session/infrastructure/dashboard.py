"""LiveDashboard — renders every session's snapshot as a Rich live display."""

from __future__ import annotations

import asyncio

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from preval.comparison.domain.result import ChangeKind, ComparisonResult, MetricDelta
from preval.session.application.orchestrator import AggregationView
from preval.session.domain.snapshot import SampleSnapshot, SessionSnapshot
from preval.session.domain.status import SampleStatus, SessionStatus
from preval.session.infrastructure.event_feed import EventFeedObserver

_STATUS_STYLES: dict[SessionStatus, str] = {
    SessionStatus.STARTING: "dim white",
    SessionStatus.HANDSHAKING: "yellow",
    SessionStatus.RUNNING: "cyan",
    SessionStatus.COMPLETE: "bright_green",
    SessionStatus.INCOMPLETE: "yellow",
    SessionStatus.FAILED: "bold red",
    SessionStatus.CANCELLED: "magenta",
}

_SAMPLE_ICONS: dict[SampleStatus, tuple[str, str]] = {
    SampleStatus.RUNNING: ("…", "grey50"),
    SampleStatus.COMPLETE: ("✓", "bright_green"),
    SampleStatus.FAILED: ("✗", "red"),
}

_CHANGE_STYLES: dict[ChangeKind, tuple[str, str]] = {
    ChangeKind.IMPROVED: ("▲", "bright_green"),
    ChangeKind.REGRESSED: ("▼", "red"),
    ChangeKind.UNCHANGED: ("=", "dim white"),
    ChangeKind.NEW: ("new", "cyan"),
    ChangeKind.DISCONTINUED: ("gone", "dim white"),
}


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "--:--"
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def _format_value(value: float | None) -> str:
    if value is None:
        return "-"
    if value != 0 and (abs(value) >= 1e6 or abs(value) < 1e-3):
        return f"{value:.3e}"
    return f"{value:.4g}"


def progress_bar(snapshot: SessionSnapshot, bar_width: int = 40) -> Text:
    """Four segments: complete, failed, in-flight, remaining."""
    total = snapshot.total_samples
    running = sum(1 for s in snapshot.samples if s.status is SampleStatus.RUNNING)
    complete = snapshot.completed_samples
    failed = snapshot.failed_samples

    result = Text()
    if not total:
        result.append(f"{complete} done", style="bright_green")
        result.append(f"  {running} running", style="grey50")
        return result

    complete_cells = int(complete / total * bar_width)
    failed_cells = min(int(failed / total * bar_width), bar_width - complete_cells)
    # In-flight fills from where finished ends; capped to the bar width.
    running_cells = min(
        int(running / total * bar_width), bar_width - complete_cells - failed_cells
    )
    remaining_cells = bar_width - complete_cells - failed_cells - running_cells

    result.append("█" * complete_cells, style="bright_green")
    result.append("█" * failed_cells, style="red")
    result.append("▒" * running_cells, style="grey50")
    result.append("░" * remaining_cells, style="dim white")
    result.append("  ")
    result.append_text(
        Text.assemble(
            (str(snapshot.finished_samples), "bright_green"),
            ("+", "dim white"),
            (str(running), "grey50"),
            ("/", "dim white"),
            (str(total), "default"),
        )
    )
    return result


def _header(snapshot: SessionSnapshot) -> Text:
    header = Text()
    header.append(snapshot.evaluator_name, style="bold")
    if snapshot.mode is not None:
        header.append(f"  [{snapshot.mode.value}]", style="dim white")
    header.append("  ")
    header.append(
        snapshot.status.value.upper(), style=_STATUS_STYLES[snapshot.status]
    )
    if snapshot.paused:
        label = "  PAUSED"
        if snapshot.buffered_lines:
            label += f" ({snapshot.buffered_lines} buffered)"
        header.append(label, style="bold yellow")
    if snapshot.stalled:
        header.append("  STALLED", style="bold red")
    header.append(f"  elapsed {format_duration(snapshot.elapsed_seconds)}")
    if not snapshot.status.is_terminal and snapshot.total_samples is not None:
        header.append(f"  eta {format_duration(snapshot.eta_seconds)}")
    return header


def _anomalies(snapshot: SessionSnapshot) -> Text | None:
    counts = snapshot.anomalies
    if counts.total == 0:
        return None
    parts = [
        f"{name}={value}"
        for name, value in counts.model_dump().items()
        if value
    ]
    return Text(f"anomalies: {', '.join(parts)}", style="yellow")


def _sample_metric_values(sample: SampleSnapshot) -> dict[str, float]:
    totals: dict[str, list[float]] = {}
    for run in sample.runs:
        for name, value in run.metrics.items():
            totals.setdefault(name, []).append(value)
    return {name: sum(values) / len(values) for name, values in totals.items()}


def samples_table(snapshot: SessionSnapshot, limit: int) -> Table | None:
    if not snapshot.samples:
        return None
    recent = snapshot.samples[-limit:]
    metric_names: list[str] = []
    if snapshot.handshake is not None:
        metric_names = [d.name for d in snapshot.handshake.metrics_schema]
    for sample in recent:
        for name in _sample_metric_values(sample):
            if name not in metric_names:
                metric_names.append(name)

    table = Table(box=None, pad_edge=False, show_edge=False, header_style="dim")
    table.add_column("", width=1)
    table.add_column("sample")
    table.add_column("runs", justify="right")
    for name in metric_names:
        table.add_column(name, justify="right")

    for sample in recent:
        icon, style = _SAMPLE_ICONS[sample.status]
        values = _sample_metric_values(sample)
        table.add_row(
            Text(icon, style=style),
            sample.sample_id,
            str(len(sample.runs)),
            *(_format_value(values.get(name)) for name in metric_names),
        )
    return table


def _delta_cells(delta: MetricDelta) -> tuple[str, str, str, str, Text]:
    marker, style = _CHANGE_STYLES[delta.change]
    percent = "-" if delta.percent is None else f"{delta.percent:+.2f}%"
    delta_text = "-" if delta.delta is None else f"{delta.delta:+.4g}"
    return (
        delta.name,
        _format_value(delta.previous),
        _format_value(delta.current),
        f"{delta_text} ({percent})",
        Text(marker, style=style),
    )


def comparison_table(comparison: ComparisonResult) -> Table:
    table = Table(
        title="vs previous run",
        title_justify="left",
        title_style="dim",
        box=None,
        header_style="dim",
    )
    table.add_column("metric")
    table.add_column("previous", justify="right")
    table.add_column("current", justify="right")
    table.add_column("delta", justify="right")
    table.add_column("")
    for delta in comparison.metrics:
        table.add_row(*_delta_cells(delta))
    return table


def render_session(snapshot: SessionSnapshot, recent_samples: int = 8) -> Panel:
    parts: list[RenderableType] = [_header(snapshot)]
    if snapshot.handshake is not None:
        parts.append(progress_bar(snapshot))
    anomalies = _anomalies(snapshot)
    if anomalies is not None:
        parts.append(anomalies)
    if snapshot.failure is not None:
        parts.append(
            Text(
                f"{snapshot.failure.kind.value}: {snapshot.failure.message}",
                style="red",
            )
        )
    if snapshot.summary_metrics or snapshot.stream_metrics:
        merged = {**snapshot.stream_metrics, **snapshot.summary_metrics}
        parts.append(
            Text(
                "summary: "
                + ", ".join(f"{k}={_format_value(v)}" for k, v in merged.items()),
                style="cyan",
            )
        )
    table = samples_table(snapshot, limit=recent_samples)
    if table is not None:
        parts.append(table)
    if isinstance(snapshot.comparison, ComparisonResult):
        parts.append(comparison_table(snapshot.comparison))
    return Panel(
        Group(*parts),
        border_style=_STATUS_STYLES[snapshot.status],
        title=snapshot.session_id[:8],
        title_align="right",
    )


class LiveDashboard:
    """Polls an AggregationView and redraws every session at a fixed rate.

    Rendering only ever reads snapshots, so it cannot disturb the sessions.
    An optional EventFeedObserver adds a few lines of recent events below
    the sessions. Pass ``disabled=True`` to suppress all terminal output
    (useful in tests).
    """

    def __init__(
        self,
        view: AggregationView,
        feed: EventFeedObserver | None = None,
        console: Console | None = None,
        disabled: bool = False,
        refresh_per_second: float = 4.0,
        recent_samples: int = 8,
    ) -> None:
        self._view = view
        self._feed = feed
        self._console = console or Console(stderr=True)
        self._disabled = disabled
        self._interval = 1.0 / refresh_per_second
        self._recent_samples = recent_samples

    def render(self) -> Group:
        snapshots = self._view.snapshots()
        if not snapshots:
            return Group(Text("Waiting for evaluators…", style="dim white"))
        footer = Text(
            "  space/SIGUSR1: pause/resume   q/Ctrl-C: quit", style="dim white"
        )
        parts: list[RenderableType] = [
            render_session(s, self._recent_samples) for s in snapshots
        ]
        if self._feed is not None and self._feed.lines:
            parts.append(Text("\n".join(self._feed.lines), style="dim white"))
        parts.append(footer)
        return Group(*parts)

    async def run(self, stop: asyncio.Event) -> None:
        """Redraw until *stop* is set, then draw a final frame and return."""
        if self._disabled:
            await stop.wait()
            return
        with Live(
            self.render(),
            console=self._console,
            refresh_per_second=max(1.0, 1.0 / self._interval),
            transient=False,
        ) as live:
            while not stop.is_set():
                live.update(self.render())
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self._interval)
                except TimeoutError:
                    continue
            live.update(self.render())
