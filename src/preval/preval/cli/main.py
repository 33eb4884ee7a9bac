"""CLI entrypoint for preval — typer app with `run` and `history` commands."""

import asyncio
import logging
import sys
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from preval.cli.controls import keyboard_controls, signal_controls
from preval.comparison.domain.store import SummaryStore
from preval.comparison.infrastructure.json_store import JsonSummaryStore
from preval.comparison.infrastructure.observer import StructlogComparisonObserver
from preval.config.domain.comparison import ComparisonConfig
from preval.config.domain.evaluator import EvaluatorSpec
from preval.config.domain.session import SessionSettings
from preval.config.infrastructure.observer import StructlogConfigObserver
from preval.config.infrastructure.yaml_loader import YamlConfigLoader
from preval.core.errors import PrevalError
from preval.protocol.domain.handshake import EvaluationMode
from preval.session.application.orchestrator import SessionOrchestrator
from preval.session.domain.observer import SessionObserver
from preval.session.domain.snapshot import SessionSnapshot
from preval.session.domain.status import SessionStatus
from preval.session.infrastructure.composite_observer import CompositeSessionObserver
from preval.session.infrastructure.dashboard import LiveDashboard, format_duration
from preval.session.infrastructure.event_feed import EventFeedObserver
from preval.session.infrastructure.observer import StructlogSessionObserver

app = typer.Typer(add_completion=False)

_LOG_LEVELS = ("debug", "info", "warning", "error")


def _configure_structlog(log_format: str, log_level: str = "info") -> None:
    """Configure structlog based on the requested format and level."""
    if log_format == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    elif log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        typer.echo(f"Invalid log format: {log_format!r}. Must be 'console' or 'json'.")
        raise typer.Exit(code=1)

    if log_level not in _LOG_LEVELS:
        typer.echo(
            f"Invalid log level: {log_level!r}. Must be one of {', '.join(_LOG_LEVELS)}."
        )
        raise typer.Exit(code=1)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[log_level.upper()]
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _default_history_dir() -> Path:
    return Path(typer.get_app_dir("preval")) / "history"


def _specs_from_command(command: list[str], name: str | None) -> list[EvaluatorSpec]:
    executable, *args = command
    return [
        EvaluatorSpec(name=name or Path(executable).name, command=executable, args=args)
    ]


async def _run_sessions(
    orchestrator: SessionOrchestrator,
    specs: list[EvaluatorSpec],
    dashboard: LiveDashboard,
    interactive: bool,
) -> list[SessionSnapshot]:
    loop = asyncio.get_running_loop()
    stop_dashboard = asyncio.Event()
    dashboard_task = asyncio.create_task(dashboard.run(stop=stop_dashboard))
    try:
        with (
            signal_controls(loop, orchestrator.view),
            keyboard_controls(loop, orchestrator.view, enabled=interactive),
        ):
            return await orchestrator.run_all(specs)
    finally:
        stop_dashboard.set()
        await dashboard_task


def _exit_code(snapshots: list[SessionSnapshot]) -> int:
    if all(s.status is SessionStatus.COMPLETE for s in snapshots):
        return 0
    return 1


def _print_summary(snapshots: list[SessionSnapshot]) -> None:
    for snapshot in snapshots:
        total = snapshot.total_samples
        progress = f"{snapshot.completed_samples}"
        if total is not None:
            progress += f"/{total}"
        typer.echo(
            f"{snapshot.evaluator_name}: {snapshot.status.value}"
            f"  samples {progress}"
            f"  anomalies {snapshot.anomalies.total}"
            f"  elapsed {format_duration(snapshot.elapsed_seconds)}"
        )
        if snapshot.failure is not None:
            typer.echo(f"  {snapshot.failure.message}")


@app.command()
def run(
    command: list[str] | None = typer.Argument(
        None, help="Evaluator command line (use -- before evaluator flags)"
    ),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to a preval config YAML"
    ),
    name: str | None = typer.Option(
        None, "--name", help="Display name for a command-line evaluator"
    ),
    history_dir: Path | None = typer.Option(
        None, "--history-dir", help="Directory for stored run summaries"
    ),
    no_history: bool = typer.Option(
        False, "--no-history", help="Neither load nor save run summaries"
    ),
    epsilon: float | None = typer.Option(
        None, "--epsilon", help="Relative change below which a metric is unchanged"
    ),
    handshake_timeout: float | None = typer.Option(
        None, "--handshake-timeout", help="Seconds to wait for the handshake"
    ),
    no_dashboard: bool = typer.Option(
        False, "--no-dashboard", help="Disable the live terminal dashboard"
    ),
    log_format: str = typer.Option(
        "console",
        "--log-format",
        help="Log format: 'console' or 'json'",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Log level: debug, info, warning or error (default: warning with "
        "the dashboard, info without)",
    ),
) -> None:
    """Run one or more evaluators and follow their progress live."""
    dashboard_enabled = not no_dashboard and log_format != "json"
    _configure_structlog(
        log_format=log_format,
        log_level=log_level or ("warning" if dashboard_enabled else "info"),
    )

    try:
        settings = SessionSettings()
        comparison = ComparisonConfig()
        if config_path is not None:
            config = YamlConfigLoader(observer=StructlogConfigObserver()).load(
                path=config_path
            )
            specs = config.evaluator_specs()
            settings = config.session
            comparison = config.comparison
            history_dir = history_dir or config.history_dir
        elif command:
            specs = _specs_from_command(command=command, name=name)
        else:
            typer.echo("Nothing to run: pass an evaluator command or --config.")
            raise typer.Exit(code=2)

        if handshake_timeout is not None:
            settings = settings.model_copy(
                update={"handshake_timeout_seconds": handshake_timeout}
            )
        if epsilon is not None:
            comparison = comparison.model_copy(update={"epsilon": epsilon})

        store: SummaryStore | None = None
        if not no_history:
            store = JsonSummaryStore(
                directory=history_dir or _default_history_dir(),
                observer=StructlogComparisonObserver(),
            )

        observers: list[SessionObserver] = [StructlogSessionObserver()]
        feed: EventFeedObserver | None = None
        if dashboard_enabled:
            feed = EventFeedObserver()
            observers.append(feed)

        orchestrator = SessionOrchestrator(
            settings=settings,
            observer=CompositeSessionObserver(observers=observers),
            store=store,
            comparison=comparison,
        )
        dashboard = LiveDashboard(
            view=orchestrator.view, feed=feed, disabled=not dashboard_enabled
        )
        snapshots = asyncio.run(
            _run_sessions(
                orchestrator=orchestrator,
                specs=specs,
                dashboard=dashboard,
                interactive=dashboard_enabled,
            )
        )
    except PrevalError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    _print_summary(snapshots)
    raise typer.Exit(code=_exit_code(snapshots))


@app.command()
def history(
    evaluator: str = typer.Argument(..., help="Evaluator name from its handshake"),
    mode: EvaluationMode = typer.Option(
        EvaluationMode.TEST_SUITE, "--mode", help="Evaluation mode"
    ),
    history_dir: Path | None = typer.Option(
        None, "--history-dir", help="Directory for stored run summaries"
    ),
) -> None:
    """Print the most recent stored summary for an evaluator."""
    _configure_structlog(log_format="console", log_level="warning")
    store = JsonSummaryStore(
        directory=history_dir or _default_history_dir(),
        observer=StructlogComparisonObserver(),
    )
    try:
        runs = store.history(evaluator_name=evaluator, mode=mode)
        summary = store.load_previous(evaluator_name=evaluator, mode=mode)
    except (PrevalError, OSError) as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    if summary is None:
        typer.echo(f"No stored runs for {evaluator!r} in {mode.value} mode.")
        raise typer.Exit(code=1)

    table = Table(
        title=(
            f"{summary.evaluator_name} [{summary.mode.value}]  "
            f"{summary.finished_at:%Y-%m-%d %H:%M:%S}  ({len(runs)} stored runs)"
        ),
        title_justify="left",
    )
    table.add_column("metric")
    table.add_column("value", justify="right")
    for metric, value in summary.metrics.items():
        table.add_row(metric, f"{value:.4g}")
    Console().print(table)


if __name__ == "__main__":
    app()
