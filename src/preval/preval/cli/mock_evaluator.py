"""preval-mock-evaluator — a protocol-compliant evaluator for demos and smoke tests.

Writes a handshake, then one OTLP/JSON line per (sample, run) with an
accuracy gauge, a latency histogram and a cumulative token counter, then a
summary line.
"""

import json
import random
import sys
import time
from typing import Any

import typer

from preval.protocol.domain.handshake import (
    EvaluationMode,
    EvaluatorInfo,
    ExecutionPlan,
    Handshake,
    MetricDefinition,
    MetricKind,
)
from preval.protocol.infrastructure.decoder import encode_handshake

app = typer.Typer(add_completion=False)

ACCURACY = "llm.eval.accuracy"
LATENCY = "llm.eval.latency"
TOKENS = "llm.eval.tokens"

_LATENCY_BOUNDS = [50.0, 100.0, 200.0, 500.0]


def build_handshake(samples: int, runs: int) -> Handshake:
    return Handshake(
        mode=EvaluationMode.TEST_SUITE,
        version="1.0",
        evaluator=EvaluatorInfo(
            name="mock-evaluator",
            description="Mock evaluator for testing the preval dashboard",
        ),
        execution_plan=ExecutionPlan(total_samples=samples, runs_per_sample=runs),
        metrics_schema=[
            MetricDefinition(
                name=ACCURACY,
                kind=MetricKind.GAUGE,
                unit="ratio",
                description="Classification accuracy (0-1)",
            ),
            MetricDefinition(
                name=LATENCY,
                kind=MetricKind.HISTOGRAM,
                unit="ms",
                description="Response latency in milliseconds",
            ),
            MetricDefinition(
                name=TOKENS,
                kind=MetricKind.COUNTER,
                unit="1",
                description="Total tokens processed",
            ),
        ],
    )


def _attributes(**values: str | bool) -> list[dict[str, Any]]:
    attributes: list[dict[str, Any]] = []
    for key, value in values.items():
        wire_key = key.replace("_", ".")
        if isinstance(value, bool):
            attributes.append({"key": wire_key, "value": {"boolValue": value}})
        else:
            attributes.append({"key": wire_key, "value": {"stringValue": value}})
    return attributes


def _envelope(metrics: list[dict[str, Any]]) -> str:
    return json.dumps(
        {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": _attributes(service_name="mock-evaluator")
                    },
                    "scopeMetrics": [
                        {"scope": {"name": "mock-evaluator"}, "metrics": metrics}
                    ],
                }
            ]
        }
    )


def _bucket_counts(latency: float) -> list[str]:
    counts = ["0"] * (len(_LATENCY_BOUNDS) + 1)
    index = next(
        (i for i, bound in enumerate(_LATENCY_BOUNDS) if latency <= bound),
        len(_LATENCY_BOUNDS),
    )
    counts[index] = "1"
    return counts


def sample_line(
    sample_id: str,
    run_id: str,
    accuracy: float,
    latency: float,
    total_tokens: float,
    now_nanos: int,
) -> str:
    attributes = _attributes(sample_id=sample_id, run_id=run_id)
    timestamp = str(now_nanos)
    return _envelope(
        [
            {
                "name": ACCURACY,
                "unit": "ratio",
                "gauge": {
                    "dataPoints": [
                        {
                            "timeUnixNano": timestamp,
                            "asDouble": accuracy,
                            "attributes": attributes,
                        }
                    ]
                },
            },
            {
                "name": LATENCY,
                "unit": "ms",
                "histogram": {
                    "dataPoints": [
                        {
                            "timeUnixNano": timestamp,
                            "count": "1",
                            "sum": latency,
                            "min": latency,
                            "max": latency,
                            "bucketCounts": _bucket_counts(latency),
                            "explicitBounds": _LATENCY_BOUNDS,
                            "attributes": attributes,
                        }
                    ],
                    "aggregationTemporality": 2,
                },
            },
            {
                "name": TOKENS,
                "unit": "1",
                "sum": {
                    "dataPoints": [
                        {
                            "timeUnixNano": timestamp,
                            "asDouble": total_tokens,
                            "attributes": attributes,
                        }
                    ],
                    "aggregationTemporality": 2,
                    "isMonotonic": True,
                },
            },
        ]
    )


def summary_line(values: dict[str, float], now_nanos: int) -> str:
    return _envelope(
        [
            {
                "name": name,
                "gauge": {
                    "dataPoints": [
                        {
                            "timeUnixNano": str(now_nanos),
                            "asDouble": value,
                            "attributes": _attributes(summary=True),
                        }
                    ]
                },
            }
            for name, value in values.items()
        ]
    )


def _emit(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


@app.command()
def main(
    samples: int = typer.Option(10, "--samples", min=1, help="Samples to evaluate"),
    runs: int = typer.Option(1, "--runs", min=1, help="Runs per sample"),
    delay: float = typer.Option(0.3, "--delay", min=0.0, help="Seconds per run"),
    fail_after: int | None = typer.Option(
        None, "--fail-after", min=0, help="Exit with code 1 after this many samples"
    ),
    malformed: bool = typer.Option(
        False, "--malformed", help="Write one undecodable line after the handshake"
    ),
    seed: int | None = typer.Option(None, "--seed", help="Random seed"),
) -> None:
    """Emit a handshake and synthetic evaluation metrics on stdout."""
    rng = random.Random(seed)
    _emit(encode_handshake(build_handshake(samples=samples, runs=runs)))
    if malformed:
        _emit("this line is not OTLP")

    accuracies: list[float] = []
    total_tokens = 0.0
    for index in range(1, samples + 1):
        if fail_after is not None and index > fail_after:
            sys.stderr.write(f"mock evaluator failing after {fail_after} samples\n")
            raise typer.Exit(code=1)
        sample_id = f"sample-{index:03d}"
        for run in range(1, runs + 1):
            time.sleep(delay)
            accuracy = min(1.0, 0.7 + index * 0.02 + rng.uniform(-0.02, 0.02))
            latency = 100.0 + index * 10.0 + rng.uniform(0.0, 20.0)
            total_tokens += 500.0 + index * 50.0
            accuracies.append(accuracy)
            _emit(
                sample_line(
                    sample_id=sample_id,
                    run_id=str(run),
                    accuracy=accuracy,
                    latency=latency,
                    total_tokens=total_tokens,
                    now_nanos=time.time_ns(),
                )
            )

    _emit(
        summary_line(
            {ACCURACY: sum(accuracies) / len(accuracies), TOKENS: total_tokens},
            now_nanos=time.time_ns(),
        )
    )


if __name__ == "__main__":
    app()
