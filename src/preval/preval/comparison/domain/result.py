"""Comparison result types — per-metric deltas against a previous run."""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field
from typing_extensions import TypeAliasType


class ChangeKind(StrEnum):
    IMPROVED = "improved"
    REGRESSED = "regressed"
    UNCHANGED = "unchanged"
    NEW = "new"
    DISCONTINUED = "discontinued"


class MetricDelta(BaseModel, frozen=True):
    """Change of one metric between the previous and the current run.

    ``current`` is None for discontinued metrics and ``previous`` is None for
    new ones; ``delta`` is set only when both are present. ``percent`` is
    additionally None when the previous value is zero.
    """

    name: str
    current: float | None = None
    previous: float | None = None
    delta: float | None = None
    percent: float | None = None
    change: ChangeKind


class SampleComparison(BaseModel, frozen=True):
    sample_id: str
    metrics: list[MetricDelta] = Field(default_factory=list)


class ComparisonResult(BaseModel, frozen=True):
    """Deltas for every metric of either run, overall and per shared sample."""

    kind: Literal["comparison"] = "comparison"
    previous_session_id: str
    previous_finished_at: datetime
    metrics: list[MetricDelta] = Field(default_factory=list)
    samples: list[SampleComparison] = Field(default_factory=list)

    def metric(self, name: str) -> MetricDelta | None:
        for delta in self.metrics:
            if delta.name == name:
                return delta
        return None

    def count(self, change: ChangeKind) -> int:
        return sum(1 for delta in self.metrics if delta.change is change)


class NoPreviousRun(BaseModel, frozen=True):
    """Returned instead of a ComparisonResult when there is nothing to compare to."""

    kind: Literal["no_previous_run"] = "no_previous_run"
    reason: str = "no previous run found"


Comparison = TypeAliasType("Comparison", ComparisonResult | NoPreviousRun)
