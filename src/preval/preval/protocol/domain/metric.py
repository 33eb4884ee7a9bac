"""Decoded metric values — what one OTLP metrics line turns into."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field
from typing_extensions import TypeAliasType

from preval.protocol.domain.handshake import MetricKind

AttributeValue = TypeAliasType(
    "AttributeValue",
    str | bool | int | float | list["AttributeValue"] | dict[str, "AttributeValue"],
)
Attributes = TypeAliasType("Attributes", dict[str, AttributeValue])

SAMPLE_ID_ATTRIBUTE = "sample.id"
RUN_ID_ATTRIBUTE = "run.id"
EVENT_ATTRIBUTE = "preval.event"
SUMMARY_ATTRIBUTE = "summary"


class DecodeFailureKind(StrEnum):
    NOT_VALID_STRUCTURED_DATA = "not_valid_structured_data"
    SCHEMA_MISMATCH = "schema_mismatch"
    UNSUPPORTED_METRIC_KIND = "unsupported_metric_kind"


class DecodeFailure(BaseModel, frozen=True):
    """A metric or data point that was skipped while the rest of the batch decoded."""

    kind: DecodeFailureKind
    reason: str
    metric_name: str | None = None


class HistogramBucket(BaseModel, frozen=True):
    upper_bound: float
    count: int = Field(ge=0)


class HistogramValue(BaseModel, frozen=True):
    count: int = Field(ge=0)
    sum: float | None = None
    buckets: list[HistogramBucket] = Field(default_factory=list)
    min: float | None = None
    max: float | None = None

    @property
    def mean(self) -> float | None:
        if self.sum is None or self.count == 0:
            return None
        return self.sum / self.count


class MetricPoint(BaseModel, frozen=True):
    """One data point. Exactly one of value/histogram is set, depending on kind.

    ``resource_attributes`` are those of the resource the point was reported
    under, so points from different resources in one line stay distinct.
    """

    name: str = Field(min_length=1)
    kind: MetricKind
    unit: str | None = None
    value: float | None = None
    histogram: HistogramValue | None = None
    time_unix_nano: int = Field(ge=0)
    attributes: Attributes = Field(default_factory=dict)
    resource_attributes: Attributes = Field(default_factory=dict)

    @property
    def scalar(self) -> float | None:
        """Single number representing the point: the value, or the histogram mean."""
        if self.histogram is not None:
            return self.histogram.mean
        return self.value

    def attribute(self, key: str) -> Any:
        return self.attributes.get(key)


class MetricBatch(BaseModel, frozen=True):
    """All points extracted from one metrics envelope, in wire order."""

    points: list[MetricPoint] = Field(default_factory=list)
    failures: list[DecodeFailure] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.points
