"""Pydantic models of the OTLP/JSON metrics envelope.

Only the structural skeleton is modelled strictly. Metrics and data points are
kept as raw dicts at this level so that the decoder can validate them one at a
time and skip a bad one without losing the rest of the line. Unknown fields are
ignored everywhere so that newer evaluators keep working.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import TypeAliasType

RawObject = TypeAliasType("RawObject", dict[str, Any])


class _OtlpModel(BaseModel, frozen=True):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class OtlpKeyValue(_OtlpModel):
    key: str
    value: RawObject = Field(default_factory=dict)


class OtlpResource(_OtlpModel):
    attributes: list[OtlpKeyValue] = Field(default_factory=list)


class OtlpNumberDataPoint(_OtlpModel):
    time_unix_nano: int
    as_double: float | None = None
    as_int: int | None = None
    attributes: list[OtlpKeyValue] = Field(default_factory=list)


class OtlpHistogramDataPoint(_OtlpModel):
    time_unix_nano: int
    count: int = Field(default=0, ge=0)
    sum: float | None = None
    bucket_counts: list[int] = Field(default_factory=list)
    explicit_bounds: list[float] = Field(default_factory=list)
    min: float | None = None
    max: float | None = None
    attributes: list[OtlpKeyValue] = Field(default_factory=list)


class OtlpGauge(_OtlpModel):
    data_points: list[RawObject] = Field(default_factory=list)


class OtlpSum(_OtlpModel):
    data_points: list[RawObject] = Field(default_factory=list)
    aggregation_temporality: int = 0
    is_monotonic: bool = False


class OtlpHistogram(_OtlpModel):
    data_points: list[RawObject] = Field(default_factory=list)
    aggregation_temporality: int = 0


class OtlpMetric(_OtlpModel):
    name: str = ""
    unit: str | None = None
    description: str | None = None
    gauge: OtlpGauge | None = None
    sum: OtlpSum | None = None
    histogram: OtlpHistogram | None = None
    exponential_histogram: RawObject | None = None
    summary: RawObject | None = None


class OtlpScopeMetrics(_OtlpModel):
    scope: RawObject | None = None
    metrics: list[RawObject] = Field(default_factory=list)


class OtlpResourceMetrics(_OtlpModel):
    resource: OtlpResource | None = None
    scope_metrics: list[OtlpScopeMetrics] = Field(default_factory=list)


class OtlpMetricsData(_OtlpModel):
    """ExportMetricsServiceRequest — the root object of an OTLP/JSON metrics line."""

    resource_metrics: list[OtlpResourceMetrics] = Field(default_factory=list)
