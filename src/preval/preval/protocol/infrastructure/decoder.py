"""Protocol decoder — turns raw stdout lines into Handshake or MetricBatch values.

Every function here is pure: no I/O, no logging, no state. Callers decide what
a failure means (fatal during the handshake, an anomaly afterwards).
"""

import json
import math
from typing import Any

from pydantic import ValidationError

from preval.protocol.domain.handshake import Handshake, MetricKind
from preval.protocol.domain.metric import (
    Attributes,
    AttributeValue,
    DecodeFailure,
    DecodeFailureKind,
    HistogramBucket,
    HistogramValue,
    MetricBatch,
    MetricPoint,
)
from preval.protocol.infrastructure.errors import (
    ProtocolDecodeError,
    UnexpectedMessageTypeError,
)
from preval.protocol.infrastructure.otlp import (
    OtlpHistogramDataPoint,
    OtlpKeyValue,
    OtlpMetric,
    OtlpMetricsData,
    OtlpNumberDataPoint,
    OtlpResourceMetrics,
    RawObject,
)

HANDSHAKE_TYPE = "handshake"
METRICS_TYPE = "metrics"

_SUPPORTED_KINDS = {kind.value for kind in MetricKind}


class _PointError(Exception):
    """Internal signal: one data point is invalid and must be skipped."""

    def __init__(self, kind: DecodeFailureKind, reason: str) -> None:
        super().__init__(reason)
        self.kind = kind
        self.reason = reason


# ---------------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------------


def decode_handshake(line: str) -> Handshake:
    """Decode the first stdout line of an evaluator.

    Raises:
        UnexpectedMessageTypeError: the line is well-formed but not a handshake.
        ProtocolDecodeError: the line is not a JSON object, declares an
            unsupported metric kind, or does not match the handshake schema.
    """
    payload = _parse_object(line=line)

    msg_type = payload.get("type")
    if msg_type is None:
        if _looks_like_metrics(payload=payload):
            raise UnexpectedMessageTypeError(expected=HANDSHAKE_TYPE, received=METRICS_TYPE)
        raise ProtocolDecodeError(
            kind=DecodeFailureKind.SCHEMA_MISMATCH,
            reason="missing 'type' field",
        )
    if msg_type != HANDSHAKE_TYPE:
        raise UnexpectedMessageTypeError(expected=HANDSHAKE_TYPE, received=str(msg_type))

    _check_schema_kinds(payload=payload)

    try:
        return Handshake.model_validate(payload)
    except ValidationError as exc:
        raise ProtocolDecodeError(
            kind=DecodeFailureKind.SCHEMA_MISMATCH,
            reason=_describe_validation_error(exc=exc),
        ) from exc


def encode_handshake(handshake: Handshake) -> str:
    """Serialise a Handshake back to its single-line wire form."""
    return handshake.model_dump_json(by_alias=True, exclude_none=True)


def _check_schema_kinds(payload: RawObject) -> None:
    schema = payload.get("metrics_schema")
    if not isinstance(schema, list):
        return
    for entry in schema:
        if not isinstance(entry, dict) or "type" not in entry:
            continue
        if entry["type"] not in _SUPPORTED_KINDS:
            raise ProtocolDecodeError(
                kind=DecodeFailureKind.UNSUPPORTED_METRIC_KIND,
                reason=(
                    f"metric '{entry.get('name', '')}' declares unsupported"
                    f" type '{entry['type']}'"
                ),
            )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def decode_metrics(line: str) -> MetricBatch:
    """Decode one OTLP/JSON metrics line into a MetricBatch.

    Accepts either a full ``{"resourceMetrics": [...]}`` request or a single
    resource-metrics object. Metrics and points that fail validation are
    reported in ``MetricBatch.failures``; the rest of the line still decodes.

    Raises:
        ProtocolDecodeError: the line is not a JSON object or the envelope
            structure itself does not match OTLP.
    """
    payload = _parse_object(line=line)
    data = _parse_envelope(payload=payload)

    points: list[MetricPoint] = []
    failures: list[DecodeFailure] = []

    for resource_metrics in data.resource_metrics:
        # Each point carries the attributes of its own resource only.
        resource_attributes: Attributes = {}
        if resource_metrics.resource is not None:
            try:
                resource_attributes = _convert_attributes(
                    resource_metrics.resource.attributes
                )
            except _PointError as exc:
                failures.append(DecodeFailure(kind=exc.kind, reason=exc.reason))

        for scope_metrics in resource_metrics.scope_metrics:
            for raw_metric in scope_metrics.metrics:
                _decode_metric(
                    raw_metric=raw_metric,
                    resource_attributes=resource_attributes,
                    points=points,
                    failures=failures,
                )

    return MetricBatch(points=points, failures=failures)


def _parse_envelope(payload: RawObject) -> OtlpMetricsData:
    try:
        if "resourceMetrics" in payload or "resource_metrics" in payload:
            return OtlpMetricsData.model_validate(payload)
        if any(key in payload for key in ("scopeMetrics", "scope_metrics", "resource")):
            return OtlpMetricsData(
                resource_metrics=[OtlpResourceMetrics.model_validate(payload)]
            )
    except ValidationError as exc:
        raise ProtocolDecodeError(
            kind=DecodeFailureKind.SCHEMA_MISMATCH,
            reason=_describe_validation_error(exc=exc),
        ) from exc

    msg_type = payload.get("type")
    if isinstance(msg_type, str):
        raise UnexpectedMessageTypeError(expected=METRICS_TYPE, received=msg_type)
    raise ProtocolDecodeError(
        kind=DecodeFailureKind.SCHEMA_MISMATCH,
        reason="object has neither 'resourceMetrics' nor 'scopeMetrics'",
    )


def _decode_metric(
    raw_metric: RawObject,
    resource_attributes: Attributes,
    points: list[MetricPoint],
    failures: list[DecodeFailure],
) -> None:
    raw_name = raw_metric.get("name") if isinstance(raw_metric, dict) else None
    metric_name = raw_name if isinstance(raw_name, str) else None

    try:
        metric = OtlpMetric.model_validate(raw_metric)
    except ValidationError as exc:
        failures.append(
            DecodeFailure(
                kind=DecodeFailureKind.SCHEMA_MISMATCH,
                reason=_describe_validation_error(exc=exc),
                metric_name=metric_name,
            )
        )
        return

    name = metric.name.strip()
    if not name:
        failures.append(
            DecodeFailure(
                kind=DecodeFailureKind.SCHEMA_MISMATCH,
                reason="metric name cannot be empty",
            )
        )
        return

    present = [
        kind
        for kind, body in (
            (MetricKind.GAUGE, metric.gauge),
            (MetricKind.COUNTER, metric.sum),
            (MetricKind.HISTOGRAM, metric.histogram),
        )
        if body is not None
    ]
    if len(present) != 1:
        if not present and (metric.exponential_histogram or metric.summary):
            reason = "exponential histograms and summaries are not supported"
        else:
            reason = "metric must have exactly one of gauge, sum or histogram"
        failures.append(
            DecodeFailure(
                kind=DecodeFailureKind.UNSUPPORTED_METRIC_KIND,
                reason=reason,
                metric_name=name,
            )
        )
        return

    kind = present[0]
    if metric.gauge is not None:
        raw_points = metric.gauge.data_points
    elif metric.sum is not None:
        if not metric.sum.is_monotonic:
            failures.append(
                DecodeFailure(
                    kind=DecodeFailureKind.UNSUPPORTED_METRIC_KIND,
                    reason="non-monotonic sums are not supported as counters",
                    metric_name=name,
                )
            )
            return
        raw_points = metric.sum.data_points
    else:
        assert metric.histogram is not None
        raw_points = metric.histogram.data_points

    for raw_point in raw_points:
        try:
            if kind is MetricKind.HISTOGRAM:
                point = _decode_histogram_point(
                    raw_point=raw_point,
                    name=name,
                    unit=metric.unit,
                    resource_attributes=resource_attributes,
                )
            else:
                point = _decode_number_point(
                    raw_point=raw_point,
                    name=name,
                    unit=metric.unit,
                    kind=kind,
                    resource_attributes=resource_attributes,
                )
        except _PointError as exc:
            failures.append(
                DecodeFailure(kind=exc.kind, reason=exc.reason, metric_name=name)
            )
            continue
        points.append(point)


def _decode_number_point(
    raw_point: RawObject,
    name: str,
    unit: str | None,
    kind: MetricKind,
    resource_attributes: Attributes,
) -> MetricPoint:
    try:
        dp = OtlpNumberDataPoint.model_validate(raw_point)
    except ValidationError as exc:
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, _describe_validation_error(exc=exc)
        ) from exc

    if dp.as_double is not None:
        value = dp.as_double
    elif dp.as_int is not None:
        value = float(dp.as_int)
    else:
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, "data point has neither asDouble nor asInt"
        )

    if not math.isfinite(value):
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, f"non-finite value {value!r}"
        )
    if kind is MetricKind.COUNTER and value < 0:
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, f"counter value {value} is negative"
        )
    _check_timestamp(dp.time_unix_nano)

    return MetricPoint(
        name=name,
        kind=kind,
        unit=unit,
        value=value,
        time_unix_nano=dp.time_unix_nano,
        attributes=_convert_attributes(dp.attributes),
        resource_attributes=resource_attributes,
    )


def _decode_histogram_point(
    raw_point: RawObject,
    name: str,
    unit: str | None,
    resource_attributes: Attributes,
) -> MetricPoint:
    try:
        dp = OtlpHistogramDataPoint.model_validate(raw_point)
    except ValidationError as exc:
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, _describe_validation_error(exc=exc)
        ) from exc

    for label, number in (("sum", dp.sum), ("min", dp.min), ("max", dp.max)):
        if number is not None and not math.isfinite(number):
            raise _PointError(
                DecodeFailureKind.SCHEMA_MISMATCH, f"non-finite histogram {label}"
            )
    if any(not math.isfinite(bound) for bound in dp.explicit_bounds):
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, "non-finite histogram bound"
        )
    if dp.bucket_counts and len(dp.bucket_counts) != len(dp.explicit_bounds) + 1:
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH,
            f"{len(dp.bucket_counts)} bucket counts for"
            f" {len(dp.explicit_bounds)} explicit bounds",
        )
    if any(count < 0 for count in dp.bucket_counts):
        raise _PointError(DecodeFailureKind.SCHEMA_MISMATCH, "negative bucket count")
    _check_timestamp(dp.time_unix_nano)

    # OTLP explicit bounds omit the implicit +Inf upper bucket.
    buckets = [
        HistogramBucket(
            upper_bound=(
                dp.explicit_bounds[i] if i < len(dp.explicit_bounds) else math.inf
            ),
            count=count,
        )
        for i, count in enumerate(dp.bucket_counts)
    ]

    return MetricPoint(
        name=name,
        kind=MetricKind.HISTOGRAM,
        unit=unit,
        histogram=HistogramValue(
            count=dp.count,
            sum=dp.sum,
            buckets=buckets,
            min=dp.min,
            max=dp.max,
        ),
        time_unix_nano=dp.time_unix_nano,
        attributes=_convert_attributes(dp.attributes),
        resource_attributes=resource_attributes,
    )


def _check_timestamp(time_unix_nano: int) -> None:
    if time_unix_nano < 0:
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, "timeUnixNano cannot be negative"
        )


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------


def _convert_attributes(attributes: list[OtlpKeyValue]) -> Attributes:
    converted: Attributes = {}
    for attr in attributes:
        key = attr.key.strip()
        if not key:
            raise _PointError(
                DecodeFailureKind.SCHEMA_MISMATCH, "attribute key cannot be empty"
            )
        converted[key] = _convert_any_value(attr.value)
    return converted


def _convert_any_value(value: RawObject) -> AttributeValue:
    """Convert an OTLP AnyValue object into a plain Python value."""
    if "stringValue" in value:
        return str(value["stringValue"])
    if "boolValue" in value:
        return bool(value["boolValue"])
    if "intValue" in value:
        # int64 values are string-encoded in OTLP/JSON.
        try:
            return int(value["intValue"])
        except (TypeError, ValueError) as exc:
            raise _PointError(
                DecodeFailureKind.SCHEMA_MISMATCH,
                f"invalid intValue {value['intValue']!r}",
            ) from exc
    if "doubleValue" in value:
        try:
            return float(value["doubleValue"])
        except (TypeError, ValueError) as exc:
            raise _PointError(
                DecodeFailureKind.SCHEMA_MISMATCH,
                f"invalid doubleValue {value['doubleValue']!r}",
            ) from exc
    if "arrayValue" in value:
        return [
            _convert_any_value(item)
            for item in _nested_values(value["arrayValue"], label="arrayValue")
        ]
    if "kvlistValue" in value:
        converted: dict[str, AttributeValue] = {}
        for item in _nested_values(value["kvlistValue"], label="kvlistValue"):
            nested = item.get("value")
            if not isinstance(nested, dict):
                raise _PointError(
                    DecodeFailureKind.SCHEMA_MISMATCH,
                    f"kvlistValue entry {item.get('key')!r} has no value object",
                )
            converted[str(item.get("key", ""))] = _convert_any_value(nested)
        return converted
    raise _PointError(
        DecodeFailureKind.SCHEMA_MISMATCH,
        f"unsupported attribute value {sorted(value)!r}",
    )


def _nested_values(container: Any, label: str) -> list[RawObject]:
    """Return the ``values`` list of an arrayValue/kvlistValue, all objects."""
    if container is None:
        return []
    if not isinstance(container, dict):
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, f"{label} must be an object"
        )
    items = container.get("values", [])
    if not isinstance(items, list):
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH, f"{label}.values must be a list"
        )
    if not all(isinstance(item, dict) for item in items):
        raise _PointError(
            DecodeFailureKind.SCHEMA_MISMATCH,
            f"{label}.values must contain only objects",
        )
    return items


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_object(line: str) -> RawObject:
    try:
        payload: Any = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ProtocolDecodeError(
            kind=DecodeFailureKind.NOT_VALID_STRUCTURED_DATA,
            reason=f"invalid JSON: {exc}",
        ) from exc
    if not isinstance(payload, dict):
        raise ProtocolDecodeError(
            kind=DecodeFailureKind.NOT_VALID_STRUCTURED_DATA,
            reason=f"expected a JSON object, got {type(payload).__name__}",
        )
    return payload


def _looks_like_metrics(payload: RawObject) -> bool:
    return any(
        key in payload
        for key in ("resourceMetrics", "resource_metrics", "scopeMetrics")
    )


def _describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
        for error in exc.errors()
    )
