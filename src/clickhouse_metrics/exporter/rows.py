"""Flat row model and the metric-to-row mapping rules.

Three metric shapes are turned into rows:

* ``Gauge`` and ``Sum`` produce one row per data point with the point value
  converted to ``float``.
* ``Histogram`` produces one row per data point with ``count > 0``, valued at
  the mean ``sum / count``. Empty points are skipped.

Anything else (e.g. exponential histograms) classifies as
:attr:`MetricShape.UNKNOWN` and produces no rows.
"""

from __future__ import annotations

import base64
import enum
import json
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from opentelemetry.sdk.metrics.export import (
    Gauge,
    Histogram,
    HistogramDataPoint,
    Metric,
    NumberDataPoint,
    Sum,
)

SERVICE_NAME_KEY = "service.name"
HOST_NAME_KEY = "host.name"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MetricShape(str, enum.Enum):
    """The metric shapes the exporter distinguishes."""

    GAUGE = "gauge"
    SUM = "sum"
    HISTOGRAM = "histogram"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ResourceContext:
    """Values taken once from a resource and stamped on each of its rows."""

    service_name: str = ""
    host_name: str = ""


@dataclass(frozen=True)
class Row:
    """One metric observation in the column order of the target table."""

    timestamp: datetime
    metric_name: str
    metric_type: str
    value: float
    labels: dict[str, str] = field(default_factory=dict)
    service_name: str = ""
    host_name: str = ""

    def as_params(self) -> tuple[Any, ...]:
        """Positional insert parameters, in column order."""
        return (
            self.timestamp,
            self.metric_name,
            self.metric_type,
            self.value,
            self.labels,
            self.service_name,
            self.host_name,
        )


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, float) and not math.isfinite(value):
        return _format_float(value)
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def to_display_string(value: Any) -> str:
    """Render an attribute value as a string.

    ``bool`` gives ``"true"``/``"false"``, ``int`` its decimal digits and
    ``float`` drops the fraction of integral values (``5.0`` -> ``"5"``),
    using ``repr`` otherwise; NaN and infinities render as ``"NaN"``,
    ``"+Inf"`` and ``"-Inf"``. ``bytes`` are base64-encoded, ``None`` is the
    empty string, and sequences and mappings become compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(_jsonable(value), separators=(",", ":"))
    return str(value)


def flatten_attributes(
    attributes: Mapping[str, Any] | Iterable[tuple[str, Any]] | None,
) -> dict[str, str]:
    """Convert typed attributes into a ``str -> str`` mapping.

    Keys are kept verbatim. When *attributes* is an iterable of pairs,
    a repeated key keeps its last value.
    """
    if not attributes:
        return {}
    items = attributes.items() if isinstance(attributes, Mapping) else attributes
    return {str(key): to_display_string(value) for key, value in items}


def resource_context(attributes: Mapping[str, Any] | None) -> ResourceContext:
    """Extract ``service.name`` and ``host.name`` from resource attributes."""
    attributes = attributes or {}
    return ResourceContext(
        service_name=to_display_string(attributes.get(SERVICE_NAME_KEY)),
        host_name=to_display_string(attributes.get(HOST_NAME_KEY)),
    )


def nanos_to_datetime(nanos: int) -> datetime:
    """Convert a nanosecond Unix timestamp to an aware UTC datetime."""
    seconds, rem = divmod(int(nanos), 1_000_000_000)
    return _EPOCH + timedelta(seconds=seconds, microseconds=rem // 1000)


def classify(metric: Metric) -> MetricShape:
    data = metric.data
    if isinstance(data, Gauge):
        return MetricShape.GAUGE
    if isinstance(data, Sum):
        return MetricShape.SUM
    if isinstance(data, Histogram):
        return MetricShape.HISTOGRAM
    return MetricShape.UNKNOWN


def _number_rows(
    name: str,
    shape: MetricShape,
    points: Iterable[NumberDataPoint],
    ctx: ResourceContext,
) -> Iterator[Row]:
    for point in points:
        yield Row(
            timestamp=nanos_to_datetime(point.time_unix_nano),
            metric_name=name,
            metric_type=shape.value,
            value=float(point.value),
            labels=flatten_attributes(point.attributes),
            service_name=ctx.service_name,
            host_name=ctx.host_name,
        )


def _histogram_rows(
    name: str,
    points: Iterable[HistogramDataPoint],
    ctx: ResourceContext,
) -> Iterator[Row]:
    for point in points:
        if point.count <= 0:
            continue
        yield Row(
            timestamp=nanos_to_datetime(point.time_unix_nano),
            metric_name=name,
            metric_type=MetricShape.HISTOGRAM.value,
            value=float(point.sum) / point.count,
            labels=flatten_attributes(point.attributes),
            service_name=ctx.service_name,
            host_name=ctx.host_name,
        )


def map_metric(metric: Metric, ctx: ResourceContext) -> Iterator[Row]:
    """Yield the rows for one metric under the given resource context."""
    shape = classify(metric)
    if shape in (MetricShape.GAUGE, MetricShape.SUM):
        return _number_rows(metric.name, shape, metric.data.data_points, ctx)
    if shape is MetricShape.HISTOGRAM:
        return _histogram_rows(metric.name, metric.data.data_points, ctx)
    return iter(())
