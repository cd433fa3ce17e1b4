"""A small hand-built ``MetricsData`` batch for smoke-testing a deployment."""

from __future__ import annotations

import time

from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    Gauge,
    Histogram,
    HistogramDataPoint,
    Metric,
    MetricsData,
    NumberDataPoint,
    ResourceMetrics,
    ScopeMetrics,
    Sum,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.util.instrumentation import InstrumentationScope

from . import __version__


def _number_point(value: int | float, now_ns: int, attributes: dict | None = None) -> NumberDataPoint:
    return NumberDataPoint(
        attributes=attributes or {},
        start_time_unix_nano=now_ns,
        time_unix_nano=now_ns,
        value=value,
    )


def _histogram_point(count: int, total: float, now_ns: int) -> HistogramDataPoint:
    return HistogramDataPoint(
        attributes={"route": "/api/users"},
        start_time_unix_nano=now_ns,
        time_unix_nano=now_ns,
        count=count,
        sum=total,
        bucket_counts=[count],
        explicit_bounds=[],
        min=0.0,
        max=total,
    )


def build_sample_metrics(now_ns: int | None = None) -> MetricsData:
    """Build a batch with one gauge, one monotonic sum, one labelled gauge
    and one histogram (plus an empty histogram point that yields no row)."""
    if now_ns is None:
        now_ns = time.time_ns()

    metrics = [
        Metric(
            name="system.memory.usage",
            description="",
            unit="By",
            data=Gauge(data_points=[_number_point(8589934592, now_ns)]),
        ),
        Metric(
            name="system.cpu.time",
            description="",
            unit="s",
            data=Sum(
                data_points=[_number_point(12.7, now_ns)],
                aggregation_temporality=AggregationTemporality.CUMULATIVE,
                is_monotonic=True,
            ),
        ),
        Metric(
            name="http.requests",
            description="",
            unit="1",
            data=Gauge(data_points=[
                _number_point(42, now_ns, {"method": "GET", "path": "/api/users", "status": "200"}),
            ]),
        ),
        Metric(
            name="http.server.duration",
            description="",
            unit="ms",
            data=Histogram(
                data_points=[
                    _histogram_point(4, 20.0, now_ns),
                    _histogram_point(0, 0.0, now_ns),
                ],
                aggregation_temporality=AggregationTemporality.CUMULATIVE,
            ),
        ),
    ]

    scope = InstrumentationScope("clickhouse_metrics.samples", __version__)
    resource = Resource({"service.name": "test-service", "host.name": "test-host"})
    return MetricsData(resource_metrics=[
        ResourceMetrics(
            resource=resource,
            scope_metrics=[ScopeMetrics(scope=scope, metrics=metrics, schema_url="")],
            schema_url="",
        ),
    ])
