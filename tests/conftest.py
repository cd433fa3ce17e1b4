"""Shared fakes and batch builders for the exporter tests."""

from __future__ import annotations

import pytest
from clickhouse_driver.dbapi.errors import InterfaceError, OperationalError
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    ExponentialHistogram,
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

from clickhouse_metrics.connection import ClickHouseConnection

TS = 1_700_000_000_123_456_789


# ---------------------------------------------------------------------------
# Fake DB-API connection
# ---------------------------------------------------------------------------

class FakeCursor:
    """Records executed statements.

    An insert with no rows is the server-side check made when a statement is
    prepared; it fails for tables listed in ``missing_tables`` or when the
    server is down. Rows whose metric name is listed in ``failing_metrics``
    fail on their own.
    """

    def __init__(self, raw: "FakeRawConnection") -> None:
        self._raw = raw
        self.closed = False

    def execute(self, query, params=None):
        if self.closed:
            raise InterfaceError("cursor already closed")
        if query == "SELECT 1":
            if self._raw.ping_error is not None:
                raise self._raw.ping_error
            return
        if self._raw.server_error is not None:
            raise self._raw.server_error
        if params == []:
            table = query.split()[2]
            if table in self._raw.missing_tables:
                raise OperationalError(f"Code: 60. Table {table} does not exist.")
            self._raw.prepared.append(query)
            return
        row = params[0]
        if row[1] in self._raw.failing_metrics:
            raise OperationalError(f"cannot insert {row[1]}")
        self._raw.inserted.append((query, row))

    def fetchone(self):
        return (1,)

    def close(self):
        self.closed = True


class FakeRawConnection:
    """Stand-in for ``clickhouse_driver.dbapi.Connection``."""

    def __init__(self, failing_metrics=(), missing_tables=(), ping_error=None) -> None:
        self.failing_metrics = set(failing_metrics)
        self.missing_tables = set(missing_tables)
        self.ping_error = ping_error
        self.server_error = None
        self.prepared: list = []
        self.inserted: list = []
        self.cursors: list[FakeCursor] = []
        self.close_calls = 0
        self.is_closed = False

    def cursor(self):
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def close(self):
        self.close_calls += 1
        if self.is_closed:
            raise InterfaceError("connection already closed")
        self.is_closed = True


@pytest.fixture
def raw_conn() -> FakeRawConnection:
    return FakeRawConnection()


@pytest.fixture
def connection(raw_conn) -> ClickHouseConnection:
    return ClickHouseConnection(raw_conn, "fake:9440/otel")


# ---------------------------------------------------------------------------
# MetricsData builders
# ---------------------------------------------------------------------------

def number_point(value, attributes=None, ts=TS) -> NumberDataPoint:
    return NumberDataPoint(
        attributes=attributes or {},
        start_time_unix_nano=ts,
        time_unix_nano=ts,
        value=value,
    )


def histogram_point(count, total, attributes=None, ts=TS) -> HistogramDataPoint:
    return HistogramDataPoint(
        attributes=attributes or {},
        start_time_unix_nano=ts,
        time_unix_nano=ts,
        count=count,
        sum=total,
        bucket_counts=[count],
        explicit_bounds=[],
        min=0.0,
        max=float(total),
    )


def gauge(name, *points) -> Metric:
    return Metric(name=name, description="", unit="", data=Gauge(data_points=list(points)))


def monotonic_sum(name, *points, monotonic=True) -> Metric:
    return Metric(
        name=name,
        description="",
        unit="",
        data=Sum(
            data_points=list(points),
            aggregation_temporality=AggregationTemporality.CUMULATIVE,
            is_monotonic=monotonic,
        ),
    )


def histogram(name, *points) -> Metric:
    return Metric(
        name=name,
        description="",
        unit="",
        data=Histogram(
            data_points=list(points),
            aggregation_temporality=AggregationTemporality.CUMULATIVE,
        ),
    )


def exponential_histogram(name) -> Metric:
    return Metric(
        name=name,
        description="",
        unit="",
        data=ExponentialHistogram(
            data_points=[],
            aggregation_temporality=AggregationTemporality.DELTA,
        ),
    )


def resource_metrics(attributes, *scopes) -> ResourceMetrics:
    """*scopes* is a sequence of metric lists, one per scope."""
    return ResourceMetrics(
        resource=Resource(attributes),
        scope_metrics=[
            ScopeMetrics(scope=InstrumentationScope(f"scope-{i}"), metrics=list(metrics), schema_url="")
            for i, metrics in enumerate(scopes)
        ],
        schema_url="",
    )


def batch(*resources) -> MetricsData:
    return MetricsData(resource_metrics=list(resources))


def nine_row_batch() -> MetricsData:
    """Nine rows: gauges m0..m5 and sums s0..s2 under one resource."""
    return batch(resource_metrics(
        {"service.name": "svc", "host.name": "host-a"},
        [gauge(f"m{i}", number_point(i)) for i in range(6)],
        [monotonic_sum(f"s{i}", number_point(float(i))) for i in range(3)],
    ))
