"""ClickHouse metric exporter for the OpenTelemetry SDK."""

from __future__ import annotations

import logging
import threading
import time

from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    MetricExportResult,
    MetricsData,
)

from ..config import ClickHouseConfig
from ..connection import ClickHouseConnection
from ..errors import StatementError
from .writer import WriteReport, write_batch

logger = logging.getLogger(__name__)


class ClickHouseMetricExporter(MetricExporter):
    """Writes OpenTelemetry metrics to a ClickHouse table, one row per point.

    The connection is opened and pinged at construction, so an unreachable
    server fails here rather than on the first export. Plug the exporter
    into a ``PeriodicExportingMetricReader`` (see
    :func:`clickhouse_metrics.pipeline.build_meter_provider`) or call
    :meth:`export` directly with a ``MetricsData`` batch.

    Export calls on one instance run one at a time. A row that fails to
    insert is logged and does not fail the call; only a statement that
    cannot be prepared does.
    """

    mutates_data = False

    def __init__(
        self,
        config: ClickHouseConfig,
        connection: ClickHouseConnection | None = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._table = config.qualified_table
        self._connection = connection if connection is not None else ClickHouseConnection.open(config)
        self._lock = threading.Lock()
        self.last_report: WriteReport | None = None
        logger.info("ClickHouseMetricExporter initialized → %s", self._table)

    @property
    def table(self) -> str:
        return self._table

    def start(self) -> None:
        """No-op; the connection is ready once the constructor returns."""

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10_000,
        **kwargs,
    ) -> MetricExportResult:
        deadline = time.monotonic() + timeout_millis / 1000.0 if timeout_millis else None
        with self._lock:
            try:
                report = write_batch(self._connection, metrics_data, self._table, deadline=deadline)
            except StatementError:
                logger.exception("Failed to export metrics to %s", self._table)
                return MetricExportResult.FAILURE
            self.last_report = report
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        # rows are inserted synchronously, nothing is buffered
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        with self._lock:
            self._connection.close()
        logger.info("ClickHouseMetricExporter shut down")


def create_metrics_exporter(config: ClickHouseConfig) -> ClickHouseMetricExporter:
    """Validate *config*, connect, and return a ready exporter."""
    config.validate()
    return ClickHouseMetricExporter(config)
