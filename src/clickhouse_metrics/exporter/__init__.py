"""Metric export pipeline: rows, traversal, insertion and the SDK exporter."""

from .clickhouse import ClickHouseMetricExporter, create_metrics_exporter
from .rows import MetricShape, ResourceContext, Row, flatten_attributes, map_metric
from .walker import walk
from .writer import InsertStatement, WriteReport, write_batch

__all__ = [
    "ClickHouseMetricExporter",
    "InsertStatement",
    "MetricShape",
    "ResourceContext",
    "Row",
    "WriteReport",
    "create_metrics_exporter",
    "flatten_attributes",
    "map_metric",
    "walk",
    "write_batch",
]
