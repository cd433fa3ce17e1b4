"""clickhouse_metrics – export OpenTelemetry metrics to ClickHouse."""

__version__ = "0.1.0"
