"""Exception types raised by the exporter."""

from __future__ import annotations


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(ExporterError, ValueError):
    """Mandatory connection settings are missing or malformed."""


class StoreConnectionError(ExporterError, ConnectionError):
    """The ClickHouse connection could not be opened, pinged, or used."""


class StatementError(ExporterError):
    """The insert statement for an export call could not be prepared."""


class RowInsertError(ExporterError):
    """A single row failed to persist."""

    def __init__(self, metric_name: str, message: str) -> None:
        super().__init__(f"failed to insert metric {metric_name}: {message}")
        self.metric_name = metric_name
