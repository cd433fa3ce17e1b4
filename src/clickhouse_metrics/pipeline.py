"""Wire the ClickHouse exporter into an OpenTelemetry ``MeterProvider``."""

from __future__ import annotations

import logging
import socket

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import HOST_NAME, SERVICE_NAME, Resource

from .config import ExporterConfig

logger = logging.getLogger(__name__)


def build_meter_provider(exporter: MetricExporter, config: ExporterConfig) -> MeterProvider:
    """Return a provider whose periodic reader pushes into *exporter*.

    The resource carries ``service.name`` from *config* and the local
    ``host.name``, which end up in every exported row.
    """
    resource = Resource.create({
        SERVICE_NAME: config.service_name,
        HOST_NAME: socket.gethostname(),
    })
    reader = PeriodicExportingMetricReader(
        exporter,
        export_interval_millis=config.export_interval_ms,
        export_timeout_millis=config.export_timeout_ms,
    )
    provider = MeterProvider(resource=resource, metric_readers=[reader])
    logger.info(
        "MeterProvider ready (service=%s, interval=%dms)",
        config.service_name,
        config.export_interval_ms,
    )
    return provider
