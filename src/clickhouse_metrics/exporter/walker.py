"""Single-pass traversal of an OpenTelemetry ``MetricsData`` batch."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from opentelemetry.sdk.metrics.export import Metric, MetricsData

from .rows import MetricShape, ResourceContext, Row, classify, map_metric, resource_context

logger = logging.getLogger(__name__)


def walk_metrics(metrics_data: MetricsData) -> Iterator[tuple[Metric, ResourceContext]]:
    """Yield every metric with the context of the resource it belongs to.

    Order follows the input exactly: resources, then scopes, then metrics.
    The resource context is computed once per resource.
    """
    for resource_metrics in metrics_data.resource_metrics:
        ctx = resource_context(resource_metrics.resource.attributes)
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                yield metric, ctx


def walk(
    metrics_data: MetricsData,
    on_skip: Callable[[Metric], None] | None = None,
) -> Iterator[Row]:
    """Yield the rows of a batch lazily, one metric at a time.

    Metrics of an unsupported shape produce no rows; *on_skip* is called
    with each of them.
    """
    for metric, ctx in walk_metrics(metrics_data):
        if classify(metric) is MetricShape.UNKNOWN:
            logger.debug(
                "Skipping metric %s with unsupported data type %s",
                metric.name,
                type(metric.data).__name__,
            )
            if on_skip is not None:
                on_skip(metric)
            continue
        yield from map_metric(metric, ctx)
