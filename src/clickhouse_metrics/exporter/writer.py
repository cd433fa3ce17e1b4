"""Row insertion: one prepared statement per export call, one insert per row."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from opentelemetry.sdk.metrics.export import Metric, MetricsData

from ..connection import ClickHouseConnection
from ..errors import RowInsertError, StatementError
from .rows import Row
from .walker import walk

logger = logging.getLogger(__name__)

COLUMNS = (
    "timestamp",
    "metric_name",
    "metric_type",
    "value",
    "labels",
    "service_name",
    "host_name",
)


def insert_query(table: str) -> str:
    return f"INSERT INTO {table} ({', '.join(COLUMNS)}) VALUES"


class InsertStatement:
    """A parameterized insert bound to one cursor.

    Use as a context manager so the cursor is released on every exit path::

        with InsertStatement.prepare(connection, "otel.metrics") as stmt:
            stmt.execute(row)
    """

    def __init__(self, cursor: Any, query: str) -> None:
        self._cursor = cursor
        self._query = query
        self._closed = False

    @classmethod
    def prepare(cls, connection: ClickHouseConnection, table: str) -> "InsertStatement":
        """Open a cursor and check the insert against the server.

        An insert with no rows makes the server resolve the table and send
        back its sample block, so an unreachable server or a missing table
        fails here instead of on every row.
        """
        query = insert_query(table)
        try:
            cursor = connection.cursor()
        except Exception as exc:
            raise StatementError(f"failed to prepare statement: {exc}") from exc
        try:
            cursor.execute(query, [])
        except Exception as exc:
            cursor.close()
            raise StatementError(f"failed to prepare statement for {table}: {exc}") from exc
        return cls(cursor, query)

    @property
    def query(self) -> str:
        return self._query

    def execute(self, row: Row) -> None:
        """Insert *row*; raise :class:`RowInsertError` on failure."""
        try:
            self._cursor.execute(self._query, [row.as_params()])
        except Exception as exc:
            raise RowInsertError(row.metric_name, str(exc)) from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        except Exception:
            logger.exception("Failed to release insert statement")

    def __enter__(self) -> "InsertStatement":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass
class WriteReport:
    """Outcome of writing one batch."""

    rows_written: int = 0
    rows_failed: int = 0
    skipped_metrics: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def rows_total(self) -> int:
        return self.rows_written + self.rows_failed


def write_batch(
    connection: ClickHouseConnection,
    metrics_data: MetricsData,
    table: str,
    deadline: float | None = None,
) -> WriteReport:
    """Insert every row of *metrics_data* into *table*.

    Raises :class:`StatementError` when the statement cannot be prepared, in
    which case nothing is written. A failed row is logged and counted in the
    returned report, and the remaining rows are still attempted. *deadline*
    is a :func:`time.monotonic` value; rows reached after it fail individually.
    """
    report = WriteReport()

    def _skipped(_metric: Metric) -> None:
        report.skipped_metrics += 1

    with InsertStatement.prepare(connection, table) as stmt:
        for row in walk(metrics_data, on_skip=_skipped):
            try:
                if deadline is not None and time.monotonic() > deadline:
                    raise RowInsertError(row.metric_name, "export deadline exceeded")
                stmt.execute(row)
            except RowInsertError as exc:
                report.rows_failed += 1
                report.failures.append((row.metric_name, str(exc)))
                logger.error("Failed to insert %s metric %s: %s", row.metric_type, row.metric_name, exc)
                continue
            report.rows_written += 1

    logger.debug(
        "Wrote %d rows to %s (%d failed, %d metrics skipped)",
        report.rows_written,
        table,
        report.rows_failed,
        report.skipped_metrics,
    )
    return report
