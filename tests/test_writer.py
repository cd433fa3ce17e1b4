"""Tests for the insert statement and batch writer."""

import time

import pytest
from clickhouse_driver.dbapi.errors import OperationalError

from clickhouse_metrics.errors import RowInsertError, StatementError
from clickhouse_metrics.exporter.rows import nanos_to_datetime
from clickhouse_metrics.exporter.walker import walk
from clickhouse_metrics.exporter.writer import InsertStatement, insert_query, write_batch

from conftest import (
    TS,
    batch,
    exponential_histogram,
    gauge,
    nine_row_batch,
    number_point,
    resource_metrics,
)


def test_insert_query_shape():
    assert insert_query("otel.metrics") == (
        "INSERT INTO otel.metrics (timestamp, metric_name, metric_type, value, labels, "
        "service_name, host_name) VALUES"
    )


class TestInsertStatement:

    def test_prepare_checks_insert_against_server(self, connection, raw_conn):
        with InsertStatement.prepare(connection, "otel.metrics") as stmt:
            assert raw_conn.prepared == [stmt.query]
        assert raw_conn.inserted == []

    def test_prepare_missing_table(self, connection, raw_conn):
        """A missing table fails preparation and releases the cursor."""
        raw_conn.missing_tables.add("otel.missing_table")
        with pytest.raises(StatementError) as excinfo:
            InsertStatement.prepare(connection, "otel.missing_table")
        assert "does not exist" in str(excinfo.value)
        assert raw_conn.cursors[0].closed is True

    def test_prepare_server_unreachable(self, connection, raw_conn):
        raw_conn.server_error = OperationalError("Code: 210. Connection refused")
        with pytest.raises(StatementError):
            InsertStatement.prepare(connection, "otel.metrics")
        assert raw_conn.cursors[0].closed is True

    def test_prepare_on_closed_connection(self, connection):
        connection.close()
        with pytest.raises(StatementError):
            InsertStatement.prepare(connection, "otel.metrics")

    def test_cursor_released_on_error(self, connection, raw_conn):
        with pytest.raises(RuntimeError):
            with InsertStatement.prepare(connection, "otel.metrics"):
                raise RuntimeError("traversal blew up")
        assert raw_conn.cursors[0].closed is True

    def test_execute_failure_names_metric(self, connection, raw_conn):
        raw_conn.failing_metrics.add("bad.metric")
        rows = list(walk(batch(resource_metrics({}, [gauge("bad.metric", number_point(1))]))))
        with InsertStatement.prepare(connection, "otel.metrics") as stmt:
            with pytest.raises(RowInsertError) as excinfo:
                stmt.execute(rows[0])
        assert excinfo.value.metric_name == "bad.metric"


class TestWriteBatch:

    def test_rows_bound_in_column_order(self, connection, raw_conn):
        data = batch(resource_metrics(
            {"service.name": "test-service", "host.name": "test-host"},
            [gauge("http.requests", number_point(42, {"method": "GET"}))],
        ))
        report = write_batch(connection, data, "otel.metrics")
        assert report.rows_written == 1
        query, params = raw_conn.inserted[0]
        assert query.startswith("INSERT INTO otel.metrics (")
        assert params == (
            nanos_to_datetime(TS),
            "http.requests",
            "gauge",
            42.0,
            {"method": "GET"},
            "test-service",
            "test-host",
        )

    def test_all_rows_written(self, connection, raw_conn):
        report = write_batch(connection, nine_row_batch(), "otel.metrics")
        assert report.rows_written == 9
        assert report.rows_failed == 0
        assert len(raw_conn.inserted) == 9
        assert raw_conn.cursors[-1].closed is True

    def test_one_row_failure_is_isolated(self, connection, raw_conn):
        """One failing row among nine leaves eight persisted."""
        raw_conn.failing_metrics.add("m3")
        report = write_batch(connection, nine_row_batch(), "otel.metrics")
        assert report.rows_written == 8
        assert report.rows_failed == 1
        assert report.rows_total == 9
        assert [name for name, _ in report.failures] == ["m3"]
        assert [params[1] for _, params in raw_conn.inserted] == [
            "m0", "m1", "m2", "m4", "m5", "s0", "s1", "s2",
        ]

    def test_row_failure_is_logged(self, connection, raw_conn, caplog):
        raw_conn.failing_metrics.add("m3")
        with caplog.at_level("ERROR"):
            write_batch(connection, nine_row_batch(), "otel.metrics")
        assert any("m3" in record.getMessage() for record in caplog.records)

    def test_missing_table_writes_nothing(self, connection, raw_conn):
        raw_conn.missing_tables.add("otel.metrics")
        with pytest.raises(StatementError):
            write_batch(connection, nine_row_batch(), "otel.metrics")
        assert raw_conn.inserted == []

    def test_unreachable_server_writes_nothing(self, connection, raw_conn):
        raw_conn.server_error = OperationalError("Code: 210. Connection refused")
        with pytest.raises(StatementError):
            write_batch(connection, nine_row_batch(), "otel.metrics")
        assert raw_conn.inserted == []

    def test_expired_deadline_fails_rows_without_aborting(self, connection, raw_conn):
        report = write_batch(connection, nine_row_batch(), "otel.metrics", deadline=time.monotonic() - 1)
        assert report.rows_written == 0
        assert report.rows_failed == 9
        assert raw_conn.inserted == []
        assert all("deadline" in error for _, error in report.failures)

    def test_skipped_metrics_counted(self, connection):
        data = batch(resource_metrics({}, [exponential_histogram("e"), gauge("g", number_point(1))]))
        report = write_batch(connection, data, "otel.metrics")
        assert report.skipped_metrics == 1
        assert report.rows_written == 1
