"""CLI interface for clickhouse_metrics."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time

from . import __version__
from .config import load_config
from .errors import ConfigurationError, ExporterError


def _cmd_check(args: argparse.Namespace) -> None:
    """Open a connection and ping the server."""
    cfg = load_config(args.config)

    from .connection import ClickHouseConnection

    conn = ClickHouseConnection.open(cfg.clickhouse)
    conn.close()
    print(f"ClickHouse at {cfg.clickhouse.host}:{cfg.clickhouse.port} is reachable")


def _cmd_export_sample(args: argparse.Namespace) -> None:
    """Write the sample batch, or print its rows with --dry-run."""
    cfg = load_config(args.config)

    from .samples import build_sample_metrics

    batch = build_sample_metrics()

    if args.dry_run:
        from .exporter.walker import walk

        for row in walk(batch):
            print(f"{row.timestamp.isoformat()}  {row.metric_type:<9} {row.metric_name:<24} "
                  f"{row.value:>16.3f}  {row.labels}")
        return

    from .connection import ClickHouseConnection
    from .exporter.writer import write_batch

    conn = ClickHouseConnection.open(cfg.clickhouse)
    try:
        report = write_batch(conn, batch, cfg.clickhouse.qualified_table)
    finally:
        conn.close()

    print(f"Rows written:    {report.rows_written}")
    print(f"Rows failed:     {report.rows_failed}")
    print(f"Metrics skipped: {report.skipped_metrics}")
    for metric_name, error in report.failures:
        print(f"  {metric_name}: {error}")


def _cmd_collect(args: argparse.Namespace) -> None:
    """Export host metrics to ClickHouse until interrupted."""
    cfg = load_config(args.config)

    from .collector.host import register_host_instruments
    from .exporter.clickhouse import create_metrics_exporter
    from .pipeline import build_meter_provider

    exporter = create_metrics_exporter(cfg.clickhouse)
    provider = build_meter_provider(exporter, cfg.exporter)
    register_host_instruments(provider.get_meter("clickhouse_metrics.host", __version__), cfg.collector)

    stop = False

    def _handle_signal(_sig: int, _frame: object) -> None:
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    print(f"Exporting host metrics to {exporter.table} every {cfg.exporter.export_interval_ms} ms")
    print("Press Ctrl+C to stop.\n")
    try:
        while not stop:
            time.sleep(0.5)
    finally:
        # flushes a final collection through the exporter, then closes it
        provider.shutdown()
    print("\nCollection stopped.")


def _cmd_tail(args: argparse.Namespace) -> None:
    """Print the most recently inserted rows."""
    cfg = load_config(args.config)

    from .connection import ClickHouseConnection
    from .exporter.writer import COLUMNS

    conn = ClickHouseConnection.open(cfg.clickhouse)
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"SELECT {', '.join(COLUMNS)} FROM {cfg.clickhouse.qualified_table} "
            "ORDER BY timestamp DESC LIMIT %(limit)s",
            {"limit": args.limit},
        )
        rows = cursor.fetchall()
    finally:
        cursor.close()
        conn.close()

    print(f"Last {len(rows)} metrics in {cfg.clickhouse.qualified_table}:")
    print("-" * 50)
    for ts, name, metric_type, value, labels, service, host in rows:
        print(f"Time: {ts}\nMetric: {name}\nType: {metric_type}\nValue: {value:f}\n"
              f"Labels: {labels}\nService: {service}\nHost: {host}\n")


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"clickhouse_metrics {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the clickhouse-metrics CLI."""
    parser = argparse.ArgumentParser(
        prog="clickhouse-metrics",
        description="Export OpenTelemetry metrics to ClickHouse",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to clickhouse_metrics.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    # check
    check_p = sub.add_parser("check", help="Connect to ClickHouse and ping it")
    check_p.set_defaults(func=_cmd_check)

    # export-sample
    sample_p = sub.add_parser("export-sample", help="Export a sample metrics batch")
    sample_p.add_argument("--dry-run", action="store_true", help="Print rows instead of inserting them")
    sample_p.set_defaults(func=_cmd_export_sample)

    # collect
    collect_p = sub.add_parser("collect", help="Export host metrics until interrupted")
    collect_p.set_defaults(func=_cmd_collect)

    # tail
    tail_p = sub.add_parser("tail", help="Show the most recent rows")
    tail_p.add_argument("--limit", "-n", type=int, default=5, help="Number of rows")
    tail_p.set_defaults(func=_cmd_tail)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    except ExporterError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
